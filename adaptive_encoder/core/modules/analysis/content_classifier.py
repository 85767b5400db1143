"""
Content-type classification.

Resolves a ContentType label for a source from three layers:
- a technical classifier driven by grain, motion, resolution and aspect ratio
- an optional content oracle consulted with a title parsed from the filename
- a filename keyword heuristic used when no technical signal is available

The oracle is advisory: it is skipped when the technical label is already
confident, and any oracle failure degrades to the technical label.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ....utils.logging import get_logger
from ...errors import ClassificationFailure
from .content_analyzer import ComplexitySignals
from .media_utils import MediaProbe

logger = get_logger("content_classifier")

HIGH_CONFIDENCE = 80
ORACLE_OVERRIDE_CONFIDENCE = 70
MIN_TITLE_CONFIDENCE = 30


class ContentType(str, Enum):
    ANIME = "anime"
    CLASSIC_ANIME = "classic_anime"
    ANIMATION_3D = "3d_animation"
    FILM = "film"
    HEAVY_GRAIN = "heavy_grain"
    LIGHT_GRAIN = "light_grain"
    ACTION = "action"
    CLEAN_DIGITAL = "clean_digital"
    MIXED = "mixed"
    # Only ever produced by an oracle that found nothing
    UNKNOWN = "unknown"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Classification:
    content_type: ContentType
    confidence: int
    source: str = "technical"

    def __str__(self):
        return f"{self.content_type.value}:{self.confidence}"


@dataclass(frozen=True)
class TechnicalFeatures:
    width: int
    height: int
    grain_level: float
    motion_level: int


def motion_level_from_scenes(scene_changes: float) -> int:
    if scene_changes > 50:
        return 25
    if scene_changes < 10:
        return 5
    return 10


def estimate_grain_from_bitrate(media: MediaProbe) -> Optional[int]:
    """Coarse grain guess from resolution and bitrate when no frames were sampled."""
    if media.bitrate_bps <= 0:
        return None
    if media.width >= 3000:
        grain = 1 if media.bitrate_bps > 50_000_000 else 3
    else:
        grain = 2 if media.bitrate_bps > 20_000_000 else 8
    # Very high quality H.264 at HD and above tends to be clean CGI
    if media.codec_name == "h264" and media.width >= 1920 and media.bitrate_bps > 30_000_000:
        grain = 1
    return grain


def technical_features(media: MediaProbe,
                       signals: Optional[ComplexitySignals]) -> Optional[TechnicalFeatures]:
    """
    Classifier inputs: sampled grain when frames were read, else a bitrate
    estimate. None when neither is available.
    """
    grain = signals.grain_level if signals is not None else None
    if grain is None:
        grain = estimate_grain_from_bitrate(media)
        if grain is None:
            return None
        logger.debug(f"Grain estimated from bitrate: {grain}")
    motion = motion_level_from_scenes(signals.scene_change_rate) if signals is not None else 10
    return TechnicalFeatures(media.width, media.height, grain, motion)


def classify_technical(features: TechnicalFeatures) -> Classification:
    """Fixed-threshold classifier returning (type, confidence)."""
    grain = features.grain_level
    motion = features.motion_level
    content_type = ContentType.FILM
    confidence = 75

    if grain == 0 and features.width >= 1920 and features.height >= 1080 and motion < 20:
        aspect = features.width / features.height
        # Ultra-wide ratios are typical of live-action epics, not CGI
        if 1.33 <= aspect <= 1.90:
            content_type = ContentType.ANIMATION_3D
            confidence = 80

    if content_type is ContentType.FILM and grain <= 3 and motion < 15 and features.width <= 1920:
        content_type = ContentType.ANIME
        confidence = 70

    if content_type is ContentType.FILM:
        if grain >= 15:
            content_type, confidence = ContentType.HEAVY_GRAIN, 85
        elif 5 < grain < 15:
            content_type, confidence = ContentType.LIGHT_GRAIN, 70
        elif motion > 20:
            content_type, confidence = ContentType.ACTION, 75

    logger.debug(f"Technical classification input - grain: {grain}, motion: {motion}, "
                 f"{features.width}x{features.height} -> {content_type.value} ({confidence}%)")
    return Classification(content_type, confidence, "technical")


def merge_classifications(technical: Classification, oracle: Classification) -> Classification:
    """Combine a technical label with an oracle answer."""
    oracle_known = oracle.content_type is not ContentType.UNKNOWN

    if oracle_known and oracle.confidence > technical.confidence:
        logger.profile("Oracle provided higher confidence, using oracle result")
        return Classification(oracle.content_type, oracle.confidence, "oracle")

    if oracle.content_type is technical.content_type:
        boosted = min(95, (technical.confidence + oracle.confidence) // 2 + 10)
        logger.profile(f"Technical and oracle agree, boosting confidence to {boosted}%")
        return Classification(technical.content_type, boosted, "merged")

    if oracle_known and oracle.confidence >= ORACLE_OVERRIDE_CONFIDENCE \
            and technical.confidence < ORACLE_OVERRIDE_CONFIDENCE:
        logger.profile("Oracle more confident than technical, using oracle result")
        return Classification(oracle.content_type, oracle.confidence, "oracle")

    logger.profile(f"Using technical classification (oracle: {oracle}, technical: {technical})")
    return technical


# -- title extraction --------------------------------------------------------

@dataclass(frozen=True)
class TitleInfo:
    title: str
    year: Optional[int]
    is_series: bool
    confidence: int


_SERIES_RE = re.compile(r"^(.+)[. ]S(\d{1,2})E(\d{1,2})", re.IGNORECASE)
_YEAR_MID_RE = re.compile(r"^(.+)[. ](\d{4})[. ]")
_YEAR_END_RE = re.compile(r"^(.+)[. ](\d{4})$")
_FIRST_TOKEN_RE = re.compile(r"^([^. ]+)")
_RELEASE_TAGS_RE = re.compile(
    r"\b(2160p|4K|UHD|1080p|720p|480p|BluRay|BDRip|WEBRip|HDTV|x264|x265|HEVC)\b",
    re.IGNORECASE,
)


def _clean_title(raw: str) -> str:
    title = re.sub(r"[._\-]", " ", raw)
    title = _RELEASE_TAGS_RE.sub("", title)
    return re.sub(r"\s+", " ", title).strip()


def extract_title_from_filename(path) -> TitleInfo:
    stem = Path(path).stem
    year = None
    is_series = False

    m = _SERIES_RE.match(stem)
    if m:
        raw, is_series, confidence = m.group(1), True, 85
    else:
        m = _YEAR_MID_RE.match(stem) or _YEAR_END_RE.match(stem)
        if m:
            raw, year = m.group(1), int(m.group(2))
            confidence = 80 if m.re is _YEAR_MID_RE else 75
        else:
            m = _FIRST_TOKEN_RE.match(stem)
            if m:
                raw, confidence = m.group(1), 40
            else:
                parts = re.sub(r"[._\-]", " ", stem).split()
                raw, confidence = (parts[0] if parts else ""), 30

    info = TitleInfo(_clean_title(raw), year, is_series, confidence)
    logger.debug(f"Extracted title from {stem!r}: {info}")
    return info


# -- filename fallback -------------------------------------------------------

_FILENAME_RULES = [
    (re.compile(r"anime|animation|cartoon"), ContentType.ANIME),
    (re.compile(r"cgi|3d"), ContentType.ANIMATION_3D),
    (re.compile(r"action|sports"), ContentType.ACTION),
    (re.compile(r"classic|vintage|old"), ContentType.LIGHT_GRAIN),
]


def classify_from_filename(path) -> Classification:
    name = Path(path).name.lower()
    for pattern, content_type in _FILENAME_RULES:
        if pattern.search(name):
            return Classification(content_type, 50, "filename")
    return Classification(ContentType.FILM, 50, "filename")


# -- oracle ------------------------------------------------------------------

class ContentOracle(ABC):
    """Advisory content-type lookup by title."""

    @abstractmethod
    def classify(self, title: str, year: Optional[int], is_series: bool) -> Classification:
        """Return a classification (possibly UNKNOWN); raise ClassificationFailure if unreachable."""


_TITLE_TABLE = [
    (re.compile(r"interstellar|gravity|inception|blade.*runner|matrix|avatar"),
     "is a live-action science fiction film starring actors directed by filmmaker cinematography"),
    (re.compile(r"arcane|spirited.*away|your.*name|akira|princess.*mononoke"),
     "is an anime animated film japanese animation studio production"),
    (re.compile(r"toy.*story|shrek|frozen|moana|incredibles|finding.*nemo"),
     "is a 3D animation computer animated film pixar dreamworks cgi rendered"),
    (re.compile(r"john.*wick|fast.*furious|mission.*impossible|expendables"),
     "is an action film live-action thriller adventure starring actors"),
]


def title_table_search(query: str) -> str:
    """Offline stand-in for a web search: canned descriptions for known titles."""
    lowered = query.lower()
    for pattern, description in _TITLE_TABLE:
        if pattern.search(lowered):
            return description
    return "movie film content information"


_INDICATORS = {
    "anime": (re.compile(r"anime|manga|japanese animation|crunchyroll|funimation|2d animation"), 10),
    "3d": (re.compile(r"3d animation|computer animation|cgi|pixar|dreamworks|computer-generated|rendered"), 10),
    "live": (re.compile(r"live-action|actor|actress|director|cast|filming|cinematography|starring"), 8),
    "action": (re.compile(r"action|thriller|adventure|superhero|martial arts|explosions"), 6),
}


def classify_from_text(text: str) -> Classification:
    """Keyword-weighted classification of descriptive text."""
    lowered = text.lower()
    scores = {name: len(pattern.findall(lowered)) * weight
              for name, (pattern, weight) in _INDICATORS.items()}
    total = sum(scores.values())

    content_type = ContentType.UNKNOWN
    max_score = 0
    if scores["anime"] > max_score:
        max_score, content_type = scores["anime"], ContentType.ANIME
    if scores["3d"] > max_score:
        max_score, content_type = scores["3d"], ContentType.ANIMATION_3D
    if scores["live"] > max_score:
        max_score = scores["live"]
        content_type = ContentType.ACTION if scores["action"] > scores["live"] // 2 else ContentType.FILM

    if total > 0:
        confidence = min(85, max(20, max_score * 100 // (total + 1)))
    else:
        confidence = 10

    logger.debug(f"Oracle scores - anime: {scores['anime']}, 3d: {scores['3d']}, "
                 f"live: {scores['live']}, action: {scores['action']}")
    return Classification(content_type, confidence, "oracle")


class KeywordContentOracle(ContentOracle):
    """
    Scores search-result text for animation / live-action indicators.

    ``search`` maps a query string to result text; the default answers from a
    small built-in title table so the oracle works offline.
    """

    max_searches = 3

    def __init__(self, search: Optional[Callable[[str], str]] = None):
        self.search = search or title_table_search

    def build_queries(self, title: str, year: Optional[int], is_series: bool) -> List[str]:
        if is_series:
            return [f'"{title}" TV series anime OR animation OR live-action',
                    f"{title} television show animated OR live-action"]
        if year:
            return [f'"{title}" {year} movie anime OR animation OR live-action OR documentary',
                    f'"{title}" {year} film animated OR live-action OR CGI']
        return [f'"{title}" movie anime OR animation OR live-action',
                f'"{title}" film animated OR live-action']

    def classify(self, title: str, year: Optional[int], is_series: bool) -> Classification:
        results = []
        for query in self.build_queries(title, year, is_series)[:self.max_searches]:
            logger.debug(f"Searching: {query}")
            try:
                text = self.search(query)
            except OSError as e:
                raise ClassificationFailure(f"search unavailable: {e}")
            if text:
                results.append(text)
        if not results:
            raise ClassificationFailure("No search results obtained")
        return classify_from_text("\n".join(results))


def resolve_content_type(media: MediaProbe, signals: Optional[ComplexitySignals],
                         oracle: Optional[ContentOracle] = None,
                         oracle_mode: str = "on") -> Classification:
    """
    Automatic content-type resolution.

    oracle_mode: ``off`` never consults the oracle, ``on`` consults it when the
    technical label is below 80% confidence, ``force`` always consults it.
    """
    features = technical_features(media, signals)
    if features is None:
        logger.warn("No technical signal available, falling back to filename heuristic")
        technical = classify_from_filename(media.path)
    else:
        technical = classify_technical(features)
    logger.profile(f"Technical classification: {technical.content_type.value} "
                   f"({technical.confidence}% confidence)")

    forced = oracle_mode == "force"
    if technical.confidence >= HIGH_CONFIDENCE and not forced:
        logger.profile("High technical confidence, using technical classification")
        return technical
    if oracle is None or oracle_mode == "off":
        return technical

    info = extract_title_from_filename(media.path)
    logger.profile(f"Extracted title: '{info.title}' (Year: {info.year or 'unknown'}, "
                   f"Confidence: {info.confidence}%)")
    if len(info.title) < 3:
        logger.warn(f"Title extraction failed or too short: '{info.title}'")
        return technical
    if info.confidence < MIN_TITLE_CONFIDENCE and not forced:
        logger.warn(f"Title extraction confidence too low: {info.confidence}%")
        return technical

    try:
        answer = oracle.classify(info.title, info.year, info.is_series)
    except ClassificationFailure as e:
        logger.warn(f"Oracle classification failed, using technical result: {e}")
        return technical

    logger.profile(f"Oracle classification: {answer.content_type.value} ({answer.confidence}% confidence)")
    return merge_classifications(technical, answer)


def resolution_category(media: MediaProbe) -> str:
    return "4k" if media.width >= 3000 else "1080p"


def recommend_profile(content_type: ContentType, media: MediaProbe) -> str:
    """Map a resolved content type and resolution to a profile name."""
    is_4k = resolution_category(media) == "4k"
    if content_type is ContentType.ANIMATION_3D:
        return "3d_cgi"
    if content_type is ContentType.HEAVY_GRAIN:
        return "4k_heavy_grain" if is_4k else "heavy_grain"
    if content_type in (ContentType.ANIME, ContentType.CLASSIC_ANIME, ContentType.LIGHT_GRAIN,
                        ContentType.ACTION, ContentType.CLEAN_DIGITAL):
        return content_type.value
    return "4k" if is_4k else "film"
