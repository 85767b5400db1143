"""
Parameter adaptation: profile + complexity + content type + HDR -> final values.

Every function here is pure. ``adapt`` is the composition used by the
orchestrator; the smaller functions are exposed so each rule can be tested
on its own.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping

from ..analysis.content_classifier import ContentType
from .profiles import EncodingProfile

CRF_MIN = 15.0
CRF_MAX = 28.0
HDR_CRF_OFFSET = 2.0

CRF_MODIFIERS: Mapping[ContentType, float] = MappingProxyType({
    ContentType.ANIME: 0.2,
    ContentType.CLASSIC_ANIME: 0.5,
    ContentType.ANIMATION_3D: -0.4,
    ContentType.FILM: 0.0,
    ContentType.HEAVY_GRAIN: -0.8,
    ContentType.LIGHT_GRAIN: -0.3,
    ContentType.ACTION: -0.2,
    ContentType.CLEAN_DIGITAL: 0.3,
    ContentType.MIXED: 0.1,
})

BITRATE_MODIFIERS: Mapping[ContentType, float] = MappingProxyType({
    ContentType.ANIME: 0.90,
    ContentType.CLASSIC_ANIME: 0.85,
    ContentType.ANIMATION_3D: 1.05,
    ContentType.FILM: 1.00,
    ContentType.HEAVY_GRAIN: 1.25,
    ContentType.LIGHT_GRAIN: 1.10,
    ContentType.ACTION: 1.15,
    ContentType.CLEAN_DIGITAL: 0.80,
    ContentType.MIXED: 1.00,
})


def complexity_crf_adjustment(score: float) -> float:
    return (score - 50) * -0.05


def complexity_bitrate_factor(score: float) -> float:
    return 0.7 + score / 100 * 0.6


def adapt_crf(base_crf: float, score: float, content_type: ContentType) -> float:
    """CRF after content and complexity modifiers, clamped to [15, 28]."""
    crf = base_crf + CRF_MODIFIERS.get(content_type, 0.0) + complexity_crf_adjustment(score)
    return round(min(CRF_MAX, max(CRF_MIN, crf)), 1)


def adapt_bitrate(base_bitrate: int, score: float, content_type: ContentType) -> int:
    """Target bitrate (kbps). Not clamped: it is a target, not a cap."""
    factor = complexity_bitrate_factor(score)
    return int(round(base_bitrate * factor * BITRATE_MODIFIERS.get(content_type, 1.0)))


def refine_content_type(content_type: ContentType, score: float) -> ContentType:
    """Promote a profile's declared type when the measured complexity says otherwise."""
    if content_type is ContentType.ANIME and score > 60:
        return ContentType.CLASSIC_ANIME
    if content_type is ContentType.FILM and score > 80:
        return ContentType.HEAVY_GRAIN
    return content_type


def hdr_params(color_transfer: str = "smpte2084") -> Dict[str, str]:
    return {
        "colorprim": "bt2020",
        "transfer": color_transfer or "smpte2084",
        "colormatrix": "bt2020nc",
        "hdr10_opt": "1",
    }


@dataclass(frozen=True)
class AdaptedParameters:
    profile_name: str
    content_type: ContentType
    complexity_score: float
    is_hdr: bool
    crf: float
    bitrate: int
    preset: str
    pix_fmt: str
    codec_profile: str
    x265_params: Mapping[str, str]


def adapt(profile: EncodingProfile, score: float, content_type: ContentType,
          is_hdr: bool, color_transfer: str = "smpte2084") -> AdaptedParameters:
    """
    Derive final rate-control values for one run.

    HDR swaps in the HDR bitrate base and raises the base CRF by 2 before the
    content and complexity modifiers are applied.
    """
    base_bitrate = profile.bitrate_hdr if is_hdr else profile.bitrate_sdr
    base_crf = profile.crf + HDR_CRF_OFFSET if is_hdr else profile.crf

    params = dict(profile.x265_params)
    if is_hdr:
        params.update(hdr_params(color_transfer))

    return AdaptedParameters(
        profile_name=profile.name,
        content_type=content_type,
        complexity_score=score,
        is_hdr=is_hdr,
        crf=adapt_crf(base_crf, score, content_type),
        bitrate=adapt_bitrate(base_bitrate, score, content_type),
        preset=profile.preset,
        pix_fmt=profile.pix_fmt,
        codec_profile=profile.codec_profile,
        x265_params=MappingProxyType(params),
    )
