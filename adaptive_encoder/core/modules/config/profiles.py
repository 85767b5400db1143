"""
Static encoding profiles.

Each profile carries its rate-control bases and an x265 parameter set. The
parameter set is written in x265's own ``key=value:key:no-key`` syntax and
normalized once at import time: bare flags become ``key=1`` and ``no-key``
becomes ``key=0``. Profiles are immutable at runtime.

New profiles can be added to ``_DEFINITIONS``; HDR additions are applied
later by parameter adaptation when the source is HDR.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping

from ...errors import ProfileNotFound
from ..analysis.content_classifier import ContentType

PIX_FMT = "yuv420p10le"
CODEC_PROFILE = "main10"


def parse_x265_params(text: str) -> Dict[str, str]:
    """Normalize an x265-params string into an ordered key/value mapping."""
    params: Dict[str, str] = {}
    for token in text.split(":"):
        token = token.strip()
        if not token:
            continue
        if "=" in token:
            key, value = token.split("=", 1)
            params[key.strip()] = value.strip()
        elif token.startswith("no-"):
            params[token[3:]] = "0"
        else:
            params[token] = "1"
    return params


def format_x265_params(params: Mapping[str, str]) -> str:
    return ":".join(f"{k}={v}" for k, v in params.items())


@dataclass(frozen=True)
class EncodingProfile:
    name: str
    title: str
    preset: str
    crf: float
    bitrate_sdr: int
    bitrate_hdr: int
    content_type: ContentType
    x265_params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    pix_fmt: str = PIX_FMT
    codec_profile: str = CODEC_PROFILE


def _profile(name, title, preset, crf, sdr, hdr, content_type, params) -> EncodingProfile:
    return EncodingProfile(
        name=name, title=title, preset=preset, crf=float(crf),
        bitrate_sdr=sdr, bitrate_hdr=hdr, content_type=content_type,
        x265_params=MappingProxyType(parse_x265_params(params)),
    )


_DEFINITIONS = [
    _profile("4k", "4K general preset", "slow", 22, 12000, 15000, ContentType.MIXED,
             "no-sao:bframes=8:b-adapt=2:ref=4:psy-rd=1.5:psy-rdoq=1.0:aq-mode=2:aq-strength=0.9:"
             "deblock=-1,-1:rc-lookahead=40:ctu=32:rd=4:rdoq-level=2:qcomp=0.70:weightb:weightp:"
             "cutree:me=umh:subme=3"),
    _profile("4k_heavy_grain", "4K heavy grain (consider using --denoise)", "slow", 21, 12000, 15000,
             ContentType.HEAVY_GRAIN,
             "selective-sao=2:deblock=-1,-1:aq-mode=3:psy-rd=0.8:psy-rdoq=1.0:rskip=2:"
             "rskip-edge-threshold=2:bframes=5:b-adapt=2:ref=6:rc-lookahead=60:ctu=32:rd=4:"
             "rdoq-level=2:qcomp=0.75:vbv-maxrate=12000:vbv-bufsize=20000:keyint=240:min-keyint=24:"
             "me=umh:subme=7:merange=57"),
    _profile("3d_cgi", "3D CGI (Pixar-like)", "slow", 22, 12000, 15000, ContentType.ANIMATION_3D,
             "limit-sao=1:deblock=1,1:aq-mode=3:aq-strength=0.9:psy-rd=1.6:psy-rdoq=1.5:rskip=2:"
             "rskip-edge-threshold=2:bframes=8:b-adapt=2:ref=5:rc-lookahead=60:ctu=32:rd=4:"
             "rdoq-level=2:qcomp=0.75:weightb:weightp:cutree:vbv-maxrate=12000:vbv-bufsize=22000:"
             "keyint=240:min-keyint=24:me=umh:subme=7:merange=57"),
    _profile("3d_complex", "3D complex content (Arcane-like)", "slow", 21, 12000, 15000,
             ContentType.ANIMATION_3D,
             "no-sao:deblock=1,1:aq-mode=3:aq-strength=1.0:psy-rd=2.0:psy-rdoq=2.5:rskip=2:"
             "rskip-edge-threshold=2:bframes=8:b-adapt=2:ref=6:rc-lookahead=60:ctu=32:rd=4:"
             "rdoq-level=2:qcomp=0.75:weightb:weightp:cutree:vbv-maxrate=25000:vbv-bufsize=50000:"
             "keyint=240:min-keyint=24:me=hex:subme=6:merange=57"),
    _profile("anime", "Anime", "slow", 23, 12000, 15000, ContentType.ANIME,
             "limit-sao=1:deblock=1,1:aq-mode=3:aq-strength=0.8:psy-rd=1.1:psy-rdoq=1.0:rskip=2:"
             "rskip-edge-threshold=2:bframes=5:b-adapt=2:ref=6:rc-lookahead=80:ctu=32:rd=4:"
             "rdoq-level=2:qcomp=0.75:vbv-maxrate=10000:vbv-bufsize=18000:keyint=240:min-keyint=24:"
             "me=hex:subme=6:merange=57"),
    _profile("classic_anime", "Classic 90s Anime with finer details", "slow", 22, 12000, 15000,
             ContentType.CLASSIC_ANIME,
             "limit-sao=1:deblock=0,0:aq-mode=3:aq-strength=0.8:psy-rd=0.9:psy-rdoq=1.0:rskip=2:"
             "rskip-edge-threshold=2:bframes=5:b-adapt=2:ref=6:rc-lookahead=50:ctu=32:rd=4:"
             "rdoq-level=2:qcomp=0.75:vbv-maxrate=10000:vbv-bufsize=18000:keyint=240:min-keyint=24:"
             "me=hex:subme=5:merange=57"),
    _profile("film", "1080p live-action film", "slow", 19, 4500, 5500, ContentType.FILM,
             "no-sao:deblock=-1,-1:aq-mode=2:aq-strength=1.0:psy-rd=2.0:psy-rdoq=1.0:bframes=6:"
             "b-adapt=2:ref=5:rc-lookahead=60:ctu=64:rd=4:rdoq-level=2:qcomp=0.70:weightb:weightp:"
             "cutree:keyint=240:min-keyint=24:me=umh:subme=5:merange=57"),
    _profile("heavy_grain", "1080p heavy grain film (consider using --denoise)", "slow", 20, 6000, 7500,
             ContentType.HEAVY_GRAIN,
             "selective-sao=2:deblock=-2,-2:aq-mode=3:psy-rd=1.0:psy-rdoq=2.0:bframes=5:b-adapt=2:"
             "ref=6:rc-lookahead=60:ctu=32:rd=4:rdoq-level=2:qcomp=0.75:keyint=240:min-keyint=24:"
             "me=umh:subme=7:merange=57"),
    _profile("light_grain", "1080p light grain film", "slow", 20, 5000, 6000, ContentType.LIGHT_GRAIN,
             "limit-sao=1:deblock=-1,-1:aq-mode=3:aq-strength=0.9:psy-rd=1.5:psy-rdoq=1.5:bframes=6:"
             "b-adapt=2:ref=5:rc-lookahead=60:ctu=32:rd=4:rdoq-level=2:qcomp=0.72:weightb:weightp:"
             "cutree:keyint=240:min-keyint=24:me=umh:subme=6:merange=57"),
    _profile("action", "1080p high motion action", "slow", 20, 6000, 7500, ContentType.ACTION,
             "limit-sao=1:deblock=0,0:aq-mode=2:aq-strength=1.0:psy-rd=1.8:psy-rdoq=1.0:bframes=4:"
             "b-adapt=2:ref=4:rc-lookahead=40:ctu=32:rd=4:rdoq-level=2:qcomp=0.65:weightb:weightp:"
             "cutree:keyint=240:min-keyint=24:me=umh:subme=5:merange=57"),
    _profile("clean_digital", "Clean digital source", "slow", 22, 4000, 5000, ContentType.CLEAN_DIGITAL,
             "sao=1:deblock=0,0:aq-mode=2:aq-strength=0.8:psy-rd=1.0:psy-rdoq=1.0:bframes=8:"
             "b-adapt=2:ref=4:rc-lookahead=40:ctu=64:rd=3:rdoq-level=1:qcomp=0.70:weightb:weightp:"
             "cutree:keyint=240:min-keyint=24:me=hex:subme=3"),
]

PROFILES: Mapping[str, EncodingProfile] = MappingProxyType({p.name: p for p in _DEFINITIONS})


def list_profiles() -> List[str]:
    return list(PROFILES)


def get_profile(name: str) -> EncodingProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ProfileNotFound(f"Unknown profile: {name} (available: {', '.join(PROFILES)})")
