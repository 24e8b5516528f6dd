from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(slots=True, frozen=True)
class QualityProfile:
    """Encoding settings for one rung of the rendition ladder."""

    label: str
    width: int
    height: int
    video_bitrate_kbps: int
    audio_bitrate_kbps: int = 128

    @property
    def video_bitrate(self) -> str:
        return f"{self.video_bitrate_kbps}k"

    @property
    def audio_bitrate(self) -> str:
        return f"{self.audio_bitrate_kbps}k"


# Ordered from the lowest to the highest rung.
QUALITY_PROFILES: Tuple[QualityProfile, ...] = (
    QualityProfile("360p", 640, 360, 800),
    QualityProfile("480p", 854, 480, 1400),
    QualityProfile("720p", 1280, 720, 2800),
    QualityProfile("1080p", 1920, 1080, 5000),
)

PROFILES_BY_LABEL: Dict[str, QualityProfile] = {profile.label: profile for profile in QUALITY_PROFILES}


def plan_qualities(source_height: Optional[int]) -> Tuple[str, ...]:
    """Return the rendition labels worth producing for a source, never upscaling."""
    if not source_height or source_height <= 0:
        return ()
    return tuple(profile.label for profile in QUALITY_PROFILES if source_height >= profile.height)


def get_profile(label: str) -> Optional[QualityProfile]:
    return PROFILES_BY_LABEL.get(label)


__all__ = ["QualityProfile", "QUALITY_PROFILES", "PROFILES_BY_LABEL", "plan_qualities", "get_profile"]
