"""Media pipeline building blocks reused by the services, the worker and the CLI."""

from reelhouse.media.engine import EngineResult, FFmpegEngine, MediaEngine, get_media_engine
from reelhouse.media.ladder import QUALITY_PROFILES, QualityProfile, get_profile, plan_qualities
from reelhouse.media.probe import MediaProbe, ProbeResult, Resolution
from reelhouse.media.thumbnails import ThumbnailExtractor
from reelhouse.media.transcoder import RenditionTranscoder

__all__ = [
    "EngineResult",
    "FFmpegEngine",
    "MediaEngine",
    "get_media_engine",
    "QUALITY_PROFILES",
    "QualityProfile",
    "get_profile",
    "plan_qualities",
    "MediaProbe",
    "ProbeResult",
    "Resolution",
    "ThumbnailExtractor",
    "RenditionTranscoder",
]
