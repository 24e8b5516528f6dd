from __future__ import annotations

import pytest

from reelhouse.media.ladder import PROFILES_BY_LABEL, QUALITY_PROFILES, get_profile, plan_qualities


@pytest.mark.parametrize(
    "height, expected",
    [
        (200, ()),
        (240, ()),
        (359, ()),
        (360, ("360p",)),
        (500, ("360p", "480p")),
        (720, ("360p", "480p", "720p")),
        (1079, ("360p", "480p", "720p")),
        (1080, ("360p", "480p", "720p", "1080p")),
        (2160, ("360p", "480p", "720p", "1080p")),
        (0, ()),
        (-1, ()),
        (None, ()),
    ],
)
def test_plan_qualities(height, expected):
    assert plan_qualities(height) == expected


@pytest.mark.parametrize("height", range(0, 2400, 37))
def test_plan_never_upscales(height):
    for label in plan_qualities(height):
        assert PROFILES_BY_LABEL[label].height <= height


def test_profiles_match_encoding_table():
    table = {p.label: (p.width, p.height, p.video_bitrate, p.audio_bitrate) for p in QUALITY_PROFILES}
    assert table == {
        "360p": (640, 360, "800k", "128k"),
        "480p": (854, 480, "1400k", "128k"),
        "720p": (1280, 720, "2800k", "128k"),
        "1080p": (1920, 1080, "5000k", "128k"),
    }
    heights = [p.height for p in QUALITY_PROFILES]
    assert heights == sorted(heights)


def test_get_profile_unknown_label():
    assert get_profile("4k") is None
    assert get_profile("original") is None
