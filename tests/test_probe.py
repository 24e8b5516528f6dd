from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from reelhouse.core.errors import ProbeError
from reelhouse.media.probe import MediaProbe, Resolution, parse_duration_seconds, parse_resolution
from tests.fakes import FakeMediaEngine


def test_parse_duration_floors_to_seconds():
    assert parse_duration_seconds({"format": {"duration": "10.987"}}) == 10


def test_parse_duration_falls_back_to_stream():
    raw = {"format": {"duration": "N/A"}, "streams": [{"codec_type": "video", "duration": "4.2"}]}
    assert parse_duration_seconds(raw) == 4


@pytest.mark.parametrize("value", [None, "N/A", "", "abc", "0", "-3"])
def test_parse_duration_unavailable(value):
    with pytest.raises(ProbeError):
        parse_duration_seconds({"format": {"duration": value}})


def test_parse_resolution_prefers_default_stream():
    raw = {
        "streams": [
            {"codec_type": "video", "width": 3840, "height": 2160},
            {"codec_type": "video", "width": 1280, "height": 720, "disposition": {"default": 1}},
            {"codec_type": "audio"},
        ]
    }
    assert parse_resolution(raw) == Resolution(width=1280, height=720)


def test_parse_resolution_ignores_cover_art():
    raw = {
        "streams": [
            {"codec_type": "video", "codec_name": "mjpeg", "width": 3000, "height": 3000, "disposition": {"attached_pic": 1}},
            {"codec_type": "video", "codec_name": "h264", "width": 854, "height": 480},
        ]
    }
    assert parse_resolution(raw).height == 480


def test_parse_resolution_without_video_stream():
    with pytest.raises(ProbeError, match="no_video_stream"):
        parse_resolution({"streams": [{"codec_type": "audio"}]})


def test_media_probe_reads_duration_and_resolution(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"data")
    engine = FakeMediaEngine(width=1280, height=720, duration="12.5")
    probe = MediaProbe(engine, timeout=5)

    result = asyncio.run(probe.probe(source))

    assert (result.duration_seconds, result.width, result.height) == (12, 1280, 720)
    assert asyncio.run(probe.probe_duration(source)) == 12
    assert asyncio.run(probe.probe_resolution(source)) == Resolution(1280, 720)
    assert engine.commands[0][0] == "ffprobe"
    assert engine.commands[0][-1] == str(source)


def test_media_probe_engine_failure(tmp_path: Path):
    source = tmp_path / "broken.mp4"
    source.write_bytes(b"not a video")
    engine = FakeMediaEngine()
    engine.fail_probe = True

    with pytest.raises(ProbeError, match="Invalid data"):
        asyncio.run(MediaProbe(engine).probe(source))


def test_media_probe_missing_file(tmp_path: Path):
    engine = FakeMediaEngine()
    with pytest.raises(ProbeError, match="source_not_found"):
        asyncio.run(MediaProbe(engine).probe(tmp_path / "missing.mp4"))
    assert engine.commands == []
