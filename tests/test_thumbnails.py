from __future__ import annotations

import asyncio
from pathlib import Path

import cv2  # type: ignore
import pytest

from reelhouse.core.errors import ThumbnailError
from reelhouse.media.engine import EngineResult, FFmpegEngine
from reelhouse.media.probe import MediaProbe
from reelhouse.media.thumbnails import THUMB_HEIGHT, THUMB_WIDTH, ThumbnailExtractor, thumbnail_timestamp
from tests.fakes import FakeMediaEngine


def _extractor(engine) -> ThumbnailExtractor:
    return ThumbnailExtractor(engine, MediaProbe(engine), timeout=5)


def test_thumbnail_timestamp_is_ten_percent():
    assert thumbnail_timestamp(10) == 1.0
    assert thumbnail_timestamp(125) == 12.5
    assert thumbnail_timestamp(0) == 0.0


def test_extract_seeks_to_ten_percent_and_scales(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"data")
    engine = FakeMediaEngine(duration="40.0")
    target = tmp_path / "thumbs" / "clip.jpg"

    result = asyncio.run(_extractor(engine).extract(source, target))

    assert result == target
    assert target.exists()
    command = engine.ffmpeg_commands()[0]
    assert command[command.index("-ss") + 1] == "4.000"
    assert command[command.index("-vf") + 1] == f"scale={THUMB_WIDTH}:{THUMB_HEIGHT}"
    assert command[command.index("-frames:v") + 1] == "1"


def test_extract_uses_known_duration_without_probing(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"data")
    engine = FakeMediaEngine()

    asyncio.run(_extractor(engine).extract(source, tmp_path / "clip.jpg", duration_seconds=20))

    assert [command[0] for command in engine.commands] == ["ffmpeg"]
    assert "2.000" in engine.commands[0]


def test_extract_failure_raises_and_leaves_no_file(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"data")
    engine = FakeMediaEngine()
    engine.fail_thumbnail = True
    target = tmp_path / "clip.jpg"

    with pytest.raises(ThumbnailError):
        asyncio.run(_extractor(engine).extract(source, target))
    assert not target.exists()


def test_extract_rejects_undecodable_output(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"data")

    class GarbageEngine(FakeMediaEngine):
        def _ffmpeg(self, command, timeout):
            Path(command[-1]).write_bytes(b"definitely not a jpeg")
            return EngineResult(0, "", "")

    target = tmp_path / "clip.jpg"
    with pytest.raises(ThumbnailError, match="Failed to read"):
        asyncio.run(_extractor(GarbageEngine()).extract(source, target, duration_seconds=5))
    assert not target.exists()


def test_extract_with_real_ffmpeg(tmp_path: Path, generated_video_file: Path):
    engine = FFmpegEngine()
    target = tmp_path / "real.jpg"

    asyncio.run(_extractor(engine).extract(generated_video_file, target))

    image = cv2.imread(str(target))
    assert image is not None
    assert image.shape[:2] == (THUMB_HEIGHT, THUMB_WIDTH)
