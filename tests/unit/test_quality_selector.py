from __future__ import annotations

from subburn.domain.media import VideoMetadata
from subburn.services.quality import crf_to_qp, select_quality

MB = 1024 * 1024


def test_resolution_tiers() -> None:
    expected = {
        (3840, 2160): (18, "slow", "256k"),
        (2560, 1440): (19, "slow", "256k"),
        (1920, 1080): (20, "medium", "192k"),
        (1280, 720): (21, "medium", "128k"),
        (640, 360): (22, "slower", "128k"),
    }
    for (width, height), (crf, preset, bitrate) in expected.items():
        q = select_quality(VideoMetadata(width=width, height=height))
        assert (q.crf, q.preset, q.audio_bitrate) == (crf, preset, bitrate)
        assert q.tune == "film"
        assert q.video_codec == "libx264"
        assert q.hardware is False


def test_vertical_uses_width_bucket() -> None:
    q = select_quality(VideoMetadata(width=1080, height=1920))
    assert q.crf == 20


def test_large_file_trades_quality_for_speed() -> None:
    meta = VideoMetadata(width=1920, height=1080)
    small = select_quality(meta, file_size_bytes=200 * MB)
    large = select_quality(meta, file_size_bytes=200 * MB + 1)
    assert (small.crf, small.preset) == (20, "medium")
    assert (large.crf, large.preset) == (22, "veryfast")


def test_large_file_threshold_is_configurable() -> None:
    q = select_quality(VideoMetadata(), file_size_bytes=60 * MB, large_file_mb=50)
    assert q.preset == "veryfast"


def test_hardware_path_uses_vaapi_and_qp() -> None:
    q = select_quality(VideoMetadata(width=1920, height=1080), hardware_available=True)
    assert q.hardware is True
    assert q.video_codec == "h264_vaapi"
    assert q.qp == crf_to_qp(20) == 22
    assert q.crf_or_qp == 22


def test_4k_hevc_sources() -> None:
    meta = VideoMetadata(width=3840, height=2160, source_codec="hevc")
    assert select_quality(meta, hardware_available=True).video_codec == "hevc_vaapi"
    assert select_quality(meta).video_codec == "libx265"

    large = select_quality(meta, file_size_bytes=500 * MB)
    assert large.video_codec == "libx265"
    assert large.preset == "veryfast"


def test_hevc_below_4k_stays_h264() -> None:
    meta = VideoMetadata(width=1920, height=1080, source_codec="hevc")
    assert select_quality(meta).video_codec == "libx264"
    assert select_quality(meta, hardware_available=True).video_codec == "h264_vaapi"


def test_audio_copied_when_good_aac() -> None:
    meta = VideoMetadata(source_audio_codec="aac", source_audio_bitrate=160)
    q = select_quality(meta)
    assert q.audio_codec == "copy"
    assert q.audio_bitrate is None


def test_audio_reencoded_when_low_bitrate_or_other_codec() -> None:
    low = select_quality(VideoMetadata(source_audio_codec="aac", source_audio_bitrate=96))
    opus = select_quality(VideoMetadata(source_audio_codec="opus", source_audio_bitrate=256))
    unknown = select_quality(VideoMetadata())
    for q in (low, opus, unknown):
        assert (q.audio_codec, q.audio_bitrate) == ("aac", "192k")


def test_crf_to_qp_clamps() -> None:
    assert crf_to_qp(0) == 2
    assert crf_to_qp(50) == 51
    assert crf_to_qp(-5) == 0
