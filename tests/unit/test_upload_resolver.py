from __future__ import annotations

from pathlib import Path

from subburn.services.uploads import DirectFileResolver, LocalUploadResolver


def test_resolves_by_id_with_any_extension(tmp_path: Path) -> None:
    (tmp_path / "abc.mov").write_bytes(b"x")
    (tmp_path / "abc.name").write_text("Urlaub.mov", encoding="utf-8")
    resolver = LocalUploadResolver(tmp_path)
    path, exists = resolver.resolve("abc")
    assert exists
    assert path.name == "abc.mov"
    assert resolver.original_filename("abc") == "Urlaub.mov"


def test_original_filename_defaults_to_stored_name(tmp_path: Path) -> None:
    (tmp_path / "xyz").write_bytes(b"x")
    resolver = LocalUploadResolver(tmp_path)
    assert resolver.resolve("xyz") == ((tmp_path / "xyz").resolve(), True)
    assert resolver.original_filename("xyz") == "xyz"


def test_missing_and_malicious_ids(tmp_path: Path) -> None:
    resolver = LocalUploadResolver(tmp_path / "uploads")
    assert resolver.resolve("nope")[1] is False
    assert resolver.resolve("../secret")[1] is False
    assert resolver.resolve("..")[1] is False
    assert resolver.resolve("")[1] is False
    assert resolver.original_filename("../secret") is None


def test_direct_file_resolver(tmp_path: Path) -> None:
    video = tmp_path / "clip.mp4"
    video.write_bytes(b"x")
    resolver = DirectFileResolver(video)
    assert resolver.resolve("anything") == (video.resolve(), True)
    assert resolver.original_filename("anything") == "clip.mp4"
