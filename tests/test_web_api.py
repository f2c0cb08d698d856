from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from conftest import CAPTIONS, FakeEngine
from subburn.utils.store import export_key
from subburn.web.app import create_app

PAYLOAD = b"FAKE_MP4_BYTES" * 64


@pytest.fixture
def runtime(runtime_factory):
    return runtime_factory(FakeEngine(payload=PAYLOAD))


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as test_client:
        yield test_client


def _wait_for(client: TestClient, token: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        record = client.get(f"/api/export-progress/{token}").json()
        if record["status"] in {"complete", "error"} or time.monotonic() > deadline:
            return record
        time.sleep(0.02)


def _export(client: TestClient, upload: str, **extra) -> str:  # noqa: ANN003
    response = client.post("/api/export", json={"uploadId": upload, "subtitles": CAPTIONS, **extra})
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "exporting"
    return body["exportToken"]


def test_export_then_download_once(client, upload, scheduler) -> None:
    token = _export(client, upload)
    record = _wait_for(client, token)
    assert record["status"] == "complete"
    assert record["progress"] == 100

    response = client.get(f"/api/export-download/{token}")
    assert response.status_code == 200
    assert response.content == PAYLOAD
    assert response.headers["content-type"] == "video/mp4"
    assert 'filename="Mein_Video_subtitled.mp4"' in response.headers["content-disposition"]
    assert len(scheduler.calls) == 1

    again = client.get(f"/api/export-download/{token}")
    assert again.status_code == 404


def test_range_and_chunk_downloads_keep_artifact(client, upload, scheduler) -> None:
    token = _export(client, upload)
    _wait_for(client, token)

    ranged = client.get(f"/api/export-download/{token}", headers={"Range": "bytes=0-9"})
    assert ranged.status_code == 206
    assert ranged.content == PAYLOAD[:10]
    assert ranged.headers["content-range"] == f"bytes 0-9/{len(PAYLOAD)}"

    chunk = client.get(f"/api/download-chunk/{token}/0")
    assert chunk.status_code == 206
    assert chunk.content == PAYLOAD

    beyond = client.get(f"/api/export-download/{token}", headers={"Range": f"bytes={len(PAYLOAD)}-"})
    assert beyond.status_code == 416
    assert beyond.headers["content-range"] == f"bytes */{len(PAYLOAD)}"

    assert scheduler.calls == []
    assert client.get(f"/api/export-progress/{token}").json()["status"] == "complete"


def test_progress_of_unknown_export(client) -> None:
    response = client.get("/api/export-progress/missing")
    assert response.status_code == 404
    assert response.json() == {"status": "not_found"}


def test_download_before_completion_is_rejected(client, runtime) -> None:
    runtime.store.set(export_key("busy"), '{"status": "exporting", "progress": 40}', 60)
    assert client.get("/api/export-progress/busy").json()["status"] == "processing"
    response = client.get("/api/export-download/busy")
    assert response.status_code == 400


def test_input_errors(client, upload) -> None:
    missing = client.post("/api/export", json={"uploadId": "nope", "subtitles": CAPTIONS})
    assert missing.status_code == 404

    no_segments = client.post("/api/export", json={"uploadId": upload, "subtitles": "hello"})
    assert no_segments.status_code == 400
    assert no_segments.json() == {"error": "No valid subtitle segments found"}

    bad_mode = client.post(
        "/api/export",
        json={"uploadId": upload, "subtitles": CAPTIONS, "subtitlePreference": "karaoke"},
    )
    assert bad_mode.status_code == 400

    incomplete = client.post("/api/export", json={"subtitles": CAPTIONS})
    assert incomplete.status_code == 422


def test_failed_export_reports_error(runtime_factory, upload) -> None:
    runtime = runtime_factory(FakeEngine(fail="ffmpeg failed: boom"))
    with TestClient(create_app(runtime)) as client:
        token = _export(client, upload)
        record = _wait_for(client, token)
    assert record["status"] == "error"
    assert record["error"] == "ffmpeg failed: boom"


def test_one_time_download_token(client, runtime, upload, scheduler) -> None:
    issued = client.post(
        "/api/export-token",
        json={"uploadId": upload, "subtitles": CAPTIONS, "heightPreference": "low"},
    )
    assert issued.status_code == 200
    token = issued.json()["token"]
    assert issued.json()["expiresIn"] == 300

    first = client.get(f"/api/download/{token}")
    assert first.status_code == 200
    assert first.content == PAYLOAD

    second = client.get(f"/api/download/{token}")
    assert second.status_code == 404
    assert "invalid or expired" in second.json()["error"]

    assert len(scheduler.calls) == 1
    scheduler.run_all()
    exports = runtime.settings.exports_dir
    assert list(exports.iterdir()) == []
