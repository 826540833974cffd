"""Tests for the FastAPI application.

WHY: The HTTP API is the contract editors and automation code build
against: status codes, error ``code`` values, and response shapes must
stay stable even as the pipeline behind them changes.

HOW: Uses FastAPI's TestClient. The manager's pipeline launcher is
patched out so burn-in requests create jobs without running anything;
tests then drive job state directly through the store.

Test classes:
  - TestHealthAndDocs
  - TestVideoUpload: upload, metadata, stream, delete
  - TestCaptionEndpoints: segment + compile
  - TestStyleEndpoints: presets + validate
  - TestBurnInCreate: acceptance and 400/422/429 rejections
  - TestJobStatus: polling and listing
  - TestDownload: not found vs not ready vs file missing vs success

RULES:
- Each test gets a fresh job store, upload dir, and exports dir
"""

import io
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeProber
from caption_burner import __version__
from caption_burner.engine.probe import MediaInfo
from caption_burner.export.jobs import InMemoryJobStore, JobStatus
from caption_burner.server import app as app_module
from caption_burner.server.app import app, manager


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _fresh_state(tmp_path, monkeypatch):
    """Isolate module-level state between tests."""
    monkeypatch.setattr(manager, "store", InMemoryJobStore())
    monkeypatch.setattr(manager, "exports_dir", tmp_path / "exports")
    monkeypatch.setattr(app_module.media_store, "upload_dir", tmp_path / "uploads")


@pytest.fixture
def client():
    """TestClient with the burn-in pipeline launcher patched out."""
    with patch.object(manager, "_launch", new=lambda job_id, request: None):
        yield TestClient(app)


def _make_video_file(name="clip.mp4", content=b"\x00\x00\x00\x18ftypmp42"):
    return ("file", (name, io.BytesIO(content), "video/mp4"))


def _create_job(client, captions, **extra):
    body = {"videoId": "vid1", "captions": captions}
    body.update(extra)
    resp = client.post("/export/burn-in", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["job_id"]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealthAndDocs:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_openapi_schema(self, client):
        resp = client.get("/openapi.json")
        assert resp.status_code == 200
        paths = resp.json()["paths"]
        assert "/export/burn-in" in paths
        assert "/export/{job_id}/download" in paths


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


class TestVideoUpload:
    def test_upload(self, client):
        resp = client.post("/videos", files=[_make_video_file()])
        assert resp.status_code == 201
        data = resp.json()
        assert len(data["video_id"]) == 32
        assert data["filename"] == "clip.mp4"
        assert data["size"] == 12
        assert app_module.media_store.resolve(data["video_id"]).is_file()

    def test_unsupported_extension(self, client):
        resp = client.post("/videos", files=[_make_video_file(name="notes.txt")])
        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]

    def test_empty_upload(self, client):
        resp = client.post("/videos", files=[_make_video_file(content=b"")])
        assert resp.status_code == 400

    def test_metadata(self, client, monkeypatch):
        prober = FakeProber(MediaInfo(width=1920, height=1080, duration=12.5))
        monkeypatch.setattr(manager, "prober", prober)
        video_id = client.post("/videos", files=[_make_video_file()]).json()["video_id"]

        resp = client.get("/videos/{}/metadata".format(video_id))

        assert resp.status_code == 200
        assert resp.json() == {"video_id": video_id, "width": 1920, "height": 1080, "duration": 12.5}
        assert prober.calls == [app_module.media_store.resolve(video_id)]

    def test_metadata_unknown_video(self, client, monkeypatch):
        prober = FakeProber()
        monkeypatch.setattr(manager, "prober", prober)
        resp = client.get("/videos/{}/metadata".format("0" * 32))
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "video_not_found"
        assert prober.calls == []

    def test_metadata_probe_failure(self, client, monkeypatch):
        monkeypatch.setattr(manager, "prober", FakeProber(error="ffprobe exited with code 1"))
        video_id = client.post("/videos", files=[_make_video_file()]).json()["video_id"]

        resp = client.get("/videos/{}/metadata".format(video_id))

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "probe_failed"

    def test_stream(self, client):
        content = b"\x00\x00\x00\x18ftypmp42" + b"x" * 1000
        video_id = client.post("/videos", files=[_make_video_file(content=content)]).json()["video_id"]

        resp = client.get("/videos/{}/stream".format(video_id))

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "video/mp4"
        assert resp.content == content

    def test_stream_unknown_video(self, client):
        resp = client.get("/videos/not-a-video-id/stream")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "video_not_found"

    def test_delete(self, client):
        video_id = client.post("/videos", files=[_make_video_file()]).json()["video_id"]
        path = app_module.media_store.resolve(video_id)

        resp = client.delete("/videos/{}".format(video_id))

        assert resp.status_code == 204
        assert not path.exists()
        assert client.get("/videos/{}/stream".format(video_id)).status_code == 404

    def test_delete_twice(self, client):
        video_id = client.post("/videos", files=[_make_video_file()]).json()["video_id"]
        assert client.delete("/videos/{}".format(video_id)).status_code == 204

        resp = client.delete("/videos/{}".format(video_id))

        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "video_not_found"


# ---------------------------------------------------------------------------
# Captions
# ---------------------------------------------------------------------------


class TestCaptionEndpoints:
    def test_segment(self, client):
        resp = client.post("/captions/segment", json={
            "transcript": "one two three four five six seven eight",
            "duration": 10,
            "options": {"maxSegmentDuration": 5, "wordsPerMinute": 120},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 2
        assert data["segments"][0]["id"] == "caption-1"
        assert data["segments"][1]["start_time"] == pytest.approx(2.0)

    def test_segment_empty_transcript(self, client):
        resp = client.post("/captions/segment", json={"transcript": "", "duration": 10})
        assert resp.status_code == 200
        assert resp.json() == {"segments": [], "count": 0}

    def test_segment_bad_options(self, client):
        resp = client.post("/captions/segment", json={
            "transcript": "hello",
            "duration": 10,
            "options": {"wordsPerMinute": 0},
        })
        assert resp.status_code == 400

    def test_compile_ass(self, client, sample_captions):
        resp = client.post("/captions/compile", json={
            "captions": sample_captions,
            "style": "reel",
            "resolution": "1920x1080",
        })
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/x-ssa")
        assert "PlayResX: 1920" in resp.text
        assert resp.text.count("Dialogue: ") == 3

    def test_compile_srt(self, client, sample_captions):
        resp = client.post("/captions/compile", json={"captions": sample_captions, "format": "srt"})
        assert resp.status_code == 200
        assert resp.text.startswith("1\n00:00:00,000 --> 00:00:01,500\nHello world\n")

    def test_compile_high_contrast_alias(self, client, sample_captions):
        resp = client.post("/captions/compile", json={
            "captions": sample_captions,
            "style": {"typography": {"fontColor": "#FF0000"}},
            "forceHighContrast": True,
        })
        assert "Style: Default,Arial,48,&H00FFFFFF," in resp.text

    def test_compile_invalid_style(self, client, sample_captions):
        resp = client.post("/captions/compile", json={
            "captions": sample_captions,
            "style": {"typography": {"fontSize": 300}},
        })
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["code"] == "invalid_style"
        assert any(e.startswith("typography.fontSize") for e in detail["errors"])

    def test_compile_malformed_caption(self, client):
        resp = client.post("/captions/compile", json={"captions": [{"text": "no times"}]})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_captions"

    def test_compile_unknown_format(self, client, sample_captions):
        resp = client.post("/captions/compile", json={"captions": sample_captions, "format": "vtt"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------------


class TestStyleEndpoints:
    def test_presets(self, client):
        resp = client.get("/styles/presets")
        assert resp.status_code == 200
        data = resp.json()
        assert data["default"] == "classic"
        assert set(data["presets"]) == {"reel", "classic", "modern", "minimal"}

    def test_validate_ok(self, client):
        resp = client.post("/styles/validate", json={"style": "modern"})
        data = resp.json()
        assert data["is_valid"] is True
        assert data["errors"] == []
        assert data["style"]["animation"]["type"] == "slide"

    def test_validate_errors(self, client):
        resp = client.post("/styles/validate", json={"style": {"typography": {"fontSize": 300}}})
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_valid"] is False
        assert data["errors"][0].startswith("typography.fontSize")


# ---------------------------------------------------------------------------
# Burn-in creation
# ---------------------------------------------------------------------------


class TestBurnInCreate:
    def test_created_pending(self, client, sample_captions):
        resp = client.post("/export/burn-in", json={
            "videoId": "vid1",
            "captions": sample_captions,
            "style": "classic",
            "output": {"format": "mov", "quality": "high"},
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["progress"] == 0
        assert manager.store.get(data["job_id"]).video_id == "vid1"

    def test_empty_captions(self, client):
        resp = client.post("/export/burn-in", json={"videoId": "vid1", "captions": []})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_captions"
        assert manager.list_jobs() == []

    def test_invalid_style(self, client, sample_captions):
        resp = client.post("/export/burn-in", json={
            "videoId": "vid1",
            "captions": sample_captions,
            "style": {"effects": {"opacity": 2}},
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_style"

    def test_non_string_preset(self, client, sample_captions):
        resp = client.post("/export/burn-in", json={
            "videoId": "vid1",
            "captions": sample_captions,
            "style": {"preset": 5},
        })
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["code"] == "invalid_style"
        assert detail["errors"] == ["preset: expected a preset name"]
        assert manager.list_jobs() == []

    def test_invalid_output(self, client, sample_captions):
        resp = client.post("/export/burn-in", json={
            "videoId": "vid1",
            "captions": sample_captions,
            "output": {"format": "webm", "codec": "h264"},
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_request"

    def test_missing_video_id(self, client, sample_captions):
        resp = client.post("/export/burn-in", json={"captions": sample_captions})
        assert resp.status_code == 422

    def test_too_many_jobs(self, client, sample_captions, monkeypatch):
        monkeypatch.setattr(manager, "store", InMemoryJobStore(max_jobs=0))
        resp = client.post("/export/burn-in", json={"videoId": "vid1", "captions": sample_captions})
        assert resp.status_code == 429
        assert resp.json()["detail"]["code"] == "too_many_jobs"


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestJobStatus:
    def test_status_of_new_job(self, client, sample_captions):
        job_id = _create_job(client, sample_captions)
        resp = client.get("/export/status/{}".format(job_id))
        assert resp.status_code == 200
        data = resp.json()
        assert data["job_id"] == job_id
        assert data["status"] == "pending"
        assert data["output_path"] is None

    def test_status_reflects_progress(self, client, sample_captions):
        job_id = _create_job(client, sample_captions)
        manager.store.update(job_id, status=JobStatus.PROCESSING, progress=40)
        data = client.get("/export/status/{}".format(job_id)).json()
        assert data["status"] == "processing"
        assert data["progress"] == 40

    def test_failed_job_reports_error(self, client, sample_captions):
        job_id = _create_job(client, sample_captions)
        manager.store.update(job_id, status=JobStatus.FAILED, error="ffmpeg exited with code 1")
        data = client.get("/export/status/{}".format(job_id)).json()
        assert data["status"] == "failed"
        assert data["error"] == "ffmpeg exited with code 1"

    def test_unknown_job(self, client):
        resp = client.get("/export/status/job_nope")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "job_not_found"

    def test_list_jobs(self, client, sample_captions):
        first = _create_job(client, sample_captions)
        second = _create_job(client, sample_captions)
        resp = client.get("/export/jobs")
        assert resp.status_code == 200
        assert {j["job_id"] for j in resp.json()} == {first, second}


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


class TestDownload:
    def test_unknown_job(self, client):
        resp = client.get("/export/job_nope/download")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "job_not_found"

    def test_pending_not_ready(self, client, sample_captions):
        job_id = _create_job(client, sample_captions)
        resp = client.get("/export/{}/download".format(job_id))
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "not_ready"

    def test_failed_not_ready(self, client, sample_captions):
        job_id = _create_job(client, sample_captions)
        manager.store.update(job_id, status=JobStatus.FAILED, error="boom")
        resp = client.get("/export/{}/download".format(job_id))
        assert resp.status_code == 409

    def test_completed_download(self, client, sample_captions, tmp_path):
        job_id = _create_job(client, sample_captions)
        output = tmp_path / "{}.mp4".format(job_id)
        output.write_bytes(b"burned video")
        manager.store.update(job_id, status=JobStatus.COMPLETED, output_path=output)

        resp = client.get("/export/{}/download".format(job_id))

        assert resp.status_code == 200
        assert resp.content == b"burned video"
        assert resp.headers["content-type"] == "video/mp4"
        assert output.name in resp.headers["content-disposition"]

    def test_completed_but_file_missing(self, client, sample_captions, tmp_path):
        job_id = _create_job(client, sample_captions)
        manager.store.update(job_id, status=JobStatus.COMPLETED, output_path=tmp_path / "gone.mp4")

        resp = client.get("/export/{}/download".format(job_id))

        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "file_missing"
