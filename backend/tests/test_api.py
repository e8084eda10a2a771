import time

from fake_encoders import (
    FAILURE_SCRIPT,
    FAKE_OUTPUT,
    HANG_SCRIPT,
    SILENT_SUCCESS_SCRIPT,
    SUCCESS_SCRIPT,
)

AUDIO_BYTES = b"ID3" + b"\x01" * 2048
IMAGE_BYTES = b"\x89PNG" + b"\x02" * 512


def _files(audio=True, image=True):
    files = {}
    if audio:
        files["audio"] = ("track.mp3", AUDIO_BYTES, "audio/mpeg")
    if image:
        files["image"] = ("cover.png", IMAGE_BYTES, "image/png")
    return files


def _work_files(work_dir):
    return sorted(path.name for path in work_dir.iterdir())


def test_root_is_alive(make_client, fake_ffmpeg):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))

    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "OK"


def test_convert_then_download(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))

    response = client.post("/convert", files=_files())

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"url", "id", "expires_in_seconds"}
    assert body["url"] == f"http://testserver/download/{body['id']}"
    assert body["expires_in_seconds"] == 600

    # Only the artifact is left in the temp store
    names = _work_files(work_dir)
    assert len(names) == 1
    assert names[0].endswith("-output.mp4")

    download = client.get(f"/download/{body['id']}")
    assert download.status_code == 200
    assert download.content == FAKE_OUTPUT
    assert download.headers["content-type"] == "video/mp4"
    assert download.headers["content-disposition"] == 'attachment; filename="output.mp4"'
    assert download.headers["content-length"] == str(len(FAKE_OUTPUT))

    # Repeated downloads serve the same bytes until expiry
    assert client.get(f"/download/{body['id']}").content == FAKE_OUTPUT


def test_download_after_ttl_is_not_found(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))
    download_id = client.post("/convert", files=_files()).json()["id"]

    registry = client.app.state.registry
    evicted = registry.sweep(now=time.monotonic() + registry.ttl_seconds + 1)

    assert evicted == [download_id]
    assert _work_files(work_dir) == []
    assert client.get(f"/download/{download_id}").status_code == 404


def test_download_of_externally_deleted_file_is_not_found(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))
    download_id = client.post("/convert", files=_files()).json()["id"]

    for path in work_dir.iterdir():
        path.unlink()

    response = client.get(f"/download/{download_id}")
    assert response.status_code == 404
    assert download_id not in client.app.state.registry


def test_unknown_download_is_not_found(make_client, fake_ffmpeg):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))

    response = client.get("/download/dl-0-doesnotexist")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_url_honours_proxy_headers(make_client, fake_ffmpeg):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))

    response = client.post(
        "/convert",
        files=_files(),
        headers={"X-Forwarded-Proto": "https, http", "X-Forwarded-Host": "media.example.com"},
    )

    body = response.json()
    assert body["url"] == f"https://media.example.com/download/{body['id']}"


def test_public_base_url_setting_wins(make_client, fake_ffmpeg):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT), public_base_url="https://cdn.example.org")

    body = client.post("/convert", files=_files(), headers={"X-Forwarded-Host": "ignored"}).json()

    assert body["url"] == f"https://cdn.example.org/download/{body['id']}"


def test_missing_part_is_rejected_without_running_encoder(make_client, fake_ffmpeg, work_dir, run_marker):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT))

    for files in (_files(image=False), _files(audio=False)):
        response = client.post("/convert", files=files)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    assert not run_marker.exists()
    assert _work_files(work_dir) == []


def test_oversized_part_is_rejected_without_running_encoder(make_client, fake_ffmpeg, work_dir, run_marker):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT), max_upload_bytes=1024)

    response = client.post("/convert", files=_files())

    assert response.status_code == 413
    assert response.json()["error"] == "payload_too_large"
    assert response.json()["field"] == "audio"
    assert not run_marker.exists()
    assert _work_files(work_dir) == []


def test_encoder_failure_is_500_and_cleans_up(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(FAILURE_SCRIPT))

    response = client.post("/convert", files=_files())

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "ffmpeg_failed"
    assert body["code"] == 1
    assert body["signal"] is None
    assert "Invalid data found" in body["stderr"]
    assert _work_files(work_dir) == []


def test_clean_exit_without_output_is_a_failure(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(SILENT_SUCCESS_SCRIPT))

    response = client.post("/convert", files=_files())

    assert response.status_code == 500
    assert response.json()["error"] == "ffmpeg_failed"
    assert len(client.app.state.registry) == 0
    assert _work_files(work_dir) == []


def test_encoder_timeout_is_504_and_cleans_up(make_client, fake_ffmpeg, work_dir):
    client = make_client(fake_ffmpeg(HANG_SCRIPT), timeout_seconds=0.5)

    started = time.monotonic()
    response = client.post("/convert", files=_files())

    assert response.status_code == 504
    assert response.json()["error"] == "ffmpeg_timeout"
    assert time.monotonic() - started < 10
    assert _work_files(work_dir) == []


def test_spawn_failure_is_500_and_cleans_up(make_client, work_dir):
    client = make_client(str(work_dir.parent / "missing" / "ffmpeg"))

    response = client.post("/convert", files=_files())

    assert response.status_code == 500
    assert response.json()["error"] == "ffmpeg_spawn_failed"
    assert str(work_dir.parent) not in response.json()["message"]
    assert _work_files(work_dir) == []


def test_concurrency_cap_still_serves_requests(make_client, fake_ffmpeg):
    client = make_client(fake_ffmpeg(SUCCESS_SCRIPT), max_concurrent_jobs=1)

    ids = {client.post("/convert", files=_files()).json()["id"] for _ in range(3)}

    assert len(ids) == 3


def test_shutdown_removes_registered_artifacts(make_settings, fake_ffmpeg, work_dir):
    from fastapi.testclient import TestClient
    from main import create_app

    app = create_app(make_settings(fake_ffmpeg(SUCCESS_SCRIPT)))
    with TestClient(app) as client:
        assert client.post("/convert", files=_files()).status_code == 200
        assert len(_work_files(work_dir)) == 1

    assert _work_files(work_dir) == []
