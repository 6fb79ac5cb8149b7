import asyncio
import json

import pytest
from conftest import RecordingStorage, build_multipart, multipart_content_type
from fastapi.testclient import TestClient

from uploader.config import Settings
from uploader.main import app
from uploader.routes.upload import get_settings, get_storage_backend

PNG = b"\x89PNG\r\n\x1a\nfake-image-data"


def make_settings(**overrides) -> Settings:
    values = dict(
        web3storage_token="test-token",
        max_upload_bytes=1024,
        default_name="Untitled",
        default_description="Default description",
        request_timeout_seconds=5.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def configure():
    def _configure(storage=None, **overrides):
        app.dependency_overrides[get_settings] = lambda: make_settings(**overrides)
        if storage is not None:
            app.dependency_overrides[get_storage_backend] = lambda: storage
        return TestClient(app)

    yield _configure
    app.dependency_overrides.clear()


def test_upload_with_metadata(configure, storage):
    client = configure(storage)
    metadata = {"name": "Sunset", "attributes": [{"trait_type": "Mood", "value": "Calm"}]}

    response = client.post(
        "/api/upload",
        files={
            "file": ("sunset.png", PNG, "image/png"),
            "metadata": ("metadata.json", json.dumps(metadata), "application/json"),
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "imageCid": "bafyimagecid",
        "imageUrl": "ipfs://bafyimagecid",
        "metadataCid": "bafymetadatacid",
        "metadataUrl": "ipfs://bafymetadatacid",
    }
    assert storage.calls[0] == (PNG, "sunset.png", "image/png")
    assert json.loads(storage.calls[1][0]) == {
        "name": "Sunset",
        "description": "Default description",
        "image": "ipfs://bafyimagecid",
        "attributes": [{"trait_type": "Mood", "value": "Calm"}],
    }


def test_upload_without_metadata_uses_defaults(configure, storage):
    client = configure(storage)

    response = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})

    assert response.status_code == 200
    assert json.loads(storage.calls[1][0]) == {
        "name": "Untitled",
        "description": "Default description",
        "image": "ipfs://bafyimagecid",
    }


def test_missing_file_is_400(configure, storage):
    client = configure(storage)

    response = client.post(
        "/api/upload", files={"attachment": ("notes.txt", b"no file here", "text/plain")}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["ok"] is False
    assert body["kind"] == "missing_file"
    assert storage.calls == []


def test_invalid_metadata_is_400(configure, storage):
    client = configure(storage)

    response = client.post(
        "/api/upload",
        files={
            "file": ("a.png", PNG, "image/png"),
            "metadata": ("metadata.json", b"{oops", "application/json"),
        },
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_metadata"
    assert "metadataCid" not in response.json()


def test_malformed_body_is_400(configure, storage):
    client = configure(storage)

    response = client.post(
        "/api/upload",
        content=b"--abc\r\nnot a header line",
        headers={"content-type": "multipart/form-data; boundary=abc"},
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "malformed_input"


def test_non_multipart_body_is_400(configure, storage):
    client = configure(storage)

    response = client.post("/api/upload", json={"file": "nope"})

    assert response.status_code == 400


def test_oversized_file_is_413_and_never_uploads(configure, storage):
    client = configure(storage, max_upload_bytes=64)
    body = build_multipart([("file", "big.png", "image/png", b"x" * 4096)])

    for _ in range(2):
        response = client.post(
            "/api/upload",
            content=body,
            headers={"content-type": multipart_content_type()},
        )
        assert response.status_code == 413
        assert response.json()["kind"] == "payload_too_large"

    assert storage.calls == []


def test_metadata_upload_failure_is_500(configure):
    storage = RecordingStorage(fail_on_call=2)
    client = configure(storage)

    response = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})

    assert response.status_code == 500
    body = response.json()
    assert body["kind"] == "upload_failed"
    assert body["stage"] == "metadata"
    assert "metadataCid" not in body


def test_missing_token_is_500(configure):
    client = configure(web3storage_token=None)

    response = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})

    assert response.status_code == 500
    assert response.json()["kind"] == "configuration"


def test_slow_backend_times_out(configure):
    class SlowStorage(RecordingStorage):
        async def put(self, data, filename, media_type):
            await asyncio.sleep(1)
            return await super().put(data, filename, media_type)

    client = configure(SlowStorage(), request_timeout_seconds=0.05)

    response = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})

    assert response.status_code == 500
    assert response.json()["stage"] == "timeout"


@pytest.mark.parametrize("path", ["/api/upload", "/api/upload-metadata"])
def test_options_returns_empty_200(configure, storage, path):
    response = configure(storage).options(path)

    assert response.status_code == 200
    assert response.content == b""


@pytest.mark.parametrize("method", ["get", "put", "delete"])
def test_other_methods_are_405(configure, storage, method):
    response = getattr(configure(storage), method)("/api/upload")

    assert response.status_code == 405


def test_upload_metadata_endpoint(configure, storage):
    client = configure(storage)
    document = {"name": "Token", "image": "ipfs://existing"}

    response = client.post("/api/upload-metadata", json=document)

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "metadataCid": "bafyimagecid",
        "tokenURI": "ipfs://bafyimagecid",
    }
    assert storage.calls[0][1:] == ("metadata.json", "application/json")
    assert json.loads(storage.calls[0][0]) == document


def test_upload_metadata_rejects_non_object(configure, storage):
    response = configure(storage).post("/api/upload-metadata", content=b"[1, 2]")

    assert response.status_code == 400
    assert storage.calls == []


def test_health(configure, storage):
    assert configure(storage).get("/health").json() == {"status": "ok"}


def test_cors_preflight_returns_empty_200(configure, storage):
    response = configure(storage).options(
        "/api/upload",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_too_many_parts_is_413(configure, storage):
    client = configure(storage, max_parts=2)
    body = build_multipart(
        [
            ("file", "a.png", "image/png", PNG),
            ("note", None, None, b"one"),
            ("note", None, None, b"two"),
        ]
    )

    response = client.post(
        "/api/upload", content=body, headers={"content-type": multipart_content_type()}
    )

    assert response.status_code == 413
    assert storage.calls == []


def test_oversized_request_body_is_413(configure, storage):
    client = configure(storage, max_upload_bytes=100, max_request_bytes=500)
    body = build_multipart([("note", None, None, b"n" * 90) for _ in range(6)])

    response = client.post(
        "/api/upload", content=body, headers={"content-type": multipart_content_type()}
    )

    assert response.status_code == 413
    assert response.json()["kind"] == "payload_too_large"
