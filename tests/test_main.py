"""
Tests for the FastAPI endpoints
"""
import base64
import io

from fastapi.testclient import TestClient
from PIL import Image as PILImage  # type: ignore


def test_root_endpoint(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert "imgcap API" in response.json()["message"]
    assert response.headers.get("X-Request-Id")


def test_request_id_is_echoed_when_provided(client: TestClient):
    rid = "test-request-id-123"
    resp = client.get("/", headers={"X-Request-Id": rid})
    assert resp.headers.get("X-Request-Id") == rid


def test_formats_lists_supported_types(client: TestClient):
    data = client.get("/api/formats").json()
    assert data["supported"] == ["image/jpeg", "image/png", "image/webp", "image/avif"]
    assert isinstance(data["avif_encoding"], bool)


def test_compress_png_to_webp(client: TestClient, png_200):
    files = {"image": ("photo.png", png_200, "image/png")}
    data = {"target_size": "10000", "output_type": "image/webp"}
    resp = client.post("/api/compress", files=files, data=data)

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/webp"
    assert int(resp.headers["X-Imgcap-Size"]) == len(resp.content)
    assert resp.headers["X-Imgcap-Passthrough"] == "false"
    with PILImage.open(io.BytesIO(resp.content)) as im:
        assert im.format == "WEBP"


def test_compress_respects_negative_tolerance(client: TestClient, png_200):
    files = {"image": ("photo.png", png_200, "image/png")}
    data = {"target_size": "5000", "tolerance": "-1024"}
    resp = client.post("/api/compress", files=files, data=data)

    assert resp.status_code == 200
    assert 500 < len(resp.content) <= 5000


def test_compress_passthrough(client: TestClient, image_factory):
    small = image_factory(10, 10, "image/png")
    files = {"image": ("tiny.png", small, "image/png")}
    resp = client.post("/api/compress", files=files, data={"target_size": "100000"})

    assert resp.status_code == 200
    assert resp.content == small
    assert resp.headers["X-Imgcap-Passthrough"] == "true"
    assert resp.headers["X-Imgcap-Iterations"] == "0"


def test_compress_rejects_unsupported_type(client: TestClient):
    files = {"image": ("notes.txt", b"test", "text/plain")}
    resp = client.post("/api/compress", files=files, data={"target_size": "10000"})
    assert resp.status_code == 400
    assert "PNG, JPEG, WebP and AVIF" in resp.json()["detail"]


def test_compress_rejects_small_target(client: TestClient, png_200):
    files = {"image": ("photo.png", png_200, "image/png")}
    resp = client.post("/api/compress", files=files, data={"target_size": "1000"})
    assert resp.status_code == 400
    assert "1KB" in resp.json()["detail"]


def test_compress_rejects_small_tolerance(client: TestClient, png_200):
    files = {"image": ("photo.png", png_200, "image/png")}
    resp = client.post("/api/compress", files=files, data={"target_size": "10000", "tolerance": "512"})
    assert resp.status_code == 400


def test_compress_malformed_image(client: TestClient):
    files = {"image": ("broken.png", b"not an image" * 200, "image/png")}
    resp = client.post("/api/compress", files=files, data={"target_size": "1024"})
    assert resp.status_code == 422


def test_compress_missing_target(client: TestClient, png_200):
    files = {"image": ("photo.png", png_200, "image/png")}
    resp = client.post("/api/compress", files=files)
    assert resp.status_code == 422


def test_compress_upload_too_large(client: TestClient, png_200, monkeypatch):
    from imgcap import main

    monkeypatch.setattr(main.settings, "max_upload_bytes", 1024)
    files = {"image": ("photo.png", png_200, "image/png")}
    resp = client.post("/api/compress", files=files, data={"target_size": "5000"})
    assert resp.status_code == 413


def test_compress_batch(client: TestClient, png_200, image_factory):
    small = image_factory(10, 10, "image/png")
    files = [
        ("images", ("a.png", png_200, "image/png")),
        ("images", ("b.png", small, "image/png")),
    ]
    resp = client.post("/api/compress-batch", files=files, data={"target_size": "6000", "tolerance": "-1024"})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["total"] == 2
    first, second = payload["items"]
    assert first["filename"] == "a.png"
    assert first["size"] <= 6000
    assert first["data_url"].startswith("data:image/png;base64,")
    assert second["passthrough"] is True
    assert base64.b64decode(second["data_url"].split(",", 1)[1]) == small
