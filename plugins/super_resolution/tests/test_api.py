from io import BytesIO

import pytest
from PIL import Image

from app import create_app
from plugins.super_resolution import api as api_module
from support import FakeBackend, sample_png


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def app(monkeypatch, backend):
    app = create_app("TestingConfig")
    app.config["PLUGIN_SETTINGS"]["super_resolution"] = {
        "enabled": True,
        "device": "cpu",
        "max_upload_mb": 1,
        "default_quality": "low",
        "max_selection_size": 200,
        "job_timeout_s": 10,
    }
    monkeypatch.setattr(api_module, "build_backend", lambda settings: backend)
    yield app
    worker = app.extensions.get(api_module.WORKER_KEY)
    if worker is not None:
        worker.close()


@pytest.fixture
def client(app):
    return app.test_client()


def _post(client, png: bytes, **fields):
    data = {"image": (BytesIO(png), "sample.png"), **fields}
    return client.post(
        "/api/v1/super_resolution/predict", data=data, content_type="multipart/form-data"
    )


def test_health_endpoint_reports_status(client):
    response = client.get("/api/v1/super_resolution/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    data = payload["data"]
    assert data["status"] == "ok"
    assert data["device"] in {"cpu", "cuda"}
    assert data["tiers"] == {"low": "RealESRGAN_x2plus", "high": "RealESRGAN_x4plus"}
    assert data["loaded_tier"] is None
    assert data["generation"] == 0


def test_predict_endpoint_returns_image(client):
    response = _post(client, sample_png())
    assert response.status_code == 200
    assert response.mimetype == "image/png"
    assert response.data.startswith(b"\x89PNG")
    assert response.headers["X-Upscale-Quality"] == "low"
    assert "X-Upscale-Region" not in response.headers

    health = client.get("/api/v1/super_resolution/health").get_json()["data"]
    assert health["loaded_tier"] == "low"
    assert health["loaded_model"] == "RealESRGAN_x2plus"
    assert health["generation"] == 1


def test_predict_crops_clamped_selection(client, backend):
    response = _post(
        client,
        sample_png((400, 400)),
        quality="high",
        start_x="10",
        start_y="10",
        end_x="250",
        end_y="60",
        display_width="200",
        display_height="200",
    )
    assert response.status_code == 200
    assert response.headers["X-Upscale-Quality"] == "high"
    assert response.headers["X-Upscale-Region"] == "20,20,220,120"
    assert [p.model_id for p in backend.created] == ["RealESRGAN_x4plus"]


def test_predict_requires_image(client):
    response = client.post(
        "/api/v1/super_resolution/predict", data={}, content_type="multipart/form-data"
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.missing_image"


@pytest.mark.parametrize(
    "fields",
    [
        {"quality": "ultra"},
        {"start_x": "10", "start_y": "10"},
        {"start_x": "a", "start_y": "1", "end_x": "2", "end_y": "3"},
        {"start_x": "1", "start_y": "1", "end_x": "2", "end_y": "3", "display_width": "0"},
    ],
)
def test_predict_rejects_bad_parameters(client, fields):
    response = _post(client, sample_png(), **fields)
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_parameters"


def test_predict_rejects_non_images(client):
    response = _post(client, b"GIF89a not allowed")
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_parameters"


def test_predict_rejects_oversized_upload(client):
    payload = b"\x89PNG\r\n\x1a\n" + b"0" * (1024 * 1024 + 16)
    response = _post(client, payload)
    assert response.status_code == 413
    assert response.get_json()["error"]["code"] == "super_resolution.too_large"


def test_predict_reports_corrupt_png(client):
    response = _post(client, b"\x89PNG\r\n\x1a\n" + b"garbage")
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_input"


def test_predict_surfaces_inference_failure(app, client, backend):
    backend.inference_errors["RealESRGAN_x2plus"] = "out of memory"
    response = _post(client, sample_png())
    assert response.status_code == 500
    error = response.get_json()["error"]
    assert error["code"] == "super_resolution.inference_failed"
    assert error["message"] == "out of memory"
    assert error["details"]["job_id"]


def test_predict_disabled(app, client):
    app.config["PLUGIN_SETTINGS"]["super_resolution"]["enabled"] = False
    response = _post(client, sample_png())
    assert response.status_code == 404


def test_selection_endpoint_replays_drag(client):
    response = client.post(
        "/api/v1/super_resolution/selection",
        json={
            "image": {"natural_width": 400, "natural_height": 400, "width": 200, "height": 200},
            "steps": [
                {"action": "begin", "event": {"offsetX": 10, "offsetY": 10}},
                {"action": "resize", "event": {"offsetX": 250, "offsetY": 10}},
                {"action": "end"},
            ],
        },
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["selecting"] is False
    assert data["selection"]["width"] == 100
    assert data["selection"]["height"] == 0
    assert data["naturalBox"] is None


def test_selection_endpoint_accepts_touch_events(client):
    touch = {"clientX": 70, "clientY": 90, "target": {"left": 20, "top": 40}}
    move = {"clientX": 120, "clientY": 110, "target": {"left": 20, "top": 40}}
    response = client.post(
        "/api/v1/super_resolution/selection",
        json={
            "image": {"natural_width": 400, "natural_height": 400, "width": 200, "height": 200},
            "steps": [
                {"action": "begin", "event": {"touches": [touch]}},
                {"action": "resize", "event": {"touches": [move]}},
            ],
        },
    )
    data = response.get_json()["data"]
    assert data["selecting"] is True
    assert data["selection"]["startX"] == 50
    assert data["naturalBox"] == [100, 100, 200, 140]


def test_selection_endpoint_rejects_bad_payload(client):
    response = client.post("/api/v1/super_resolution/selection", json={"steps": []})
    assert response.status_code == 400
    touchless = client.post(
        "/api/v1/super_resolution/selection",
        json={
            "image": {"natural_width": 4, "natural_height": 4, "width": 4, "height": 4},
            "steps": [{"action": "begin", "event": {"touches": []}}],
        },
    )
    assert touchless.status_code == 400
    assert touchless.get_json()["error"]["code"] == "super_resolution.invalid_selection"


def test_upscaled_image_decodes(client):
    response = _post(client, sample_png(), quality="high")
    image = Image.open(BytesIO(response.data))
    assert image.size == (16, 16)
