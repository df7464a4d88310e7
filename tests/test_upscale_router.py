"""Tests for the /upscale endpoint."""

import base64
import io
import json
from unittest.mock import patch

from PIL import Image

from config import settings
from decoders.gif import GifDecoder
from routers.upscale import _content_disposition
from utils.concurrency import conversion_gate


def _post(client, data, filename="sprite.gif", media_type="image/gif", options=None):
    form = {"options": json.dumps(options)} if options is not None else None
    return client.post("/upscale", files={"file": (filename, data, media_type)}, data=form)


def test_upscale_gif_binary(client, red_blue_gif):
    resp = _post(client, red_blue_gif, options={"scale": 3})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    assert resp.headers["X-Frame-Count"] == "2"
    assert resp.headers["X-Scale"] == "3"
    assert resp.headers["X-Outcome"] == "converted"
    assert resp.headers["X-Original-Format"] == "gif"
    assert resp.headers["X-Output-Format"] == "gif"
    assert int(resp.headers["X-Original-Size"]) == len(red_blue_gif)
    assert int(resp.headers["X-Output-Size"]) == len(resp.content)
    assert 'filename="sprite_upscaled.gif"' in resp.headers["Content-Disposition"]
    assert "X-Request-ID" in resp.headers

    info = GifDecoder().probe(resp.content)
    assert (info.width, info.height) == (3, 3)


def test_upscale_default_scale(client, red_blue_gif):
    resp = _post(client, red_blue_gif)
    assert resp.status_code == 200
    assert resp.headers["X-Scale"] == str(settings.default_scale)


def test_upscale_json_response(client, red_blue_gif):
    resp = _post(client, red_blue_gif, options={"scale": 2, "response_format": "json"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["outcome"] == "converted"
    assert body["frame_count"] == 2
    assert body["loop_count"] == 0
    assert body["filename"] == "sprite_upscaled.gif"
    assert body["events"][0]["stage"] == "decoding"
    assert body["events"][-1]["stage"] == "done"
    output = base64.b64decode(body["data"])
    assert output[:6] == b"GIF89a"
    assert len(output) == body["output_size"]


def test_upscale_static_webp(client, static_webp):
    resp = _post(client, static_webp, filename="tile.webp", media_type="image/webp", options={"scale": 5})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/webp"
    assert resp.headers["X-Outcome"] == "static"
    with Image.open(io.BytesIO(resp.content)) as img:
        assert img.size == (10, 10)


def test_upscale_animated_webp(client, animated_webp):
    resp = _post(client, animated_webp, filename="walk.webp", media_type="image/webp")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    assert resp.headers["X-Outcome"] == "downgraded"
    assert resp.headers["X-Frame-Count"] == "3"
    assert "walk_upscaled.gif" in resp.headers["Content-Disposition"]


def test_content_disposition_non_ascii():
    header = _content_disposition("héros_upscaled.gif")
    assert header.startswith('attachment; filename="h?ros_upscaled.gif"')
    assert "filename*=UTF-8''h%C3%A9ros_upscaled.gif" in header


# --- errors ---


def test_invalid_scale(client, red_blue_gif):
    resp = _post(client, red_blue_gif, options={"scale": 11})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "invalid_scale"
    assert body["stage"] == "idle"


def test_scale_too_large_for_image(client):
    img = Image.new("RGBA", (1700, 1), (255, 0, 0, 255))
    buf = io.BytesIO()
    img.save(buf, format="WEBP", lossless=True)
    resp = _post(client, buf.getvalue(), filename="strip.webp", media_type="image/webp", options={"scale": 10})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "invalid_scale"
    assert body["max_scale_for_input"] == 9


def test_image_too_large(client, make_gif):
    data = make_gif(65535, 65535, [{"indices": [1], "width": 1, "height": 1}])
    resp = _post(client, data, options={"scale": 2})
    assert resp.status_code == 413
    body = resp.json()
    assert body["error"] == "image_too_large"
    assert body["stage"] == "decoding"


def test_unsupported_format(client):
    img = Image.new("RGB", (4, 4))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    resp = _post(client, buf.getvalue(), filename="photo.png", media_type="image/png")
    assert resp.status_code == 415
    assert resp.json()["error"] == "unsupported_format"
    assert resp.json()["message"] == "Please select a valid GIF or WebP file."


def test_corrupt_container(client):
    resp = _post(client, b"GIF89a not really", options={"scale": 2})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "corrupt_container"
    assert body["stage"] == "decoding"


def test_missing_file(client):
    resp = client.post("/upscale", data={"options": "{}"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


def test_invalid_options_json(client, red_blue_gif):
    resp = client.post(
        "/upscale",
        files={"file": ("sprite.gif", red_blue_gif, "image/gif")},
        data={"options": "{not json"},
    )
    assert resp.status_code == 400


def test_options_must_be_object(client, red_blue_gif):
    resp = client.post(
        "/upscale",
        files={"file": ("sprite.gif", red_blue_gif, "image/gif")},
        data={"options": "[2]"},
    )
    assert resp.status_code == 400


def test_unknown_response_format(client, red_blue_gif):
    resp = _post(client, red_blue_gif, options={"response_format": "xml"})
    assert resp.status_code == 400
    assert resp.json()["allowed"] == ["binary", "json"]


def test_negative_loop_count(client, red_blue_gif):
    resp = _post(client, red_blue_gif, options={"loop_count": -1})
    assert resp.status_code == 400


def test_file_too_large(client, red_blue_gif):
    with patch.object(settings, "max_file_size_bytes", 10):
        resp = _post(client, red_blue_gif)
    assert resp.status_code == 413
    assert resp.json()["error"] == "file_too_large"


def test_queue_full(client, red_blue_gif):
    with patch.object(conversion_gate, "_max_queue", 0):
        resp = _post(client, red_blue_gif)
    assert resp.status_code == 503
    assert resp.json()["error"] == "service_overloaded"
    assert conversion_gate._queue_depth == 0


def test_error_responses_carry_request_id(client):
    resp = client.post("/upscale", data={"options": "{}"})
    assert "X-Request-ID" in resp.headers
