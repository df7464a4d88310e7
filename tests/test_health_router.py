"""Tests for /health endpoint and check_codecs utility."""

from unittest.mock import patch

from routers.health import check_codecs


def test_check_codecs_reports_pillow_and_webp():
    results = check_codecs()
    assert results["pillow"] is True
    assert "webp" in results


def test_check_codecs_webp_missing():
    with patch("routers.health.features.check_module", return_value=False):
        results = check_codecs()
    assert results["webp"] is False


def test_health_endpoint_ok(client):
    """Health endpoint returns status."""
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] in ("ok", "degraded")
    assert "codecs" in data
    assert data["version"] == "0.1.0"


def test_health_endpoint_degraded(client):
    """When a codec is missing, status=degraded."""
    with patch("routers.health.check_codecs", return_value={"pillow": True, "webp": False}):
        resp = client.get("/health")
    assert resp.json()["status"] == "degraded"


def test_health_endpoint_all_ok(client):
    with patch("routers.health.check_codecs", return_value={"pillow": True, "webp": True}):
        resp = client.get("/health")
    assert resp.json()["status"] == "ok"
