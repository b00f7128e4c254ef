import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from labmarks.main import app
from labmarks.settings import settings


@pytest.mark.parametrize(
    ("api_key", "expected_gemini_configured"),
    [("test-key", True), ("   ", False)],
)
def test_health_returns_gemini_configuration_status(
    isolated_db, monkeypatch, api_key: str, expected_gemini_configured: bool
) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", api_key)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200

    payload = response.json()
    assert payload["ok"] is True
    assert payload["gemini_configured"] is expected_gemini_configured


def test_health_deep_returns_storage_and_db_diagnostics(isolated_db) -> None:
    with TestClient(app) as client:
        response = client.get("/health/deep")

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["gemini_configured"] is False
    assert payload["storage_writable"] is True
    assert payload["db_ok"] is True
    assert payload["data_dir"] == str(settings.data_path)
