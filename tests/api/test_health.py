from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.api import deps
from src.api.main import app

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("SETTLEMENT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SETTLEMENT_RULES_PATH", str(PROJECT_ROOT / "rules.yaml"))
    deps.get_settings.cache_clear()
    deps.get_rules.cache_clear()
    with TestClient(app) as client:
        yield client
    deps.get_settings.cache_clear()
    deps.get_rules.cache_clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_startup_migrates_and_serves_real_dependencies(client: TestClient, tmp_path) -> None:
    assert (tmp_path / "data" / "settlement.db").exists()

    response = client.get("/api/admin/settlements")

    assert response.status_code == 200
    assert response.json() == {"items": [], "total": 0}


def test_balance_for_unknown_educator_is_zero(client: TestClient) -> None:
    response = client.get("/api/admin/educators/nobody/balance")
    assert response.status_code == 200
    assert response.json()["finalized_balance"] == "0"
