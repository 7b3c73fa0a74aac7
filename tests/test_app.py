from typing import Any, Callable, Dict, Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from conftest import FakeConnector
from services.runtime import Runtime


@pytest.fixture
def uploads() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def runtime(fake_runtime_factory: Callable[..., Runtime], uploads: List[Dict[str, Any]]) -> Runtime:
    connector = FakeConnector(always_fail={"part-2.local.example"})
    return fake_runtime_factory(connector=connector, average=(19.0, 12), uploads=uploads)


@pytest.fixture
def api_client(runtime: Runtime, monkeypatch) -> Iterator[TestClient]:
    def build_test_runtime(use_recent_readings: bool = False) -> Runtime:
        return runtime

    build_test_runtime.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.api.build_default_runtime", build_test_runtime)
    monkeypatch.setattr("app.main.build_default_runtime", build_test_runtime)
    monkeypatch.setattr("services.runtime.build_default_runtime", build_test_runtime)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_healthcheck(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_machines(api_client: TestClient) -> None:
    response = api_client.get("/machines")

    assert response.status_code == 200
    body = response.json()
    assert [item["part_id"] for item in body] == ["part-1", "part-2"]
    assert body[0]["calibration_offset"] == -1.5
    assert "mach_api_key" not in body[0]


def test_poll_reports_each_machine(api_client: TestClient, uploads: List[Dict[str, Any]]) -> None:
    response = api_client.post("/poll")

    assert response.status_code == 200
    results = {item["part_id"]: item for item in response.json()["results"]}
    assert results["part-1"]["status"] == "ok"
    # raw 720 -> 22.0 C, calibrated by -1.5
    assert results["part-1"]["temperature"] == pytest.approx(20.5)
    assert results["part-1"]["sample_count"] == 2
    assert results["part-2"]["status"] == "failed"
    assert results["part-2"]["error"]["kind"] == "ConnectionFailed"
    assert len(uploads) == 1
    assert uploads[0]["metadata"]["part_id"] == "part-1"


def test_poll_single_machine(api_client: TestClient) -> None:
    response = api_client.post("/machines/part-1/poll")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_poll_unknown_machine_returns_not_found(api_client: TestClient) -> None:
    response = api_client.post("/machines/nope/poll")

    assert response.status_code == 404
    assert "nope" in response.json()["detail"]


def test_zone_control(api_client: TestClient, runtime: Runtime) -> None:
    response = api_client.post("/zones/control")

    assert response.status_code == 200
    zone = response.json()["zones"][0]
    assert zone["zone"] == "office"
    assert zone["status"] == "ok"
    assert zone["sensed_temp"] == 19.0
    assert zone["actuator_on"] is True
    assert zone["commanded"] == ["hvac-1"]
