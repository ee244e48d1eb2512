import pytest
from fastapi.testclient import TestClient

from routeopt.config import Settings
from routeopt.main import create_app
from routeopt.services.routing.errors import CollaboratorError
from routeopt.services.routing.models import TripPlan
from routeopt.services.routing.service import build_runtime


class DummyOSRM:
    def __init__(self, fail: bool = False):
        self.fail = fail

    def optimize(self, start, stops):
        if self.fail:
            raise CollaboratorError("OSRM trip request failed: NoTrips")
        geometry = [list(start)] + [[stop.latitude, stop.longitude] for stop in stops]
        return TripPlan(
            stop_ids=[stop.stop_id for stop in stops],
            distance_km=1.5 * len(stops),
            geometry=geometry,
            stop_ranges={stop.stop_id: (n, n + 1) for n, stop in enumerate(stops)},
        )


def _payload(count: int) -> dict:
    return {
        "start_latitude": 41.0,
        "start_longitude": 29.0,
        "stops": [
            {"stop_id": i + 1, "latitude": 41.0 + (i + 1) * 0.001, "longitude": 29.0}
            for i in range(count)
        ],
    }


def _client(osrm: DummyOSRM) -> TestClient:
    config = Settings(batch_threshold=3, batch_size=2, worker_count=2, job_timeout_seconds=5)
    app = create_app(runtime_factory=lambda: build_runtime(config, optimizer=osrm))
    return TestClient(app)


@pytest.fixture
def api_client():
    with _client(DummyOSRM()) as client:
        yield client


def test_health(api_client: TestClient):
    assert api_client.get("/api/health").json() == {"status": "ok"}
    jobs = api_client.get("/api/health/jobs").json()
    assert jobs["workers_running"] is True
    assert jobs["pending_jobs"] == []


def test_small_request_is_answered_directly(api_client: TestClient):
    response = api_client.post("/api/route/optimize", json=_payload(2))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["optimized_stop_ids"] == ["1", "2"]
    assert body["total_distance"] == "3,000 km"
    assert "job_id" not in body
    assert len(body["route_geometry"]) == 3


def test_large_request_goes_through_batches(api_client: TestClient):
    response = api_client.post("/api/route/optimize", json=_payload(5))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["optimized_stop_ids"] == ["1", "2", "3", "4", "5"]
    assert body["total_distance_km"] == pytest.approx(7.5)
    assert body["failed_batches"] == []
    assert len(body["route_geometry"]) == 6
    assert body["stop_geometry_mapping"]["5"] == [4, 5]
    assert body["job_id"]


def test_submit_and_fetch_job(api_client: TestClient):
    submitted = api_client.post("/api/route/jobs", json=_payload(5))

    assert submitted.status_code == 202
    job = submitted.json()
    assert job["total_batches"] == 3
    assert job["stop_count"] == 5

    fetched = api_client.get(f"/api/route/jobs/{job['job_id']}", params={"timeout_seconds": 5})
    assert fetched.status_code == 200
    assert fetched.json()["optimized_stop_ids"] == ["1", "2", "3", "4", "5"]

    again = api_client.get(f"/api/route/jobs/{job['job_id']}")
    assert again.status_code == 400
    assert again.json()["status"] == "not_found"


def test_unknown_job(api_client: TestClient):
    response = api_client.get("/api/route/jobs/does-not-exist")

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "not_found"
    assert body["optimized_stop_ids"] == []
    assert "route_geometry" not in body


def test_request_validation(api_client: TestClient):
    assert api_client.post("/api/route/optimize", json=_payload(0)).status_code == 422
    bad = _payload(1)
    bad["stops"][0]["latitude"] = 123.0
    assert api_client.post("/api/route/optimize", json=bad).status_code == 422


def test_routing_engine_failure_on_direct_path():
    with _client(DummyOSRM(fail=True)) as client:
        response = client.post("/api/route/optimize", json=_payload(2))

    assert response.status_code == 502
    assert "NoTrips" in response.json()["detail"]


def test_routing_engine_failure_on_batch_path():
    with _client(DummyOSRM(fail=True)) as client:
        response = client.post("/api/route/optimize", json=_payload(5))

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "error"
    assert body["failed_batches"] == [0, 1, 2]
    assert body["optimized_stop_ids"] == ["1", "2", "3", "4", "5"]
