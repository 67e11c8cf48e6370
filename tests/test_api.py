"""
Tests for the FastAPI Application

The application lifespan builds the simulator from the environment, so
each test gets a fresh, noise-free simulator.

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from api.main import app

API = "/api/v1"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("SIM_NOISE", "false")
    monkeypatch.setenv("SIM_SEED", "42")
    with TestClient(app) as test_client:
        yield test_client


def start_engine(client: TestClient) -> None:
    client.post(f"{API}/simulator/prestart")
    client.post(f"{API}/simulator/commands/start")
    client.post(f"{API}/simulator/advance", json={"dt": 0.1, "steps": 100})


class TestSystemEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["api_base"] == "/api/v1"

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["engine_state"] == "idle"
        assert data["components"]["protection"] == "ok"

    def test_live(self, client):
        assert client.get("/live").json() == {"alive": True}


class TestSimulatorEndpoints:

    def test_initial_state(self, client):
        data = client.get(f"{API}/simulator/state").json()

        assert data["engine_state"] == "idle"
        assert data["state"]["rpm"] == 0.0
        assert data["prestart"]["fuel"] is False

    def test_start_rejected_without_prestart(self, client):
        data = client.post(f"{API}/simulator/commands/start").json()

        assert data["accepted"] is False
        assert data["state"] == "idle"
        assert data["reason"]

    def test_start_and_run(self, client):
        client.post(f"{API}/simulator/prestart")
        started = client.post(f"{API}/simulator/commands/start").json()
        assert started["accepted"] is True

        data = client.post(f"{API}/simulator/advance", json={"dt": 0.1, "steps": 150}).json()

        assert data["engine_state"] == "running"
        assert data["state"]["time"] == pytest.approx(15.0)
        assert data["progress"]["startup_progress"] == 1.0

    def test_prestart_single_item(self, client):
        data = client.post(f"{API}/simulator/prestart/oil", json={"done": True}).json()

        assert data["items"]["oil"] is True
        assert data["complete"] is False

    def test_unknown_command(self, client):
        assert client.post(f"{API}/simulator/commands/launch").status_code == 422

    def test_negative_dt_rejected(self, client):
        response = client.post(f"{API}/simulator/advance", json={"dt": -0.1})

        assert response.status_code == 422

    def test_setpoint_clamped(self, client):
        data = client.put(f"{API}/simulator/setpoints/fuel", json={"value": 150}).json()

        assert data["value"] == 100.0
        assert data["clamped"] is True
        assert client.get(f"{API}/simulator/setpoints").json()["fuel_target"] == 100.0

    def test_unknown_setpoint(self, client):
        response = client.put(f"{API}/simulator/setpoints/boost", json={"value": 10})

        assert response.status_code == 422

    def test_non_finite_setpoint_uses_error_envelope(self, client):
        response = client.put(
            f"{API}/simulator/setpoints/fuel",
            content='{"value": 1e400}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] is True
        assert body["detail"] == "InvalidInputError"

    def test_maintenance(self, client):
        data = client.put(f"{API}/simulator/maintenance", json={"value": 40}).json()

        assert data["maintenance_status"] == 40.0
        assert client.put(f"{API}/simulator/maintenance", json={"value": 140}).status_code == 422

    def test_history(self, client):
        start_engine(client)

        data = client.get(f"{API}/simulator/history/rpm").json()

        assert data["kind"] == "rpm"
        assert len(data["samples"]) == 10
        assert data["samples"][-1]["value"] > 0

    def test_alarms_and_fault_codes_empty_when_idle(self, client):
        assert client.get(f"{API}/simulator/alarms").json() == []
        assert client.get(f"{API}/simulator/fault-codes").json() == []

    def test_reset(self, client):
        start_engine(client)

        data = client.post(f"{API}/simulator/commands/reset").json()

        assert data["accepted"] is True
        state = client.get(f"{API}/simulator/state").json()
        assert state["state"]["time"] == 0.0
        assert state["prestart"]["fuel"] is False


class TestControllerEndpoints:

    def test_list_loops(self, client):
        data = client.get(f"{API}/controllers").json()

        assert set(data["loops"]) == {"temperature", "speed", "voltage"}
        assert data["cascade"]["enabled"] is False

    def test_enable_loop(self, client):
        data = client.post(
            f"{API}/controllers/temperature/mode",
            json={"enabled": True, "target": 70.0},
        ).json()

        loop = data["loops"]["temperature"]
        assert loop["enabled"] is True
        assert loop["target"] == 70.0

    def test_retune_loop(self, client):
        data = client.patch(f"{API}/controllers/speed", json={"kp": 0.3}).json()

        assert data["config"]["kp"] == 0.3
        assert data["config"]["ki"] == 0.05

    def test_configure_loop_rejects_inverted_bounds(self, client):
        response = client.put(
            f"{API}/controllers/voltage",
            json={"kp": 1.0, "ki": 0.0, "kd": 0.0, "output_min": 100, "output_max": 0},
        )

        assert response.status_code == 422

    def test_cascade_disables_conflicting_loop(self, client):
        client.post(f"{API}/controllers/temperature/mode", json={"enabled": True})

        client.post(
            f"{API}/controllers/cascade/mode",
            json={"enabled": True, "mode": "temperature_coolant", "setpoint": 72.0},
        )

        data = client.get(f"{API}/controllers").json()
        assert data["cascade"]["enabled"] is True
        assert data["cascade"]["mode"] == "temperature_coolant"
        assert data["loops"]["temperature"]["enabled"] is False

    def test_retune_cascade_secondary(self, client):
        data = client.patch(f"{API}/controllers/cascade/secondary", json={"kp": 2.0}).json()

        assert data["loop"] == "secondary"
        assert data["config"]["kp"] == 2.0

    def test_unknown_loop(self, client):
        assert client.post(f"{API}/controllers/pressure/mode", json={"enabled": True}).status_code == 422


class TestScenarioEndpoints:

    def test_list(self, client):
        data = client.get(f"{API}/scenarios").json()

        assert len(data["scenarios"]) == 8
        assert all(s["story"] is None for s in data["scenarios"])

    def test_details(self, client):
        data = client.get(f"{API}/scenarios/loss_of_coolant").json()

        assert data["expected_state"] == "fault"
        assert data["story"]

    def test_run(self, client):
        data = client.post(
            f"{API}/scenarios/run",
            json={"scenario_type": "emergency_stop_during_start", "noise": False, "include_records": True},
        ).json()

        assert data["passed"] is True
        assert data["engine_state"] == "idle"
        assert data["records"]
        assert "rpm" in data["summary"]

    def test_run_does_not_touch_live_simulator(self, client):
        client.post(f"{API}/scenarios/run", json={"scenario_type": "normal_start", "duration": 20})

        state = client.get(f"{API}/simulator/state").json()
        assert state["state"]["time"] == 0.0
