"""Tests for the REST surface through FastAPI's TestClient."""

import orjson
import pytest
from fastapi.testclient import TestClient

from navtrack.main import app


def route_payload(route):
    return {
        "route_id": "test-route",
        "legs": [
            {
                "steps": [
                    {
                        "geometry": [[p.latitude, p.longitude] for p in step.geometry],
                        "distance": step.distance,
                        "duration": step.duration,
                        "name": step.name,
                        "maneuver": {
                            "location": [step.maneuver.location.latitude, step.maneuver.location.longitude],
                            "bearing_before": step.maneuver.bearing_before,
                            "bearing_after": step.maneuver.bearing_after,
                        },
                    }
                    for step in leg.steps
                ],
            }
            for leg in route.legs
        ],
    }


def fix_payload(fix):
    return {
        "lat": fix.latitude,
        "lon": fix.longitude,
        "timestamp": fix.timestamp,
        "bearing": fix.bearing,
        "speed": fix.speed,
        "accuracy": fix.accuracy,
    }


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok", "navigating": False}


def test_fix_without_route_conflicts(client):
    resp = client.post("/api/navigation/fixes", json={"lat": 56.84, "lon": 60.6})
    assert resp.status_code == 409
    assert client.get("/api/navigation/progress").json() is None


def test_route_and_fixes(client, two_leg_route, walk):
    resp = client.post("/api/navigation/route", json=route_payload(two_leg_route))
    assert resp.status_code == 200
    info = resp.json()
    assert info["route_id"] == "test-route"
    assert info["legs"] == 2 and info["steps"] == 5
    assert abs(info["distance"] - 800.0) < 0.5

    fixes = walk(two_leg_route)
    for fix in fixes[:25]:
        body = client.post("/api/navigation/fixes", json=fix_payload(fix)).json()
        assert body["accepted"]
    assert body["progress"]["step_index"] == 1
    assert body["progress"]["remaining_waypoints"] == 2
    assert not body["is_off_route"]

    progress = client.get("/api/navigation/progress").json()
    assert progress["route_id"] == "test-route"
    assert progress["distance_remaining"] < 800.0

    diag = client.get("/api/diagnostics").json()
    assert diag["active"] and diag["fixes_processed"] == 25
    events = client.get("/api/diagnostics/events", params={"limit": 5}).json()
    assert events["counts"]["step_change"] == 1


def test_rejected_fix_reports_reason(client, two_leg_route, walk):
    client.post("/api/navigation/route", json=route_payload(two_leg_route))
    first = walk(two_leg_route)[0]
    client.post("/api/navigation/fixes", json=fix_payload(first))
    body = client.post("/api/navigation/fixes", json={"lat": 56.84, "lon": 60.6, "timestamp": 1.0}).json()
    assert not body["accepted"]
    assert body["rejected_reason"] == "out_of_order"


def test_invalid_route_rejected(client):
    resp = client.post("/api/navigation/route", json={"legs": []})
    assert resp.status_code == 422
    bad_step = {"geometry": [[56.84, 60.6]], "distance": -1.0, "duration": 1.0}
    resp = client.post("/api/navigation/route", json={"legs": [{"steps": [bad_step]}]})
    assert resp.status_code == 422


def test_index_jump_and_stop(client, two_leg_route):
    client.post("/api/navigation/route", json=route_payload(two_leg_route))
    resp = client.post("/api/navigation/index", json={"leg_index": 1, "step_index": 1})
    assert resp.status_code == 200
    assert resp.json()["leg_index"] == 1

    assert client.post("/api/navigation/index", json={"leg_index": 5, "step_index": 0}).status_code == 422
    assert client.post("/api/navigation/camera/recenter").json() == {"status": "ok"}

    assert client.delete("/api/navigation").json() == {"status": "stopped"}
    assert client.post("/api/navigation/camera/recenter").status_code == 409


def test_replay_start_and_stop(client, two_leg_route):
    assert client.post("/api/navigation/replay").status_code == 409
    client.post("/api/navigation/route", json=route_payload(two_leg_route))
    resp = client.post("/api/navigation/replay", json={"speed_kmh": 36.0})
    assert resp.status_code == 200
    assert resp.json()["fixes"] == 81
    assert client.delete("/api/navigation/replay").json() == {"status": "stopped"}


def test_websocket_streams_progress_for_pushed_fixes(client, two_leg_route, walk):
    client.post("/api/navigation/route", json=route_payload(two_leg_route))
    with client.websocket_connect("/ws/navigation?types=progress") as ws:
        ws.send_text("{}")
        error = orjson.loads(ws.receive_bytes())
        assert error["type"] == "error"

        ws.send_text(orjson.dumps(fix_payload(walk(two_leg_route)[0])).decode())
        message = orjson.loads(ws.receive_bytes())
        assert message["type"] == "progress"
        assert message["progress"]["route_id"] == "test-route"


def test_milestone_registration(client, two_leg_route, walk):
    near_turn = {
        "identifier": 9,
        "instruction": "Turn soon",
        "trigger": {
            "op": "all",
            "statements": [
                {"op": "lte", "property": "step_distance_remaining_meters", "value": 55},
                {"op": "eq", "property": "last_step", "value": False},
            ],
        },
    }
    assert client.post("/api/navigation/milestones", json=near_turn).json() == {
        "identifier": 9, "scope": "step", "instruction": "Turn soon",
    }
    assert [m["identifier"] for m in client.get("/api/navigation/milestones").json()] == [9]

    client.post("/api/navigation/route", json=route_payload(two_leg_route))
    reached = []
    for fix in walk(two_leg_route):
        reached += client.post("/api/navigation/fixes", json=fix_payload(fix)).json()["milestones"]
    # Every step except the last of each leg
    assert reached == [9, 9, 9]

    assert client.delete("/api/navigation/milestones/9").json() == {"status": "removed"}
    assert client.delete("/api/navigation/milestones/9").status_code == 404


@pytest.mark.parametrize("trigger", [
    {"op": "eq", "property": "new_step", "value": 2},
    {"op": "all", "statements": []},
    {"op": "gt", "property": "step_index"},
])
def test_malformed_milestone_rejected(client, trigger):
    resp = client.post("/api/navigation/milestones", json={"identifier": 1, "trigger": trigger})
    assert resp.status_code == 422
    assert client.get("/api/navigation/milestones").json() == []


def test_faster_route_candidate(client, make_route):
    current = make_route([(0.0, 8000.0), (90.0, 1000.0)])
    assert client.post("/api/navigation/route/candidate", json=route_payload(current)).status_code == 409

    client.post("/api/navigation/route", json=route_payload(current))
    slower = route_payload(make_route([(0.0, 9000.0)]))
    slower["route_id"] = "slower"
    body = client.post("/api/navigation/route/candidate", json=slower).json()
    assert body["faster"] is False
    assert body["route"]["route_id"] == "test-route"

    faster = route_payload(make_route([(0.0, 5000.0)]))
    faster["route_id"] = "faster"
    body = client.post("/api/navigation/route/candidate", json=faster).json()
    assert body["faster"] is True
    assert body["route"]["route_id"] == "faster"
