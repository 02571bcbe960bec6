"""Tests for NavigationSession lifecycle, replay and diagnostics."""

import asyncio

import orjson
import pytest

from navtrack.core import geometry
from navtrack.core.broadcaster import Broadcaster
from navtrack.core.engine import NavigationEngine
from navtrack.core.milestones import Milestone, TriggerProperty, lte
from navtrack.core.models import Location, NavigationIndices
from navtrack.core.session import NavigationNotStarted, NavigationSession


def make_session(**kwargs):
    return NavigationSession(NavigationEngine(), **kwargs)


def test_fix_before_route_raises():
    session = make_session()
    with pytest.raises(NavigationNotStarted):
        session.process_fix(Location(56.84, 60.60, timestamp=1.0))
    with pytest.raises(NavigationNotStarted):
        session.skip_to(0, 0)


def test_reroute_resets_progress(two_leg_route, make_route, walk):
    session = make_session()
    session.start(two_leg_route)
    for fix in walk(two_leg_route)[:30]:
        session.process_fix(fix)
    assert session.state.indices != NavigationIndices(0, 0)

    new_route = make_route([(90.0, 300.0)], start=two_leg_route.first_coordinate)
    state = session.reroute(new_route)
    assert state.route is new_route
    assert state.indices == NavigationIndices(0, 0)
    assert not state.arrived
    assert session.last_update is None


def test_stop_discards_state(two_leg_route):
    session = make_session()
    session.start(two_leg_route)
    session.stop()
    assert not session.active
    assert session.get_diagnostics()["active"] is False


def test_replay_ticks_until_exhausted(two_leg_route):
    session = make_session()
    session.start(two_leg_route)
    source = session.start_replay(speed_kmh=72.0, interval_s=1.0)
    total = source.remaining

    ticks = 0
    while session.replay_tick():
        ticks += 1
    assert ticks == total
    assert session.replay is None
    assert session.state.arrived
    assert session.replay_tick() is False


def test_diagnostics_record_steps_and_rejections(two_leg_route, walk):
    session = make_session()
    session.start(two_leg_route)
    fixes = walk(two_leg_route)
    for fix in fixes[:25]:
        session.process_fix(fix)
    session.process_fix(Location(95.0, 60.6, timestamp=5000.0))

    diag = session.get_diagnostics()
    assert diag["fixes_processed"] == 26
    assert diag["fixes_rejected"] == 1
    assert diag["route_id"] == two_leg_route.route_id
    assert diag["off_route"] == "on_route"

    events = session.get_event_diagnostics(limit=10)
    assert events["counts"]["route_started"] == 1
    assert events["counts"]["step_change"] >= 1
    assert events["counts"]["fix_rejected"] == 1
    assert events["latest"][-1]["reason"] == "out_of_range"


def test_off_route_counted_once(two_leg_route):
    session = make_session()
    session.start(two_leg_route)
    step = two_leg_route.legs[0].steps[0]
    for i, d in enumerate([0.0, 60.0, 80.0, 100.0, 120.0, 140.0]):
        p = geometry.point_at_distance(step.geometry, d)
        if i >= 2:
            p = geometry.destination(p, 270, 120)
        session.process_fix(Location(p.latitude, p.longitude, timestamp=float(i), accuracy=5.0))

    assert session.get_diagnostics()["reroute_requests"] == 1
    assert session.get_event_diagnostics()["counts"]["off_route"] == 1


def test_events_published_to_broadcaster(two_leg_route, walk):
    async def main():
        broadcaster = Broadcaster(redis_url="")
        session = make_session(broadcaster=broadcaster)
        queue = broadcaster.subscribe()
        session.start(two_leg_route)
        session.process_fix(walk(two_leg_route)[0])
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        kinds = []
        while not queue.empty():
            kinds.append(orjson.loads(queue.get_nowait())["type"])
        return kinds, broadcaster.snapshot()

    kinds, snapshot = asyncio.run(main())
    assert "progress" in kinds
    assert orjson.loads(snapshot["progress"])["progress"]["route_id"] == two_leg_route.route_id


def test_offer_route_switches_only_to_faster_candidate(make_route):
    session = make_session()
    current = make_route([(0.0, 8000.0), (90.0, 1000.0)])
    session.start(current)

    assert not session.offer_route(make_route([(0.0, 9000.0)]))
    assert session.state.route is current

    faster = make_route([(0.0, 5000.0)])
    assert session.offer_route(faster)
    assert session.state.route is faster
    counts = session.get_event_diagnostics()["counts"]
    assert counts["faster_route_rejected"] == 1
    assert counts["route_started"] == 2


def test_reached_milestones_logged(two_leg_route, walk):
    engine = NavigationEngine(milestones=[
        Milestone(identifier=4, trigger=lte(TriggerProperty.STEP_DISTANCE_REMAINING_METERS, 55)),
    ])
    session = NavigationSession(engine)
    session.start(two_leg_route)
    for fix in walk(two_leg_route):
        session.process_fix(fix)
    events = session.get_event_diagnostics()
    assert events["counts"]["milestone"] == 5
    assert [e["step"] for e in events["latest"] if e["kind"] == "milestone"][0] == [0, 0]
