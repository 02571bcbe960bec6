"""Tests for the periodic faster-route check."""

import pytest

from navtrack.config import NavigationOptions
from navtrack.core import geometry
from navtrack.core.faster_route import FasterRouteDetector, FasterRouteState
from navtrack.core.models import Leg, Location, NavigationIndices, Route
from navtrack.core.progress import progress_for_fix


@pytest.fixture
def long_route(make_route):
    """North 8km then east 1km: 900s at 10 m/s."""
    return make_route([(0.0, 8000.0), (90.0, 1000.0)])


def fix_at(route, along, timestamp):
    p = geometry.point_at_distance(route.legs[0].steps[0].geometry, along)
    return Location(p.latitude, p.longitude, timestamp=timestamp)


def progress_at(route, fix):
    return progress_for_fix(route, NavigationIndices(0, 0), fix)


def test_first_fix_only_starts_the_interval(long_route):
    detector = FasterRouteDetector(NavigationOptions())
    fix = fix_at(long_route, 0.0, 1000.0)
    due, state = detector.should_check(fix, progress_at(long_route, fix), FasterRouteState())
    assert not due
    assert state.last_checked == 1000.0


def test_check_due_once_per_interval(long_route):
    detector = FasterRouteDetector(NavigationOptions(faster_route_check_interval_s=120.0))
    state = FasterRouteState(last_checked=1000.0)
    results = []
    for t, along in [(1060.0, 600.0), (1120.0, 1200.0), (1180.0, 1800.0), (1240.0, 2400.0)]:
        fix = fix_at(long_route, along, t)
        due, state = detector.should_check(fix, progress_at(long_route, fix), state)
        results.append(due)
    assert results == [False, True, False, True]
    assert state.last_checked == 1240.0


def test_no_check_near_the_end_of_the_route_or_step(long_route, make_route):
    detector = FasterRouteDetector(NavigationOptions(faster_route_check_interval_s=120.0))

    # 500s of route left
    fix = fix_at(long_route, 4000.0, 1200.0)
    due, state = detector.should_check(fix, progress_at(long_route, fix), FasterRouteState(last_checked=1000.0))
    assert not due
    # Interval restarts even when the check is skipped
    assert state.last_checked == 1200.0

    # 700s of route left but the turn is 50s away
    short_step = make_route([(0.0, 500.0), (90.0, 7000.0)])
    fix = fix_at(short_step, 0.0, 1200.0)
    due, _ = detector.should_check(fix, progress_at(short_step, fix), FasterRouteState(last_checked=1000.0))
    assert not due


def test_candidate_must_save_ten_percent(long_route, make_route):
    detector = FasterRouteDetector(NavigationOptions())
    progress = progress_at(long_route, fix_at(long_route, 0.0, 0.0))

    assert detector.is_faster(make_route([(0.0, 8000.0)]), progress)
    assert not detector.is_faster(make_route([(0.0, 8200.0)]), progress)


def test_multi_step_candidate_must_rejoin_upcoming_step(long_route, make_step):
    detector = FasterRouteDetector(NavigationOptions())
    progress = progress_at(long_route, fix_at(long_route, 0.0, 0.0))
    upcoming = long_route.legs[0].steps[1]
    detour = make_step(long_route.first_coordinate, 315.0, 1000.0)
    tail = make_step(upcoming.geometry[-1], 0.0, 10.0)

    rejoins = Route(legs=(Leg(steps=(detour, upcoming, tail)),))
    assert detector.is_faster(rejoins, progress)

    elsewhere = make_step(upcoming.geometry[0], 180.0, 1000.0)
    assert not detector.is_faster(Route(legs=(Leg(steps=(detour, elsewhere, tail)),)), progress)

    quick_first = make_step(long_route.first_coordinate, 315.0, 500.0)
    assert not detector.is_faster(Route(legs=(Leg(steps=(quick_first, upcoming, tail)),)), progress)
