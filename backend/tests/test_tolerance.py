"""Tests for the junction-aware off-route tolerance."""

from navtrack.config import NavigationOptions
from navtrack.core import geometry
from navtrack.core.models import Coordinate, Leg, Location, NavigationIndices, Route
from navtrack.core.progress import progress_for_fix
from navtrack.core.tolerance import dynamic_off_route_tolerance

START = Coordinate(56.84, 60.60)
OPTIONS = NavigationOptions(off_route_threshold_radius_m=50.0, maneuver_zone_radius_m=40.0)


def tolerance_at(make_step, along: float, intersections_at) -> float:
    step = make_step(START, 0.0, 400.0, intersections_at=intersections_at)
    route = Route(legs=(Leg(steps=(step,)),))
    p = geometry.point_at_distance(step.geometry, along)
    progress = progress_for_fix(route, NavigationIndices(0, 0), Location(p.latitude, p.longitude))
    return dynamic_off_route_tolerance(p, progress, OPTIONS)


def test_halves_within_maneuver_zone(make_step):
    """Intersection 39m ahead of the snapped point -> 25m."""
    assert abs(tolerance_at(make_step, 161.0, (200.0,)) - 25.0) < 1e-9


def test_baseline_outside_maneuver_zone(make_step):
    """Intersection 41m ahead of the snapped point -> 50m."""
    assert tolerance_at(make_step, 159.0, (200.0,)) == 50.0


def test_baseline_without_intersections(make_step):
    assert tolerance_at(make_step, 150.0, ()) == 50.0


def test_intersection_at_snapped_point_is_ignored(make_step):
    """The intersection the traveler stands on does not count; the next one is far."""
    assert tolerance_at(make_step, 100.0, (100.0, 300.0)) == 50.0
    # ...but a second one nearby still tightens
    assert tolerance_at(make_step, 100.0, (100.0, 130.0)) == 25.0
