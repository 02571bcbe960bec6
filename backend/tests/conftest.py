"""Route builders shared by the tests.

Routes are laid out around central Yekaterinburg (~56.84°N, 60.60°E) with
straight steps built from exact bearings and lengths.
"""

import pytest

from navtrack.core import geometry
from navtrack.core.models import Coordinate, Intersection, Leg, Location, Maneuver, Route, Step

ORIGIN = Coordinate(56.8389, 60.6000)
SPEED_MS = 10.0


def build_step(start, bearing, length, name="", bearing_before=None, intersections_at=()):
    """Straight step of ``length`` meters heading ``bearing`` from ``start``."""
    pts = (
        start,
        geometry.destination(start, bearing, length / 2),
        geometry.destination(start, bearing, length),
    )
    return Step(
        geometry=pts,
        distance=geometry.line_length(pts),
        duration=length / SPEED_MS,
        intersections=tuple(
            Intersection(location=geometry.destination(start, bearing, d)) for d in intersections_at
        ),
        maneuver=Maneuver(
            location=start,
            bearing_before=bearing if bearing_before is None else bearing_before,
            bearing_after=bearing,
        ),
        name=name,
    )


def build_route(*legs, start=ORIGIN) -> Route:
    """Route from leg specs, each a list of (bearing, length) tuples."""
    built = []
    cursor = start
    prev_bearing = None
    for leg_steps in legs:
        steps = []
        for i, (brg, length) in enumerate(leg_steps):
            step = build_step(cursor, brg, length, name=f"step {len(built)}.{i}", bearing_before=prev_bearing)
            steps.append(step)
            cursor = step.geometry[-1]
            prev_bearing = brg
        built.append(Leg(steps=tuple(steps)))
    waypoints = [start] + [leg.steps[-1].geometry[-1] for leg in built]
    return Route(legs=tuple(built), waypoints=tuple(waypoints))


def fixes_along(route: Route, spacing: float = 10.0, t0: float = 1000.0) -> list[Location]:
    """Fixes every ``spacing`` meters along each step, ending on the last point."""
    fixes = []
    for leg in route.legs:
        for step in leg.steps:
            brg = step.maneuver.bearing_after
            d = 0.0
            while d < step.distance - 1e-6:
                p = geometry.point_at_distance(step.geometry, d)
                fixes.append((p, brg))
                d += spacing
    last_step = route.legs[-1].steps[-1]
    fixes.append((last_step.geometry[-1], last_step.maneuver.bearing_after))
    return [
        Location(p.latitude, p.longitude, timestamp=t0 + i, bearing=b, speed=SPEED_MS, accuracy=5.0)
        for i, (p, b) in enumerate(fixes)
    ]


@pytest.fixture
def make_route():
    return build_route


@pytest.fixture
def make_step():
    return build_step


@pytest.fixture
def walk():
    return fixes_along


@pytest.fixture
def two_leg_route() -> Route:
    """Leg 0: north 200m, east 150m, north 100m. Leg 1: east 200m, north 150m."""
    return build_route(
        [(0.0, 200.0), (90.0, 150.0), (0.0, 100.0)],
        [(90.0, 200.0), (0.0, 150.0)],
    )
