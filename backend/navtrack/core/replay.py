"""Simulated fixes that drive along a route at constant speed."""

import dataclasses
import logging
import time

from navtrack.core import geometry
from navtrack.core.models import Location, Route

logger = logging.getLogger(__name__)

# Accuracy reported on simulated fixes (meters)
REPLAY_ACCURACY_M = 3.0
REPLAY_PROVIDER = "replay"


def replay_locations(
    route: Route,
    speed_kmh: float = 45.0,
    interval_s: float = 1.0,
    start_time: float | None = None,
) -> list[Location]:
    """Fixes spaced one ``interval_s`` apart along every step of ``route``.

    Each fix's bearing points from the previous fix; the first one looks
    toward the second.
    """
    if speed_kmh <= 0 or interval_s <= 0:
        raise ValueError("replay speed and interval must be positive")
    spacing = speed_kmh * 1000 * interval_s / 3600
    speed_ms = speed_kmh / 3.6

    points = []
    for leg in route.legs:
        for step in leg.steps:
            length = geometry.line_length(step.geometry)
            along = 0.0
            while along < length:
                p = geometry.point_at_distance(step.geometry, along)
                if p is not None:
                    points.append(p)
                along += spacing
            if step.geometry:
                # Keep each step's end so turns are not cut
                points.append(step.geometry[-1])

    deduped = []
    for p in points:
        if deduped and geometry.distance(deduped[-1], p) < geometry.DEGENERATE_SEGMENT_M:
            continue
        deduped.append(p)

    t0 = time.time() if start_time is None else start_time
    fixes = []
    for i, p in enumerate(deduped):
        if i > 0:
            brg = geometry.bearing(deduped[i - 1], p)
        elif len(deduped) > 1:
            brg = geometry.bearing(p, deduped[1])
        else:
            brg = 0.0
        fixes.append(Location(
            latitude=p.latitude,
            longitude=p.longitude,
            timestamp=t0 + i * interval_s,
            bearing=brg,
            speed=speed_ms,
            accuracy=REPLAY_ACCURACY_M,
            provider=REPLAY_PROVIDER,
        ))
    return fixes


class ReplayLocationSource:
    """Hands out replay fixes one at a time, re-stamped with wall-clock time."""

    def __init__(self, route: Route, speed_kmh: float = 45.0, interval_s: float = 1.0) -> None:
        self.route = route
        self.speed_kmh = speed_kmh
        self.interval_s = interval_s
        self._fixes = replay_locations(route, speed_kmh, interval_s, start_time=0.0)
        self._index = 0
        logger.info(
            "Replay prepared for route %s: %d fixes at %.1f km/h",
            route.route_id, len(self._fixes), speed_kmh,
        )

    @property
    def remaining(self) -> int:
        return len(self._fixes) - self._index

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self._fixes)

    def next_fix(self, now: float | None = None) -> Location | None:
        if self.exhausted:
            return None
        fix = self._fixes[self._index]
        self._index += 1
        stamp = time.time() if now is None else now
        return dataclasses.replace(fix, timestamp=stamp)
