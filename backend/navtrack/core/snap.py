"""Snap raw fixes onto the current step geometry."""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Protocol

from navtrack.core import geometry
from navtrack.core.models import Coordinate, Location
from navtrack.core.progress import RouteProgress

logger = logging.getLogger(__name__)

# Look-ahead used to derive the travel bearing along the route
BEARING_LOOKAHEAD_M = 1.0


@dataclass(frozen=True)
class SnapState:
    last_bearing: float | None = None


class Snap(Protocol):
    def snap(
        self, location: Location, progress: RouteProgress, state: SnapState
    ) -> tuple[Location, SnapState]:
        ...


class SnapToRoute:
    """Projects the fix onto the step polyline and aligns its bearing with the route."""

    def snap(
        self, location: Location, progress: RouteProgress, state: SnapState
    ) -> tuple[Location, SnapState]:
        points = progress.current_step_points
        if len(points) >= 2:
            position = geometry.nearest_point_on_line(location, points)
        else:
            position = Coordinate(location.latitude, location.longitude)

        route_bearing = self._route_bearing(location, progress)
        if route_bearing is not None:
            state = SnapState(last_bearing=route_bearing)
            snapped_bearing = route_bearing
        elif state.last_bearing is not None:
            snapped_bearing = state.last_bearing
        else:
            snapped_bearing = location.bearing

        snapped = dataclasses.replace(
            location,
            latitude=position.latitude,
            longitude=position.longitude,
            bearing=snapped_bearing,
        )
        return snapped, state

    def _route_bearing(self, location: Location, progress: RouteProgress) -> float | None:
        points = progress.current_step_points
        if len(points) < 2:
            return None
        along = geometry.distance_along_line(location, points)
        current = geometry.point_at_distance(points, along)
        future = self._future_point(progress, points, along)
        if current is None or future is None:
            return None
        if geometry.distance(current, future) < geometry.DEGENERATE_SEGMENT_M:
            return None
        return geometry.wrap(geometry.bearing(current, future))

    @staticmethod
    def _future_point(progress: RouteProgress, points, along: float) -> Coordinate | None:
        if progress.leg_progress.distance_remaining <= BEARING_LOOKAHEAD_M:
            next_leg = progress.next_leg
            if next_leg is None:
                return None
            # First coordinate repeats the previous leg's endpoint
            return _clamped_point(next_leg.steps[0].geometry[1:], BEARING_LOOKAHEAD_M)

        future = geometry.point_at_distance(points, along + BEARING_LOOKAHEAD_M)
        if future is None and progress.upcoming_step is not None:
            overshoot = along + BEARING_LOOKAHEAD_M - geometry.line_length(points)
            future = _clamped_point(progress.upcoming_step.geometry, overshoot)
        return future


def _clamped_point(line, meters: float) -> Coordinate | None:
    """Point ``meters`` along ``line``, stopping at its last coordinate."""
    if not line:
        return None
    return geometry.point_at_distance(line, min(meters, geometry.line_length(line)))
