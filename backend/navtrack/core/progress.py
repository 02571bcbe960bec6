"""Per-fix progress snapshot: where along the route the traveler is.

A ``RouteProgress`` is built fresh for every processed fix from the route,
the current leg/step indices and the (snapped or raw) position. It is never
mutated; the next fix supersedes it.
"""

import logging
from dataclasses import dataclass

from navtrack.core import geometry
from navtrack.core.models import (
    Coordinate,
    Intersection,
    Leg,
    Location,
    NavigationIndices,
    Route,
    Step,
)

logger = logging.getLogger(__name__)

# Beyond this distance from the step the whole step is counted as remaining
MAX_STEP_SNAP_DISTANCE_M = 1000.0


@dataclass(frozen=True)
class StepProgress:
    step: Step
    distance_remaining: float
    intersections: tuple[Intersection, ...]
    intersection_distances: tuple[float, ...]
    current_intersection: Intersection
    upcoming_intersection: Intersection | None
    traveled_coordinates: tuple[Coordinate, ...]

    @property
    def distance_traveled(self) -> float:
        return max(0.0, self.step.distance - self.distance_remaining)

    @property
    def fraction_traveled(self) -> float:
        if self.step.distance <= 0:
            return 1.0
        return min(1.0, max(0.0, self.distance_traveled / self.step.distance))

    @property
    def duration_remaining(self) -> float:
        if self.step.distance <= 0:
            return 0.0
        return (1.0 - self.fraction_traveled) * self.step.duration


@dataclass(frozen=True)
class LegProgress:
    leg: Leg
    step_index: int
    distance_remaining: float
    step_progress: StepProgress

    @property
    def current_step(self) -> Step:
        return self.leg.steps[self.step_index]

    @property
    def upcoming_step(self) -> Step | None:
        if self.step_index + 1 < len(self.leg.steps):
            return self.leg.steps[self.step_index + 1]
        return None

    @property
    def previous_step(self) -> Step | None:
        return self.leg.steps[self.step_index - 1] if self.step_index > 0 else None

    @property
    def fraction_traveled(self) -> float:
        if self.leg.distance <= 0:
            return 1.0
        return min(1.0, max(0.0, 1.0 - self.distance_remaining / self.leg.distance))

    @property
    def duration_remaining(self) -> float:
        return (1.0 - self.fraction_traveled) * self.leg.duration


@dataclass(frozen=True)
class RouteProgress:
    route: Route
    leg_index: int
    step_index: int
    distance_remaining: float
    leg_progress: LegProgress

    @property
    def indices(self) -> NavigationIndices:
        return NavigationIndices(self.leg_index, self.step_index)

    @property
    def current_leg(self) -> Leg:
        return self.route.legs[self.leg_index]

    @property
    def step_progress(self) -> StepProgress:
        return self.leg_progress.step_progress

    @property
    def current_step(self) -> Step:
        return self.leg_progress.current_step

    @property
    def upcoming_step(self) -> Step | None:
        return self.leg_progress.upcoming_step

    @property
    def next_leg(self) -> Leg | None:
        if self.leg_index + 1 < len(self.route.legs):
            return self.route.legs[self.leg_index + 1]
        return None

    @property
    def current_step_points(self) -> tuple[Coordinate, ...]:
        return self.current_step.geometry

    @property
    def upcoming_step_points(self) -> tuple[Coordinate, ...] | None:
        upcoming = self.upcoming_step
        return upcoming.geometry if upcoming is not None else None

    @property
    def remaining_waypoints(self) -> int:
        return len(self.route.legs) - self.leg_index

    @property
    def distance_traveled(self) -> float:
        return max(0.0, self.route.distance - self.distance_remaining)

    @property
    def fraction_traveled(self) -> float:
        if self.route.distance <= 0:
            return 1.0
        return min(1.0, max(0.0, self.distance_traveled / self.route.distance))

    @property
    def duration_remaining(self) -> float:
        return (1.0 - self.fraction_traveled) * self.route.duration


def next_maneuver_point(step: Step, upcoming: Step | None) -> Coordinate | None:
    """Where the current step ends: the upcoming maneuver, else the last point."""
    if upcoming is not None and upcoming.maneuver is not None:
        return upcoming.maneuver.location
    return step.geometry[-1] if step.geometry else None


def step_distance_remaining(location: Location, step: Step, upcoming: Step | None) -> float:
    """Meters left on ``step`` from the projection of ``location``."""
    points = step.geometry
    if len(points) < 2:
        return 0.0
    snapped = geometry.nearest_point_on_line(location, points)
    if geometry.distance(location, snapped) > MAX_STEP_SNAP_DISTANCE_M:
        return geometry.line_length(points)
    end = next_maneuver_point(step, upcoming)
    if end is None:
        return 0.0
    remaining = geometry.distance_along_line(end, points) - geometry.distance_along_line(snapped, points)
    return max(0.0, remaining)


def leg_distance_remaining(step_remaining: float, leg: Leg, step_index: int) -> float:
    return step_remaining + sum(s.distance for s in leg.steps[step_index + 1:])


def route_distance_remaining(leg_remaining: float, route: Route, leg_index: int) -> float:
    return leg_remaining + sum(leg.distance for leg in route.legs[leg_index + 1:])


def intersections_for(step: Step, upcoming: Step | None) -> tuple[Intersection, ...]:
    """Current step intersections plus the upcoming step's first one."""
    result = tuple(step.intersections)
    if upcoming is not None and upcoming.intersections:
        result += (upcoming.intersections[0],)
    return result


def intersection_distances(points, intersections) -> tuple[float, ...]:
    """Cumulative distance of each intersection along ``points``."""
    if len(points) < 2 or not intersections:
        return ()
    return tuple(
        i.distance if i.distance is not None else geometry.distance_along_line(i.location, points)
        for i in intersections
    )


def find_current_intersection(
    intersections: tuple[Intersection, ...],
    distances: tuple[float, ...],
    traveled: float,
    fallback: Coordinate | None,
) -> Intersection:
    """Intersection whose cumulative distance is nearest ``traveled``.

    Ties go to the earlier intersection. Without intersection data a
    synthetic one at distance 0 on the step start is returned.
    """
    if not intersections or len(distances) != len(intersections):
        return Intersection(location=fallback or Coordinate(0.0, 0.0), distance=0.0)
    best = min(range(len(distances)), key=lambda i: (abs(distances[i] - traveled), i))
    return intersections[best]


def find_upcoming_intersection(
    intersections: tuple[Intersection, ...], current: Intersection
) -> Intersection | None:
    for i, candidate in enumerate(intersections):
        if candidate is current:
            return intersections[i + 1] if i + 1 < len(intersections) else None
    return None


def increase_index(route: Route, indices: NavigationIndices) -> NavigationIndices | None:
    """Index of the step after ``indices``, or None when that would be arrival.

    Crossing a leg boundary moves to step 0 of the next leg that has any
    distance; zero-distance legs are skipped.
    """
    leg = route.legs[indices.leg_index]
    if indices.step_index + 1 < len(leg.steps):
        return NavigationIndices(indices.leg_index, indices.step_index + 1)
    next_leg = indices.leg_index + 1
    while next_leg < len(route.legs):
        if route.legs[next_leg].distance > 0:
            return NavigationIndices(next_leg, 0)
        logger.debug("Skipping zero-distance leg %d", next_leg)
        next_leg += 1
    return None


def build_route_progress(
    route: Route,
    indices: NavigationIndices,
    step_remaining: float,
    leg_remaining: float,
    route_remaining: float,
    traveled_coordinates=(),
) -> RouteProgress:
    """Assemble the snapshot from precomputed distances."""
    leg = route.legs[indices.leg_index]
    step = leg.steps[indices.step_index]
    upcoming = leg.steps[indices.step_index + 1] if indices.step_index + 1 < len(leg.steps) else None

    intersections = intersections_for(step, upcoming)
    distances = intersection_distances(step.geometry, intersections)
    traveled = max(0.0, step.distance - step_remaining)
    start = step.geometry[0] if step.geometry else None
    current = find_current_intersection(intersections, distances, traveled, start)

    step_progress = StepProgress(
        step=step,
        distance_remaining=step_remaining,
        intersections=intersections,
        intersection_distances=distances,
        current_intersection=current,
        upcoming_intersection=find_upcoming_intersection(intersections, current),
        traveled_coordinates=tuple(traveled_coordinates),
    )
    leg_progress = LegProgress(
        leg=leg,
        step_index=indices.step_index,
        distance_remaining=leg_remaining,
        step_progress=step_progress,
    )
    return RouteProgress(
        route=route,
        leg_index=indices.leg_index,
        step_index=indices.step_index,
        distance_remaining=route_remaining,
        leg_progress=leg_progress,
    )


def progress_for_fix(route: Route, indices: NavigationIndices, location: Location) -> RouteProgress:
    """Compute every distance for ``location`` on the step at ``indices``."""
    leg = route.legs[indices.leg_index]
    step = leg.steps[indices.step_index]
    upcoming = leg.steps[indices.step_index + 1] if indices.step_index + 1 < len(leg.steps) else None

    step_remaining = step_distance_remaining(location, step, upcoming)
    leg_remaining = leg_distance_remaining(step_remaining, leg, indices.step_index)
    route_remaining = route_distance_remaining(leg_remaining, route, indices.leg_index)
    traveled = geometry.traveled_part(location, step.geometry) if step.geometry else []
    return build_route_progress(
        route, indices, step_remaining, leg_remaining, route_remaining, traveled
    )
