"""Off-route state machine and step/leg index resolution.

Every fix is first used to decide which step the traveler is on (advance,
rollback or stay), then judged against the off-route radius of that step.
A single noisy fix never confirms off-route: confirmation needs several
off-route judgments inside a short rolling window, a sustained streak, or
the traveler steadily moving away from the next maneuver. Once confirmed
the state stays OFF_ROUTE until a new route resets it.
"""

import dataclasses
import enum
import logging
import math
from dataclasses import dataclass
from typing import Protocol

from navtrack.config import NavigationOptions
from navtrack.core import geometry
from navtrack.core.models import Coordinate, Location, NavigationIndices
from navtrack.core.progress import (
    RouteProgress,
    increase_index,
    progress_for_fix,
)
from navtrack.core.tolerance import dynamic_off_route_tolerance

logger = logging.getLogger(__name__)

# Step distance remaining at or below this counts as the end of the step
STEP_END_EPSILON_M = 1e-6
# Samples kept for the moving-away-from-maneuver check
MANEUVER_DISTANCE_SAMPLES = 3


class OffRouteStatus(str, enum.Enum):
    ON_ROUTE = "on_route"
    OFF_ROUTE = "off_route"


@dataclass(frozen=True)
class OffRouteState:
    status: OffRouteStatus = OffRouteStatus.ON_ROUTE
    judgments: tuple[bool, ...] = ()
    consecutive_off: int = 0
    off_since: float | None = None  # timestamp of the first fix in the current streak
    reroute_anchor: Coordinate | None = None
    distances_to_maneuver: tuple[float, ...] = ()


@dataclass(frozen=True)
class StepResolution:
    indices: NavigationIndices
    arrived: bool = False
    reason: str | None = None  # maneuver_completed, closer_step, rollback, arrived


@dataclass(frozen=True)
class OffRouteResult:
    state: OffRouteState
    progress: RouteProgress
    resolution: StepResolution
    is_off_route: bool
    should_reroute: bool
    distance_from_route: float
    tolerance: float

    @property
    def indices_changed(self) -> bool:
        return self.resolution.reason in ("maneuver_completed", "closer_step", "rollback")


class OffRouteDetector(Protocol):
    def evaluate(
        self, location: Location, progress: RouteProgress, state: OffRouteState
    ) -> OffRouteResult:
        ...


class ToleranceOffRouteDetector:
    """Judges fixes against a junction-aware radius and resolves the current step."""

    def __init__(self, options: NavigationOptions) -> None:
        self.options = options

    def evaluate(
        self, location: Location, progress: RouteProgress, state: OffRouteState
    ) -> OffRouteResult:
        resolution = self.resolve_step(location, progress)
        if resolution.indices != progress.indices:
            progress = progress_for_fix(progress.route, resolution.indices, location)
            # Samples toward the old maneuver mean nothing for the new step
            state = dataclasses.replace(state, distances_to_maneuver=())

        points = progress.current_step_points
        snapped = geometry.nearest_point_on_line(location, points) if points else location.coordinate
        dist = geometry.distance_to_line(location, points)
        tolerance = dynamic_off_route_tolerance(snapped, progress, self.options)

        if (
            not self.options.enable_off_route_detection
            or resolution.arrived
            or state.status is OffRouteStatus.OFF_ROUTE
        ):
            return OffRouteResult(
                state=state,
                progress=progress,
                resolution=resolution,
                is_off_route=state.status is OffRouteStatus.OFF_ROUTE,
                should_reroute=False,
                distance_from_route=dist,
                tolerance=tolerance,
            )

        state = self._judge(location, progress, state, dist, tolerance)
        confirmed = state.status is OffRouteStatus.OFF_ROUTE
        if confirmed:
            logger.info(
                "Off-route confirmed at (%.6f, %.6f): %.1fm from step %d/%d, tolerance %.1fm",
                location.latitude, location.longitude, dist,
                progress.leg_index, progress.step_index, tolerance,
            )
        return OffRouteResult(
            state=state,
            progress=progress,
            resolution=resolution,
            is_off_route=confirmed,
            should_reroute=confirmed,
            distance_from_route=dist,
            tolerance=tolerance,
        )

    def _judge(
        self,
        location: Location,
        progress: RouteProgress,
        state: OffRouteState,
        dist: float,
        tolerance: float,
    ) -> OffRouteState:
        opts = self.options
        if state.reroute_anchor is None:
            # First fix of a route only anchors the minimum-travel check
            return dataclasses.replace(state, reroute_anchor=location.coordinate)

        if geometry.distance(state.reroute_anchor, location) <= opts.off_route_min_distance_after_reroute_m:
            # Too close to where tracking (re)started to judge anything yet
            return dataclasses.replace(
                state,
                judgments=(state.judgments + (False,))[-opts.off_route_window_size:],
                consecutive_off=0,
                off_since=None,
            )

        if math.isfinite(dist):
            radius = max(tolerance, (location.accuracy or 0.0) * opts.dead_reckoning_time_interval_s)
            outside = dist > radius
        else:
            outside = False

        judgments = (state.judgments + (outside,))[-opts.off_route_window_size:]
        if outside:
            consecutive = state.consecutive_off + 1
            off_since = state.off_since if state.off_since is not None else location.timestamp
        else:
            consecutive, off_since = 0, None

        distances, moving_away = self._moving_away(location, progress, state.distances_to_maneuver)

        sustained = (
            consecutive >= opts.off_route_min_consecutive_fixes
            and off_since is not None
            and location.timestamp - off_since >= opts.seconds_before_reroute
        )
        corroborated = sum(judgments) >= opts.off_route_min_corroborating_fixes
        if corroborated or sustained or moving_away:
            return OffRouteState(
                status=OffRouteStatus.OFF_ROUTE,
                judgments=judgments,
                consecutive_off=consecutive,
                off_since=off_since,
                reroute_anchor=location.coordinate,
                distances_to_maneuver=(),
            )
        return OffRouteState(
            status=OffRouteStatus.ON_ROUTE,
            judgments=judgments,
            consecutive_off=consecutive,
            off_since=off_since,
            reroute_anchor=state.reroute_anchor,
            distances_to_maneuver=distances,
        )

    def _moving_away(
        self, location: Location, progress: RouteProgress, samples: tuple[float, ...]
    ) -> tuple[tuple[float, ...], bool]:
        """Track the distance left along the step; True once it grew steadily.

        Measured from the fix's projection onto the step, so lateral noise
        does not count as moving away.
        """
        points = progress.current_step_points
        if progress.upcoming_step is None or len(points) < 2:
            return samples, False
        to_maneuver = geometry.line_length(points) - geometry.distance_along_line(location, points)
        if to_maneuver <= STEP_END_EPSILON_M:
            return samples, False

        if not samples:
            samples = (to_maneuver,)
        elif to_maneuver > samples[-1]:
            # A full buffer keeps its first sample and replaces the latest
            if len(samples) >= MANEUVER_DISTANCE_SAMPLES:
                samples = samples[:MANEUVER_DISTANCE_SAMPLES - 1]
            samples = samples + (to_maneuver,)
        elif samples[-1] - to_maneuver > self.options.off_route_right_direction_m:
            samples = ()

        moving_away = (
            len(samples) >= MANEUVER_DISTANCE_SAMPLES
            and samples[-1] - samples[0] > self.options.off_route_wrong_direction_m
        )
        return samples, moving_away

    def resolve_step(self, location: Location, progress: RouteProgress) -> StepResolution:
        """Pick the step the traveler is on: advance, roll back or stay."""
        route, current = progress.route, progress.indices
        zone = self.options.maneuver_zone_radius_m

        if self.maneuver_completed(location, progress):
            nxt = increase_index(route, current)
            if nxt is None:
                return StepResolution(current, arrived=True, reason="arrived")
            logger.debug("Maneuver completed on step %d/%d", current.leg_index, current.step_index)
            return StepResolution(nxt, reason="maneuver_completed")

        d_current = geometry.distance_to_line(location, progress.current_step_points)

        walker = current
        for _ in range(self.options.step_lookahead):
            walker = increase_index(route, walker)
            if walker is None:
                break
            d = geometry.distance_to_line(location, route.step_at(walker).geometry)
            # Ties stay on the current step
            if d <= zone and d < d_current:
                logger.debug(
                    "Advancing %d/%d -> %d/%d (%.1fm < %.1fm)",
                    current.leg_index, current.step_index,
                    walker.leg_index, walker.step_index, d, d_current,
                )
                return StepResolution(walker, reason="closer_step")

        previous = progress.leg_progress.previous_step
        if previous is not None and len(previous.geometry) >= 2:
            d_prev = geometry.distance_to_line(location, previous.geometry)
            upcoming = progress.upcoming_step
            d_next = geometry.distance_to_line(location, upcoming.geometry) if upcoming else math.inf
            if d_prev < d_current and d_prev < d_next:
                left_on_previous = geometry.line_length(previous.geometry) - geometry.distance_along_line(
                    location, previous.geometry
                )
                if left_on_previous > zone:
                    logger.debug(
                        "Rolling back %d/%d -> %d/%d",
                        current.leg_index, current.step_index,
                        current.leg_index, current.step_index - 1,
                    )
                    return StepResolution(
                        NavigationIndices(current.leg_index, current.step_index - 1),
                        reason="rollback",
                    )

        return StepResolution(current)

    def maneuver_completed(self, location: Location, progress: RouteProgress) -> bool:
        remaining = progress.step_progress.distance_remaining
        if remaining <= STEP_END_EPSILON_M:
            return True
        within_zone = remaining < self.options.maneuver_zone_radius_m
        return within_zone and self._bearing_matches_maneuver(location, progress)

    def _bearing_matches_maneuver(self, location: Location, progress: RouteProgress) -> bool:
        upcoming = progress.upcoming_step
        if upcoming is None or upcoming.maneuver is None or location.bearing is None:
            return False
        maneuver = upcoming.maneuver
        offset = self.options.max_turn_completion_offset_deg
        expected_turn = geometry.angle_difference(maneuver.bearing_before, maneuver.bearing_after)
        if expected_turn <= offset:
            # Shallow turns cannot be told apart by heading; wait for the step end
            return False
        return geometry.angle_difference(maneuver.bearing_after, location.bearing) <= offset
