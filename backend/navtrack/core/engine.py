"""Per-fix navigation pipeline.

``NavigationEngine.process`` takes the previous ``EngineState`` and one raw
fix and returns a ``NavigationUpdate`` holding the next state and every
derived output. The engine object itself holds only configuration and
strategies, so identical inputs always produce identical outputs.

Order per fix: validate -> progress -> snap -> off-route / step resolution
(progress rebuilt and fix re-snapped when the step changes) -> camera ->
milestones and the faster-route check.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass, field

from navtrack.config import NavigationOptions
from navtrack.core.camera import CameraState, CameraUpdate, DynamicCamera, force_recompute
from navtrack.core.events import (
    Arrived,
    CameraChanged,
    FasterRouteCheckDue,
    MilestoneReached,
    ProgressChanged,
    RerouteRequested,
    StepAdvanced,
)
from navtrack.core.faster_route import FasterRouteDetector, FasterRouteState
from navtrack.core.milestones import Milestone, MilestoneState, evaluate_milestones
from navtrack.core.models import Location, NavigationIndices, Route
from navtrack.core.offroute import (
    OffRouteDetector,
    OffRouteState,
    OffRouteStatus,
    ToleranceOffRouteDetector,
)
from navtrack.core.progress import RouteProgress, progress_for_fix
from navtrack.core.snap import Snap, SnapState, SnapToRoute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineState:
    route: Route
    indices: NavigationIndices = NavigationIndices()
    progress: RouteProgress | None = None
    snap: SnapState = SnapState()
    off_route: OffRouteState = OffRouteState()
    camera: CameraState = CameraState()
    milestones: MilestoneState = MilestoneState()
    faster_route: FasterRouteState = FasterRouteState()
    arrived: bool = False
    last_location: Location | None = None
    last_snapped: Location | None = None


@dataclass(frozen=True)
class NavigationUpdate:
    state: EngineState
    accepted: bool
    location: Location
    snapped: Location | None = None
    progress: RouteProgress | None = None
    camera: CameraUpdate | None = None
    is_off_route: bool = False
    should_reroute: bool = False
    step_advanced: bool = False
    arrived: bool = False  # True only on the fix that reached the destination
    previous_indices: NavigationIndices | None = None
    step_change_reason: str | None = None
    distance_from_route: float | None = None
    tolerance: float | None = None
    rejected_reason: str | None = None
    milestones: tuple[Milestone, ...] = ()
    check_faster_route: bool = False
    events: tuple = field(default=(), repr=False)


def initial_state(route: Route) -> EngineState:
    """Fresh state for ``route`` with progress placed at its first coordinate."""
    start = route.first_coordinate
    progress = None
    if start is not None:
        progress = progress_for_fix(route, NavigationIndices(), Location(start.latitude, start.longitude))
    return EngineState(route=route, progress=progress)


class NavigationEngine:
    def __init__(
        self,
        options: NavigationOptions | None = None,
        snap: Snap | None = None,
        off_route: OffRouteDetector | None = None,
        camera: DynamicCamera | None = None,
        milestones=(),
        faster_route: FasterRouteDetector | None = None,
    ) -> None:
        self.options = options or NavigationOptions()
        self.snap = snap or SnapToRoute()
        self.off_route = off_route or ToleranceOffRouteDetector(self.options)
        self.camera = camera or DynamicCamera(self.options)
        self.faster_route = faster_route or FasterRouteDetector(self.options)
        self.milestones: list[Milestone] = []
        for milestone in milestones:
            self.add_milestone(milestone)

    def add_milestone(self, milestone: Milestone) -> None:
        """Register ``milestone``, replacing one with the same identifier."""
        if self.remove_milestone(milestone.identifier):
            logger.warning("Milestone %s replaced", milestone.identifier)
        self.milestones.append(milestone)

    def remove_milestone(self, identifier: int) -> bool:
        for i, existing in enumerate(self.milestones):
            if existing.identifier == identifier:
                del self.milestones[i]
                return True
        return False

    def validate(self, location: Location, state: EngineState) -> str | None:
        """Reason the fix must be dropped, or None when it is usable."""
        if not location.is_finite():
            return "non_finite"
        if not (-90.0 <= location.latitude <= 90.0 and -180.0 <= location.longitude <= 180.0):
            return "out_of_range"
        if location.accuracy is not None and location.accuracy < 0:
            return "negative_accuracy"
        last = state.last_location
        if last is None:
            # The first fix is always accepted so tracking can start
            return None
        if location.timestamp < last.timestamp:
            return "out_of_order"
        if location.accuracy is not None and location.accuracy >= self.options.location_accuracy_threshold_m:
            return "inaccurate"
        return None

    def process(self, state: EngineState, location: Location) -> NavigationUpdate:
        """Run one fix through the pipeline; never raises."""
        try:
            reason = self.validate(location, state)
            if reason is not None:
                logger.debug("Dropping fix (%s): %s", reason, location)
                return NavigationUpdate(
                    state=state,
                    accepted=False,
                    location=location,
                    snapped=state.last_snapped,
                    progress=state.progress,
                    is_off_route=state.off_route.status is OffRouteStatus.OFF_ROUTE,
                    rejected_reason=reason,
                )
            return self._process(state, location)
        except Exception:
            logger.exception("Failed to process fix %s; keeping last state", location)
            return NavigationUpdate(
                state=state,
                accepted=False,
                location=location,
                snapped=state.last_snapped,
                progress=state.progress,
                rejected_reason="error",
            )

    def _snap(self, location: Location, progress: RouteProgress, snap_state: SnapState) -> tuple[Location, SnapState]:
        if not self.options.snap_to_route:
            return location, snap_state
        return self.snap.snap(location, progress, snap_state)

    def _process(self, state: EngineState, location: Location) -> NavigationUpdate:
        route = state.route
        progress = progress_for_fix(route, state.indices, location)
        snapped, snap_state = self._snap(location, progress, state.snap)

        result = self.off_route.evaluate(location, progress, state.off_route)
        progress = result.progress
        if result.indices_changed:
            snapped, snap_state = self._snap(location, progress, state.snap)
        if result.is_off_route:
            snapped, snap_state = location, state.snap

        camera_update, camera_state = self.camera.update(snapped, progress, state.camera)

        reached, milestone_state = evaluate_milestones(self.milestones, state.progress, progress, state.milestones)

        check_faster, faster_state = False, state.faster_route
        if self.options.enable_faster_route_detection and not result.is_off_route and not state.arrived:
            check_faster, faster_state = self.faster_route.should_check(location, progress, state.faster_route)

        newly_arrived = result.resolution.arrived and not state.arrived
        new_state = EngineState(
            route=route,
            indices=progress.indices,
            progress=progress,
            snap=snap_state,
            off_route=result.state,
            camera=camera_state,
            milestones=milestone_state,
            faster_route=faster_state,
            arrived=state.arrived or result.resolution.arrived,
            last_location=location,
            last_snapped=snapped,
        )

        events = [ProgressChanged(location=snapped, progress=progress)]
        if result.indices_changed:
            events.append(StepAdvanced(
                previous=state.indices,
                current=progress.indices,
                reason=result.resolution.reason,
                progress=progress,
            ))
        if result.should_reroute:
            events.append(RerouteRequested(location=location, progress=progress))
        if newly_arrived:
            logger.info("Arrived at destination of route %s", route.route_id)
            events.append(Arrived(location=snapped, progress=progress))
        for milestone in reached:
            events.append(MilestoneReached(milestone=milestone, location=snapped, progress=progress))
        if check_faster:
            events.append(FasterRouteCheckDue(location=location, progress=progress))
        if camera_update.zoom_recomputed:
            events.append(CameraChanged(camera=camera_update))

        return NavigationUpdate(
            state=new_state,
            accepted=True,
            location=location,
            snapped=snapped,
            progress=progress,
            camera=camera_update,
            is_off_route=result.is_off_route,
            should_reroute=result.should_reroute,
            step_advanced=result.indices_changed,
            arrived=newly_arrived,
            previous_indices=state.indices,
            step_change_reason=result.resolution.reason,
            distance_from_route=result.distance_from_route if math.isfinite(result.distance_from_route) else None,
            tolerance=result.tolerance,
            milestones=tuple(reached),
            check_faster_route=check_faster,
            events=tuple(events),
        )

    def jump_to(self, state: EngineState, leg_index: int, step_index: int) -> EngineState:
        """Move to an explicit leg/step, e.g. when the traveler skips a waypoint."""
        route = state.route
        if not 0 <= leg_index < len(route.legs):
            raise ValueError(f"leg index {leg_index} out of range")
        if not 0 <= step_index < len(route.legs[leg_index].steps):
            raise ValueError(f"step index {step_index} out of range for leg {leg_index}")
        indices = NavigationIndices(leg_index, step_index)
        anchor = state.last_location
        if anchor is None:
            step = route.step_at(indices)
            start = step.geometry[0] if step.geometry else route.first_coordinate
            anchor = Location(start.latitude, start.longitude) if start is not None else None
        logger.info("Manual jump to leg %d step %d", leg_index, step_index)
        return dataclasses.replace(
            state,
            indices=indices,
            progress=progress_for_fix(route, indices, anchor) if anchor is not None else None,
            off_route=dataclasses.replace(state.off_route, distances_to_maneuver=()),
            arrived=False,
        )

    @staticmethod
    def recenter(state: EngineState) -> EngineState:
        return dataclasses.replace(state, camera=force_recompute(state.camera))
