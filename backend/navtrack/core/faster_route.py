"""Periodic check for a faster alternative to the active route.

The engine only decides *when* a candidate route is worth fetching and
*whether* a fetched candidate beats the current one; fetching is left to
whoever listens for ``faster_route_check`` events.
"""

import logging
from dataclasses import dataclass

from navtrack.config import NavigationOptions
from navtrack.core.models import Location, Route
from navtrack.core.progress import RouteProgress

logger = logging.getLogger(__name__)

# Below this much remaining travel time a faster route is not worth looking for
MIN_ROUTE_DURATION_REMAINING_S = 600.0
# Candidate must take at most this share of the current remaining duration
FASTER_ROUTE_RATIO = 0.9


@dataclass(frozen=True)
class FasterRouteState:
    last_checked: float | None = None  # timestamp of the fix that started the interval


class FasterRouteDetector:
    def __init__(self, options: NavigationOptions) -> None:
        self.options = options

    def should_check(
        self, location: Location, progress: RouteProgress, state: FasterRouteState
    ) -> tuple[bool, FasterRouteState]:
        """True when the check interval elapsed and enough of the route is left."""
        if state.last_checked is None:
            return False, FasterRouteState(last_checked=location.timestamp)
        if location.timestamp - state.last_checked < self.options.faster_route_check_interval_s:
            return False, state

        state = FasterRouteState(last_checked=location.timestamp)
        due = (
            progress.duration_remaining > MIN_ROUTE_DURATION_REMAINING_S
            and progress.step_progress.duration_remaining > self.options.medium_alert_duration_s
        )
        return due, state

    def is_faster(self, candidate: Route, progress: RouteProgress) -> bool:
        """Whether ``candidate``, fetched from the current position, beats the active route."""
        if not candidate.legs:
            return False
        steps = candidate.legs[0].steps
        if len(steps) > 2:
            if steps[0].duration <= self.options.medium_alert_duration_s:
                logger.debug("Candidate %s rejected: first step too short", candidate.route_id)
                return False
            upcoming = progress.upcoming_step
            if upcoming is None or steps[1] != upcoming:
                logger.debug("Candidate %s rejected: does not rejoin the upcoming step", candidate.route_id)
                return False
        faster = candidate.duration <= FASTER_ROUTE_RATIO * progress.duration_remaining
        if faster:
            logger.info(
                "Candidate %s is faster: %.0fs vs %.0fs remaining",
                candidate.route_id, candidate.duration, progress.duration_remaining,
            )
        return faster
