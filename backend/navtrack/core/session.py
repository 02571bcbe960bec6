"""Navigation session: owns engine state, applies route swaps and publishes outputs."""

import datetime
import logging
from collections import deque

from navtrack.core.broadcaster import Broadcaster
from navtrack.core.engine import EngineState, NavigationEngine, NavigationUpdate, initial_state
from navtrack.core.events import EventDispatcher
from navtrack.core.models import Location, Route
from navtrack.core.replay import ReplayLocationSource
from navtrack.schemas.navigation import event_payload, progress_out

logger = logging.getLogger(__name__)

# Event kinds kept as the snapshot for late subscribers
RETAINED_KINDS = ("progress", "camera")


class NavigationNotStarted(RuntimeError):
    """Raised when fixes or commands arrive before a route is set."""


class NavigationSession:
    """Serializes fixes for a single traveler.

    Fixes from GPS and from replay both go through ``process_fix``; callers
    must not invoke it concurrently.
    """

    def __init__(
        self,
        engine: NavigationEngine,
        broadcaster: Broadcaster | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self.engine = engine
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher or EventDispatcher()
        if broadcaster is not None:
            self.dispatcher.add_listener(self._publish_event)

        self.state: EngineState | None = None
        self.last_update: NavigationUpdate | None = None
        self.replay: ReplayLocationSource | None = None

        self._fixes_processed = 0
        self._fixes_rejected = 0
        self._reroute_requests = 0
        self._started_at: datetime.datetime | None = None
        self._events: deque[dict] = deque(maxlen=500)

    @property
    def active(self) -> bool:
        return self.state is not None

    def _require_state(self) -> EngineState:
        if self.state is None:
            raise NavigationNotStarted("no active route")
        return self.state

    def start(self, route: Route) -> EngineState:
        """Begin navigating ``route``; replaces any previous route in one step."""
        previous = self.state
        # Route and reset progress context become visible together
        self.state = initial_state(route)
        self.last_update = None
        self._started_at = datetime.datetime.now(datetime.timezone.utc)
        if previous is None:
            logger.info(
                "Navigation started on route %s (%d legs, %.0fm)",
                route.route_id, len(route.legs), route.distance,
            )
        else:
            logger.info("Route %s replaced by %s", previous.route.route_id, route.route_id)
        self._log_event("route_started", {"route_id": route.route_id, "reroute": previous is not None})
        return self.state

    def reroute(self, route: Route) -> EngineState:
        return self.start(route)

    def offer_route(self, candidate: Route) -> bool:
        """Switch to ``candidate`` if it is faster than the rest of the active route."""
        state = self._require_state()
        if state.progress is None or not self.engine.faster_route.is_faster(candidate, state.progress):
            self._log_event("faster_route_rejected", {"route_id": candidate.route_id})
            return False
        self.reroute(candidate)
        return True

    def stop(self) -> None:
        if self.state is not None:
            logger.info("Navigation stopped on route %s", self.state.route.route_id)
            self._log_event("stopped", {"route_id": self.state.route.route_id})
        self.state = None
        self.last_update = None
        self.replay = None
        if self.broadcaster is not None:
            self.broadcaster.clear_state()

    def process_fix(self, location: Location) -> NavigationUpdate:
        state = self._require_state()
        update = self.engine.process(state, location)
        self.state = update.state
        self.last_update = update
        self._fixes_processed += 1

        if not update.accepted:
            self._fixes_rejected += 1
            self._log_event("fix_rejected", {
                "reason": update.rejected_reason,
                "lat": location.latitude,
                "lon": location.longitude,
                "accuracy": location.accuracy,
            })
        else:
            if update.step_advanced:
                self._log_event("step_change", {
                    "from": [update.previous_indices.leg_index, update.previous_indices.step_index],
                    "to": [update.state.indices.leg_index, update.state.indices.step_index],
                    "reason": update.step_change_reason,
                })
            if update.should_reroute:
                self._reroute_requests += 1
                self._log_event("off_route", {
                    "lat": location.latitude,
                    "lon": location.longitude,
                    "distance_m": round(update.distance_from_route or 0.0, 1),
                    "tolerance_m": update.tolerance,
                })
            if update.arrived:
                self._log_event("arrived", {"route_id": update.state.route.route_id})
            for milestone in update.milestones:
                self._log_event("milestone", {
                    "identifier": milestone.identifier,
                    "step": [update.state.indices.leg_index, update.state.indices.step_index],
                })
            if update.check_faster_route:
                self._log_event("faster_route_check", {"duration_remaining_s": round(update.progress.duration_remaining)})

        for event in update.events:
            self.dispatcher.dispatch(event)
        return update

    def skip_to(self, leg_index: int, step_index: int) -> EngineState:
        state = self._require_state()
        self.state = self.engine.jump_to(state, leg_index, step_index)
        self._log_event("manual_jump", {"to": [leg_index, step_index]})
        return self.state

    def recenter(self) -> None:
        self.state = self.engine.recenter(self._require_state())

    def start_replay(self, speed_kmh: float, interval_s: float) -> ReplayLocationSource:
        state = self._require_state()
        self.replay = ReplayLocationSource(state.route, speed_kmh, interval_s)
        self._log_event("replay_started", {"fixes": self.replay.remaining, "speed_kmh": speed_kmh})
        return self.replay

    def stop_replay(self) -> None:
        if self.replay is not None:
            self._log_event("replay_stopped", {"remaining": self.replay.remaining})
        self.replay = None

    def replay_tick(self) -> bool:
        """Feed the next replay fix; False once replay is over."""
        if self.replay is None or self.state is None:
            return False
        fix = self.replay.next_fix()
        if fix is None:
            logger.info("Replay finished")
            self.stop_replay()
            return False
        self.process_fix(fix)
        return True

    async def _publish_event(self, event) -> None:
        await self.broadcaster.publish(event.kind, event_payload(event), retain=event.kind in RETAINED_KINDS)

    def _log_event(self, kind: str, payload: dict) -> None:
        event = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "kind": kind,
            **payload,
        }
        self._events.append(event)

    def get_event_diagnostics(self, limit: int = 100) -> dict:
        events = list(self._events)[-max(1, min(limit, 500)):]
        counts: dict[str, int] = {}
        for e in self._events:
            k = e.get("kind", "unknown")
            counts[k] = counts.get(k, 0) + 1
        return {
            "events_total": len(self._events),
            "counts": counts,
            "latest": events,
        }

    def get_diagnostics(self) -> dict:
        state = self.state
        diag = {
            "active": state is not None,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "fixes_processed": self._fixes_processed,
            "fixes_rejected": self._fixes_rejected,
            "reroute_requests": self._reroute_requests,
            "replay_remaining": self.replay.remaining if self.replay else None,
            "subscribers": self.broadcaster.subscriber_count if self.broadcaster else 0,
            "events_published": self.broadcaster.published_total if self.broadcaster else 0,
        }
        if state is not None:
            diag.update({
                "route_id": state.route.route_id,
                "leg_index": state.indices.leg_index,
                "step_index": state.indices.step_index,
                "off_route": state.off_route.status.value,
                "off_route_window": list(state.off_route.judgments),
                "arrived": state.arrived,
                "camera_zoom": state.camera.zoom,
                "last_bearing": state.snap.last_bearing,
                "progress": progress_out(state.progress).model_dump() if state.progress else None,
            })
        return diag
