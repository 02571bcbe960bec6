"""Navigation events and a fire-and-forget dispatcher."""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from navtrack.core.camera import CameraUpdate
from navtrack.core.milestones import Milestone
from navtrack.core.models import Location, NavigationIndices
from navtrack.core.progress import RouteProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressChanged:
    kind = "progress"
    location: Location
    progress: RouteProgress


@dataclass(frozen=True)
class StepAdvanced:
    kind = "step_advanced"
    previous: NavigationIndices
    current: NavigationIndices
    reason: str | None
    progress: RouteProgress


@dataclass(frozen=True)
class RerouteRequested:
    kind = "reroute"
    location: Location
    progress: RouteProgress


@dataclass(frozen=True)
class Arrived:
    kind = "arrival"
    location: Location
    progress: RouteProgress


@dataclass(frozen=True)
class MilestoneReached:
    kind = "milestone"
    milestone: Milestone
    location: Location
    progress: RouteProgress


@dataclass(frozen=True)
class FasterRouteCheckDue:
    kind = "faster_route_check"
    location: Location
    progress: RouteProgress


@dataclass(frozen=True)
class CameraChanged:
    kind = "camera"
    camera: CameraUpdate


NavigationEvent = (
    ProgressChanged | StepAdvanced | RerouteRequested | Arrived
    | MilestoneReached | FasterRouteCheckDue | CameraChanged
)
Listener = Callable[[Any], Any]


class EventDispatcher:
    """Delivers events to listeners without letting them affect fix processing.

    Plain callables run inline; coroutine results are scheduled on the
    running loop. Listener errors are logged and dropped.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s event", listener, event.kind)
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event)

    def _schedule(self, awaitable, event) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop for async listener on %s event; dropped", event.kind)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async listener failed", exc_info=task.exception())
