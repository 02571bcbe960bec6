"""Camera tilt/zoom framing driven by one-shot step alert levels."""

import dataclasses
import enum
import logging
from dataclasses import dataclass

from navtrack.config import NavigationOptions
from navtrack.core import geometry
from navtrack.core.models import Location
from navtrack.core.progress import RouteProgress, next_maneuver_point

logger = logging.getLogger(__name__)


class AlertLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class CameraState:
    step_key: tuple | None = None  # (route_id, leg_index, step_index)
    low_passed: bool = False
    medium_passed: bool = False
    high_passed: bool = False
    force_pending: bool = False
    zoom: float | None = None


@dataclass(frozen=True)
class CameraUpdate:
    tilt: float
    zoom: float
    zoom_recomputed: bool
    alerts: tuple[AlertLevel, ...] = ()


def force_recompute(state: CameraState) -> CameraState:
    """Request one zoom recompute on the next update (e.g. user re-centered)."""
    return dataclasses.replace(state, force_pending=True)


class DynamicCamera:
    def __init__(self, options: NavigationOptions) -> None:
        self.options = options

    def _thresholds(self) -> tuple[tuple[AlertLevel, float, str], ...]:
        o = self.options
        return (
            (AlertLevel.LOW, o.low_alert_duration_s, "low_passed"),
            (AlertLevel.MEDIUM, o.medium_alert_duration_s, "medium_passed"),
            (AlertLevel.HIGH, o.high_alert_duration_s, "high_passed"),
        )

    def update(
        self, location: Location, progress: RouteProgress, state: CameraState
    ) -> tuple[CameraUpdate, CameraState]:
        key = (progress.route.route_id, progress.leg_index, progress.step_index)
        new_step = key != state.step_key
        if new_step:
            state = CameraState(step_key=key, force_pending=state.force_pending, zoom=state.zoom)

        step_duration = progress.current_step.duration
        remaining = progress.step_progress.duration_remaining
        crossed = []
        for level, threshold, flag in self._thresholds():
            if not getattr(state, flag) and step_duration > threshold and remaining < threshold:
                state = dataclasses.replace(state, **{flag: True})
                crossed.append(level)

        recompute = new_step or state.force_pending or bool(crossed)
        zoom = state.zoom if state.zoom is not None else self.options.default_camera_zoom
        if recompute:
            zoom = self.zoom(location, progress, zoom)
            state = dataclasses.replace(state, force_pending=False, zoom=zoom)
            if crossed:
                logger.debug("Alert levels crossed on step %s: %s", key[1:], [c.value for c in crossed])

        update = CameraUpdate(
            tilt=self.tilt(progress.step_progress.distance_remaining),
            zoom=zoom,
            zoom_recomputed=recompute,
            alerts=tuple(crossed),
        )
        return update, state

    def tilt(self, step_distance_remaining: float) -> float:
        o = self.options
        return float(min(o.max_camera_tilt_deg, max(o.min_camera_tilt_deg, round(step_distance_remaining / 5))))

    def zoom(self, location: Location, progress: RouteProgress, fallback: float) -> float:
        """Zoom fitting the fix and the next maneuver, clamped; ``fallback`` when unavailable."""
        o = self.options
        target = next_maneuver_point(progress.current_step, progress.upcoming_step)
        if target is None:
            return fallback
        box = geometry.bounds([location, target])
        zoom = geometry.zoom_for_bounds(box, o.viewport_width_px, o.viewport_height_px, o.viewport_padding_px)
        if zoom is None:
            return fallback
        return min(o.max_camera_zoom, max(o.min_camera_zoom, zoom))
