"""Rerouting tolerance that tightens near junctions."""

from navtrack.config import NavigationOptions
from navtrack.core import geometry
from navtrack.core.progress import RouteProgress


def dynamic_off_route_tolerance(snapped, progress: RouteProgress, options: NavigationOptions) -> float:
    """Off-route radius in meters for a fix snapped to ``snapped``.

    Halved when the nearest intersection (other than the snapped point
    itself) lies within the maneuver zone.
    """
    baseline = options.off_route_threshold_radius_m
    candidates = [
        i.location
        for i in progress.step_progress.intersections
        if geometry.distance(snapped, i.location) > geometry.DEGENERATE_SEGMENT_M
    ]
    nearest, dist = geometry.nearest_point(snapped, candidates)
    if nearest is not None and dist <= options.maneuver_zone_radius_m:
        return baseline / 2
    return baseline
