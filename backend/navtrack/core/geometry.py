"""Spherical distance/bearing math and polyline linear referencing.

Point-to-point math uses the haversine formula. Polyline operations map
coordinates into a local equirectangular frame (x = lon * cos(lat0), y = lat)
and use Shapely linear referencing there; lengths are always reported as
great-circle meters.
"""

import math

from shapely.geometry import LineString, Point
from shapely.ops import substring

from navtrack.core.models import Coordinate

EARTH_RADIUS_M = 6_371_000.0
# Consecutive points closer than this form a degenerate segment and are skipped
DEGENERATE_SEGMENT_M = 1e-3
# Web-mercator tile edge in pixels
TILE_SIZE_PX = 512


def distance(a, b) -> float:
    """Great-circle distance in meters between two lat/lon objects."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def wrap(value: float, low: float = 0.0, high: float = 360.0) -> float:
    """Wrap ``value`` into [low, high)."""
    span = high - low
    result = (value - low) % span + low
    # float modulo can land exactly on ``high`` for tiny negative inputs
    return low if result >= high else result


def bearing(a, b) -> float:
    """Initial compass bearing from ``a`` to ``b`` in [0, 360)."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return wrap(math.degrees(math.atan2(x, y)))


def angle_difference(a: float, b: float) -> float:
    """Smallest absolute difference between two bearings, in [0, 180]."""
    diff = abs(wrap(a) - wrap(b))
    return 360.0 - diff if diff > 180.0 else diff


def destination(origin, bearing_deg: float, meters: float) -> Coordinate:
    """Point reached travelling ``meters`` from ``origin`` on ``bearing_deg``."""
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)
    brg = math.radians(bearing_deg)
    ang = meters / EARTH_RADIUS_M
    lat2 = math.asin(
        math.sin(lat1) * math.cos(ang) + math.cos(lat1) * math.sin(ang) * math.cos(brg)
    )
    lon2 = lon1 + math.atan2(
        math.sin(brg) * math.sin(ang) * math.cos(lat1),
        math.cos(ang) - math.sin(lat1) * math.sin(lat2),
    )
    return Coordinate(math.degrees(lat2), wrap(math.degrees(lon2), -180.0, 180.0))


def _clean(line) -> list:
    """Drop consecutive near-duplicate points."""
    pts = []
    for c in line:
        if pts and distance(pts[-1], c) < DEGENERATE_SEGMENT_M:
            continue
        pts.append(c)
    return pts


def line_length(line) -> float:
    """Length of a polyline in meters."""
    pts = _clean(line)
    return sum(distance(a, b) for a, b in zip(pts, pts[1:]))


def _to_frame(pts: list, lat0: float) -> tuple[LineString, float]:
    kx = max(math.cos(math.radians(lat0)), 1e-6)
    # Shapely uses (x, y) = (lon, lat)
    return LineString([(c.longitude * kx, c.latitude) for c in pts]), kx


def _project(point, pts: list) -> tuple[LineString, float, float]:
    """Frame line, x scale and frame offset of ``point`` projected onto ``pts``."""
    line, kx = _to_frame(pts, pts[0].latitude)
    offset = line.project(Point(point.longitude * kx, point.latitude))
    return line, kx, offset


def nearest_point_on_line(point, line) -> Coordinate:
    """Project ``point`` onto the nearest segment of ``line``.

    Lines with fewer than two coordinates cannot be projected onto; the
    input point is returned instead.
    """
    if len(line) < 2:
        return Coordinate(point.latitude, point.longitude)
    pts = _clean(line)
    if len(pts) < 2:
        return Coordinate(pts[0].latitude, pts[0].longitude)
    frame, kx, offset = _project(point, pts)
    snapped = frame.interpolate(offset)
    return Coordinate(snapped.y, snapped.x / kx)


def distance_to_line(point, line) -> float:
    """Perpendicular distance in meters from ``point`` to ``line``."""
    if not line:
        return math.inf
    if len(line) < 2:
        return distance(point, line[0])
    return distance(point, nearest_point_on_line(point, line))


def traveled_part(point, line) -> list[Coordinate]:
    """Coordinates of ``line`` from its start up to the projection of ``point``."""
    pts = _clean(line)
    if len(pts) < 2:
        return [Coordinate(c.latitude, c.longitude) for c in pts]
    frame, kx, offset = _project(point, pts)
    if offset <= 0.0:
        return [Coordinate(pts[0].latitude, pts[0].longitude)]
    part = substring(frame, 0.0, offset)
    coords = list(part.coords) if part.geom_type == "LineString" else [part.coords[0]]
    return [Coordinate(y, x / kx) for x, y in coords]


def distance_along_line(point, line) -> float:
    """Meters along ``line`` from its start to the projection of ``point``."""
    part = traveled_part(point, line)
    return sum(distance(a, b) for a, b in zip(part, part[1:]))


def point_at_distance(line, meters: float) -> Coordinate | None:
    """Coordinate ``meters`` along ``line``, or None when out of range or empty."""
    pts = _clean(line)
    if not pts or meters < 0:
        return None
    travelled = 0.0
    for a, b in zip(pts, pts[1:]):
        seg = distance(a, b)
        if travelled + seg >= meters:
            overshoot = meters - travelled
            if overshoot <= 0:
                return Coordinate(a.latitude, a.longitude)
            return destination(a, bearing(a, b), overshoot)
        travelled += seg
    if meters - travelled > 1e-6:
        return None
    last = pts[-1]
    return Coordinate(last.latitude, last.longitude)


def nearest_point(point, candidates) -> tuple[Coordinate | None, float]:
    """Closest of ``candidates`` to ``point`` and its distance in meters."""
    best, best_d = None, math.inf
    for c in candidates:
        d = distance(point, c)
        if d < best_d:
            best, best_d = c, d
    return best, best_d


def bounds(points) -> tuple[float, float, float, float] | None:
    """(south, west, north, east) of the given points."""
    pts = list(points)
    if not pts:
        return None
    lats = [p.latitude for p in pts]
    lons = [p.longitude for p in pts]
    return min(lats), min(lons), max(lats), max(lons)


def _mercator_lat(lat: float) -> float:
    s = math.sin(math.radians(lat))
    s = max(min(s, 0.9999), -0.9999)
    return math.log((1 + s) / (1 - s)) / 2


def zoom_for_bounds(
    box: tuple[float, float, float, float] | None,
    width_px: int,
    height_px: int,
    padding_px: int = 0,
) -> float | None:
    """Largest web-mercator zoom that fits ``box`` inside the viewport.

    Returns None when the box is missing or collapses to a single point.
    """
    if box is None:
        return None
    south, west, north, east = box
    width = width_px - 2 * padding_px
    height = height_px - 2 * padding_px
    lat_fraction = (_mercator_lat(north) - _mercator_lat(south)) / (2 * math.pi)
    lon_fraction = (east - west) / 360.0
    candidates = []
    if lat_fraction > 0:
        candidates.append(math.log2(height / TILE_SIZE_PX / lat_fraction))
    if lon_fraction > 0:
        candidates.append(math.log2(width / TILE_SIZE_PX / lon_fraction))
    if not candidates:
        return None
    return min(candidates)
