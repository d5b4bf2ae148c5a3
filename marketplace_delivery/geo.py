"""Great-circle distance and point-in-polygon tests."""

from math import atan2, cos, radians, sin, sqrt

from marketplace_delivery.models import Coordinate, Polygon

# Mean radius of Earth in miles.
EARTH_RADIUS_MILES = 3958.8


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance in miles between two lat/lon points."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * atan2(sqrt(a), sqrt(1 - a))


def distance_miles(a: Coordinate, b: Coordinate) -> float:
    """Return the great-circle distance in miles between two coordinates.

    NaN coordinates yield NaN; callers validate their inputs.
    """
    return haversine(a.lat, a.lng, b.lat, b.lng)


def point_in_polygon(point: Coordinate, polygon: Polygon) -> bool:
    """Return True if *point* lies inside the polygon's outer ring.

    Uses ray casting along the latitude axis. Degenerate rings (fewer than
    four positions) contain nothing. Whether a point exactly on an edge or
    vertex counts as inside is implementation-defined.
    """
    ring = polygon.ring
    if polygon.is_degenerate:
        return False

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i].lat, ring[i].lng
        xj, yj = ring[j].lat, ring[j].lng
        if (yi > point.lng) != (yj > point.lng):
            crossing = (xj - xi) * (point.lng - yi) / (yj - yi) + xi
            if point.lat < crossing:
                inside = not inside
        j = i
    return inside
