"""Multi-origin delivery route planning and fee conversion.

A delivery visits every seller origin once and ends at the buyer. Small sets
of origins are solved exactly by trying every visiting order; larger sets use
a nearest-neighbour heuristic.
"""

import logging
import math
from itertools import permutations

from marketplace_delivery.geo import distance_miles
from marketplace_delivery.models import Coordinate, RouteQuote

logger = logging.getLogger(__name__)

# Origins closer than this are treated as the same stop.
DEDUPLICATION_THRESHOLD_MILES = 0.1

# Largest origin count solved by exhaustive permutation (7! = 5040 orders).
MAX_EXACT_ORIGINS = 7


def deduplicate_locations(
    locations: list[Coordinate],
    threshold_miles: float = DEDUPLICATION_THRESHOLD_MILES,
) -> list[Coordinate]:
    """Drop locations within *threshold_miles* of one already kept.

    The first location of each cluster is kept, so the result depends on
    input order only in which representative survives.
    """
    unique: list[Coordinate] = []
    for loc in locations:
        if not any(distance_miles(u, loc) < threshold_miles for u in unique):
            unique.append(loc)
    return unique


def _build_distance_matrix(points: list[Coordinate]) -> list[list[float]]:
    """Build a symmetric distance matrix between all points."""
    n = len(points)
    matrix: list[list[float]] = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            d = distance_miles(points[i], points[j])
            matrix[i][j] = d
            matrix[j][i] = d
    return matrix


def path_distance(stops: list[Coordinate], destination: Coordinate) -> float:
    """Return the length of visiting *stops* in order and ending at *destination*."""
    if not stops:
        return 0.0
    total = 0.0
    for i in range(len(stops) - 1):
        total += distance_miles(stops[i], stops[i + 1])
    return total + distance_miles(stops[-1], destination)


def exact_route_distance(origins: list[Coordinate], destination: Coordinate) -> float:
    """Return the shortest route distance by trying every visiting order."""
    n = len(origins)
    matrix = _build_distance_matrix(origins)
    to_destination = [distance_miles(o, destination) for o in origins]

    best = float("inf")
    for order in permutations(range(n)):
        dist = to_destination[order[-1]]
        for i in range(n - 1):
            dist += matrix[order[i]][order[i + 1]]
            if dist >= best:
                break
        else:
            best = dist
    return best


def nearest_neighbour_distance(origins: list[Coordinate], destination: Coordinate) -> float:
    """Estimate the route distance with the nearest-neighbour heuristic.

    The route starts at the origin farthest from *destination*, repeatedly
    moves to the closest unvisited origin and finishes at *destination*.
    This is a heuristic: it never under-estimates the optimum but may
    exceed it.

    Args:
        origins: Origin coordinates; must not be empty.
        destination: Final stop of the route.

    Returns:
        The total heuristic route distance in miles.
    """
    n = len(origins)
    matrix = _build_distance_matrix(origins)
    to_destination = [distance_miles(o, destination) for o in origins]

    current = max(range(n), key=lambda i: to_destination[i])
    visited = [False] * n
    visited[current] = True
    total = 0.0

    for _ in range(n - 1):
        best_dist = float("inf")
        best_idx = -1
        for j in range(n):
            if not visited[j] and matrix[current][j] < best_dist:
                best_dist = matrix[current][j]
                best_idx = j
        visited[best_idx] = True
        total += best_dist
        current = best_idx

    return total + to_destination[current]


def route_distance(origins: list[Coordinate], destination: Coordinate) -> float:
    """Return the route distance in miles through all *origins* to *destination*.

    Origins are expected to be deduplicated already.
    """
    if not origins:
        return 0.0
    if len(origins) == 1:
        return distance_miles(origins[0], destination)
    if len(origins) <= MAX_EXACT_ORIGINS:
        return exact_route_distance(origins, destination)

    logger.debug("Using nearest-neighbour heuristic for %d origins", len(origins))
    return nearest_neighbour_distance(origins, destination)


def fee_cents(distance: float, rate_per_mile_cents: int) -> int:
    """Convert a distance to a fee, rounding half a cent up."""
    return int(math.floor(distance * rate_per_mile_cents + 0.5))


def estimate_route(
    origins: list[Coordinate],
    destination: Coordinate,
    rate_per_mile_cents: int,
) -> RouteQuote:
    """Deduplicate *origins*, plan the route and price it.

    A zero rate returns a zero quote without looking at the origins.
    """
    if rate_per_mile_cents <= 0:
        return RouteQuote.zero()

    unique = deduplicate_locations(origins)
    distance = route_distance(unique, destination)
    return RouteQuote(
        total_distance_miles=distance,
        rate_per_mile_cents=rate_per_mile_cents,
        total_fee_cents=fee_cents(distance, rate_per_mile_cents),
    )
