import math

import pytest

from marketplace_delivery.geo import distance_miles, point_in_polygon
from marketplace_delivery.models import Coordinate, Polygon

SQUARE = Polygon.from_geojson(
    {"type": "Polygon", "coordinates": [[[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]]}
)

POINTS = [
    Coordinate(lat=0.0, lng=0.0),
    Coordinate(lat=40.7128, lng=-74.0060),
    Coordinate(lat=51.5074, lng=-0.1278),
    Coordinate(lat=-33.8688, lng=151.2093),
    Coordinate(lat=90.0, lng=180.0),
]


class TestDistanceMiles:
    @pytest.mark.parametrize("point", POINTS)
    def test_identical_points_are_zero(self, point):
        assert distance_miles(point, point) == 0.0

    @pytest.mark.parametrize("a", POINTS)
    @pytest.mark.parametrize("b", POINTS)
    def test_symmetric(self, a, b):
        assert distance_miles(a, b) == pytest.approx(distance_miles(b, a))

    def test_one_degree_of_latitude(self):
        # 2 * pi * 3958.8 / 360
        d = distance_miles(Coordinate(lat=0.0, lng=0.0), Coordinate(lat=1.0, lng=0.0))
        assert d == pytest.approx(69.09, abs=0.01)

    def test_new_york_to_london(self):
        assert distance_miles(POINTS[1], POINTS[2]) == pytest.approx(3461, rel=0.005)

    def test_grows_with_separation(self):
        origin = Coordinate(lat=10.0, lng=10.0)
        distances = [distance_miles(origin, Coordinate(lat=10.0 + step, lng=10.0)) for step in (0.1, 1, 5, 20)]
        assert distances == sorted(distances)

    def test_nan_propagates(self):
        d = distance_miles(Coordinate(lat=float("nan"), lng=0.0), Coordinate(lat=1.0, lng=1.0))
        assert math.isnan(d)


class TestPointInPolygon:
    def test_point_inside_square(self):
        assert point_in_polygon(Coordinate(lat=5, lng=5), SQUARE) is True

    def test_point_outside_square(self):
        assert point_in_polygon(Coordinate(lat=20, lng=20), SQUARE) is False

    def test_point_outside_on_one_axis(self):
        assert point_in_polygon(Coordinate(lat=5, lng=15), SQUARE) is False
        assert point_in_polygon(Coordinate(lat=-1, lng=5), SQUARE) is False

    def test_degenerate_ring_contains_nothing(self):
        triangle = Polygon.from_geojson({"type": "Polygon", "coordinates": [[[0, 0], [0, 10], [10, 0]]]})
        assert triangle.is_degenerate
        assert not SQUARE.is_degenerate
        assert point_in_polygon(Coordinate(lat=1, lng=1), triangle) is False

    def test_empty_polygon(self):
        assert point_in_polygon(Coordinate(lat=0, lng=0), Polygon(ring=())) is False

    def test_concave_polygon(self):
        # An L shape: the notch at the top right is outside.
        shape = Polygon.from_geojson(
            {
                "type": "Polygon",
                "coordinates": [[[0, 0], [10, 0], [10, 5], [5, 5], [5, 10], [0, 10], [0, 0]]],
            }
        )
        assert point_in_polygon(Coordinate(lat=2, lng=2), shape) is True
        assert point_in_polygon(Coordinate(lat=8, lng=2), shape) is True
        assert point_in_polygon(Coordinate(lat=8, lng=8), shape) is False

    def test_real_world_service_area(self):
        # Rough box around the Twin Cities.
        area = Polygon.from_geojson(
            {
                "type": "Polygon",
                "coordinates": [
                    [[-93.5, 44.7], [-92.8, 44.7], [-92.8, 45.2], [-93.5, 45.2], [-93.5, 44.7]]
                ],
            }
        )
        minneapolis = Coordinate(lat=44.9778, lng=-93.2650)
        duluth = Coordinate(lat=46.7867, lng=-92.1005)
        assert point_in_polygon(minneapolis, area) is True
        assert point_in_polygon(duluth, area) is False
