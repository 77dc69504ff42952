"""
RefugeCare Triage - Geospatial Index Tests

These tests verify:
- Haversine distance is symmetric and zero for identical points
- Bearings stay within [0, 360)
- k-nearest ordering, truncation and tie handling
- Coordinate bounds validation

Run with: pytest tests/test_geo.py -v
"""

import pytest

from refugecare.core import geo
from refugecare.core.exceptions import ValidationError
from refugecare.core.types import Coordinate


# =============================================================================
# Distance
# =============================================================================

class TestDistance:
    """Tests for great-circle distance."""

    @pytest.mark.parametrize("a, b", [
        ((0.0, 0.0), (0.0, 1.0)),
        ((12.9716, 77.5946), (12.8456, 77.6603)),
        ((-33.86, 151.21), (51.51, -0.13)),
        ((89.9, 10.0), (-89.9, -170.0)),
    ])
    def test_symmetric(self, a, b):
        """distance(a, b) should equal distance(b, a)."""
        p, q = Coordinate(*a), Coordinate(*b)
        assert geo.distance(p, q) == pytest.approx(geo.distance(q, p), abs=1e-9)

    def test_identical_points_zero(self):
        """A point should be 0 km from itself."""
        p = Coordinate(36.2, 37.15)
        assert geo.distance(p, p) == 0.0

    def test_one_degree_on_equator(self):
        """One degree of longitude on the equator should be ~111.19 km."""
        assert geo.distance(Coordinate(0, 0), Coordinate(0, 1)) == pytest.approx(111.19, abs=0.01)

    def test_antipodal_points(self):
        """Antipodal points should be half the earth's circumference apart."""
        d = geo.distance(Coordinate(0, 0), Coordinate(0, 180))
        assert d == pytest.approx(geo.EARTH_RADIUS_KM * 3.141592653589793, rel=1e-6)

    def test_within_radius_inclusive(self):
        """A target exactly on the radius boundary should count as within."""
        origin, target = Coordinate(0, 0), Coordinate(0, 1)
        d = geo.distance(origin, target)
        assert geo.within_radius(origin, target, d)
        assert not geo.within_radius(origin, target, d - 0.01)


# =============================================================================
# Bearing
# =============================================================================

class TestBearing:
    """Tests for initial bearing."""

    @pytest.mark.parametrize("target, expected", [
        ((1.0, 0.0), 0.0),
        ((0.0, 1.0), 90.0),
        ((-1.0, 0.0), 180.0),
        ((0.0, -1.0), 270.0),
    ])
    def test_cardinal_directions(self, target, expected):
        """Bearings to cardinal neighbours should be multiples of 90."""
        assert geo.bearing(Coordinate(0, 0), Coordinate(*target)) == pytest.approx(expected, abs=1e-6)

    def test_range(self):
        """Bearing should always be within [0, 360)."""
        origin = Coordinate(12.97, 77.59)
        for lat in (-80, -10, 0, 12.97, 45, 80):
            for lng in (-170, -45, 0, 77.59, 120, 179):
                b = geo.bearing(origin, Coordinate(lat, lng))
                assert 0.0 <= b < 360.0

    @pytest.mark.parametrize("degrees, point", [
        (0, "N"), (44, "NE"), (90, "E"), (135, "SE"),
        (180, "S"), (225, "SW"), (270, "W"), (315, "NW"), (359, "N"),
    ])
    def test_compass_direction(self, degrees, point):
        """Bearings should map to the nearest of eight compass points."""
        assert geo.compass_direction(degrees) == point


# =============================================================================
# Nearest
# =============================================================================

class TestNearest:
    """Tests for k-nearest lookup."""

    @pytest.fixture
    def candidates(self):
        return [
            ("far", Coordinate(0, 2)),
            ("near", Coordinate(0, 0.1)),
            ("mid", Coordinate(0, 1)),
        ]

    def test_sorted_ascending(self, candidates):
        """Results should be ordered closest first."""
        results = geo.nearest(Coordinate(0, 0), candidates, 3)
        assert [r.id for r in results] == ["near", "mid", "far"]
        distances = [r.distance_km for r in results]
        assert distances == sorted(distances)

    def test_truncates_to_k(self, candidates):
        """At most k results should be returned."""
        assert [r.id for r in geo.nearest(Coordinate(0, 0), candidates, 2)] == ["near", "mid"]

    def test_k_larger_than_candidates(self, candidates):
        """k beyond the candidate count should return every candidate."""
        assert len(geo.nearest(Coordinate(0, 0), candidates, 50)) == 3

    def test_empty_inputs(self, candidates):
        """No candidates or k <= 0 should yield an empty list."""
        assert geo.nearest(Coordinate(0, 0), [], 5) == []
        assert geo.nearest(Coordinate(0, 0), candidates, 0) == []
        assert geo.nearest(Coordinate(0, 0), candidates, -1) == []

    def test_ties_keep_insertion_order(self):
        """Equidistant candidates should keep their input order."""
        same = Coordinate(1, 1)
        results = geo.nearest(Coordinate(0, 0), [("b", same), ("a", same), ("c", same)], 3)
        assert [r.id for r in results] == ["b", "a", "c"]

    def test_geography_scenario(self):
        """A ticket at (0, 0.4) should see A at ~44.5 km and B at ~66.7 km."""
        results = geo.nearest(
            Coordinate(0, 0.4),
            [("B", Coordinate(0, 1)), ("A", Coordinate(0, 0))],
            2,
        )
        assert [r.id for r in results] == ["A", "B"]
        assert results[0].distance_km == pytest.approx(44.48, abs=0.05)
        assert results[1].distance_km == pytest.approx(66.72, abs=0.05)


# =============================================================================
# Formatting and Validation
# =============================================================================

class TestFormatting:

    def test_format_meters_below_one_km(self):
        """Distances under 1 km should render in meters."""
        assert geo.format_distance(0.85) == "850m"

    def test_format_kilometers(self):
        """Distances of 1 km or more should render with one decimal."""
        assert geo.format_distance(12.34) == "12.3km"
        assert geo.format_distance(1.0) == "1.0km"


class TestCoordinateValidation:

    @pytest.mark.parametrize("lat, lng", [(90.1, 0), (-91, 0), (0, 180.5), (0, -181)])
    def test_out_of_range_rejected(self, lat, lng):
        """Latitudes outside ±90 and longitudes outside ±180 should be rejected."""
        with pytest.raises(ValidationError):
            Coordinate(lat, lng)

    def test_bounds_accepted(self):
        """The exact bounds should be valid."""
        Coordinate(90, 180)
        Coordinate(-90, -180)
