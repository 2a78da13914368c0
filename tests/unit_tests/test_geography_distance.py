"""Unit tests for src.geography.distance module."""

import pytest
import numpy as np

from src.geography.distance import (
    EARTH_RADIUS_M,
    distance_meters,
    haversine_distance,
    pairwise_distance_matrix,
)
from src.geography.models import GeoPoint


class TestHaversineDistance:
    """Test suite for haversine_distance function.

    Tests great-circle distance in meters between geographic coordinates
    with known distances and edge cases.
    """

    def test_same_point(self):
        """Test distance between same point."""
        distance = haversine_distance(46.2530, 20.1484, 46.2530, 20.1484)
        
        assert distance == pytest.approx(0.0, abs=0.01)

    def test_szeged_to_budapest(self):
        """Test distance between Szeged and Budapest."""
        # Szeged: 46.2530, 20.1484
        # Budapest: 47.4979, 19.0402
        distance = haversine_distance(46.2530, 20.1484, 47.4979, 19.0402)
        
        # Approximately 161 km
        assert 155000 < distance < 167000

    def test_north_south_distance(self):
        """Test distance along meridian (north-south)."""
        # 1 degree latitude ≈ 111.2 km
        distance = haversine_distance(46.0, 20.0, 47.0, 20.0)
        
        assert distance == pytest.approx(111195, rel=0.001)

    def test_nearby_parking_spots(self):
        """Test distance between two spots a few meters apart."""
        distance = haversine_distance(46.2530, 20.1484, 46.2531, 20.1485)
        
        assert 10 < distance < 20

    def test_antipodal_points(self):
        """Test antipodal points give half the circumference."""
        distance = haversine_distance(0.0, 0.0, 0.0, 180.0)
        
        assert distance == pytest.approx(np.pi * EARTH_RADIUS_M, rel=1e-9)

    def test_symmetry(self):
        """Test distance is symmetric."""
        d1 = haversine_distance(46.2497, 20.1490, 46.2571, 20.1398)
        d2 = haversine_distance(46.2571, 20.1398, 46.2497, 20.1490)
        
        assert d1 == pytest.approx(d2)


class TestDistanceMeters:
    """Test suite for distance_meters function."""

    def test_identical_points_exactly_zero(self):
        """Test equal coordinates give exactly 0.0."""
        a = GeoPoint(longitude=20.1484, latitude=46.2530)
        b = GeoPoint(longitude=20.1484, latitude=46.2530)
        
        assert distance_meters(a, b) == 0.0

    def test_matches_haversine(self):
        """Test GeoPoint wrapper agrees with haversine_distance."""
        a = GeoPoint(longitude=20.1484, latitude=46.2530)
        b = GeoPoint(longitude=20.1660, latitude=46.2450)
        
        expected = haversine_distance(46.2530, 20.1484, 46.2450, 20.1660)
        assert distance_meters(a, b) == pytest.approx(expected)
        assert distance_meters(b, a) == pytest.approx(expected)


class TestPairwiseDistanceMatrix:
    """Test suite for pairwise_distance_matrix function."""

    def test_shape_and_diagonal(self):
        """Test matrix is square, symmetric and has a zero diagonal."""
        lats = [46.2497, 46.2546, 46.2571]
        lons = [20.1490, 20.1484, 20.1398]
        
        d = pairwise_distance_matrix(lats, lons)
        
        assert d.shape == (3, 3)
        assert np.allclose(np.diag(d), 0.0)
        assert np.allclose(d, d.T)

    def test_matches_scalar_haversine(self):
        """Test entries agree with haversine_distance."""
        lats = [46.2497, 46.2571]
        lons = [20.1490, 20.1398]
        
        d = pairwise_distance_matrix(lats, lons)
        
        expected = haversine_distance(lats[0], lons[0], lats[1], lons[1])
        assert d[0, 1] == pytest.approx(expected, rel=1e-9)

    def test_empty_input(self):
        """Test empty input gives an empty matrix."""
        d = pairwise_distance_matrix([], [])
        
        assert d.shape == (0, 0)
