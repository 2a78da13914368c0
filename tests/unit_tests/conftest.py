"""Pytest fixtures for clustering engine unit tests.

This module provides shared fixtures for testing the decoder, the
clustering strategies and the engine in isolation.
"""

import pytest
import numpy as np

from src.geography.models import FeaturePoint, GeoPoint, Viewport
from src.geography.wkb import encode_point


def make_point(point_id, lat, lon, **properties):
    """Build a FeaturePoint with an optional properties dict."""
    return FeaturePoint(
        id=point_id,
        geometry=GeoPoint(longitude=lon, latitude=lat),
        properties=properties or None,
    )


@pytest.fixture
def pair_points():
    """Two parking spots roughly 14 m apart in Szeged."""
    return [
        make_point("a", 46.2530, 20.1484),
        make_point("b", 46.2531, 20.1485),
    ]


@pytest.fixture
def szeged_points():
    """Three tight groups plus one isolated spot around Szeged city center.

    Returns:
        list[FeaturePoint]: 10 points in a stable order.
    """
    return [
        # Dom ter
        make_point("dom-1", 46.2497, 20.1490),
        make_point("dom-2", 46.2498, 20.1491),
        make_point("dom-3", 46.2496, 20.1489),
        # Szechenyi ter
        make_point("sze-1", 46.2546, 20.1484),
        make_point("sze-2", 46.2547, 20.1486),
        make_point("sze-3", 46.2545, 20.1483),
        make_point("sze-4", 46.2546, 20.1487),
        # Mars ter
        make_point("mar-1", 46.2571, 20.1398),
        make_point("mar-2", 46.2572, 20.1399),
        # Ujszeged, across the river
        make_point("uj-1", 46.2450, 20.1660),
    ]


@pytest.fixture
def blob_points():
    """Two random blobs of 150 points each, far apart.

    Returns:
        list[FeaturePoint]: 300 points with ids "p0".."p299".
    """
    np.random.seed(42)
    blob1 = np.random.randn(150, 2) * 0.002 + np.array([46.25, 20.15])
    blob2 = np.random.randn(150, 2) * 0.002 + np.array([47.50, 19.05])
    coords = np.vstack([blob1, blob2])
    return [make_point(f"p{i}", float(lat), float(lon)) for i, (lat, lon) in enumerate(coords)]


@pytest.fixture
def city_viewport():
    """Viewport over central Szeged at neighbourhood zoom (zoom 12)."""
    return Viewport(
        center_latitude=46.2530,
        center_longitude=20.1484,
        latitude_delta=0.05,
        longitude_delta=0.05,
    )


@pytest.fixture
def world_viewport():
    """Viewport covering the whole world (zoom 1)."""
    return Viewport(
        center_latitude=0.0,
        center_longitude=0.0,
        latitude_delta=180.0,
        longitude_delta=360.0,
    )


@pytest.fixture
def raw_records(szeged_points):
    """Database rows for szeged_points, geometry as little-endian EWKB hex."""
    return [
        {
            "id": p.id,
            "wkb": encode_point(p.geometry, little_endian=True, srid=4326).hex().upper(),
            "properties": {"type": "parking", "name": f"Spot {p.id}"},
        }
        for p in szeged_points
    ]
