"""Unit tests for src.geography.projection and the Viewport model."""

import pytest
import numpy as np

from src.geography.models import GeoPoint, Viewport
from src.geography.projection import (
    MAX_MERCATOR_LAT,
    delta_for_zoom,
    lat_y,
    lng_x,
    pixel_radius_to_unit,
    project,
    split_bbox,
    x_lng,
    y_lat,
    zoom_for_delta,
)


class TestZoomForDelta:
    """Test suite for zoom_for_delta function."""

    @pytest.mark.parametrize("delta,zoom", [
        (360.0, 0),
        (180.0, 1),
        (0.2, 10),
        (0.05, 12),
        (0.003, 16),
        (0.001, 18),
    ])
    def test_known_values(self, delta, zoom):
        """Test floor(log2(360 / delta)) for typical spans."""
        assert zoom_for_delta(delta) == zoom

    def test_clamped_low(self):
        """Test spans wider than the world clamp to zoom 0."""
        assert zoom_for_delta(1000.0) == 0

    def test_clamped_high(self):
        """Test tiny spans clamp to zoom 20."""
        assert zoom_for_delta(1e-9) == 20

    def test_non_positive_delta(self):
        """Test non-positive spans map to the maximum zoom."""
        assert zoom_for_delta(0.0) == 20
        assert zoom_for_delta(-1.0) == 20

    def test_inverse(self):
        """Test delta_for_zoom inverts zoom_for_delta at integer zooms."""
        for zoom in range(0, 21):
            assert zoom_for_delta(delta_for_zoom(zoom)) == zoom


class TestMercator:
    """Test suite for Web-Mercator helpers."""

    def test_corners(self):
        """Test unit-square corners and center."""
        assert lng_x(-180.0) == 0.0
        assert lng_x(180.0) == 1.0
        assert lat_y(0.0) == pytest.approx(0.5)
        assert lat_y(MAX_MERCATOR_LAT) == pytest.approx(0.0, abs=1e-9)
        assert lat_y(-MAX_MERCATOR_LAT) == pytest.approx(1.0, abs=1e-9)

    def test_poles_clamped(self):
        """Test latitudes beyond the Mercator limit stay inside [0, 1]."""
        assert 0.0 <= lat_y(90.0) <= 1.0
        assert 0.0 <= lat_y(-90.0) <= 1.0

    def test_inverse(self):
        """Test x_lng/y_lat invert lng_x/lat_y."""
        assert x_lng(lng_x(20.1484)) == pytest.approx(20.1484)
        assert y_lat(lat_y(46.2530)) == pytest.approx(46.2530)

    def test_project_matches_scalar(self):
        """Test vectorised project agrees with lng_x/lat_y."""
        lngs = np.array([-77.1, 20.1484, 179.9])
        lats = np.array([38.88, 46.2530, -60.0])
        
        xy = project(lngs, lats)
        
        assert xy.shape == (3, 2)
        for i in range(3):
            assert xy[i, 0] == pytest.approx(lng_x(lngs[i]))
            assert xy[i, 1] == pytest.approx(lat_y(lats[i]))

    def test_pixel_radius(self):
        """Test radius 512 px at zoom 0 on a 512 px tile covers the world."""
        assert pixel_radius_to_unit(512, 512, 0) == 1.0
        assert pixel_radius_to_unit(50, 512, 3) == pytest.approx(50 / 4096)


class TestSplitBBox:
    """Test suite for split_bbox function."""

    def test_plain_box(self):
        """Test a normal box comes back unchanged."""
        assert split_bbox((20.0, 46.0, 21.0, 47.0)) == [(20.0, 46.0, 21.0, 47.0)]

    def test_antimeridian(self):
        """Test a box crossing 180° splits in two."""
        pieces = split_bbox((170.0, -10.0, 190.0, 10.0))
        
        assert pieces == [(170.0, -10.0, 180.0, 10.0), (-180.0, -10.0, -170.0, 10.0)]

    def test_whole_world(self):
        """Test a 360° wide box covers every longitude."""
        assert split_bbox((-200.0, -100.0, 200.0, 100.0)) == [(-180.0, -90.0, 180.0, 90.0)]


class TestViewport:
    """Test suite for the Viewport model."""

    def test_bbox_and_zoom(self, city_viewport):
        """Test bbox is center +/- half span and zoom follows the latitude span."""
        west, south, east, north = city_viewport.bbox
        
        assert west == pytest.approx(20.1234)
        assert east == pytest.approx(20.1734)
        assert south == pytest.approx(46.2280)
        assert north == pytest.approx(46.2780)
        assert city_viewport.zoom == 12

    def test_world_zoom(self, world_viewport):
        """Test a 180° latitude span is zoom 1."""
        assert world_viewport.zoom == 1

    def test_contains(self, city_viewport):
        """Test point containment."""
        assert city_viewport.contains(GeoPoint(longitude=20.15, latitude=46.25))
        assert not city_viewport.contains(GeoPoint(longitude=19.04, latitude=47.50))

    def test_contains_across_antimeridian(self):
        """Test containment of a viewport centered on 180°."""
        vp = Viewport(center_latitude=0.0, center_longitude=180.0, latitude_delta=10.0, longitude_delta=10.0)
        
        assert vp.contains(GeoPoint(longitude=-178.0, latitude=0.0))
        assert vp.contains(GeoPoint(longitude=178.0, latitude=0.0))
        assert not vp.contains(GeoPoint(longitude=170.0, latitude=0.0))

    def test_invalid_delta(self):
        """Test non-positive spans are rejected."""
        with pytest.raises(ValueError):
            Viewport(center_latitude=0.0, center_longitude=0.0, latitude_delta=0.0, longitude_delta=1.0)

    def test_to_dict(self, city_viewport):
        """Test camelCase serialisation."""
        assert city_viewport.to_dict() == {
            "latitude": 46.2530,
            "longitude": 20.1484,
            "latitudeDelta": 0.05,
            "longitudeDelta": 0.05,
        }
