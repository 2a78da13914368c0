"""Web-Mercator helpers for zoom-dependent clustering.

Coordinates are projected onto the unit square used by slippy-map tiles:
x grows eastward from 0 at -180° to 1 at +180°, y grows southward from 0 at
the northern Mercator limit to 1 at the southern one. A distance of
``radius / (extent * 2**zoom)`` in this space equals ``radius`` screen
pixels at ``zoom`` for tiles of ``extent`` pixels.
"""

import math
from typing import List, Tuple

import numpy as np

from .models import BBox

# Latitude at which Web-Mercator is cut off (square world)
MAX_MERCATOR_LAT = 85.05112878

MIN_ZOOM_LEVEL = 0
MAX_ZOOM_LEVEL = 20

# Smallest span a viewport may shrink to, in degrees
MIN_DELTA = 0.001


def clamp_latitude(lat: float) -> float:
    return max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))


def lng_x(lng: float) -> float:
    return lng / 360.0 + 0.5


def lat_y(lat: float) -> float:
    sin = math.sin(math.radians(clamp_latitude(lat)))
    y = 0.5 - 0.25 * math.log((1 + sin) / (1 - sin)) / math.pi
    return min(1.0, max(0.0, y))


def x_lng(x: float) -> float:
    return (x - 0.5) * 360.0


def y_lat(y: float) -> float:
    y2 = (180 - y * 360) * math.pi / 180
    return 360 * math.atan(math.exp(y2)) / math.pi - 90


def project(lngs: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Vectorised lng_x/lat_y; returns an (n, 2) array of unit-square coordinates."""
    lngs = np.asarray(lngs, dtype=float)
    lats = np.clip(np.asarray(lats, dtype=float), -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT)
    x = lngs / 360.0 + 0.5
    sin = np.sin(np.radians(lats))
    y = 0.5 - 0.25 * np.log((1 + sin) / (1 - sin)) / np.pi
    return np.column_stack([x, np.clip(y, 0.0, 1.0)])


def zoom_for_delta(latitude_delta: float) -> int:
    """Convert a latitude span to an integer zoom level in [0, 20].

    zoom = floor(log2(360 / latitude_delta))
    """
    if latitude_delta <= 0 or not math.isfinite(latitude_delta):
        return MAX_ZOOM_LEVEL
    zoom = math.log2(360.0 / latitude_delta)
    return int(max(MIN_ZOOM_LEVEL, min(MAX_ZOOM_LEVEL, math.floor(zoom))))


def delta_for_zoom(zoom: float) -> float:
    """Latitude span that maps back to ``zoom`` (inverse of zoom_for_delta)."""
    return 360.0 / (2 ** zoom)


def pixel_radius_to_unit(radius: float, extent: int, zoom: int) -> float:
    """Length in unit-square coordinates covered by ``radius`` pixels at ``zoom``."""
    return radius / (extent * 2 ** zoom)


def split_bbox(bbox: BBox) -> List[Tuple[float, float, float, float]]:
    """Normalise a (west, south, east, north) box into antimeridian-safe pieces.

    Longitudes are wrapped into [-180, 180], latitudes clamped to [-90, 90].
    A box that crosses the antimeridian comes back as two boxes; one that
    is 360° or wider covers every longitude.
    """
    west, south, east, north = bbox
    south = max(-90.0, min(90.0, south))
    north = max(-90.0, min(90.0, north))

    if east - west >= 360:
        return [(-180.0, south, 180.0, north)]

    min_lng = ((west + 180) % 360 + 360) % 360 - 180
    max_lng = 180.0 if east == 180 else ((east + 180) % 360 + 360) % 360 - 180

    if min_lng > max_lng:
        return [(min_lng, south, 180.0, north), (-180.0, south, max_lng, north)]
    return [(min_lng, south, max_lng, north)]
