"""Value types shared by the decoder, the clustering strategies and the engine."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Generic, Tuple, TypeVar

P = TypeVar("P")

LAT_MIN, LAT_MAX = -90.0, 90.0
LON_MIN, LON_MAX = -180.0, 180.0

BBox = Tuple[float, float, float, float]


def is_valid_coordinate(longitude: float, latitude: float) -> bool:
    """Return True if both values are finite and inside the WGS84 ranges."""
    if not (math.isfinite(longitude) and math.isfinite(latitude)):
        return False
    return LON_MIN <= longitude <= LON_MAX and LAT_MIN <= latitude <= LAT_MAX


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate in decimal degrees."""

    longitude: float
    latitude: float

    def __post_init__(self):
        if not is_valid_coordinate(self.longitude, self.latitude):
            raise ValueError(
                f"Invalid coordinate: lon={self.longitude!r}, lat={self.latitude!r}"
            )


@dataclass(frozen=True)
class FeaturePoint(Generic[P]):
    """A decoded record: stable id, position and an opaque payload.

    The engine never looks inside ``properties``; it is only carried along
    so the presentation layer gets back what it put in.
    """

    id: str
    geometry: GeoPoint
    properties: P = field(default=None, compare=False)

    @property
    def longitude(self) -> float:
        return self.geometry.longitude

    @property
    def latitude(self) -> float:
        return self.geometry.latitude


@dataclass(frozen=True)
class Viewport:
    """Visible map region as a center plus latitude/longitude span.

    Attributes:
        center_latitude: Latitude of the map center.
        center_longitude: Longitude of the map center.
        latitude_delta: Visible latitude span in degrees (> 0).
        longitude_delta: Visible longitude span in degrees (> 0).
    """

    center_latitude: float
    center_longitude: float
    latitude_delta: float
    longitude_delta: float

    def __post_init__(self):
        if not (self.latitude_delta > 0 and self.longitude_delta > 0):
            raise ValueError(
                f"Viewport deltas must be positive, got "
                f"{self.latitude_delta!r}/{self.longitude_delta!r}"
            )

    @property
    def bbox(self) -> BBox:
        """Bounding box as (west, south, east, north)."""
        half_lon = self.longitude_delta / 2
        half_lat = self.latitude_delta / 2
        return (
            self.center_longitude - half_lon,
            self.center_latitude - half_lat,
            self.center_longitude + half_lon,
            self.center_latitude + half_lat,
        )

    @property
    def zoom(self) -> int:
        """Discrete zoom level implied by the latitude span (0-20)."""
        from src.geography.projection import zoom_for_delta

        return zoom_for_delta(self.latitude_delta)

    def contains(self, point: GeoPoint) -> bool:
        west, south, east, north = self.bbox
        if not south <= point.latitude <= north:
            return False
        if east - west >= 360:
            return True
        # boxes may run past the antimeridian
        return (point.longitude - west) % 360 <= east - west

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.center_latitude,
            "longitude": self.center_longitude,
            "latitudeDelta": self.latitude_delta,
            "longitudeDelta": self.longitude_delta,
        }
