"""Geography module for the map clustering engine.

This module contains the geographic primitives the clustering layer is
built on: coordinate value types, the PostGIS point decoder, great-circle
distance and the Web-Mercator projection helpers.

Modules:
    models: GeoPoint, FeaturePoint and Viewport value types
    wkb: (E)WKB point decoding, batch decoding and encoding
    distance: Haversine distance in meters
    projection: Web-Mercator projection and zoom/span conversions

Functions:
    decode_point: Decode one (E)WKB point into a GeoPoint
    decode_batch: Decode raw records, dropping malformed geometries
    distance_meters: Great circle distance between two GeoPoints
    zoom_for_delta: Convert a latitude span to a discrete zoom level
"""

from .models import (
    GeoPoint,
    FeaturePoint,
    Viewport,
    is_valid_coordinate,
)

from .wkb import (
    DecodeError,
    MalformedInput,
    UnsupportedGeometryType,
    InvalidCoordinate,
    decode_point,
    decode_batch,
    encode_point,
    read_srid,
)

from .distance import (
    EARTH_RADIUS_M,
    haversine_distance,
    distance_meters,
    pairwise_distance_matrix,
)

from .projection import (
    MIN_DELTA,
    zoom_for_delta,
    delta_for_zoom,
)

__all__ = [
    'GeoPoint',
    'FeaturePoint',
    'Viewport',
    'is_valid_coordinate',
    'DecodeError',
    'MalformedInput',
    'UnsupportedGeometryType',
    'InvalidCoordinate',
    'decode_point',
    'decode_batch',
    'encode_point',
    'read_srid',
    'EARTH_RADIUS_M',
    'haversine_distance',
    'distance_meters',
    'pairwise_distance_matrix',
    'MIN_DELTA',
    'zoom_for_delta',
    'delta_for_zoom',
]
