"""Decoder for PostGIS (E)WKB point geometries.

Layout of a point as emitted by the spatial data source:

    byte 0        byte order flag, 0 = big endian, 1 = little endian
    bytes 1-4     uint32 geometry type; bit 0x20000000 flags an SRID,
                  the low 29 bits must be 1 (Point)
    bytes 5-8     SRID, only when flagged (skipped)
    next 8        float64 X (longitude)
    next 8        float64 Y (latitude)

Everything here is a pure function of its input and safe to call from
several threads at once.
"""
from __future__ import annotations

import copy
import struct
from typing import Any, Iterable, Mapping, Optional, Union

from src.utils.logger import get_logger

from .models import FeaturePoint, GeoPoint, is_valid_coordinate

logger = get_logger(__name__)

WKB_POINT = 1
SRID_FLAG = 0x20000000
TYPE_MASK = 0x1FFFFFFF

BIG_ENDIAN = 0
LITTLE_ENDIAN = 1

_HEADER_SIZE = 5
_SRID_SIZE = 4
_COORDS_SIZE = 16

# Keys a raw record may use for its geometry column
GEOMETRY_KEYS = ("wkb", "geometry", "geom", "location")

WKBInput = Union[bytes, bytearray, memoryview, str]


class DecodeError(ValueError):
    """Base class for geometry decoding failures."""


class MalformedInput(DecodeError):
    """Input is not a well-formed byte sequence for the declared fields."""


class UnsupportedGeometryType(DecodeError):
    """Geometry type is something other than Point."""

    def __init__(self, geometry_type: int):
        self.geometry_type = geometry_type
        super().__init__(f"Unsupported geometry type: {geometry_type}")


class InvalidCoordinate(DecodeError):
    """Decoded coordinate is NaN, infinite or outside the WGS84 range."""


def _to_bytes(data: WKBInput) -> bytes:
    if isinstance(data, str):
        text = data.strip()
        if len(text) % 2 != 0:
            raise MalformedInput(f"Odd hex string length: {len(text)}")
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise MalformedInput(f"Invalid hex string: {e}") from e
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise MalformedInput(f"Expected bytes or hex string, got {type(data).__name__}")


def decode_point(data: WKBInput) -> GeoPoint:
    """Decode a single (E)WKB point into a GeoPoint.

    Args:
        data: Raw bytes, or the hex encoding PostGIS returns over the wire.

    Returns:
        GeoPoint with longitude/latitude exactly as stored.

    Raises:
        MalformedInput: Bad hex, unknown byte order flag or truncated input.
        UnsupportedGeometryType: The type code is not Point.
        InvalidCoordinate: NaN/infinite or out-of-range coordinates.
    """
    buf = _to_bytes(data)
    if len(buf) < _HEADER_SIZE:
        raise MalformedInput(f"Input too short for header: {len(buf)} bytes")

    flag = buf[0]
    if flag == LITTLE_ENDIAN:
        order = "<"
    elif flag == BIG_ENDIAN:
        order = ">"
    else:
        raise MalformedInput(f"Unknown byte order flag: {flag}")

    (type_code,) = struct.unpack_from(order + "I", buf, 1)
    geometry_type = type_code & TYPE_MASK
    if geometry_type != WKB_POINT:
        raise UnsupportedGeometryType(geometry_type)

    offset = _HEADER_SIZE
    if type_code & SRID_FLAG:
        offset += _SRID_SIZE

    if len(buf) < offset + _COORDS_SIZE:
        raise MalformedInput(
            f"Input too short for point: need {offset + _COORDS_SIZE} bytes, got {len(buf)}"
        )

    longitude, latitude = struct.unpack_from(order + "dd", buf, offset)
    if not is_valid_coordinate(longitude, latitude):
        raise InvalidCoordinate(f"Invalid coordinates: lon={longitude}, lat={latitude}")

    return GeoPoint(longitude=longitude, latitude=latitude)


def read_srid(data: WKBInput) -> Optional[int]:
    """Return the embedded SRID of an EWKB point, or None if it carries none."""
    buf = _to_bytes(data)
    if len(buf) < _HEADER_SIZE or buf[0] not in (BIG_ENDIAN, LITTLE_ENDIAN):
        raise MalformedInput("Input too short or unknown byte order")
    order = "<" if buf[0] == LITTLE_ENDIAN else ">"
    (type_code,) = struct.unpack_from(order + "I", buf, 1)
    if not type_code & SRID_FLAG:
        return None
    if len(buf) < _HEADER_SIZE + _SRID_SIZE:
        raise MalformedInput("Input too short for SRID")
    (srid,) = struct.unpack_from(order + "I", buf, _HEADER_SIZE)
    return srid


def encode_point(point: GeoPoint, little_endian: bool = True, srid: Optional[int] = None) -> bytes:
    """Encode a GeoPoint using the same layout decode_point reads."""
    order = "<" if little_endian else ">"
    flag = LITTLE_ENDIAN if little_endian else BIG_ENDIAN
    type_code = WKB_POINT
    parts = [bytes([flag])]
    if srid is not None:
        type_code |= SRID_FLAG
        parts.append(struct.pack(order + "I", type_code))
        parts.append(struct.pack(order + "I", srid))
    else:
        parts.append(struct.pack(order + "I", type_code))
    parts.append(struct.pack(order + "dd", point.longitude, point.latitude))
    return b"".join(parts)


def _geometry_of(record: Mapping[str, Any]) -> Any:
    for key in GEOMETRY_KEYS:
        if record.get(key) is not None:
            return record[key]
    return None


def _properties_of(record: Mapping[str, Any]) -> Any:
    # flat database rows carry their columns next to the geometry
    if "properties" in record:
        return copy.deepcopy(record["properties"])
    return copy.deepcopy({k: v for k, v in record.items() if k not in GEOMETRY_KEYS})


def decode_batch(records: Iterable[Mapping[str, Any]]) -> list[FeaturePoint]:
    """Decode a batch of raw records into FeaturePoints.

    Records whose geometry cannot be decoded are dropped with a warning;
    one bad row never fails the whole batch.

    Args:
        records: Mappings with an ``id``, the geometry under one of
            ``wkb``/``geometry``/``geom``/``location`` and an optional
            ``properties`` payload (defaults to the remaining columns).

    Returns:
        list[FeaturePoint]: Decoded points in input order.
    """
    points: list[FeaturePoint] = []
    skipped = 0
    for position, record in enumerate(records):
        record_id = record.get("id") if isinstance(record, Mapping) else None
        if record_id is None:
            logger.warning(f"Skipping record #{position}: missing id")
            skipped += 1
            continue

        geometry = _geometry_of(record)
        if geometry is None:
            logger.warning(f"Skipping record {record_id}: no geometry")
            skipped += 1
            continue

        try:
            coordinate = decode_point(geometry)
        except DecodeError as e:
            logger.warning(
                f"Skipping record {record_id}: {e}",
                record_id=str(record_id),
                error=type(e).__name__,
            )
            skipped += 1
            continue

        points.append(
            FeaturePoint(
                id=str(record_id),
                geometry=coordinate,
                properties=_properties_of(record),
            )
        )

    logger.debug(f"Decoded {len(points)} points ({skipped} skipped)")
    return points
