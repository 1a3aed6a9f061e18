"""Point geometry codec between wire formats and (lat, lng) coordinates.

Geometry values reach the service in one of three shapes:

* a GeoJSON-like mapping, ``{"coordinates": [x, y]}``;
* a hex-encoded little-endian WKB Point, ``"0101000000" + X + Y``;
* a mapping with ``x`` and ``y`` members.

In every shape X is the longitude and Y the latitude. parse_geometry()
classifies a raw value into one of the variants of WireGeometry, and
to_coordinates() turns any variant into Coordinates. decode() combines both
and reports failures as None so callers can drop a bad row instead of
failing a whole response.

Writes go the other way through encode(), which produces the
``POINT(<lng> <lat>)`` text PostGIS accepts in ST_GeomFromText.

Example:
    Decode what PostGIS returns for ST_AsBinary of POINT(1 2):
        >>> decode("0101000000000000000000f03f0000000000000040")
        Coordinates(lat=2.0, lng=1.0)

    Encode a position for an INSERT:
        >>> encode(Coordinates(lat=45.42, lng=-75.7))
        'POINT(-75.7 45.42)'
"""

from __future__ import annotations

import dataclasses
import math
import re
import struct
from collections.abc import Mapping, Sequence
from typing import Any

from routemate.core.logging import get_logger
from routemate.db.models import Coordinates

logger = get_logger(__name__)

WKB_POINT_PREFIX = "0101"
WKB_LITTLE_ENDIAN = 1
WKB_POINT_TYPE = 1
# byte order flag, uint32 type, two float64 ordinates
_WKB_POINT = struct.Struct("<BIdd")

_POINT_TEXT = re.compile(
    r"^\s*POINT\s*\(\s*(?P<x>[^\s()]+)\s+(?P<y>[^\s()]+)\s*\)\s*$",
    re.IGNORECASE,
)


class GeometryDecodeError(ValueError):
    """A geometry value is not a decodable point."""


@dataclasses.dataclass(frozen=True)
class GeoJSONGeometry:
    x: float
    y: float


@dataclasses.dataclass(frozen=True)
class WKBHexGeometry:
    payload: str


@dataclasses.dataclass(frozen=True)
class XYGeometry:
    x: float
    y: float


WireGeometry = GeoJSONGeometry | WKBHexGeometry | XYGeometry


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def parse_geometry(value: object) -> WireGeometry:
    """Classify a raw geometry value into one of the accepted shapes.

    Shapes are tried in a fixed order: GeoJSON-like coordinates first,
    then WKB hex, then x/y members.

    Args:
        value: Geometry as received from the store.

    Returns:
        The matching WireGeometry variant.

    Raises:
        GeometryDecodeError: If the value matches none of the shapes.
    """
    if isinstance(value, Mapping):
        coordinates = value.get("coordinates")
        if (
            isinstance(coordinates, Sequence)
            and not isinstance(coordinates, str)
            and len(coordinates) == 2
            and all(_is_number(ordinate) for ordinate in coordinates)
        ):
            return GeoJSONGeometry(
                x=float(coordinates[0]),
                y=float(coordinates[1]),
            )

    if isinstance(value, str) and value[:4] == WKB_POINT_PREFIX:
        return WKBHexGeometry(payload=value)

    if isinstance(value, Mapping):
        x, y = value.get("x"), value.get("y")
        if _is_number(x) and _is_number(y):
            return XYGeometry(x=float(x), y=float(y))  # type: ignore[arg-type]

    raise GeometryDecodeError(
        f"Unsupported geometry shape: {type(value).__name__}"
    )


def _decode_wkb_hex(payload: str) -> tuple[float, float]:
    """Read X and Y from a little-endian WKB Point.

    Raises:
        GeometryDecodeError: On invalid hex, a truncated payload or a
            geometry type other than Point.
    """
    try:
        data = bytes.fromhex(payload)
    except ValueError as exc:
        raise GeometryDecodeError("Geometry is not valid hex") from exc

    if len(data) != _WKB_POINT.size:
        raise GeometryDecodeError(
            f"Expected {_WKB_POINT.size} bytes of WKB point, got {len(data)}"
        )

    byte_order, geometry_type, x, y = _WKB_POINT.unpack(data)
    if byte_order != WKB_LITTLE_ENDIAN:
        raise GeometryDecodeError("Only little-endian WKB is supported")
    if geometry_type != WKB_POINT_TYPE:
        raise GeometryDecodeError(
            f"Geometry type {geometry_type:#x} is not a Point"
        )
    return x, y


def to_coordinates(
    geometry: WireGeometry,
    strict: bool = False,
) -> Coordinates:
    """Convert a classified geometry into (lat, lng) coordinates.

    Args:
        geometry: Output of parse_geometry().
        strict: Also reject ordinates outside the WGS84 ranges.

    Returns:
        Coordinates with lng taken from X and lat from Y.

    Raises:
        GeometryDecodeError: If the WKB payload is unusable or the
            ordinates are not finite (or out of range when strict).
    """
    if isinstance(geometry, WKBHexGeometry):
        x, y = _decode_wkb_hex(geometry.payload)
    elif isinstance(geometry, GeoJSONGeometry | XYGeometry):
        x, y = geometry.x, geometry.y
    else:
        raise GeometryDecodeError(f"Unknown geometry variant: {geometry!r}")

    if not (math.isfinite(x) and math.isfinite(y)):
        raise GeometryDecodeError("Geometry ordinates must be finite")

    coordinates = Coordinates(lat=y, lng=x)
    if strict and not in_range(coordinates):
        raise GeometryDecodeError(
            f"Coordinates out of range: lat={y}, lng={x}"
        )
    return coordinates


def decode(value: object, strict: bool = False) -> Coordinates | None:
    """Decode a stored geometry, returning None when it is unusable.

    Failures are logged, never raised.
    """
    try:
        return to_coordinates(parse_geometry(value), strict=strict)
    except GeometryDecodeError as exc:
        logger.warning(
            "geometry_decode_failed",
            reason=str(exc),
            value=repr(value)[:120],
        )
        return None


def in_range(coordinates: Coordinates) -> bool:
    """Whether lat is within [-90, 90] and lng within [-180, 180]."""
    return -90.0 <= coordinates.lat <= 90.0 and (
        -180.0 <= coordinates.lng <= 180.0
    )


def _format_ordinate(value: float) -> str:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"Cannot encode non-finite ordinate {value!r}")
    return repr(value)


def encode(coordinates: Coordinates) -> str:
    """Encode coordinates as ``POINT(<lng> <lat>)`` text.

    Ordinates use Python's shortest round-trip float representation, so the
    text never depends on locale settings.

    Raises:
        ValueError: If an ordinate is NaN or infinite.
    """
    return (
        f"POINT({_format_ordinate(coordinates.lng)} "
        f"{_format_ordinate(coordinates.lat)})"
    )


def parse_point_text(text: str) -> Coordinates:
    """Parse ``POINT(<lng> <lat>)`` text back into coordinates.

    Raises:
        GeometryDecodeError: If the text is not a two-ordinate POINT.
    """
    match = _POINT_TEXT.match(text)
    if match is None:
        raise GeometryDecodeError(f"Not a POINT literal: {text!r}")
    try:
        x, y = float(match["x"]), float(match["y"])
    except ValueError as exc:
        raise GeometryDecodeError(f"Not a POINT literal: {text!r}") from exc
    return Coordinates(lat=y, lng=x)


def encode_wkb_hex(coordinates: Coordinates) -> str:
    """Encode coordinates as a hex little-endian WKB Point."""
    return _WKB_POINT.pack(
        WKB_LITTLE_ENDIAN,
        WKB_POINT_TYPE,
        coordinates.lng,
        coordinates.lat,
    ).hex()


def encode_geojson(coordinates: Coordinates) -> dict[str, Any]:
    """Encode coordinates as a GeoJSON Point mapping."""
    return {"type": "Point", "coordinates": [coordinates.lng, coordinates.lat]}


def encode_xy(coordinates: Coordinates) -> dict[str, float]:
    """Encode coordinates as an ``{x, y}`` mapping."""
    return {"x": coordinates.lng, "y": coordinates.lat}
