"""
Geohash encoding for the spatial index.

A geohash interleaves successive halvings of the longitude and latitude
ranges (longitude first) and packs the bits five at a time into characters
of a base-32 alphabet. Points that are close together usually share a long
common prefix, which lets the database answer "what is near this point" with
a plain string range scan.

Precision levels (cell size at the equator):
- 1: ~5009 x 5009 km
- 2: ~1252 x 626 km
- 3: ~156 x 156 km
- 4: ~39 x 20 km
- 5: ~4.9 x 4.9 km
- 12: a few centimetres
"""

from functools import lru_cache
from typing import Tuple

from NearbyCities.exceptions import ValidationError
from NearbyCities.geo.distance import (
    BoundingBox, KM_PER_DEGREE, validate_coordinates, validate_radius
)

# Base32 alphabet used for geohash encoding (excludes a, i, l, o)
BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"

_DECODE_MAP = {c: i for i, c in enumerate(BASE32)}

# Length of the keys stored in the spatial index
MAX_PRECISION = 12

# Sorts after every BASE32 character
PREFIX_RANGE_SENTINEL = "~"


def _validate_precision(precision: int) -> int:
    if isinstance(precision, bool) or not isinstance(precision, int):
        raise ValidationError(f"Precision must be an integer, got {precision!r}")
    if not 1 <= precision <= MAX_PRECISION:
        raise ValidationError(
            f"Precision must be between 1 and {MAX_PRECISION}, got {precision}",
            context={"precision": precision}
        )
    return precision


def encode(lat: float, lng: float, precision: int = MAX_PRECISION) -> str:
    """
    Encode a coordinate as a geohash of ``precision`` characters.

    A coordinate that falls exactly on the midpoint of a range is assigned
    to the upper half.

    Raises:
        ValidationError: If the coordinate is out of range or not finite,
            or the precision is outside 1..MAX_PRECISION

    Example:
        >>> encode(21.0283, 105.8542, 5)
        'w7er8'
    """
    lat, lng = validate_coordinates(lat, lng)
    _validate_precision(precision)

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]

    chars = []
    bits = 0
    bit_count = 0
    is_lng = True

    while len(chars) < precision:
        if is_lng:
            value, interval = lng, lng_range
        else:
            value, interval = lat, lat_range

        mid = (interval[0] + interval[1]) / 2
        if value >= mid:
            bits = (bits << 1) | 1
            interval[0] = mid
        else:
            bits <<= 1
            interval[1] = mid

        is_lng = not is_lng
        bit_count += 1

        if bit_count == 5:
            chars.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return ''.join(chars)


def decode(geohash: str) -> BoundingBox:
    """
    Decode a geohash into the cell it denotes.

    Raises:
        ValidationError: If the key is empty or contains characters outside
            the geohash alphabet
    """
    if not isinstance(geohash, str) or not geohash:
        raise ValidationError(f"Geohash must be a non-empty string, got {geohash!r}")

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    is_lng = True

    for char in geohash.lower():
        if char not in _DECODE_MAP:
            raise ValidationError(
                f"Invalid geohash character {char!r} in {geohash!r}",
                user_message="The geohash contains invalid characters.",
                context={"geohash": geohash}
            )
        value = _DECODE_MAP[char]
        for mask in (16, 8, 4, 2, 1):
            interval = lng_range if is_lng else lat_range
            mid = (interval[0] + interval[1]) / 2
            if value & mask:
                interval[0] = mid
            else:
                interval[1] = mid
            is_lng = not is_lng

    return BoundingBox(
        min_lat=lat_range[0],
        max_lat=lat_range[1],
        min_lng=lng_range[0],
        max_lng=lng_range[1],
    )


@lru_cache(maxsize=MAX_PRECISION)
def cell_size(precision: int) -> Tuple[float, float]:
    """
    Dimensions of a geohash cell at the equator.

    Returns:
        (height_km, width_km) for keys of ``precision`` characters
    """
    _validate_precision(precision)

    total_bits = 5 * precision
    lng_bits = (total_bits + 1) // 2
    lat_bits = total_bits // 2

    height_km = 180.0 / (2 ** lat_bits) * KM_PER_DEGREE
    width_km = 360.0 / (2 ** lng_bits) * KM_PER_DEGREE
    return height_km, width_km


def estimate_length_required(radius_km: float) -> int:
    """
    Longest geohash length whose cells are still at least ``radius_km`` across.

    Returns 1 when even the coarsest cell is smaller than the radius.

    Example:
        >>> estimate_length_required(100)
        3
    """
    radius = validate_radius(radius_km)

    length = 1
    for precision in range(1, MAX_PRECISION + 1):
        if min(cell_size(precision)) >= radius:
            length = precision
        else:
            break
    return length


def prefix_range(prefix: str) -> Tuple[str, str]:
    """
    Half-open key range ``[low, high)`` covering every key that starts with ``prefix``.
    """
    if not prefix:
        raise ValidationError("Geohash prefix must not be empty")
    return prefix, prefix + PREFIX_RANGE_SENTINEL


__all__ = [
    "BASE32", "MAX_PRECISION", "encode", "decode", "cell_size",
    "estimate_length_required", "prefix_range", "validate_coordinates",
]
