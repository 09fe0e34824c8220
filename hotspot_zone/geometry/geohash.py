"""
Geohash Codec
=============

Base-32 geohash encoding used as the pub/sub topic key space.

Design:
- Pure functions, no state
- Bit interleaving starts with longitude (standard geohash)
- Neighbors computed by re-encoding the cell center shifted by one cell
  size, with longitude wrap-around at the antimeridian
- Neighbors beyond a pole do not exist and are omitted

Example:
    >>> encode(57.64911, 10.40744, precision=11)
    'u4pruydqqvj'
    >>> len(neighbors('u4pruy'))
    8
"""

import re
from typing import List, Tuple

from hotspot_zone.errors import InvalidTopicError

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {char: index for index, char in enumerate(BASE32)}

TOPIC_KEY_PATTERN = re.compile(r"[0-9b-hjkmnp-z]+")
MIN_TOPIC_LENGTH = 5
MAX_TOPIC_LENGTH = 7

# (dlat, dlon) in cell units: n, ne, e, se, s, sw, w, nw
_DIRECTIONS = (
    (1, 0), (1, 1), (0, 1), (-1, 1),
    (-1, 0), (-1, -1), (0, -1), (1, -1),
)


def encode(latitude: float, longitude: float, precision: int = 6) -> str:
    """
    Encode a coordinate as a geohash string.

    Args:
        latitude: Degrees in [-90, 90]
        longitude: Degrees in [-180, 180]
        precision: Number of characters (>= 1)

    Returns:
        Geohash of the requested length
    """
    if precision < 1:
        raise ValueError(f"precision must be >= 1, got {precision}")

    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    chars = []
    bits = 0
    bit_count = 0
    even = True

    while len(chars) < precision:
        if even:
            mid = (lon_lo + lon_hi) / 2
            if longitude >= mid:
                bits = (bits << 1) | 1
                lon_lo = mid
            else:
                bits <<= 1
                lon_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if latitude >= mid:
                bits = (bits << 1) | 1
                lat_lo = mid
            else:
                bits <<= 1
                lat_hi = mid
        even = not even

        bit_count += 1
        if bit_count == 5:
            chars.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def decode_bbox(geohash: str) -> Tuple[float, float, float, float]:
    """
    Decode a geohash to its cell bounds.

    Returns:
        (lat_min, lat_max, lon_min, lon_max)

    Raises:
        ValueError: If geohash contains characters outside the alphabet
    """
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    even = True

    for char in geohash:
        if char not in _DECODE_MAP:
            raise ValueError(f"Invalid geohash character {char!r} in {geohash!r}")
        value = _DECODE_MAP[char]
        for shift in range(4, -1, -1):
            bit = (value >> shift) & 1
            if even:
                mid = (lon_lo + lon_hi) / 2
                if bit:
                    lon_lo = mid
                else:
                    lon_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if bit:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even

    return lat_lo, lat_hi, lon_lo, lon_hi


def decode(geohash: str) -> Tuple[float, float]:
    """Decode a geohash to its cell center (lat, lon)."""
    lat_lo, lat_hi, lon_lo, lon_hi = decode_bbox(geohash)
    return (lat_lo + lat_hi) / 2, (lon_lo + lon_hi) / 2


def neighbors(geohash: str) -> List[str]:
    """
    The adjacent cells of a geohash at the same precision.

    Returns:
        Up to 8 geohashes ordered n, ne, e, se, s, sw, w, nw
        (fewer only for cells touching a pole)
    """
    lat_lo, lat_hi, lon_lo, lon_hi = decode_bbox(geohash)
    center_lat = (lat_lo + lat_hi) / 2
    center_lon = (lon_lo + lon_hi) / 2
    dlat = lat_hi - lat_lo
    dlon = lon_hi - lon_lo
    precision = len(geohash)

    result = []
    for step_lat, step_lon in _DIRECTIONS:
        lat = center_lat + step_lat * dlat
        if not -90.0 < lat < 90.0:
            continue
        lon = center_lon + step_lon * dlon
        lon = ((lon + 180.0) % 360.0) - 180.0
        neighbor = encode(lat, lon, precision)
        if neighbor != geohash and neighbor not in result:
            result.append(neighbor)
    return result


def apron(geohash: str) -> List[str]:
    """The cell itself followed by its neighbors (9 cells away from the poles)."""
    return [geohash] + neighbors(geohash)


def is_valid_topic_key(
    key: str,
    min_length: int = MIN_TOPIC_LENGTH,
    max_length: int = MAX_TOPIC_LENGTH,
) -> bool:
    """True when key is a lowercase base-32 geohash of an accepted length."""
    if not isinstance(key, str):
        return False
    if not min_length <= len(key) <= max_length:
        return False
    return TOPIC_KEY_PATTERN.fullmatch(key) is not None


def validate_topic_key(
    key: str,
    min_length: int = MIN_TOPIC_LENGTH,
    max_length: int = MAX_TOPIC_LENGTH,
) -> str:
    """
    Return key unchanged or reject it.

    Keys are never coerced (no lowercasing, no truncation).

    Raises:
        InvalidTopicError: If the key is not an acceptable geohash
    """
    if not is_valid_topic_key(key, min_length, max_length):
        raise InvalidTopicError("invalid geohash")
    return key
