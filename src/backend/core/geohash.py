"""
Geohash utilities for spatial indexing.

Geohashes encode lat/lng into strings where nearby locations share prefixes,
which lets the campaign store answer "what is near me" with prefix scans.

Precision levels:
- 4 chars: ~39km x 19km (city level)
- 5 chars: ~4.9km x 4.9km (neighborhood)
- 6 chars: ~1.2km x 0.6km (block level)
- 7 chars: ~150m x 150m (building level)
- 8 chars: ~38m x 19m (precise)

Stored campaign hashes depend on the alphabet and the longitude-first bit
order below. Changing either breaks every indexed campaign.
"""

import math
from dataclasses import dataclass

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
DEFAULT_PRECISION = 7
EARTH_RADIUS_METERS = 6_371_000


class InvalidGeohashError(ValueError):
    """Raised when a geohash contains a character outside the base-32 alphabet."""


@dataclass(frozen=True)
class GeohashCell:
    """Center of a decoded geohash cell plus its half-height/half-width."""

    latitude: float
    longitude: float
    lat_error: float
    lng_error: float


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters (NaN when not computable)."""
    if not all(math.isfinite(v) for v in (lat1, lng1, lat2, lng2)):
        return math.nan

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    # Finite extremes can still overflow when subtracted
    if not (math.isfinite(d_phi) and math.isfinite(d_lambda)):
        return math.nan

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Out-of-range latitudes can push a outside [0, 1]; NaN passes through.
    if not math.isnan(a):
        a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def encode_geohash(lat: float, lng: float, precision: int = DEFAULT_PRECISION) -> str:
    """
    Encode coordinates to a geohash string.

    Out-of-range or non-finite input still produces a string (clamped to an
    edge cell) instead of raising; validating coordinates is the caller's job.
    """
    min_lat, max_lat = -90.0, 90.0
    min_lng, max_lng = -180.0, 180.0
    chars: list[str] = []
    bit = 0
    ch = 0
    is_lng = True

    while len(chars) < precision:
        if is_lng:
            mid = (min_lng + max_lng) / 2
            if lng >= mid:
                ch |= 1 << (4 - bit)
                min_lng = mid
            else:
                max_lng = mid
        else:
            mid = (min_lat + max_lat) / 2
            if lat >= mid:
                ch |= 1 << (4 - bit)
                min_lat = mid
            else:
                max_lat = mid

        is_lng = not is_lng
        bit += 1

        if bit == 5:
            chars.append(BASE32[ch])
            bit = 0
            ch = 0

    return "".join(chars)


def decode_geohash(geohash: str) -> GeohashCell:
    """
    Decode a geohash to the center of its cell.

    Raises:
        InvalidGeohashError: If any character is outside the base-32 alphabet.
    """
    min_lat, max_lat = -90.0, 90.0
    min_lng, max_lng = -180.0, 180.0
    is_lng = True

    for char in geohash.lower():
        idx = BASE32.find(char)
        if idx == -1:
            raise InvalidGeohashError(f"Invalid geohash character: {char!r}")

        for bit in range(4, -1, -1):
            bit_value = (idx >> bit) & 1
            if is_lng:
                mid = (min_lng + max_lng) / 2
                if bit_value:
                    min_lng = mid
                else:
                    max_lng = mid
            else:
                mid = (min_lat + max_lat) / 2
                if bit_value:
                    min_lat = mid
                else:
                    max_lat = mid
            is_lng = not is_lng

    return GeohashCell(
        latitude=(min_lat + max_lat) / 2,
        longitude=(min_lng + max_lng) / 2,
        lat_error=(max_lat - min_lat) / 2,
        lng_error=(max_lng - min_lng) / 2,
    )


def get_neighbors(geohash: str) -> list[str]:
    """Get the (up to 8) cells surrounding a geohash at the same precision."""
    cell = decode_geohash(geohash)
    precision = len(geohash)

    neighbors: list[str] = []
    deltas = (-2, 0, 2)

    for d_lat in deltas:
        for d_lng in deltas:
            if d_lat == 0 and d_lng == 0:
                continue
            neighbor = encode_geohash(
                cell.latitude + d_lat * cell.lat_error,
                cell.longitude + d_lng * cell.lng_error,
                precision,
            )
            if neighbor != geohash and neighbor not in neighbors:
                neighbors.append(neighbor)

    return neighbors


def precision_for_radius(radius_meters: float) -> int:
    """Pick the coarsest precision whose cells still cover the radius."""
    if radius_meters > 5000:
        return 4
    elif radius_meters > 1000:
        return 5
    elif radius_meters > 200:
        return 6
    return DEFAULT_PRECISION


def get_geohashes_for_radius(lat: float, lng: float, radius_meters: float) -> list[str]:
    """
    Get the candidate cells a spatial lookup should scan for a radius query.

    Returns the center cell first, followed by its neighbors.
    """
    center = encode_geohash(lat, lng, precision_for_radius(radius_meters))
    return [center, *get_neighbors(center)]
