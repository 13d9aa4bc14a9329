"""Great-circle helpers."""

from __future__ import annotations

import math
from typing import Any, NamedTuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32


class BoundingBox(NamedTuple):
    south: float
    west: float
    north: float
    east: float


def is_valid_coordinates(lat: Any, lng: Any) -> bool:
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """Box enclosing the circle; used as an index-friendly prefilter."""
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    lng_delta = 180.0 if cos_lat < 1e-9 else min(180.0, radius_km / (KM_PER_DEGREE_LAT * cos_lat))
    return BoundingBox(
        south=max(-90.0, lat - lat_delta),
        west=max(-180.0, lng - lng_delta),
        north=min(90.0, lat + lat_delta),
        east=min(180.0, lng + lng_delta),
    )
