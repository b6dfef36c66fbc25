# foodshare/core/geo.py
"""Coordinate normalization for donation pickup points.

Display-quality fallback, not geocoding: a donation without usable
coordinates is placed near the configured region center so it still shows
up on the map. The offset is seeded by the donation id, so a record always
lands on the same point and two records rarely share one.
"""
from __future__ import annotations

import math
import random
from typing import Any, Optional, Tuple

DEFAULT_CENTER: Tuple[float, float] = (4.8133, -75.6961)
DEFAULT_JITTER = 0.02
PRECISION = 6

EARTH_RADIUS_KM = 6371.0


def _as_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(x):
        return None
    return x


def coordinates_valid(lat: Any, lng: Any) -> bool:
    x = _as_float(lat)
    y = _as_float(lng)
    if x is None or y is None:
        return False
    if x == 0.0 or y == 0.0:
        return False
    return -90.0 <= x <= 90.0 and -180.0 <= y <= 180.0


def normalize_coordinates(
    raw_lat: Any,
    raw_lng: Any,
    *,
    seed: Any = None,
    default: Tuple[float, float] = DEFAULT_CENTER,
    jitter: float = DEFAULT_JITTER,
) -> Tuple[float, float]:
    """
    Returns (lat, lng) rounded to 6 decimals. Never raises.

    Missing, empty, unparsable, out-of-range or zero inputs fall back to
    ``default`` shifted by up to +/- jitter/2 on each axis.
    """
    if coordinates_valid(raw_lat, raw_lng):
        return round(float(raw_lat), PRECISION), round(float(raw_lng), PRECISION)

    rng = random.Random(str(seed) if seed is not None else None)
    lat = default[0] + (rng.random() - 0.5) * jitter
    lng = default[1] + (rng.random() - 0.5) * jitter
    return round(lat, PRECISION), round(lng, PRECISION)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
