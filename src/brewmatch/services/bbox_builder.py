from __future__ import annotations

import math

from brewmatch.models import Bounds
from brewmatch.utils import EARTH_RADIUS_KM, haversine_km

# km per degree of latitude on the same sphere haversine_km uses
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180.0


def wrap_lon(lon: float) -> float:
    """Normalize a longitude into [-180, 180)."""
    return (lon + 180.0) % 360.0 - 180.0


def expand_bbox_from_center(lat: float, lon: float, km: float) -> Bounds:
    """Create a rectangular bbox around (lat, lon) by ±km in both axes.

    Longitudes are wrapped, so a box across the antimeridian has west > east.
    """
    dlat = km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    dlon = km / (KM_PER_DEGREE * cos_lat if abs(cos_lat) > 1e-9 else 1e-6)
    north = min(90.0, lat + dlat)
    south = max(-90.0, lat - dlat)
    if dlon >= 180.0:
        return Bounds(north=north, south=south, east=180.0, west=-180.0)
    return Bounds(north=north, south=south, east=wrap_lon(lon + dlon), west=wrap_lon(lon - dlon))


def diagonal_km(bounds: Bounds) -> float:
    """Distance between the north-east and south-west corners."""
    return haversine_km(bounds.north, bounds.east, bounds.south, bounds.west)
