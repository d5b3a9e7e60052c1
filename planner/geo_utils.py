"""Straight-line distance estimates between stops."""

import math

from planner.schemas import LatLng

EARTH_RADIUS_KM = 6371


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two lat/lng pairs given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    half_dphi = math.radians(lat2 - lat1) / 2
    half_dlambda = math.radians(lng2 - lng1) / 2
    h = math.sin(half_dphi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlambda) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance_km(a: LatLng, b: LatLng) -> float:
    """Distance between two coordinates, 0 when either is not a real position."""
    if not (a.is_valid and b.is_valid):
        return 0.0
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def estimate_travel_minutes(km: float) -> int:
    # ~40 km/h average island driving speed: 1.5 minutes per km.
    return math.ceil(km * 1.5)
