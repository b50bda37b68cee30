# src/query_service/processors/restaurant_query.py

"""
Restaurant query processor for read operations.

Filters, sorts and pages an in-memory list of restaurants. Proximity
search narrows candidates with a cheap latitude/longitude box before
computing exact great-circle distances.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from ingest_service.models import Restaurant

# Rough miles per degree around New York City
MILES_PER_DEGREE_LAT = 69.0
MILES_PER_DEGREE_LON = 54.6

EARTH_RADIUS_MILES = 3958.8

AVAILABLE_GRADES = ["A", "B", "C", "N/A"]


@dataclass
class QueryPage:
    results: List[Restaurant] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def matches_text(restaurant: Restaurant, search_lower: str) -> bool:
    """Case-insensitive substring match on name, address or cuisine."""
    return (
        search_lower in restaurant.name.lower()
        or search_lower in restaurant.address.lower()
        or search_lower in (restaurant.cuisine or "").lower()
    )


def filter_restaurants(restaurants: Iterable[Restaurant], borough: Optional[str] = None,
                       search_text: str = "") -> List[Restaurant]:
    """Restaurants in borough (all boroughs if None) matching search_text."""
    filtered = [r for r in restaurants if borough is None or r.borough == borough]

    search_lower = (search_text or "").strip().lower()
    if search_lower:
        filtered = [r for r in filtered if matches_text(r, search_lower)]
    return filtered


def sort_restaurants(restaurants: List[Restaurant], search_text: str = "") -> List[Restaurant]:
    """
    Sort by name. When searching, exact name matches come first.
    Ties on name fall back to id so the order is the same on every call.
    """
    search_lower = (search_text or "").strip().lower()

    def sort_key(restaurant):
        exact = bool(search_lower) and restaurant.name.lower() == search_lower
        return (not exact, restaurant.name, restaurant.id)

    return sorted(restaurants, key=sort_key)


def query(restaurants: Iterable[Restaurant], borough: Optional[str] = None, search_text: str = "",
          offset: int = 0, limit: int = 50, grade: Optional[str] = None, cuisine: Optional[str] = None,
          min_score: Optional[int] = None, max_score: Optional[int] = None) -> QueryPage:
    """
    One page of restaurants for a borough and optional search text,
    optionally narrowed by grade, cuisine and score range.

    has_more is True when rows remain after this page.
    """
    if limit < 1:
        raise ValueError("limit must be a positive integer")
    offset = max(offset, 0)

    matching = filter_restaurants(restaurants, borough, search_text)
    matching = apply_filters(matching, grade=grade, cuisine=cuisine, min_score=min_score, max_score=max_score)
    matching = sort_restaurants(matching, search_text)
    total = len(matching)
    return QueryPage(
        results=matching[offset:offset + limit],
        total=total,
        has_more=offset + limit < total,
    )


def count(restaurants: Iterable[Restaurant], borough: Optional[str] = None, search_text: str = "") -> int:
    return len(filter_restaurants(restaurants, borough, search_text))


def available_boroughs(restaurants: Iterable[Restaurant]) -> List[str]:
    return sorted({r.borough for r in restaurants})


def available_cuisines(restaurants: Iterable[Restaurant]) -> List[str]:
    return sorted({r.cuisine for r in restaurants if r.cuisine})


def apply_filters(restaurants: Iterable[Restaurant], grade: Optional[str] = None, cuisine: Optional[str] = None,
                  min_score: Optional[int] = None, max_score: Optional[int] = None) -> List[Restaurant]:
    """Narrow a result list by grade, cuisine and inspection score range."""
    filtered = list(restaurants)
    if grade is not None:
        filtered = [r for r in filtered if r.grade == grade]
    if cuisine is not None:
        filtered = [r for r in filtered if r.cuisine == cuisine]
    if min_score is not None:
        filtered = [r for r in filtered if r.score >= min_score]
    if max_score is not None:
        filtered = [r for r in filtered if r.score <= max_score]
    return filtered


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in miles."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(center: Tuple[float, float], radius_miles: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lon, max_lon) around center."""
    lat, lon = center
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    lon_delta = radius_miles / MILES_PER_DEGREE_LON
    return lat - lat_delta, lat + lat_delta, lon - lon_delta, lon + lon_delta


def nearby_with_distance(restaurants: Sequence[Restaurant], center: Tuple[float, float], radius_miles: float,
                         limit: int = 100) -> List[Tuple[Restaurant, float]]:
    """
    (restaurant, distance) pairs within radius_miles of center, closest first.
    """
    if radius_miles < 0:
        return []
    min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_miles)

    candidates = [
        r for r in restaurants
        if min_lat <= r.latitude <= max_lat and min_lon <= r.longitude <= max_lon
    ]

    within = []
    for restaurant in candidates:
        distance = haversine_miles(center[0], center[1], restaurant.latitude, restaurant.longitude)
        if distance <= radius_miles:
            within.append((restaurant, distance))

    within.sort(key=lambda pair: (pair[1], pair[0].id))
    return within[:limit]


def nearby(restaurants: Sequence[Restaurant], center: Tuple[float, float], radius_miles: float,
           limit: int = 100) -> List[Restaurant]:
    """Restaurants within radius_miles of center ordered by ascending distance."""
    return [r for r, _ in nearby_with_distance(restaurants, center, radius_miles, limit)]
