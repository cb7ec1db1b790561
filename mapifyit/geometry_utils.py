"""
Geometry and geodesy helpers.

Great-circle distances on a spherical Earth, the spherical direct problem used
for buffer rings, and boundary hygiene for Shapely 2.x.
"""
from __future__ import annotations
from math import asin, cos, radians, sin, sqrt
from typing import List, Optional, Tuple

import numpy as np
import shapely
import geopandas as gpd
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .config import EARTH_RADIUS_M, FALLBACK_BOUNDARY_RING

BBox = Tuple[float, float, float, float]  # min_lon, min_lat, max_lon, max_lat


def haversine_m(lat1, lon1, lat2, lon2) -> float:
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1; dlon = lon2 - lon1
    a = sin(dlat/2)**2 + cos(lat1)*cos(lat2)*sin(dlon/2)**2
    return 2 * asin(min(1.0, sqrt(a))) * EARTH_RADIUS_M


def haversine_m_array(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorized great-circle distance from one point to many, in meters."""
    lat1 = np.radians(lat); lon1 = np.radians(lon)
    lat2 = np.radians(lats); lon2 = np.radians(lons)
    a = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    return 2 * np.arcsin(np.minimum(1.0, np.sqrt(a))) * EARTH_RADIUS_M


def destination_points(lat: float, lon: float, bearings_deg: np.ndarray, distance_m: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solve the spherical direct problem for many bearings at once.

    Args:
        lat, lon: origin in degrees
        bearings_deg: initial bearings clockwise from north
        distance_m: great-circle distance to travel

    Returns:
        (lats, lons) of the destinations in degrees
    """
    phi1 = np.radians(lat)
    lam1 = np.radians(lon)
    theta = np.radians(bearings_deg)
    delta = distance_m / EARTH_RADIUS_M

    sin_phi2 = np.sin(phi1) * np.cos(delta) + np.cos(phi1) * np.sin(delta) * np.cos(theta)
    phi2 = np.arcsin(np.clip(sin_phi2, -1.0, 1.0))
    lam2 = lam1 + np.arctan2(
        np.sin(theta) * np.sin(delta) * np.cos(phi1),
        np.cos(delta) - np.sin(phi1) * sin_phi2,
    )
    # wrap to [-180, 180)
    lons = (np.degrees(lam2) + 540.0) % 360.0 - 180.0
    return np.degrees(phi2), lons


def min_distance_to_bbox_m(lat: float, lon: float, bbox: BBox) -> float:
    """
    Lower bound on the great-circle distance from a point to any point of a
    lat/lon rectangle.

    Latitude gaps are exact along meridians; longitude gaps use the cross-track
    distance to the great circle carrying the nearer meridian edge.
    """
    min_lon, min_lat, max_lon, max_lat = bbox
    if lat < min_lat:
        lat_gap = radians(min_lat - lat)
    elif lat > max_lat:
        lat_gap = radians(lat - max_lat)
    else:
        lat_gap = 0.0

    if min_lon <= lon <= max_lon:
        lon_bound = 0.0
    else:
        dlon = min(abs(lon - min_lon), abs(lon - max_lon))
        dlon = min(dlon, 360.0 - dlon)
        if dlon >= 90.0:
            lon_bound = asin(abs(cos(radians(lat))))
        else:
            lon_bound = asin(min(1.0, abs(sin(radians(dlon)) * cos(radians(lat)))))

    return max(lat_gap, lon_bound) * EARTH_RADIUS_M


def meters_per_degree_lat() -> float:
    return radians(1.0) * EARTH_RADIUS_M


def meters_per_degree_lon(lat: float) -> float:
    return radians(1.0) * EARTH_RADIUS_M * max(cos(radians(lat)), 1e-6)


def clean_geoms(
    gdf: gpd.GeoDataFrame,
    types: Optional[List[str]] = None
) -> gpd.GeoSeries:
    """
    Drop null, empty and non-geometry entries, optionally keep only some types.

    Polygonal results are passed through shapely.make_valid so self-touching
    boundary rings do not break point-in-polygon tests.
    """
    g = gdf.geometry
    g = g[g.notna()]
    g = g[~g.is_empty]
    g = g[g.apply(lambda x: isinstance(x, BaseGeometry))]

    if types is not None:
        g = g[g.apply(lambda x: x.geom_type in types)]

    if types is not None and ("Polygon" in types or "MultiPolygon" in types):
        g = g.apply(lambda x: shapely.make_valid(x))

    return g


def boundary_from_geodataframe(gdf: gpd.GeoDataFrame) -> BaseGeometry:
    """Union all polygonal features of a boundary layer into one (Multi)Polygon in EPSG:4326."""
    if gdf.crs is not None and gdf.crs != "EPSG:4326":
        gdf = gdf.to_crs("EPSG:4326")
    polys = clean_geoms(gdf, ["Polygon", "MultiPolygon"])
    if polys.empty:
        raise ValueError("Boundary layer contains no polygon geometry")
    merged = unary_union(list(polys))
    # make_valid can emit GeometryCollections; keep the areal parts only
    if not isinstance(merged, (Polygon, MultiPolygon)):
        parts = [g for g in getattr(merged, "geoms", []) if isinstance(g, (Polygon, MultiPolygon))]
        merged = unary_union(parts)
    return merged


def fallback_boundary() -> Polygon:
    return Polygon(FALLBACK_BOUNDARY_RING)


def bbox_union(a: Optional[BBox], b: Optional[BBox]) -> Optional[BBox]:
    if a is None:
        return b
    if b is None:
        return a
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))
