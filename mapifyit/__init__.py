"""
mapifyit - POI geocoding engine for a bounded region.

Raw POIs are normalized into a canonical dataset, indexed on a uniform grid and
served through name search, reverse geocoding and geodesic buffers.
"""

__version__ = "0.1.0"
