"""
mapifyit.index - Grid spatial index and snapshot publishing.
"""
from .grid import GridIndex
from .snapshot import IndexHolder, Snapshot, build_snapshot

__all__ = ["GridIndex", "IndexHolder", "Snapshot", "build_snapshot"]
