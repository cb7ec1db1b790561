"""
mapifyit.query - Read-only queries against a published snapshot.
"""
from .engine import QueryEngine, ReverseHit
from .buffers import BufferPolygon, generate_buffers

__all__ = ["QueryEngine", "ReverseHit", "BufferPolygon", "generate_buffers"]
