"""Typed errors shared by ingestion, the index and the query layer."""
from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    OUT_OF_REGION = "out_of_region"
    NOT_FOUND = "not_found"
    INDEX_UNAVAILABLE = "index_unavailable"
    INGESTION_FAILED = "ingestion_failed"


class GeocodingError(Exception):
    """Base class; `kind` lets a transport layer map errors to its own status codes."""

    kind = ErrorKind.INVALID_INPUT


class InvalidInput(GeocodingError):
    """Malformed or missing parameter (non-numeric coordinates, empty query, ...)."""

    kind = ErrorKind.INVALID_INPUT


class OutOfRegion(GeocodingError):
    """Point outside the region boundary. Raised at ingestion time only."""

    kind = ErrorKind.OUT_OF_REGION


class NotFound(GeocodingError):
    kind = ErrorKind.NOT_FOUND


class IndexUnavailable(GeocodingError):
    """Query issued before any snapshot was published."""

    kind = ErrorKind.INDEX_UNAVAILABLE


class IngestionError(GeocodingError):
    """Dataset-level failure: empty or entirely unparsable raw input."""

    kind = ErrorKind.INGESTION_FAILED
