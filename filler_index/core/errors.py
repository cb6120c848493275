"""
Error taxonomy for the filler retrieval pipeline.
Every stage raises one of these to its immediate caller; none are swallowed.
"""

from typing import List, Tuple


class FillerIndexError(Exception):
    """Base exception for all pipeline failures."""
    pass


class IngestionError(FillerIndexError):
    """Raised when corpus ingestion meets a malformed record or a filesystem failure."""

    def __init__(self, message: str, failures: List[Tuple[str, str]] = None):
        super().__init__(message)
        # (file_name, reason) for every source file left untouched
        self.failures = failures or []


class EncodingRangeError(FillerIndexError, ValueError):
    """Raised when a filler category or position falls outside the codec's range."""
    pass


class EncodingOverflowError(FillerIndexError, OverflowError):
    """Raised when a sequence position would overflow the identifier width."""
    pass


class EmbeddingServiceError(FillerIndexError):
    """Raised on any failure of the external embedding service."""
    pass


class IndexLifecycleError(FillerIndexError):
    """Base exception for index build, persist and load failures."""
    pass


class CapacityExceededError(IndexLifecycleError):
    """Raised when more entries are offered than the index was sized for."""
    pass


class IndexCorruptError(IndexLifecycleError):
    """Raised when a persisted index fails its consistency checks."""
    pass


class IndexNotFoundError(IndexLifecycleError):
    """Raised when no persisted index exists at the given location."""
    pass


class IndexNotLoadedError(IndexLifecycleError):
    """Raised when a query is attempted before any index has been loaded."""
    pass


class FillerTableError(FillerIndexError):
    """Raised when the filler table source is unreadable or invalid."""
    pass


class FillerTableMissError(FillerTableError):
    """Raised when a decoded filler category has no entry in the filler table."""

    def __init__(self, category: int):
        super().__init__(f"Filler category {category} not found in filler table")
        self.category = category
