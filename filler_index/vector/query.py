"""
Query orchestration.
Embeds an utterance, searches the loaded index and resolves every neighbor
to its filler text.
"""

import threading
import time
from typing import Optional

from util.logging import logger
from ..core import codec
from ..core.errors import EmbeddingServiceError, FillerTableMissError, IndexNotLoadedError
from ..core.filler_table import FillerTable
from .embeddings import EmbeddingsService
from .index import FillerIndex
from .types import SearchResult


class IndexHandle:
    """
    Holds the index queries read from.

    A rebuilt index is swapped in whole; a live index is never mutated.
    """

    def __init__(self, index: Optional[FillerIndex] = None):
        self._lock = threading.Lock()
        self._index = None
        if index is not None:
            self.swap(index)

    def swap(self, index: FillerIndex) -> Optional[FillerIndex]:
        """Make index the one queries read from and return the previous one."""
        if not index.ready:
            raise IndexNotLoadedError("Cannot swap in an index that is not ready")
        with self._lock:
            previous, self._index = self._index, index
        return previous

    def current(self) -> FillerIndex:
        with self._lock:
            index = self._index
        if index is None:
            raise IndexNotLoadedError("No index has been loaded")
        return index

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._index is not None


class QueryOrchestrator:
    """Runs EMBED -> SEARCH -> DECODE_AND_RESOLVE for one utterance at a time."""

    def __init__(self, embeddings_service: EmbeddingsService, index_handle: IndexHandle,
                 filler_table: FillerTable):
        self.embeddings_service = embeddings_service
        self.index_handle = index_handle
        self.filler_table = filler_table

    def resolve(self, query_text: str, k: int) -> SearchResult:
        """
        Resolve a query to the fillers of its nearest corpus entries.

        Args:
            query_text: The incoming utterance
            k: Maximum number of neighbors; fewer are returned if the index is smaller

        Returns:
            SearchResult with neighbors, distances and fillers nearest first

        Raises:
            ValueError: If query_text is blank or k < 1
            EmbeddingServiceError: If embedding fails or yields other than one vector
            IndexNotLoadedError: If no index is loaded
            FillerTableMissError: If a neighbor decodes to a category with no filler
        """
        if not query_text or not query_text.strip():
            raise ValueError("Query text cannot be empty")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        # Pin one index for the whole query even if a swap happens meanwhile
        index = self.index_handle.current()
        timings = {}

        start = time.perf_counter()
        vectors = self.embeddings_service.embed_texts([query_text])
        if len(vectors) != 1:
            raise EmbeddingServiceError(f"Expected one query vector, got {len(vectors)}")
        timings["embed"] = logger.log_stage_timing("query_embed", start, time.perf_counter())

        start = time.perf_counter()
        hits = index.search(vectors[0], k)
        timings["search"] = logger.log_stage_timing("query_search", start, time.perf_counter(),
                                                     details={"k": k, "hits": len(hits)})

        start = time.perf_counter()
        neighbors = []
        distances = []
        fillers = []
        try:
            for compound_id, distance in hits:
                fillers.append(self.filler_table.lookup(codec.decode(compound_id)))
                neighbors.append(compound_id)
                distances.append(distance)
        except FillerTableMissError:
            logger.log_stage_timing("query_resolve", start, time.perf_counter(), status="failed")
            raise
        timings["resolve"] = logger.log_stage_timing("query_resolve", start, time.perf_counter())

        logger.log_query(query_text, len(neighbors), details={"timings_ms": timings})
        return SearchResult(
            neighbors=neighbors,
            distances=distances,
            fillers=fillers,
            timings_ms=timings,
        )
