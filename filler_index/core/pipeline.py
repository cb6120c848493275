"""
Pipeline entry points.
An ingestion run (ingest -> embed -> build -> persist) and the one-time
initialization of query-side state (filler table, loaded index, embeddings).
"""

from dataclasses import dataclass
import time
from typing import Optional

from util.logging import logger

from . import config
from .filler_table import FillerTable
from .ingestion import ingest, restore_processed
from ..vector.embeddings import EmbeddingsService
from ..vector.index import IndexLifecycleManager
from ..vector.query import IndexHandle, QueryOrchestrator


@dataclass
class IngestionSummary:
    """Result of an ingestion run."""

    files: int
    entries: int
    index_path: str
    persisted: bool
    duration_ms: float


def run_ingestion(
    embeddings_service: EmbeddingsService,
    manager: IndexLifecycleManager,
    source_dir: str = None,
    processed_dir: str = None,
    record_extension: str = None,
    index_path: str = None,
    dimension: int = None,
    capacity: int = None,
) -> IngestionSummary:
    """
    Ingest new record files, embed them and persist a freshly built index.

    Nothing is persisted when no records were found, so an empty run never
    replaces a previously persisted index. When embedding, building or
    persisting fails, the files moved by this run are put back in source_dir
    before the error propagates.

    Args:
        embeddings_service: Gateway used for the whole-corpus embedding call
        manager: Index lifecycle manager that builds and persists the index
        source_dir, processed_dir, record_extension, index_path, dimension,
        capacity: Override the configured values

    Returns:
        IngestionSummary with counts and the index location

    Raises:
        IngestionError, EmbeddingServiceError, CapacityExceededError,
        IndexLifecycleError: From the corresponding stage
    """
    source_dir = source_dir or config.SOURCE_DIR
    processed_dir = processed_dir or config.PROCESSED_DIR
    record_extension = record_extension or config.RECORD_EXTENSION
    index_path = index_path or config.INDEX_PATH
    dimension = dimension or config.EMBED_DIM
    capacity = capacity or config.INDEX_CAPACITY

    start = time.perf_counter()
    corpus = ingest(source_dir, record_extension, processed_dir)

    if not corpus.ids:
        logger.info(f"No records to ingest in {source_dir}; keeping existing index")
        return IngestionSummary(
            files=len(corpus.files),
            entries=0,
            index_path=index_path,
            persisted=False,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    try:
        embeddings = embeddings_service.embed_texts(corpus.contents)
        index = manager.build(dimension, capacity, embeddings, corpus.ids,
                              embedding_model=embeddings_service.model_name)
        manager.persist(index, index_path)
    except Exception as e:
        # Files go back to source so a retry folds the same records in again
        logger.error(f"Ingestion run failed after moving {len(corpus.files)} file(s): {e}")
        restore_processed(corpus, source_dir)
        raise

    duration_ms = logger.log_stage_timing("ingestion_run", start, time.perf_counter(), details={
        "files": len(corpus.files),
        "entries": len(corpus.ids),
        "index_path": index_path,
    })
    return IngestionSummary(
        files=len(corpus.files),
        entries=len(corpus.ids),
        index_path=index_path,
        persisted=True,
        duration_ms=duration_ms,
    )


def reload_index(manager: IndexLifecycleManager, handle: IndexHandle,
                 index_path: str = None, embeddings_service: Optional[EmbeddingsService] = None):
    """Load the persisted index and swap it into handle, returning the new index."""
    index_path = index_path or config.INDEX_PATH
    index = manager.load(index_path)

    if embeddings_service is not None and index.embedding_model \
            and index.embedding_model != embeddings_service.model_name:
        logger.warning(
            f"Index at {index_path} was built with {index.embedding_model}, "
            f"queries use {embeddings_service.model_name}"
        )

    handle.swap(index)
    logger.log_index_operation("swap", index_path, details={"count": index.ntotal})
    return index


def init_query_service(
    embeddings_service: EmbeddingsService = None,
    manager: IndexLifecycleManager = None,
    index_path: str = None,
    filler_table_path: str = None,
) -> QueryOrchestrator:
    """
    Build the process-wide query state once: filler table, index and embeddings.

    Raises:
        FillerTableError: If the filler table cannot be loaded
        IndexNotFoundError, IndexCorruptError: If the index cannot be loaded
    """
    if embeddings_service is None:
        embeddings_service = EmbeddingsService(config.get_embedding_provider())
    manager = manager or config.get_index_manager()

    filler_table = FillerTable.from_file(filler_table_path or config.FILLER_TABLE_PATH)
    handle = IndexHandle()
    reload_index(manager, handle, index_path, embeddings_service)

    return QueryOrchestrator(embeddings_service, handle, filler_table)
