"""
HTTP query service.
Serves filler matches from a persisted index; ingestion runs separately and
a finished index is picked up through /index/reload.
"""

from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request

from util.logging import logger

from .schemas import FillerRequest, FillerResponse, HealthResponse, IndexInfo, ReloadResponse
from ..core.config import TOP_K, VERSION, debug_enabled, get_index_manager
from ..core.errors import (
    EmbeddingServiceError,
    FillerIndexError,
    FillerTableMissError,
    IndexLifecycleError,
    IndexNotLoadedError,
)
from ..core.pipeline import init_query_service, reload_index
from ..vector.query import QueryOrchestrator

app = FastAPI(
    title="Filler Index API",
    version=VERSION,
    description="Nearest-neighbor filler lookup over a persisted faiss index",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)


def get_query_service(request: Request) -> QueryOrchestrator:
    """Initialize the query service on first use and share it across requests."""
    service = getattr(request.app.state, "query_service", None)
    if service is None:
        try:
            service = init_query_service()
        except (FillerIndexError, ValueError) as e:
            logger.error(f"Query service initialization failed: {e}")
            raise HTTPException(status_code=503, detail=f"Query service unavailable: {e}")
        request.app.state.query_service = service
    return service


def get_optional_query_service(request: Request) -> Optional[QueryOrchestrator]:
    """Like get_query_service, but None while the service cannot be initialized."""
    try:
        return get_query_service(request)
    except HTTPException:
        return None


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(service: Optional[QueryOrchestrator] = Depends(get_optional_query_service)):
    """Check service health; degraded until the index and filler table load."""
    if service is None or not service.index_handle.loaded:
        return HealthResponse(
            status="degraded",
            version=VERSION,
            index_loaded=False,
            filler_categories=len(service.filler_table) if service else 0,
        )

    return HealthResponse(
        status="healthy",
        version=VERSION,
        index_loaded=True,
        index=IndexInfo(**service.index_handle.current().describe()),
        filler_categories=len(service.filler_table),
    )


@app.post("/filler", response_model=FillerResponse)
def match_filler_endpoint(request: FillerRequest, service: QueryOrchestrator = Depends(get_query_service)):
    """Resolve an utterance to the fillers of its nearest indexed texts."""
    try:
        result = service.resolve(request.text, request.k or TOP_K)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FillerTableMissError as e:
        logger.error(f"Filler lookup failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except (EmbeddingServiceError, IndexNotLoadedError) as e:
        raise HTTPException(status_code=503, detail=str(e))

    return FillerResponse(
        neighbors=result.neighbors,
        distances=result.distances,
        fillers=result.fillers,
        timings_ms=result.timings_ms,
    )


@app.post("/index/reload", response_model=ReloadResponse)
def reload_index_endpoint(service: QueryOrchestrator = Depends(get_query_service)):
    """Load the persisted index and swap it in for subsequent queries."""
    try:
        index = reload_index(get_index_manager(), service.index_handle,
                             embeddings_service=service.embeddings_service)
    except IndexLifecycleError as e:
        # The previous index stays in service
        raise HTTPException(status_code=503, detail=f"Index reload failed: {e}")

    return ReloadResponse(success=True, index=IndexInfo(**index.describe()))
