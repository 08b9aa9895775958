# DRY Scan - Index code elements and find near-duplicate code
# Copyright (C) 2025  Jonathan Louis
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Indexing service - HTTP surface over the indexing coordinator, the vector
store and the similarity engine.

Error kinds are mapped to status codes here and nowhere else.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .config import DEFAULT_LIMIT, DEFAULT_THRESHOLD, ServerSettings
from .embedder import EmbeddingClient
from .errors import DryScanError, NotFoundError, ProviderTimeoutError, ValidationError
from .indexing import IndexingCoordinator
from .schemas import (
    BatchIndexResponse,
    DeleteResponse,
    ElementPayload,
    HealthResponse,
    IndexResponse,
    PairsResponse,
    SearchResponse,
    SearchResultPayload,
    SimilarElementsResponse,
    SimilarPairPayload,
)
from .similarity import SimilarityService
from .store import VectorStore


logger = logging.getLogger(__name__)

# Checked along the exception's MRO; anything unlisted is a 500
STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ProviderTimeoutError: 504,
}


def status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_coordinator(request: Request) -> IndexingCoordinator:
    return request.app.state.coordinator


def get_similarity(request: Request) -> SimilarityService:
    return request.app.state.similarity


def get_store(request: Request) -> VectorStore:
    return request.app.state.store


def get_embedder(request: Request) -> EmbeddingClient:
    return request.app.state.embedder


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.post("/elements", response_model=IndexResponse)
def index_element_endpoint(
    payload: ElementPayload,
    coordinator: IndexingCoordinator = Depends(get_coordinator),
):
    """Index one element."""
    record_id = coordinator.index_element(payload.to_element())
    return IndexResponse(id=record_id)


@router.post("/elements/batch", response_model=BatchIndexResponse)
def index_batch_endpoint(
    payloads: List[ElementPayload],
    coordinator: IndexingCoordinator = Depends(get_coordinator),
):
    """Index many elements. All or nothing."""
    ids = coordinator.index_batch([p.to_element() for p in payloads])
    return BatchIndexResponse(ids=ids)


@router.delete("/elements", response_model=DeleteResponse)
def delete_elements_endpoint(store: VectorStore = Depends(get_store)):
    """Wipe every indexed element. The embedding cache survives."""
    deleted = store.delete_all()
    return DeleteResponse(success=True, deletedCount=deleted)


# Defined before /similar/{element_id} so "all" is not captured as an id
@router.get("/similar/all", response_model=PairsResponse, response_model_exclude_none=True)
def similar_pairs_endpoint(
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
    similarity: SimilarityService = Depends(get_similarity),
):
    pairs = similarity.find_most_similar_pairs(threshold, limit)
    return PairsResponse(pairs=[SimilarPairPayload.from_pair(p) for p in pairs])


@router.get(
    "/similar/{element_id}",
    response_model=SimilarElementsResponse,
    response_model_exclude_none=True,
)
def similar_elements_endpoint(
    element_id: str,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
    similarity: SimilarityService = Depends(get_similarity),
):
    elements = similarity.find_similar(element_id, threshold, limit)
    return SimilarElementsResponse(
        similarElements=[ElementPayload.from_element(e) for e in elements]
    )


@router.get("/search", response_model=SearchResponse, response_model_exclude_none=True)
def search_endpoint(
    q: Optional[str] = None,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
    embedder: EmbeddingClient = Depends(get_embedder),
    similarity: SimilarityService = Depends(get_similarity),
):
    """Free-text semantic search."""
    if not q:
        raise ValidationError("Query parameter q is required")

    query_embedding = embedder.embed(q)
    results = similarity.search_by_vector(query_embedding, threshold, limit)
    return SearchResponse(results=[SearchResultPayload.from_result(r) for r in results])


@router.get("/health", response_model=HealthResponse)
def health_endpoint():
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(DryScanError)
    async def dry_scan_error_handler(request: Request, exc: DryScanError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
        return error_response(status_code, str(exc) or "Internal server error")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
        message = ("Invalid request: " + "; ".join(problems)) if problems else "Invalid request"
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} failed unexpectedly")
        return error_response(500, str(exc) or "Internal server error")


def create_app(
    settings: Optional[ServerSettings] = None,
    store: Optional[VectorStore] = None,
    embedder: Optional[EmbeddingClient] = None,
) -> FastAPI:
    """
    Build the indexing service.

    Args:
        settings: Service settings (read from the environment if omitted)
        store: Vector store to use instead of the one at settings.db_path
        embedder: Embedding client to use instead of one built from settings

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = ServerSettings.from_env()

    owns_store = store is None
    owns_embedder = embedder is None
    if store is None:
        store = VectorStore(settings.db_path)
    if embedder is None:
        embedder = EmbeddingClient.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Indexing service ready (store: {store.db_path}, "
            f"embeddings: {settings.embedding_api_url})"
        )
        yield
        if owns_embedder:
            embedder.close()
        if owns_store:
            store.close()

    app = FastAPI(
        title="DRY Scan Indexing Service",
        version=__version__,
        description="Embeds code elements and answers similarity queries",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.embedder = embedder
    app.state.coordinator = IndexingCoordinator(store, embedder)
    app.state.similarity = SimilarityService(store)

    _register_error_handlers(app)
    app.include_router(router)
    return app


def run(
    settings: Optional[ServerSettings] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    """Serve the indexing service with uvicorn. Blocks until shutdown."""
    import uvicorn

    if settings is None:
        settings = ServerSettings.from_env()

    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Entry point for running the service directly."""
    from dotenv import load_dotenv

    from .log import setup_logging

    load_dotenv()
    settings = ServerSettings.from_env()
    setup_logging(settings.log_level)
    run(settings)


if __name__ == "__main__":
    main()
