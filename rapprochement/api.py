"""
FastAPI application exposing the bank-reconciliation matching engine.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import get_settings
from .errors import ReconciliationError
from .integrations import (
    EntityDirectory,
    HttpEntityDirectory,
    InMemoryEntityDirectory,
    InMemoryMatchRecordSource,
    MatchRecordSource,
)
from .matching import MatchHistoryAggregator, MatchRecorder, ReconciliationSearchService
from .models import EntityKind, EntityLink
from .storage import ReconciliationFileStore, create_store
from .utils import AuditLogger, setup_logging

logger = structlog.get_logger()


# Request/Response models
class FileSummary(BaseModel):
    id: str
    reference: Optional[str]
    status: str
    matched_count: int
    total_lines: int
    updated_at: str
    version: int


class MatchRequest(BaseModel):
    kind: EntityKind
    entity_id: str = Field(min_length=1)
    entity_name: Optional[str] = None
    entity_subtype: Optional[str] = None
    expected_version: Optional[int] = None


class RevertRequest(BaseModel):
    expected_version: Optional[int] = None


class MatchResponse(BaseModel):
    file_id: str
    entry_index: int
    status: str
    matched_count: int
    version: int


class RecountResponse(BaseModel):
    file_id: str
    before: int
    after: int


def create_app(
    store: Optional[ReconciliationFileStore] = None,
    directory: Optional[EntityDirectory] = None,
    records: Optional[MatchRecordSource] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """Build the API; collaborators default to the configured backends."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting reconciliation matching API", store=type(app.state.store).__name__)
        yield
        await app.state.directory.close()
        if settings.audit_export_enabled and app.state.audit.entries:
            app.state.audit.export_to_file()
        logger.info("Shutting down reconciliation matching API")

    app = FastAPI(
        title="Rapprochement bancaire",
        description="Search and match bank-statement lines against business entities",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if directory is None:
        directory = (
            HttpEntityDirectory() if settings.entity_directory_url
            else InMemoryEntityDirectory()
        )

    app.state.store = store or create_store(settings)
    app.state.directory = directory
    app.state.records = records or InMemoryMatchRecordSource()
    app.state.audit = audit_logger or AuditLogger(
        session_id=datetime.utcnow().strftime("%Y%m%dT%H%M%S")
    )

    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
        logger.warning(
            "Request failed",
            path=request.url.path,
            error=exc.code,
            message=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    _register_routes(app)
    return app


# Dependencies
def get_store(request: Request) -> ReconciliationFileStore:
    return request.app.state.store


def get_directory(request: Request) -> EntityDirectory:
    return request.app.state.directory


def get_search_service(request: Request) -> ReconciliationSearchService:
    return ReconciliationSearchService(request.app.state.store)


def get_recorder(request: Request) -> MatchRecorder:
    return MatchRecorder(request.app.state.store, request.app.state.audit)


def get_history_aggregator(request: Request) -> MatchHistoryAggregator:
    return MatchHistoryAggregator(request.app.state.records)


async def _resolve_name(
    directory: EntityDirectory,
    kind: EntityKind,
    entity_id: str,
    name: Optional[str],
) -> str:
    if name:
        return name
    label = await directory.get_entity_label(kind, entity_id)
    if label is None:
        raise HTTPException(404, f"Unknown {kind.value}: {entity_id}")
    return label


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}

    @app.get("/api/files", response_model=List[FileSummary])
    async def list_open_files(store: ReconciliationFileStore = Depends(get_store)):
        """Reconciliation files still open for matching."""
        files = await store.list_open_files()
        return [FileSummary(**file.to_dict(include_entries=False)) for file in files]

    @app.get("/api/files/{file_id}")
    async def get_file(file_id: str, store: ReconciliationFileStore = Depends(get_store)):
        file = await store.get_file(file_id)
        return file.to_dict()

    @app.get("/api/search")
    async def search(
        q: str = Query(""),
        service: ReconciliationSearchService = Depends(get_search_service),
    ):
        """Keyword search: comma = OR, space = AND."""
        candidates = await service.search(q)
        return {
            "query": q,
            "count": len(candidates),
            "candidates": [c.to_dict() for c in candidates],
        }

    @app.get("/api/entities/{kind}")
    async def list_entities(
        kind: EntityKind,
        directory: EntityDirectory = Depends(get_directory),
    ):
        entities = await directory.list_entities(kind)
        return [entity.to_dict() for entity in entities]

    @app.get("/api/entities/{kind}/{entity_id}/candidates")
    async def entity_candidates(
        kind: EntityKind,
        entity_id: str,
        keywords: Optional[str] = None,
        directory: EntityDirectory = Depends(get_directory),
        service: ReconciliationSearchService = Depends(get_search_service),
    ):
        """Search with the entity's saved keywords, or its name when blank."""
        entity_name = ""
        if not (keywords or "").strip():
            entity_name = await _resolve_name(directory, kind, entity_id, None)
        candidates = await service.search_for_entity(entity_name, keywords)
        return {
            "count": len(candidates),
            "candidates": [c.to_dict() for c in candidates],
        }

    @app.post(
        "/api/files/{file_id}/entries/{entry_index}/match",
        response_model=MatchResponse,
    )
    async def record_match(
        file_id: str,
        entry_index: int,
        request: MatchRequest,
        directory: EntityDirectory = Depends(get_directory),
        recorder: MatchRecorder = Depends(get_recorder),
    ):
        """Link a transaction line to an entity."""
        name = await _resolve_name(directory, request.kind, request.entity_id, request.entity_name)
        link = EntityLink(
            kind=request.kind,
            entity_id=request.entity_id,
            entity_name=name,
            entity_subtype=request.entity_subtype,
        )
        file = await recorder.record_match(
            file_id, entry_index, link, expected_version=request.expected_version
        )
        return MatchResponse(
            file_id=file.id,
            entry_index=entry_index,
            status=file.entries[entry_index].status.value,
            matched_count=file.matched_count,
            version=file.version,
        )

    @app.post(
        "/api/files/{file_id}/entries/{entry_index}/revert",
        response_model=MatchResponse,
    )
    async def revert_match(
        file_id: str,
        entry_index: int,
        request: Optional[RevertRequest] = None,
        recorder: MatchRecorder = Depends(get_recorder),
    ):
        """Explicitly undo a match."""
        expected_version = request.expected_version if request else None
        file = await recorder.revert_match(file_id, entry_index, expected_version=expected_version)
        return MatchResponse(
            file_id=file.id,
            entry_index=entry_index,
            status=file.entries[entry_index].status.value,
            matched_count=file.matched_count,
            version=file.version,
        )

    @app.post("/api/files/{file_id}/recount", response_model=RecountResponse)
    async def recount(file_id: str, recorder: MatchRecorder = Depends(get_recorder)):
        before, after = await recorder.recount(file_id)
        return RecountResponse(file_id=file_id, before=before, after=after)

    @app.get("/api/history/{kind}/{entity_id}")
    async def history(
        kind: EntityKind,
        entity_id: str,
        name: Optional[str] = None,
        directory: EntityDirectory = Depends(get_directory),
        aggregator: MatchHistoryAggregator = Depends(get_history_aggregator),
    ):
        """Past matches of an entity, grouped by source."""
        entity_name = await _resolve_name(directory, kind, entity_id, name)
        result = await aggregator.history(kind, entity_id, entity_name)
        return result.to_dict()


def build_app() -> FastAPI:
    """Entry point for uvicorn --factory; configures logging first."""
    settings = get_settings()
    setup_logging(settings.app_log_level, settings.log_file)
    return create_app()
