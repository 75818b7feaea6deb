"""
FastAPI Web Application - Review Collection API
===============================================

HTTP surface for starting collections and reading their progress,
results and diagnostics.

DESIGN:
- A collection runs as a background task with its own page handle from
  ``app.state.page_factory`` (Selenium by default, replaceable in tests)
- One DiagnosticStore and one ProgressTracker are shared by every session,
  so selector learning carries across requests for the same URL
- Finished sessions are kept in memory, oldest dropped first once
  ``WEB_MAX_SESSIONS`` is reached
"""

import logging
import threading
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from pydantic import BaseModel

from ..application.collection_orchestrator import CollectionOrchestrator
from ..application.progress_tracker import ProgressTracker
from ..domain.collection_config import CollectionConfig
from ..domain.errors import ValidationError
from ..domain.maps_url import require_maps_url
from ..domain.models import ComprehensiveCollectionResult
from ..infrastructure.browser.selenium_page import SeleniumPageHandle
from ..infrastructure.config import get_settings
from ..infrastructure.diagnostics import DiagnosticStore

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.web.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class CollectionRequest(BaseModel):
    url: str
    # Accepts snake_case (seconds) or camelCase (milliseconds) keys
    config: Optional[Dict[str, Any]] = None


@dataclass
class SessionRecord:
    session_id: str
    url: str
    status: str = "pending"
    result: Optional[ComprehensiveCollectionResult] = None
    error: Optional[str] = None


class SessionRegistry:
    """Bounded, thread-safe map of session id -> SessionRecord."""

    def __init__(self, max_sessions: int = 50):
        self.max_sessions = max_sessions
        self._lock = threading.Lock()
        self._records: "OrderedDict[str, SessionRecord]" = OrderedDict()

    def add(self, record: SessionRecord) -> Optional[str]:
        """Store ``record``. Returns the id of the session dropped to make room, if any."""
        with self._lock:
            self._records[record.session_id] = record
            if len(self._records) > self.max_sessions:
                dropped, _ = self._records.popitem(last=False)
                return dropped
        return None

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def default_page_factory():
    return SeleniumPageHandle(settings=settings.browser)


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    for issue in settings.validate():
        logger.warning(issue)
    logger.info("Review collection API ready")
    yield


app = FastAPI(title="Review Collector", description="Maps review collection API", lifespan=lifespan)
app.state.page_factory = default_page_factory
app.state.diagnostic_store = DiagnosticStore(
    max_entries=settings.diagnostics.max_entries,
    max_memory_mb=settings.diagnostics.max_memory_mb,
    retention_hours=settings.diagnostics.retention_hours,
)
app.state.progress_tracker = ProgressTracker()
app.state.sessions = SessionRegistry(max_sessions=settings.web.max_sessions)


def run_collection(state, record: SessionRecord, config: CollectionConfig) -> None:
    """Background task: one browser page, one collection."""
    record.status = "running"
    page = None
    try:
        page = state.page_factory()
        orchestrator = CollectionOrchestrator.from_settings(
            settings,
            diagnostic_store=state.diagnostic_store,
            progress_tracker=state.progress_tracker,
        )
        result = orchestrator.collect(page, config, url=record.url, session_id=record.session_id)
        record.result = result
        record.status = result.status.value
        record.error = result.metadata.error
    except Exception as e:
        logger.exception(f"Collection {record.session_id} failed: {e}")
        record.status = "error"
        record.error = str(e)
    finally:
        if page is not None:
            try:
                page.close()
            except Exception as e:
                logger.warning(f"Failed to close page for {record.session_id}: {e}")


# ── Collections ────────────────────────────────────────────────

@app.post("/api/collections", status_code=202)
async def start_collection(body: CollectionRequest, request: Request, background_tasks: BackgroundTasks):
    try:
        url = require_maps_url(body.url)
        config = CollectionConfig.from_dict(body.config, defaults=settings.default_collection_config())
        config.validate()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"issues": e.issues})

    state = request.app.state
    record = SessionRecord(session_id=f"col-{uuid.uuid4().hex[:12]}", url=url)
    dropped = state.sessions.add(record)
    if dropped:
        state.progress_tracker.remove_session(dropped)
        logger.info(f"Dropped old session {dropped}")

    background_tasks.add_task(run_collection, state, record, config)
    logger.info(f"Queued collection {record.session_id} for {record.url}")
    return {"session_id": record.session_id, "status": record.status, "config": config.to_dict()}


def _record_or_404(request: Request, session_id: str) -> SessionRecord:
    record = request.app.state.sessions.get(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return record


@app.get("/api/collections/{session_id}/progress")
async def collection_progress(session_id: str, request: Request):
    record = _record_or_404(request, session_id)
    progress = request.app.state.progress_tracker.get_progress(session_id)
    return {
        "session_id": session_id,
        "status": record.status,
        "progress": progress.to_dict() if progress else None,
    }


@app.get("/api/collections/{session_id}/result")
async def collection_result(session_id: str, request: Request):
    record = _record_or_404(request, session_id)
    if record.result is None:
        if record.status == "error":
            raise HTTPException(status_code=500, detail=record.error or "collection failed")
        raise HTTPException(status_code=409, detail=f"Session {session_id} is still {record.status}")
    return record.result.to_dict()


# ── Diagnostics ────────────────────────────────────────────────

@app.get("/api/diagnostics")
async def diagnostics(request: Request, url: Optional[str] = None):
    store: DiagnosticStore = request.app.state.diagnostic_store
    entries = store.get_by_url(url) if url else []
    return {
        "entries": [entry.to_dict() for entry in entries],
        "stats": store.stats().to_dict(),
    }


@app.get("/api/health")
async def health(request: Request):
    return {
        "status": "ok",
        "sessions": len(request.app.state.sessions),
        "active": request.app.state.progress_tracker.active_sessions(),
    }
