"""
Workspace API - identity & ownership backend
FastAPI with SQLAlchemy (SQLite/Postgres) or JSON file storage.

Install dependencies:
pip install -e .

Run server (from services/api):
uvicorn main:app --host 0.0.0.0 --port 8000
"""

import contextvars
import logging
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import (
    AccessDenied,
    Conflict,
    GuestIdentityRetired,
    NotFound,
    OwnershipInvariantViolation,
    WorkspaceError,
)
from routers import documents, members, projects, session
from settings import get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Workspace Identity API",
    description="Guest/account ownership, claims and role-based access for workspace projects",
    version="0.3.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== Request Tracing Middleware ==========
@app.middleware("http")
async def request_tracing_middleware(request: Request, call_next):
    """Add request_id and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    started = time.time()

    response = await call_next(request)

    latency = time.time() - started
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(latency * 1000, 2),
        }
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ========== Error mapping ==========
def _error(status_code: int, code: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "detail": detail})


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "error": "ACCESS_DENIED",
            "detail": exc.reason,
            "project_id": exc.project_id,
            "capability": exc.capability,
        },
    )


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", str(exc))


@app.exception_handler(Conflict)
async def conflict_handler(request: Request, exc: Conflict):
    return _error(status.HTTP_409_CONFLICT, "CONFLICT", str(exc))


@app.exception_handler(GuestIdentityRetired)
async def guest_retired_handler(request: Request, exc: GuestIdentityRetired):
    logger.error(f"Guest scoping requested after retirement: {request.method} {request.url.path}")
    return _error(status.HTTP_409_CONFLICT, "GUEST_IDENTITY_RETIRED", str(exc))


@app.exception_handler(OwnershipInvariantViolation)
async def ownership_violation_handler(request: Request, exc: OwnershipInvariantViolation):
    logger.error(f"[OWNERSHIP] {exc} (request {request_id_var.get()})")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "DATA_INCONSISTENT", "Record is inaccessible")


@app.exception_handler(WorkspaceError)
async def workspace_error_handler(request: Request, exc: WorkspaceError):
    logger.exception(f"Unhandled workspace error: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "WORKSPACE_ERROR", "Internal error")


# ========== Routers ==========
app.include_router(session.router)
app.include_router(projects.router)
app.include_router(documents.router)
app.include_router(members.router)


@app.get("/health")
async def health():
    return {"status": "ok", "storage_backend": settings.storage_backend.lower()}
