"""
Main FastAPI application for the research document backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from researchdoc.config import settings
from researchdoc.database import close_db, init_db
from researchdoc.exceptions import ResearchDocError
from researchdoc.routers import (
    assistant,
    documents,
    export,
    health,
    projects,
    sections,
    templates,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


def _check_gateway() -> bool:
    """Log whether the model gateway is configured.  Never raises."""
    if not settings.LLM_API_KEY:
        logger.warning(
            "⚠ LLM_API_KEY is not set; generation, analysis and the assistant will fail"
        )
        return False
    logger.info("✓ Model gateway: %s (model %s)", settings.LLM_BASE_URL, settings.LLM_MODEL)
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting research document backend …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. Model gateway (optional; logs a warning but continues)
    _check_gateway()

    logger.info("=" * 60)
    logger.info("  Backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down research document backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Research Document API",
    description=(
        "AI-assisted research document generator.\n\n"
        "Describe a research problem, get a structured document of titled "
        "sections, then edit, reorder, ask questions about it and export it.\n\n"
        "Key endpoints:\n"
        "- `POST /api/documents/analyze` — analyze an existing PDF/DOCX\n"
        "- `POST /api/projects` — generate a document and create a project\n"
        "- `PUT  /api/projects/{id}/sections/order` — reorder sections\n"
        "- `POST /api/assistant/ask` — streamed answers about the document\n"
        "- `GET  /api/projects/{id}/export` — PDF or DOCX download\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(ResearchDocError)
async def research_doc_error_handler(request: Request, exc: ResearchDocError):
    """Render an expected failure with its own status code and message."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,     prefix="/api/health",    tags=["Health"])
app.include_router(templates.router,  prefix="/api/templates", tags=["Templates"])
app.include_router(documents.router,  prefix="/api/documents", tags=["Documents"])
app.include_router(projects.router,   prefix="/api/projects",  tags=["Projects"])
app.include_router(export.router,     prefix="/api/projects",  tags=["Export"])
app.include_router(
    sections.router,
    prefix="/api/projects/{project_id}/sections",
    tags=["Sections"],
)
app.include_router(assistant.router,  prefix="/api/assistant", tags=["Assistant"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "Research Document API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "templates": "/api/templates",
            "documents": "/api/documents",
            "projects": "/api/projects",
            "assistant": "/api/assistant",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "researchdoc.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
