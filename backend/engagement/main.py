"""
Classroom Engagement Analyzer - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Registers all API route handlers
5. Tears down any running session (and its timers) on shutdown

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Session engine, attention sampler, report aggregation
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from engagement.config import CORS_ORIGINS, DATABASE_URL
from engagement.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from engagement.routes import students, sessions, reports
from engagement.database import create_tables
from engagement.services.classroom import classroom

# Import all models so they are registered with Base.metadata
from engagement.models.student import Student
from engagement.models.session_report import SessionReport

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

log_with_context(logger, "INFO", "Creating tables",
                 extra_data={"in_memory": DATABASE_URL in ("sqlite://", "sqlite:///:memory:")})
create_tables()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # A session still running at shutdown must not leave timers behind
    classroom.teardown()


# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Classroom Engagement Analyzer",
    description=(
        "Demo backend for a classroom engagement analyzer: register students, "
        "run a simulated tracking session with attention scores and alerts, "
        "and review session reports with CSV export."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Content-Disposition"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request, stores it in a
# context variable for every log entry, returns it in the
# X-Request-ID header and logs request start/end with latency.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(students.router, tags=["Students"])
app.include_router(sessions.router, tags=["Sessions"])
app.include_router(reports.router, tags=["Reports"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "classroom-engagement-analyzer",
        "version": "1.0.0",
        "session_active": classroom.engine is not None and classroom.engine.is_active,
    }


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Classroom Engagement Analyzer",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "register_student": "POST /api/students",
            "roster": "GET /api/students",
            "start_session": "POST /api/sessions",
            "current_session": "GET /api/sessions/current",
            "stop_session": "POST /api/sessions/current/stop",
            "session_stream": "WS /api/sessions/current/stream",
            "reports": "GET /api/reports",
            "report_detail": "GET /api/reports/{id}",
            "report_csv": "GET /api/reports/{id}/csv"
        }
    }
