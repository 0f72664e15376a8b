"""
PhyNetix grading backend - FastAPI application entry point.

This module:
1. Sets up structured JSON logging
2. Initializes the FastAPI app with CORS middleware
3. Implements request ID middleware (X-Request-ID header)
4. Renders SubmissionError, body validation and database errors as
   {"error": message}
5. Registers the API routers and the health check

Layout:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: grading, ranking, submission and recalculation logic
- auth.py: bearer token verification
- logging_config.py: structured logging configuration
- database.py: database connection management
"""

import os
import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from phynetix.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from phynetix.exceptions import StoreError, SubmissionError
from phynetix.routes import submissions, attempts, leaderboard
from phynetix.database import DATABASE_URL, create_tables

# Register every model with Base.metadata before create_tables()
import phynetix.models  # noqa: F401

setup_logging()
logger = get_logger("http")

if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="PhyNetix Grading API",
    description=(
        "Test submission and grading for the PhyNetix exam platform: "
        "marks answers under JEE Mains / JEE Advanced rules, ranks every "
        "completed attempt of a test and serves the leaderboard."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# The test interface is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tag every request with a UUID.

    The id goes into a context variable (so every log entry produced while
    handling the request carries it) and back out in X-Request-ID.
    """
    req_id = request.headers.get("X-Request-ID") or generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
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


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    log_with_context(logger, "WARNING",
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra_data={"status_code": exc.status_code, "error": exc.__class__.__name__})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Invalid JSON body"
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return "{}: {}".format(field, message) if field else message


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = _describe_validation_error(exc)
    log_with_context(logger, "WARNING",
        f"{request.method} {request.url.path} rejected: {message}",
        extra_data={"status_code": 400, "errors": len(exc.errors())})
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    error = StoreError.from_exception(exc)
    log_with_context(get_logger("db"), "ERROR",
        f"{request.method} {request.url.path} failed in the database: {error.message}",
        extra_data={"status_code": error.status_code, "error": exc.__class__.__name__})
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


app.include_router(submissions.router, tags=["Submissions"])
app.include_router(attempts.router, tags=["Attempts"])
app.include_router(leaderboard.router, tags=["Leaderboard"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": "phynetix-grading", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "PhyNetix Grading API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "start_test": "POST /api/start-test",
            "submit_test": "POST /api/submit-test",
            "attempt_detail": "GET /api/attempts/{id}",
            "leaderboard": "GET /api/leaderboard?test_id=",
            "recalculate": "POST /api/tests/{test_id}/recalculate"
        }
    }
