"""
Retest Submission Service application.

Wires structured logging, the request ID middleware, the mapping from the
retest error taxonomy to JSON responses, the routers and the health check.
Tables are created at import time when running against SQLite; PostgreSQL
deployments apply the Alembic revision instead.
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from retest_api.config import is_development
from retest_api.database import create_tables, is_sqlite
from retest_api.errors import PersistenceError, RetestError, SubmissionValidationError
from retest_api.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from retest_api.routes import retests, submissions

# Registers every model on Base.metadata
import retest_api.models  # noqa: F401

setup_logging()
logger = get_logger("http")

if is_sqlite():
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="Retest Submission Service",
    description=(
        "Accepts test submissions from the student portal and runs retest "
        "submissions through eligibility checks, attempt numbering, idempotent "
        "attempt recording and the retest status state machine."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tag the request with an ID (the caller's X-Request-ID when present),
    echo it back and log request start and completion with timing.
    """
    req_id = request.headers.get("x-request-id") or generate_request_id()
    token = request_id_var.set(req_id)
    started = time.perf_counter()
    path = "{} {}".format(request.method, request.url.path)

    try:
        log_with_context(logger, "INFO", "Request started: " + path,
                         extra_data={
                             "ip": request.client.host if request.client else "unknown",
                             "query_params": dict(request.query_params),
                         })

        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id

        log_with_context(logger, "INFO",
                         "Request completed: {} -> {}".format(path, response.status_code),
                         extra_data={
                             "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                             "status_code": response.status_code,
                         })
        return response
    finally:
        request_id_var.reset(token)


@app.exception_handler(RetestError)
async def retest_error_handler(request: Request, exc: RetestError):
    body = {"success": False, "error": exc.code, "message": exc.message}
    if isinstance(exc, PersistenceError):
        log_with_context(logger, "ERROR", "Persistence failure: {}".format(exc.detail),
                         context={"path": request.url.path})
        if is_development():
            body["details"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body)


def _describe_validation_error(err: dict) -> str:
    field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    return "{}: {}".format(field, err.get("msg")) if field else str(err.get("msg"))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(_describe_validation_error(err) for err in errors) or "Invalid request"
    log_with_context(logger, "INFO", "Request validation failed",
                     context={"path": request.url.path}, extra_data={"errors": len(errors)})
    return await retest_error_handler(request, SubmissionValidationError(message))


app.include_router(submissions.router, tags=["Submissions"])
app.include_router(retests.router, tags=["Retests"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for container health checks and monitoring."""
    return {"status": "healthy", "service": "retest-submission-service", "version": "1.0.0"}
