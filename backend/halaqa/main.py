"""
Halaqa Admin - FastAPI application entry point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps service errors to JSON error responses
5. Registers all API route handlers and serves uploaded photos
6. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: payload schemas and record vocabulary
- services/: business logic (student rules, photo storage)
- store.py: the single JSON records document
- auth.py: signed bearer tokens
- logging_config.py: structured logging configuration
"""

import os
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from halaqa.auth import using_dev_secret
from halaqa.errors import HalaqaError
from halaqa.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, actor_var, generate_request_id
)
from halaqa.routes import auth, routine, students
from halaqa.services.photos import UPLOAD_DIR
from halaqa.store import DATA_FILE

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

log_with_context(logger, "INFO", "Using records document {}".format(DATA_FILE),
    extra_data={"upload_dir": UPLOAD_DIR})
if using_dev_secret():
    log_with_context(logger, "WARNING", "JWT_SECRET not set, using the development secret")

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Halaqa Admin",
    description=(
        "Record keeping for a Quran tutoring circle: students, recitation "
        "progress, session attendance, payment status and the daily routine note."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# The admin and portal pages may be served from another origin.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request and:
# 1. Stores it in a context variable (available to all log entries)
#    and clears the actor until a token is verified
# 2. Returns it in the X-Request-ID response header
# 3. Logs request start/end with latency measurement
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)
    actor_var.set("")

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


# ──────────────────────────────────────────────────────────────
# Error responses
#
# Every HalaqaError carries its own status code. Client errors are
# logged as warnings, storage failures as errors; nothing is retried.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(HalaqaError)
async def halaqa_error_handler(request: Request, exc: HalaqaError):
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    log_with_context(logger, level,
        f"{exc.__class__.__name__}: {exc.message}",
        extra_data={"path": request.url.path, "status_code": exc.status_code})
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(students.router, tags=["Students"])
app.include_router(routine.router, tags=["Routine"])
app.include_router(auth.router, tags=["Auth"])

# Uploaded photos are referenced by records as /uploads/<file>
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR, check_dir=False), name="uploads")


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": "halaqa-admin", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Halaqa Admin",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "students": "GET/POST /api/students",
            "student": "GET/PUT/DELETE /api/students/{id}",
            "session": "POST /api/students/{id}/sessions",
            "outstanding": "GET /api/outstanding-students",
            "routine": "GET/POST /api/routine",
            "student_login": "POST /api/student/login",
            "admin_login": "POST /api/admin/login"
        }
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
