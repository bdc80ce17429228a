"""NutriAI API - Main Application."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from nutriai.config import get_settings
from nutriai.errors import ApiError
from nutriai.routes import (
    food_search_router,
    transcription_router,
    meal_analysis_router,
    meal_logging_router,
    insights_router,
    user_router,
    nutrition_router,
)
from nutriai.utils.tracing import get_request_id

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting NutriAI API...")
    missing = [
        name for name, value in (
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_SERVICE_ROLE_KEY", settings.supabase_service_role_key),
            ("USDA_API_KEY", settings.usda_api_key),
            ("OPENAI_API_KEY", settings.openai_api_key),
        )
        if not value
    ]
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)}; affected functions will return 500")
    yield
    # Shutdown
    logger.info("Shutting down NutriAI API...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    NutriAI API - serverless-style functions backing the NutriAI mobile app.

    ## Functions
    - Food search against USDA FoodData Central with ranking and progressive disclosure
    - Voice meal description transcription (Whisper)
    - Meal photo analysis (vision models)
    - Typed meal description analysis and conversational corrections
    - Weekly nutrition insights from daily totals
    - Macro target calculation and daily log summaries

    ## Authentication
    All functions require a platform access token in the Authorization header:
    `Authorization: Bearer <token>`

    ## Errors
    Error bodies are `{stage, error, message, requestId}`; every response
    carries an `X-Request-ID` header.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID and log each request's outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = get_request_id(request)
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"-> {response.status_code} ({process_time:.3f}s)"
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["Server-Timing"] = f"total;dur={int(process_time * 1000)}"
        return response


app.add_middleware(RequestIDMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Server-Timing", "X-RateLimit-Remaining"],
)


def error_response(request: Request, error: ApiError) -> JSONResponse:
    request_id = get_request_id(request)
    headers = {"X-Request-ID": request_id}
    retry_after = error.extra.get("retryAfter")
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(request_id),
        headers=headers,
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    """Render stage-tagged errors raised by routes and services."""
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, f"[{get_request_id(request)}]{exc} (status {exc.status_code})")
    return error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request body errors as 400s with the first failing field's message."""
    errors = exc.errors()
    first = errors[0] if errors else {}

    if first.get("type") == "json_invalid" or (
        first.get("type") == "missing" and tuple(first.get("loc", ())) == ("body",)
    ):
        error = ApiError(
            "Invalid or empty JSON payload",
            400,
            "payload-parsing",
            error="Invalid request body",
        )
    else:
        ctx = first.get("ctx") or {}
        error = ApiError(
            first.get("msg", "Invalid request"),
            400,
            "validation",
            error=ctx.get("title", "Invalid request"),
        )

    logger.warning(f"[{get_request_id(request)}]{error}")
    return error_response(request, error)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render routing errors (404, 405) in the same body shape."""
    error = ApiError(str(exc.detail), exc.status_code, "routing", error=str(exc.detail))
    return error_response(request, error)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    request_id = get_request_id(request)
    trace = getattr(request.state, "trace", None)
    last_stage = trace.current_stage if trace else "unknown"
    logger.error(
        f"[{request_id}] Unhandled exception after stage {last_stage}: {exc}",
        exc_info=True,
    )
    error = ApiError(
        "An unexpected error occurred. Please try again.",
        500,
        "fatal",
        error="Unhandled server error occurred",
        extra={"lastStage": last_stage},
    )
    return error_response(request, error)


# Include routers
app.include_router(food_search_router, prefix=settings.functions_prefix)
app.include_router(transcription_router, prefix=settings.functions_prefix)
app.include_router(meal_analysis_router, prefix=settings.functions_prefix)
app.include_router(meal_logging_router, prefix=settings.functions_prefix)
app.include_router(insights_router, prefix=settings.functions_prefix)
app.include_router(user_router)
app.include_router(nutrition_router)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nutriai.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
