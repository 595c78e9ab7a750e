"""
Praxis Chat API
Main FastAPI application for retrieval-augmented Q&A over practice documents
"""
import time
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from praxis_chat.errors import (
    ConfigurationError,
    FeedbackError,
    ProviderError,
    RetrievalError,
    ValidationError,
)
from praxis_chat.routers import chat, feedback
from praxis_chat.services.answer_stream import AnswerStreamer
from praxis_chat.services.config import Settings
from praxis_chat.services.embeddings import EmbeddingClient
from praxis_chat.services.feedback import FeedbackSink
from praxis_chat.services.llm import LLMService
from praxis_chat.services.retrieval import VectorRetriever
from praxis_chat.services.vector_store import SupabaseStore
from praxis_chat.utils.logging import setup_logging

# Load settings
settings = Settings()

# Configure structured logging
setup_logging(settings.LOG_LEVEL, json_logs=settings.ENVIRONMENT != "development")
logger = structlog.get_logger()

# Metrics
request_counter = Counter(
    'praxis_chat_requests_total',
    'Total number of requests',
    ['method', 'endpoint', 'status']
)
request_duration = Histogram(
    'praxis_chat_request_duration_seconds',
    'Request duration',
    ['method', 'endpoint']
)
active_connections = Gauge(
    'praxis_chat_active_connections',
    'Number of active connections'
)


def build_services(app: FastAPI, http_client: httpx.AsyncClient) -> None:
    """Construct the shared store connection and the pipeline on app state"""
    app_settings: Settings = app.state.settings
    app.state.answer_streamer = None
    app.state.feedback_sink = None

    missing = app_settings.missing_credentials()
    if missing:
        logger.warning("Upstream credentials missing, chat pipeline disabled", missing=missing)
        return

    store = SupabaseStore(app_settings, http_client)
    app.state.answer_streamer = AnswerStreamer(
        app_settings,
        embeddings=EmbeddingClient(app_settings, http_client),
        retriever=VectorRetriever(store, app_settings.MATCH_FUNCTION),
        llm=LLMService(app_settings, http_client),
    )
    app.state.feedback_sink = FeedbackSink(app_settings, store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Startup
    logger.info("Starting Praxis Chat API",
                version=settings.API_VERSION,
                environment=settings.ENVIRONMENT)

    app.state.settings = settings
    http_client = httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)
    app.state.http_client = http_client
    build_services(app, http_client)

    # Setup OpenTelemetry if enabled
    if settings.OTEL_ENABLED:
        provider = TracerProvider(
            resource=Resource.create({"service.name": settings.OTEL_SERVICE_NAME})
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(
            endpoint=settings.OTEL_ENDPOINT,
            insecure=True
        )))
        trace.set_tracer_provider(provider)
        FastAPIInstrumentor.instrument_app(app)

    logger.info("API initialization complete")

    yield

    # Shutdown
    logger.info("Shutting down Praxis Chat API")
    await http_client.aclose()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Praxis Chat API",
    description="Grounded Q&A over practice documents with streamed answers",
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
)
app.state.settings = settings

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Middleware for request tracking
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Track request metrics and add request ID"""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    active_connections.inc()
    start_time = time.time()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    try:
        response = await call_next(request)

        duration = time.time() - start_time
        request_counter.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        request_duration.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(duration)

        response.headers.setdefault("X-Request-ID", request_id)

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration
        )

        return response

    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e)
        )
        request_counter.labels(
            method=request.method,
            endpoint=request.url.path,
            status=500
        ).inc()
        raise

    finally:
        active_connections.dec()
        structlog.contextvars.unbind_contextvars("request_id")


# Include routers
app.include_router(chat.router, prefix="/api")
app.include_router(feedback.router, prefix="/api")


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "version": settings.API_VERSION}


@app.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe - checks that the pipeline could be built"""
    checks = {
        "api": "healthy",
        "pipeline": "healthy" if getattr(request.app.state, "answer_streamer", None) else "unconfigured",
        "feedback": "healthy" if getattr(request.app.state, "feedback_sink", None) else "unconfigured",
    }

    if all(v == "healthy" for v in checks.values()):
        return {"status": "ready", "checks": checks}
    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "checks": checks}
    )


@app.get("/health/live")
async def liveness_check():
    """Liveness probe - checks if the application is running"""
    return {"status": "alive"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": "Praxis Chat API",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.ENVIRONMENT == "development" else None,
        "health": "/health",
        "metrics": "/metrics"
    }


def error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": detail, "status_code": status_code}
    )


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path
    )
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are rejected like empty ones"""
    logger.warning("Invalid request body", errors=exc.errors(), path=request.url.path)
    return error_response(400, "Invalid body")


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors"""
    logger.warning("Validation error", error=str(exc), path=request.url.path)
    return error_response(400, str(exc))


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error", error=str(exc), path=request.url.path)
    return error_response(500, str(exc))


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error("Model provider error", error=str(exc), path=request.url.path)
    return error_response(502, str(exc))


@app.exception_handler(RetrievalError)
async def retrieval_error_handler(request: Request, exc: RetrievalError):
    logger.error("Retrieval error", error=str(exc), path=request.url.path)
    return error_response(500, "Failed to retrieve relevant chunks")


@app.exception_handler(FeedbackError)
async def feedback_error_handler(request: Request, exc: FeedbackError):
    return error_response(500, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "status_code": 500,
            "request_id": request.headers.get("X-Request-ID")
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "praxis_chat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_config=None,  # Use structlog instead
        access_log=False,  # Handled by middleware
    )
