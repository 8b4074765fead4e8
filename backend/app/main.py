"""Repurposely API application"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.logging import setup_logging
from app.core import otel
from app.core.security import get_client_identifier, check_rate_limit, log_api_access
from app.db import redis as redis_module
from app.db.session import engine, init_db
from app.api import admin, content, images, media, subscriptions, tokens, user

setup_logging()
logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

# Stripe retries deliveries on its own schedule; probes and scrapes are internal
RATE_LIMIT_EXEMPT_PATHS = {"/api/stripe/webhook", "/metrics", "/health"}
STATE_CHANGING_METHODS = {"POST", "PATCH", "DELETE", "PUT"}


def _allowed_origins():
    origins = [settings.SITE_URL]
    if settings.ENVIRONMENT == "development":
        origins += ["http://localhost:3000", "http://127.0.0.1:3000"]
    return origins


ALLOWED_ORIGINS = _allowed_origins()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if otel.initialize_otel():
        if otel.setup_otel_logging():
            logger.info(f"Exporting traces, metrics and logs to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("Exporting traces and metrics; OTLP log handler could not be attached")
    else:
        logger.info("No OTLP endpoint configured, telemetry export disabled")

    try:
        init_db()
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Could not prepare database tables: {e}")
        raise

    # Redis only backs rate limiting and the auth cache, both of which fail open
    try:
        redis_module.ping()
        logger.info("Redis reachable")
    except Exception as e:
        logger.warning(f"Redis unreachable, rate limiting and auth cache disabled: {e}")

    otel.instrument_sqlalchemy(engine)

    yield

    logger.info("Repurposely backend stopping")


app = FastAPI(
    title="Repurposely Backend",
    description="Content repurposing with AI text and image generation",
    version="1.0.0",
    lifespan=lifespan
)

otel.instrument_fastapi(app)
otel.instrument_httpx()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    content.router,
    images.router,
    media.router,
    subscriptions.router,
    tokens.router,
    tokens.account_router,
    user.router,
    admin.router,
):
    app.include_router(router)


def _too_many_requests(request: Request) -> JSONResponse:
    response = JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Please try again later."}
    )
    # The CORS middleware does not see responses produced here
    origin = request.headers.get("Origin")
    if origin in ALLOWED_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


@app.middleware("http")
async def security_middleware(request: Request, call_next):
    """Fixed-window rate limit per client, plus one access log line per request"""
    status_code = 500
    error = None

    try:
        path = request.url.path
        if path not in RATE_LIMIT_EXEMPT_PATHS and request.method != "OPTIONS":
            identifier = get_client_identifier(request)
            strict = request.method in STATE_CHANGING_METHODS
            if not check_rate_limit(identifier, strict=strict):
                status_code = 429
                error = "Rate limit exceeded"
                security_logger.warning(f"Rate limit exceeded for {identifier} on {request.method} {path}")
                return _too_many_requests(request)

        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as e:
        error = str(e)
        security_logger.error(f"Request failed in security middleware: {error}", exc_info=True)
        raise
    finally:
        log_api_access(request, status_code, error)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/metrics")
def metrics_endpoint():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health_check():
    return {"status": "healthy"}
