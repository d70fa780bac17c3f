import os
import time
import hashlib
from contextlib import asynccontextmanager
from typing import Dict
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from .config import settings
from .routers.recommend import router as recommend_router
from .services.analytics import get_sink
from .services.recommender import Recommender
from .services.size_chart import load_size_chart


logger = structlog.get_logger("sizefinder")


# Per-client token buckets: ident -> (tokens, last refill time)
_buckets: Dict[str, tuple[float, float]] = {}
MAX_BUCKETS = 10000


class RateLimited(Exception):
    pass


def _prune_buckets(now: float, refill_rate: float, capacity: float) -> None:
    # A bucket that has refilled to capacity is the same as no bucket
    for ident, (tokens, last) in list(_buckets.items()):
        if tokens + refill_rate * (now - last) >= capacity:
            del _buckets[ident]
    if len(_buckets) >= MAX_BUCKETS:
        oldest = sorted(_buckets, key=lambda k: _buckets[k][1])
        for ident in oldest[: len(_buckets) - MAX_BUCKETS + 1]:
            del _buckets[ident]


def _rate_limit(ident: str, requests_per_min: int, burst: int) -> None:
    refill_rate = requests_per_min / 60.0
    capacity = float(burst)
    now = time.time()
    if ident not in _buckets and len(_buckets) >= MAX_BUCKETS:
        _prune_buckets(now, refill_rate, capacity)
    tokens, last = _buckets.get(ident, (capacity, now))
    tokens = min(capacity, tokens + refill_rate * (now - last))
    if tokens < 1.0:
        _buckets[ident] = (tokens, now)
        raise RateLimited(ident)
    _buckets[ident] = (tokens - 1.0, now)


def _request_id(request: Request) -> str:
    return hashlib.md5(f"{request.client.host if request.client else 'unknown'}{time.time()}".encode()).hexdigest()[:8]


def _validate_config() -> None:
    strict = os.getenv("STRICT_CONFIG", "0") == "1"
    errors = []
    if bool(settings.supabase_url) != bool(settings.supabase_service_role):
        errors.append("SUPABASE_URL and SUPABASE_SERVICE_ROLE must be set together; analytics disabled")
    if settings.analytics_timeout_seconds <= 0:
        errors.append("ANALYTICS_TIMEOUT_SECONDS must be positive")
    if errors:
        if strict:
            raise RuntimeError("Configuration error: " + "; ".join(errors))
        else:
            for e in errors:
                logger.warning("config_warning", warning=e)


def build_recommender() -> Recommender:
    chart = load_size_chart(settings.size_chart_path, settings.size_chart_unit)
    return Recommender(chart=chart, default_size=settings.default_size, sink=get_sink(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    sink = app.state.recommender.sink
    if sink is not None:
        await sink.aclose()


# Validate configuration at import time (warnings by default; set STRICT_CONFIG=1 to enforce)
_validate_config()

app = FastAPI(title="Size Finder", version="1.0.0", lifespan=lifespan)
app.state.recommender = build_recommender()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    request_id = _request_id(request)
    resp = None

    try:
        # rate limit per client ip
        client_ip = request.client.host if request.client else "unknown"
        try:
            _rate_limit(client_ip, settings.rate_limit_per_min, settings.rate_limit_burst)
        except RateLimited:
            logger.warning("rate_limit_exceeded", client_ip=client_ip, request_id=request_id)
            resp = JSONResponse(status_code=429, content={"ok": False, "error": "Too Many Requests"})
            return resp

        logger.info("request_started",
                    request_id=request_id,
                    path=str(request.url.path),
                    method=request.method,
                    client_ip=client_ip,
                    user_agent=request.headers.get("user-agent", "unknown"))

        resp = await call_next(request)
        return resp

    except Exception as e:
        duration_ms = int((time.time() - start) * 1000)
        logger.error("request_failed",
                     request_id=request_id,
                     path=str(request.url.path),
                     method=request.method,
                     error=str(e),
                     duration_ms=duration_ms,
                     exc_info=True)
        raise
    finally:
        duration_ms = int((time.time() - start) * 1000)
        status_code = getattr(resp, "status_code", 0) if resp else 0
        logger.info("request_completed",
                    request_id=request_id,
                    path=str(request.url.path),
                    method=request.method,
                    status=status_code,
                    duration_ms=duration_ms)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": str(exc.detail)})


@app.exception_handler(Exception)
async def handle_exceptions(request: Request, exc: Exception):
    request_id = _request_id(request)

    logger.error("unhandled_exception",
                 request_id=request_id,
                 path=str(request.url.path),
                 method=request.method,
                 error=str(exc),
                 error_type=type(exc).__name__,
                 exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "Internal server error",
            "request_id": request_id,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
    )


@app.get("/v1/health")
async def health():
    return {"status": "ok"}


@app.get("/v1/debug/status")
async def debug_status(request: Request):
    """Report the loaded chart, analytics wiring and rate limiting settings."""
    recommender: Recommender = request.app.state.recommender
    return {
        "status": "ok",
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "size_chart": {
            "unit": recommender.chart.unit,
            "labels": recommender.chart.labels,
            "source": settings.size_chart_path or "builtin",
        },
        "default_size": recommender.default_size,
        "analytics": {
            "configured": recommender.sink is not None,
            "table": settings.analytics_table,
        },
        "rate_limiting": {
            "requests_per_min": settings.rate_limit_per_min,
            "burst_capacity": settings.rate_limit_burst,
            "active_buckets": len(_buckets)
        }
    }


# Versioned API, plus the path the storefront widget posts to
app.include_router(recommend_router, prefix="/v1")
app.include_router(recommend_router, prefix="/api")
