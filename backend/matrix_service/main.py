from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.routes import matrix as matrix_routes
from .cache import clear_all_caches, get_all_cache_stats
from .health import health_checker
from .logging_config import configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .router import close_router
from .settings import SERVICE_NAME, SERVICE_VERSION, settings
from .utils import add_cors, add_request_id_tracing

# Configure structured logging (must be done before any logging calls)
configure_structlog(json_logs=not settings.DEBUG)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"{SERVICE_NAME}@{SERVICE_VERSION}",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup", osrm=settings.osrm_base, max_workers=settings.MATRIX_MAX_WORKERS)
    yield
    close_router()


app = FastAPI(
    title="Routing Matrix API",
    version=SERVICE_VERSION,
    description="Pairwise distance/time matrix on top of a point-to-point routing engine",
    lifespan=lifespan,
)
add_cors(app)
add_request_id_tracing(app)
app.add_middleware(PrometheusMiddleware)

API_PREFIX = "/v1"

app.include_router(matrix_routes.router)
app.include_router(matrix_routes.router, prefix=API_PREFIX)


@app.get("/health")
async def health():
    """Return service health including upstream router checks."""
    health_status = await health_checker.check_all()
    status_code = 200 if health_status["status"] == "healthy" else 503
    body = {
        "status": health_status["status"],
        "timestamp": health_status.get("timestamp"),
        "checks": health_status.get("checks", {}),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }
    return JSONResponse(content=body, status_code=status_code)


@app.get("/metrics")
def metrics():
    """Expose Prometheus metrics."""
    try:
        return get_metrics()
    except Exception:  # pragma: no cover - defensive path
        logger.exception("Metrics export failed")
        raise HTTPException(status_code=503, detail="metrics unavailable")


if settings.DEBUG and settings.DEV_ROUTES_ENABLED:

    @app.post("/dev/cache/clear")
    def dev_clear_caches():
        clear_all_caches()
        return {"ok": True, "cleared": True}

    @app.get("/dev/cache/stats")
    def dev_cache_stats():
        return get_all_cache_stats()
