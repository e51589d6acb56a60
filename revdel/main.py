import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from .auth.middleware import SessionMiddleware
from .config import get_settings
from .health import router as health_router
from .logging import configure_logging
from .observability.tracing import configure_tracing
from .routes.redaction import router as redaction_router

logger = logging.getLogger(__name__)

REQUESTS = Counter(
    "revdel_http_requests_total",
    "HTTP requests",
    ["method", "path", "status"],
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level, service_name=settings.service_name)
    configure_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    logger.info("revdel.start", extra={"env": settings.env})
    yield
    logger.info("revdel.stop")


app = FastAPI(lifespan=lifespan, title="Revision Visibility API", version="0.1.0")

app.add_middleware(SessionMiddleware)


@app.middleware("http")
async def metrics_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    response: Response = await call_next(request)
    # Label by route template so ids in the path do not explode cardinality
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    try:
        REQUESTS.labels(request.method, path, str(response.status_code)).inc()
    except Exception:
        logger.warning("metrics.update_failed", exc_info=True)
    return response


@app.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(health_router)
app.include_router(redaction_router)
