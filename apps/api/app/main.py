import uuid

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import configure_logging
from .routers.cart import checkout_router
from .routers.cart import router as cart_router
from .routers.health import router as health_router
from .routers.items import job_items_router
from .routers.items import router as items_router
from .routers.jobs import router as jobs_router
from .routers.marketplace import router as marketplace_router
from .routers.orders import router as orders_router
from .routers.vendors import bids_router, job_bids_router
from .routers.vendors import router as vendors_router
from .routers.webhooks import router as webhooks_router
from .services.job_cache import TTLJobCache
from .settings import settings

configure_logging()

app = FastAPI(title="Kept House API", version="0.1.0")
app.state.job_cache = TTLJobCache(ttl_seconds=settings.job_cache_ttl_seconds)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:  # type: ignore[override]
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(health_router)
app.include_router(jobs_router)
app.include_router(job_items_router)
app.include_router(items_router)
app.include_router(marketplace_router)
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(vendors_router)
app.include_router(job_bids_router)
app.include_router(bids_router)
app.include_router(webhooks_router)
