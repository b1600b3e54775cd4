import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dispatch_hub.api.v1.router import router as v1_router
from dispatch_hub.carriers.registry import CarrierAdapterRegistry
from dispatch_hub.core.config import settings
from dispatch_hub.core.telemetry import setup_telemetry
from dispatch_hub.services.dispatch_locks import InProcessDispatchLocks, RedisDispatchLocks
from dispatch_hub.services.http_client import HubHttpClient
from dispatch_hub.services.order_lookup import HttpOrderLookup


logging.basicConfig(level=settings.log_level.upper())
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    http = HubHttpClient(
        timeout_seconds=settings.carrier_timeout_seconds,
        max_response_body_chars=settings.max_response_body_chars,
    )
    app.state.carrier_adapters = CarrierAdapterRegistry(http)
    app.state.order_lookup = HttpOrderLookup(http, settings.orders_service_url)
    if settings.dispatch_lock_backend == "redis":
        app.state.dispatch_locks = RedisDispatchLocks(
            settings.redis_url,
            wait_seconds=settings.dispatch_lock_wait_seconds,
            lease_seconds=settings.dispatch_lock_lease_seconds,
        )
    else:
        app.state.dispatch_locks = InProcessDispatchLocks(wait_seconds=settings.dispatch_lock_wait_seconds)
    log.info("dispatch hub started env=%s locks=%s", settings.env, settings.dispatch_lock_backend)

    yield

    await http.aclose()


app = FastAPI(title="Delivery Dispatch Hub", version="0.1.0", lifespan=lifespan)

setup_telemetry(app)
app.include_router(v1_router)
