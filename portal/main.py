import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from portal.config import get_settings
from portal.controllers.activity import router as activity_router
from portal.controllers.auth import router as auth_router
from portal.controllers.events import router as events_router
from portal.controllers.health import router as health_router
from portal.controllers.ws_events import router as ws_events_router
from portal.controllers.ws_identity import router as ws_identity_router
from portal.errors import register_exception_handlers
from portal.lifespan import cleanup_resources, setup_resources
from portal.middleware import HTTPLogMiddleware

settings = get_settings()

app = FastAPI(title="Event Portal API", version="1.0.0")
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("portal.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

if not settings.debug.websocket:
    logging.getLogger("portal.ws").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources(get_settings())
    try:
        yield
    finally:
        await cleanup_resources(resources)


app.router.lifespan_context = lifespan

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(events_router)
app.include_router(activity_router)
app.include_router(ws_events_router)
app.include_router(ws_identity_router)

if settings.features.metrics:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
