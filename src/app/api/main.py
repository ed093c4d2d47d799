from __future__ import annotations

import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.cache_middleware import CacheHeaderMiddleware
from app.api.deps import get_dataset_store
from app.api.error_handlers import (
    data_unavailable_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.api.routes_map import router as map_router
from app.api.routes_search import router as search_router
from app.logging import configure_logging, get_logger
from app.schemas.responses import DataStateItem, HealthResponse
from app.settings import Settings, get_settings
from app.store import DatasetStore, DataUnavailableError, get_store
from pipelines.common.dispatcher import create_load_dispatcher
from pipelines.data_loading import DataLoadError, load_data

settings = get_settings()
configure_logging(settings.log_level)
logger = get_logger("app.api")


def _run_initial_load(store: DatasetStore, app_settings: Settings) -> None:
    dispatcher = store.attach(create_load_dispatcher())
    try:
        load_data(dispatcher, settings=app_settings)
    except DataLoadError:
        # Already logged by load_data and recorded in the store via data-failed.
        return
    except Exception as exc:
        logger.exception("Initial map data load crashed.", error=str(exc))
        # A dataset already published stays served.
        if store.is_loading:
            store.set_error(exc)


def start_background_load(store: DatasetStore, app_settings: Settings) -> threading.Thread:
    store.reset()
    thread = threading.Thread(
        target=_run_initial_load,
        args=(store, app_settings),
        name="map-data-load",
        daemon=True,
    )
    thread.start()
    return thread


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    if settings.load_on_startup:
        logger.info("Scheduling initial map data load.")
        start_background_load(get_store(), settings)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(CacheHeaderMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins_list,
    allow_methods=["GET"],
    allow_headers=["*"],
)

api_v1_router = APIRouter(prefix=settings.api_version_prefix)
api_v1_router.include_router(map_router)
api_v1_router.include_router(search_router)
app.include_router(api_v1_router)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(DataUnavailableError, data_unavailable_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id", str(uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


@app.get(f"{settings.api_version_prefix}/health", response_model=HealthResponse)
def get_v1_health(store: DatasetStore = Depends(get_dataset_store)) -> HealthResponse:
    return HealthResponse(status="ok", data=DataStateItem(**store.snapshot()))
