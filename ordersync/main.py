"""
main.py — FastAPI application for the order synchronization service

Builds the long-lived services once at startup and keeps them on app.state:
one record store, one operation lock, one lookup cache, the importer, the
stock boundary and the order write coordinator. Every request shares them,
which is what makes the operation lock process-wide.

Business Rules:
- OrderSyncError subclasses render as ErrorResponse with their status code
  (Busy 409, ValidationFailure 422, OrderNotFound 404, store failures 503,
  ImportFailure 502)
- The scheduler is not started under TESTING=1
- Shutdown cancels the scheduler, closes the store and the shared HTTP client

Called by: uvicorn (ordersync.main:app)
Depends on: config, logging_config, database, store, services, routers
"""

import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from . import __version__
from .cache import TTLCache
from .config import settings
from .connectors.dolibarr import DolibarrConnector
from .errors import OrderSyncError
from .locking import OperationLock
from .logging_config import setup_logging
from .routers import orders
from .schemas.errors import ErrorResponse
from .services.import_service import ImportService
from .services.order_service import OrderService
from .services.stock_service import StockService
from .store import build_store


def build_services(app: FastAPI, cfg=settings, store=None, connector=None, session_factory=None) -> OrderService:
    """Wire the shared services onto app.state. Returns the order service."""
    if session_factory is None:
        from .database import SessionLocal as session_factory

    if store is None:
        store = build_store(cfg)
    if connector is None:
        connector = DolibarrConnector(cfg.dolibarr_url, cfg.dolibarr_api_key)
    lock = OperationLock()
    importer = ImportService(
        store,
        connector,
        lock,
        cache=TTLCache(default_ttl=cfg.users_cache_ttl_seconds),
        settings=cfg,
        session_factory=session_factory,
    )
    stock = StockService(store, collection=cfg.stock_collection)
    service = OrderService(
        store,
        lock,
        importer=importer,
        stock=stock,
        collection=cfg.orders_collection,
    )
    app.state.store = store
    app.state.stock_service = stock
    app.state.order_service = service
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    from .database import create_tables
    from .http_client import close_clients
    from .scheduler import start_scheduler

    setup_logging()
    create_tables()
    service = build_services(app)
    logger.info(f"ordersync {__version__} ready — store backend: {settings.store_backend}")

    task = None
    if not os.environ.get("TESTING"):
        task = asyncio.create_task(start_scheduler(service, settings))
    yield
    if task is not None:
        task.cancel()
    await app.state.store.close()
    await close_clients()


app = FastAPI(title="ordersync", version=__version__, lifespan=lifespan)
app.include_router(orders.router)


# ── Exception handlers ───────────────────────────────────────────────


@app.exception_handler(OrderSyncError)
async def order_sync_error_handler(request: Request, exc: OrderSyncError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    body = ErrorResponse(
        error=exc.message,
        status_code=exc.status_code,
        kind=exc.__class__.__name__,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    body = ErrorResponse(
        error="Invalid request",
        status_code=422,
        kind="RequestValidationError",
        detail=[{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()],
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.get("/health")
async def health():
    service = getattr(app.state, "order_service", None)
    return {
        "status": "ok",
        "version": __version__,
        "operation": service.lock.holder if service else None,
        "edit_sessions": service.edit_sessions if service else 0,
    }
