# portal_hub/main.py
# Portal Hub - multi-supplier catalog, client pricing, idempotent orders
from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal_hub.settings import settings
from portal_hub.errors import PortalError, Internal
from portal_hub.database import (
    init_db, close_db, create_schema, check_db_health, get_session_factory,
)
from portal_hub.services.master_data import MasterDataCache, db_loader
from portal_hub.routers.catalog import router as catalog_router
from portal_hub.routers.pricing import router as pricing_router
from portal_hub.routers.orders import router as orders_router

# ---------------------------------------------------------
# Logging setup
# ---------------------------------------------------------
from portal_hub.logging_setup import setup_logging
setup_logging(settings)

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# ---------------------------------------------------------
# Lifespan: Database init/cleanup
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    await create_schema()
    factory = await get_session_factory()
    app.state.session_factory = factory
    app.state.master_data = MasterDataCache(
        db_loader(factory),
        ttl_seconds=settings.MASTER_DATA_TTL_HOURS * 3600,
    )
    app.state.feed_locks = {}
    logger.info("Portal Hub started")
    yield
    await close_db()
    logger.info("Portal Hub stopped")


# ---------------------------------------------------------
# FastAPI app + CORS
# ---------------------------------------------------------
app = FastAPI(
    title="Portal Hub API",
    version=VERSION,
    description="B2B ordering portal - supplier feeds, client pricing, orders",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog_router)
app.include_router(pricing_router)
app.include_router(orders_router)


# ---------------------------------------------------------
# Error rendering
# ---------------------------------------------------------
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid')}" if where else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": "invalid-argument", "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = Internal("Internal error, please try again later")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# ---------------------------------------------------------
# Endpoints
# ---------------------------------------------------------
@app.get("/health")
async def health(request: Request):
    """Health check endpoint with database status."""
    result = {"status": "ok", "version": VERSION}
    db_health = await check_db_health(request.app.state.session_factory)
    result["database"] = db_health
    if db_health.get("status") != "healthy":
        result["status"] = "degraded"
    return result
