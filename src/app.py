"""Delivery FastAPI application.

Web server that processes delivery commands synchronously via HTTP. Every
request under a delivery route prefix runs inside the delivery domain
context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml.
from delivery.domain import delivery  # noqa: E402
from delivery.utils.logging import bind_request_context, clear_request_context
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

delivery.init()

_DOMAIN_PREFIXES = ("/orders", "/venues", "/drivers", "/payments", "/geocoding")

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Delivery API",
    description="Food delivery order lifecycle: pricing, status tracking and driver dispatch",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the delivery domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        bind_request_context(
            method=request.method,
            path=request.url.path,
            actor_role=request.headers.get("x-actor-role"),
        )
        try:
            with delivery.domain_context():
                response = await call_next(request)
        finally:
            clear_request_context()
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from delivery.api import (  # noqa: E402
    driver_router,
    geocoding_router,
    order_router,
    payment_router,
    register_error_handlers,
    venue_router,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(geocoding_router)
app.include_router(venue_router)
app.include_router(driver_router)
register_error_handlers(app)


@app.on_event("startup")
async def load_spatial_index():
    """Rebuild the in-memory driver index from persisted drivers."""
    from delivery.driver.spatial_sync import rebuild_spatial_index

    with delivery.domain_context():
        rebuild_spatial_index()


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": delivery.name}})
