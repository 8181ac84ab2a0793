"""Delivery Lifecycle Manager FastAPI application.

Web server that processes delivery commands synchronously via HTTP and
receives provider webhooks. Every request under a delivery route is
wrapped in the delivery domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (projectors fire in UoW)
#   - "production" → event_processing = "async" (projectors fire via Engine)
from delivery.domain import delivery  # noqa: E402
from delivery.utils.logging import add_context, clear_context
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

delivery.init()

_DOMAIN_PREFIXES = ("/deliveries", "/delivery-settings")

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Delivery Lifecycle Manager",
    description="Restaurant order deliveries across in-house couriers, Chaskis and Uber Direct",
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
    """Push the Protean domain context for delivery requests."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        add_context(method=request.method, path=request.url.path)
        try:
            with delivery.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response
    # No domain match, pass through (health check, docs, etc.)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from delivery.api import delivery_router, register_delivery_exception_handlers, settings_router  # noqa: E402

app.include_router(delivery_router)
app.include_router(settings_router)
register_delivery_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"delivery": {"name": delivery.name}},
        }
    )
