"""ShopStream Carts FastAPI application.

Serves the authenticated cart API that storefront clients merge guest carts
into. Commands are processed synchronously per request.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
from carts.domain import carts  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers
from shared.logging import add_context, clear_context, configure_logging

configure_logging()
carts.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="ShopStream Carts API",
    description="Authenticated shopping carts and guest cart merging",
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
    """Push the Carts domain context for cart requests."""
    if request.url.path.startswith("/customers"):
        add_context(http_method=request.method, http_path=request.url.path)
        try:
            with carts.domain_context():
                response = await call_next(request)
        finally:
            clear_context("http_method", "http_path")
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from carts.api.routes import cart_router  # noqa: E402

app.include_router(cart_router)
register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "carts": {"name": carts.name},
            },
        }
    )
