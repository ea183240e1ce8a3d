import httpx
import pytest
import pytest_asyncio
from carts.api.routes import cart_router
from carts.domain import carts
from fastapi import FastAPI, Request
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def cart_api(clean_carts, catalogue):
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with carts.domain_context():
            return await call_next(request)

    app.include_router(cart_router)
    register_exception_handlers(app)
    return app


@pytest_asyncio.fixture()
async def api_client(cart_api):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=cart_api), base_url="http://carts.test") as client:
        yield client
