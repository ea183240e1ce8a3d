"""Pydantic request/response schemas for the Carts API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)


class UpdateCartQuantityRequest(BaseModel):
    quantity: int = Field(ge=1)


class GuestCartLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float | None = Field(default=None, ge=0)
    name: str | None = None
    image: str | None = None
    sku: str | None = None


class MergeGuestCartRequest(BaseModel):
    merge_token: str = Field(min_length=1, max_length=255)
    items: list[GuestCartLineSchema]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "merge_token": "guest-7f3c:1a2b3c",
                    "items": [{"product_id": "prod-001", "quantity": 2, "unit_price": 19.99}],
                }
            ]
        }
    }


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartItemSchema(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float
    name: str | None = None
    image: str | None = None
    sku: str | None = None


class CartResponse(BaseModel):
    customer_id: str
    items: list[CartItemSchema]
    subtotal: float
    tax: float
    shipping: float
    total: float
    item_count: int


class MergeResponse(BaseModel):
    status: str = "ok"
    items_merged: int
