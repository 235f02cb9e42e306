"""Pydantic schemas for request/response payloads."""

from typing import Optional

from pydantic import BaseModel, Field


class ShopifyCredentialInput(BaseModel):
    """Payload for the connect flow."""

    client_id: str = Field(min_length=1, description="Tenant identifier", examples=["acme"])
    store_domain: str = Field(
        min_length=1,
        description="Store domain; scheme, trailing slash and case are normalized",
        examples=["acme.myshopify.com"],
    )
    access_token: str = Field(min_length=1, description="Shopify Admin API access token")
    api_version: Optional[str] = Field(default=None, description="Admin API version (default 2024-10)")


class ShopifyConnectionResponse(BaseModel):
    ok: bool
    message: str
    shop_name: Optional[str] = None
    domain: Optional[str] = None


class SyncInput(BaseModel):
    """Request body for an on-demand sync.

    Dates stay strings here so a malformed value comes back as a failed sync
    result instead of a validation error.
    """

    client_id: str = Field(min_length=1, description="Tenant identifier")
    start_date: Optional[str] = Field(default=None, description="Inclusive YYYY-MM-DD", examples=["2024-01-01"])
    end_date: Optional[str] = Field(default=None, description="Inclusive YYYY-MM-DD", examples=["2024-01-31"])


class SyncResultResponse(BaseModel):
    """Structured sync outcome; ``ok`` carries success."""

    ok: bool = Field(description="Whether the sync completed")
    message: str = Field(description="Summary or failure reason")
    product_count: int = 0
    variant_count: int = 0
    order_count: int = 0
    line_item_count: int = 0
    last_cursor: Optional[str] = None
    has_more: bool = False
    phase: str = Field(description="Final phase: completed or failed")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
