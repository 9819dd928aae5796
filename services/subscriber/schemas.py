"""Pydantic schemas for the Subscriber node API."""

from pydantic import BaseModel, Field

from shared.mesh.models import SubscriptionState


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str
    service: str
    version: str


class SubscriptionStatusResponse(BaseModel):
    """Schema for the node's subscription status."""

    broker_available: bool
    token_security_active: bool
    notification_filter_active: bool
    subscriptions: dict[str, SubscriptionState] = Field(default_factory=dict)
