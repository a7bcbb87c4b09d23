import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class CustomData(BaseModel):
    """Identifiers we attach at checkout and the processor echoes back."""
    model_config = ConfigDict(extra="ignore")

    user_id: uuid.UUID
    case_study_id: uuid.UUID
    payment_id: Optional[uuid.UUID] = None


class WebhookMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_name: str
    custom_data: Optional[CustomData] = None


class OrderAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    # Smallest currency unit (cents)
    total: int
    currency: str


class OrderData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    attributes: OrderAttributes

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v


class WebhookPayload(BaseModel):
    """The subset of a Lemon Squeezy order webhook the reconciliation engine reads."""
    model_config = ConfigDict(extra="ignore")

    meta: WebhookMeta
    data: OrderData


class CheckoutRequest(BaseModel):
    case_study_id: uuid.UUID


class CheckoutResponse(BaseModel):
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    payment_id: Optional[str] = None
    # Set instead of a checkout when the report already exists
    report_id: Optional[str] = None


class WebhookResponse(BaseModel):
    received: bool = True
    status: str
    payment_id: Optional[str] = None
    report_id: Optional[str] = None
