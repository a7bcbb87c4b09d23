import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from devhance.api.deps import get_payment_service
from devhance.schemas.payments import WebhookResponse
from devhance.services.payments import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/lemonsqueezy", response_model=WebhookResponse)
async def lemonsqueezy_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None, alias="X-Signature"),
    x_event_name: Optional[str] = Header(default=None, alias="X-Event-Name"),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Receive order events from Lemon Squeezy.

    The signature covers the exact bytes received, so the body is read raw
    and parsed only after verification.
    """
    raw_body = await request.body()
    logger.debug(f"Webhook received: event={x_event_name}, {len(raw_body)} bytes")

    result = await payment_service.handle_webhook(raw_body, x_signature)
    return WebhookResponse(
        status=result.status,
        payment_id=str(result.payment_id) if result.payment_id else None,
        report_id=str(result.report_id) if result.report_id else None,
    )
