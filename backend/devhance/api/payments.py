import logging

from fastapi import APIRouter, Depends

from devhance.api.deps import get_payment_service
from devhance.core.auth import get_current_user
from devhance.models.user import User
from devhance.schemas.payments import CheckoutRequest, CheckoutResponse
from devhance.services.payments import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Start a VC report purchase for a case study.

    If the report already exists its id is returned and no checkout is created.
    """
    result = await payment_service.create_checkout(current_user.id, request.case_study_id)
    return CheckoutResponse(
        checkout_url=result.checkout_url,
        session_id=result.session_id,
        payment_id=_str_or_none(result.payment_id),
        report_id=_str_or_none(result.report_id),
    )
