"""Payment webhook reconciliation and checkout creation.

Webhook delivery is at-least-once and unordered, so every inbound event goes
through the same steps: verify the HMAC signature over the raw body, parse
the payload, deduplicate by external order id, apply at most one status
transition, and (for paid orders) make sure the case study has exactly one
VC report. Payment truth is committed before any report generation starts,
so a generation failure never rolls back a recorded payment.
"""
import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.config import settings
from devhance.core.errors import (
    ConfigurationError,
    ExternalServiceError,
    GenerationParseError,
    GenerationServiceError,
    InvalidSignatureError,
    NotFoundError,
    ValidationError,
)
from devhance.models.case_study import CaseStudy
from devhance.models.payment import Payment, PaymentStatus
from devhance.models.user import User
from devhance.models.vc_report import VCReport
from devhance.schemas.payments import OrderAttributes, WebhookPayload
from devhance.services.cache import RepoContextCache
from devhance.services.generation import GenerationService

logger = logging.getLogger(__name__)

LEMON_SQUEEZY_API_BASE = "https://api.lemonsqueezy.com/v1"
DEFAULT_TIMEOUT_SECONDS = 15.0

HANDLED_EVENTS = {"order_created", "order_paid", "order_refunded"}

# Processor order status -> local payment status
STATUS_MAP = {
    "paid": PaymentStatus.PAID,
    "pending": PaymentStatus.PENDING,
    "failed": PaymentStatus.FAILED,
    "fraudulent": PaymentStatus.FAILED,
    "refunded": PaymentStatus.FAILED,
    "partial_refund": PaymentStatus.FAILED,
    "void": PaymentStatus.FAILED,
}


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str] = None) -> None:
    """
    Check the webhook signature over the exact raw request body.

    Args:
        raw_body: The request body bytes as received
        signature: Hex HMAC-SHA256 from the X-Signature header
        secret: Shared secret; defaults to LEMON_SQUEEZY_WEBHOOK_SECRET

    Raises:
        ConfigurationError: If no shared secret is configured.
        InvalidSignatureError: If the signature is missing or does not match.
    """
    secret = secret if secret is not None else settings.LEMON_SQUEEZY_WEBHOOK_SECRET
    if not secret:
        logger.error("LEMON_SQUEEZY_WEBHOOK_SECRET is not configured; refusing webhook")
        raise ConfigurationError("Webhook secret is not configured")

    if not signature:
        raise InvalidSignatureError("Missing signature")

    expected = compute_signature(raw_body, secret)
    # Constant-time comparison
    if not hmac.compare_digest(expected.encode(), signature.strip().encode()):
        raise InvalidSignatureError()


def parse_payload(raw_body: bytes) -> WebhookPayload:
    """
    Parse a verified webhook body.

    Raises:
        ValidationError: If the body is not JSON or misses required fields.
    """
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Webhook body is not valid JSON") from e
    try:
        return WebhookPayload.model_validate(data)
    except SchemaValidationError as e:
        raise ValidationError(f"Webhook payload is missing required fields: {e.error_count()} error(s)") from e


@dataclass
class WebhookResult:
    # "processed", "already_processed" or "ignored"
    status: str
    payment_id: Optional[uuid.UUID] = None
    report_id: Optional[uuid.UUID] = None


@dataclass
class CheckoutResult:
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None
    report_id: Optional[uuid.UUID] = None


def case_study_payload(case_study: CaseStudy) -> Dict[str, Any]:
    """Serialize a stored case study for the report prompt."""
    return {
        "title": case_study.title,
        "repoUrl": case_study.repo_url,
        "summary": case_study.summary,
        "problemSummary": case_study.problem_summary,
        "solutionSummary": case_study.solution_summary,
        "techStack": case_study.tech_stack,
        "architectureOverview": case_study.architecture_overview,
        "coreFeatures": case_study.core_features,
        "challengesAndSolutions": case_study.challenges_and_solutions,
        "impact": case_study.impact,
        "proofData": case_study.proof_data,
        "keyFolders": case_study.key_folders,
        "totalCommits": case_study.total_commits,
        "activePeriod": case_study.active_period,
    }


class PaymentService:
    """Checkout creation and webhook reconciliation for VC report purchases."""

    def __init__(
        self,
        session: AsyncSession,
        generator: GenerationService,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.generator = generator
        self._transport = transport

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Verify, parse and apply one webhook delivery.

        Raises:
            ConfigurationError / InvalidSignatureError: Authenticity check failed.
            ValidationError: Payload shape or metadata is unusable.
        """
        verify_signature(raw_body, signature)
        payload = parse_payload(raw_body)
        return await self.process_event(payload)

    async def process_event(self, payload: WebhookPayload) -> WebhookResult:
        event_name = payload.meta.event_name
        order_id = payload.data.id

        if event_name not in HANDLED_EVENTS:
            logger.info(f"Ignoring webhook event {event_name} for order {order_id}")
            return WebhookResult(status="ignored")

        custom = payload.meta.custom_data
        if custom is None:
            logger.error(f"Webhook {event_name} for order {order_id} has no custom data")
            raise ValidationError("Missing metadata", field="meta.custom_data")

        raw_status = payload.data.attributes.status.lower()
        new_status = STATUS_MAP.get(raw_status)
        if new_status is None:
            raise ValidationError(f"Unsupported order status: {raw_status}", field="data.attributes.status")

        existing = await self._find_by_order_id(order_id)
        if existing is not None:
            return await self._apply_to_existing(existing, new_status)

        if await self.session.get(CaseStudy, custom.case_study_id) is None:
            raise ValidationError("Unknown case study in webhook metadata", field="meta.custom_data.case_study_id")
        if await self.session.get(User, custom.user_id) is None:
            raise ValidationError("Unknown user in webhook metadata", field="meta.custom_data.user_id")

        payment = await self._match_pending(custom.user_id, custom.case_study_id, custom.payment_id)
        attributes = payload.data.attributes
        try:
            if payment is not None:
                claimed_id = payment.id
                if await self._claim_pending(claimed_id, order_id, attributes, new_status):
                    logger.info(f"Order {order_id} matched pending payment {claimed_id}")
                else:
                    # Another delivery took this row between our read and our write
                    await self.session.rollback()
                    existing = await self._find_by_order_id(order_id)
                    if existing is not None:
                        logger.info(f"Order {order_id} was recorded by a concurrent delivery")
                        return WebhookResult(
                            status="already_processed",
                            payment_id=existing.id,
                            report_id=existing.report_id,
                        )
                    payment = None

            if payment is None:
                # No local pending row (e.g. abandoned checkout bookkeeping); record the order directly
                logger.info(f"Order {order_id} has no pending payment, creating one in status {new_status.value}")
                payment = Payment(
                    user_id=custom.user_id,
                    case_study_id=custom.case_study_id,
                    external_order_id=order_id,
                    amount=attributes.total,
                    currency=attributes.currency.upper(),
                    status=new_status.value,
                )
                self.session.add(payment)

            await self.session.commit()
        except IntegrityError:
            # A concurrent delivery of the same order committed first
            await self.session.rollback()
            logger.info(f"Order {order_id} was recorded by a concurrent delivery")
            existing = await self._find_by_order_id(order_id)
            return WebhookResult(
                status="already_processed",
                payment_id=existing.id if existing else None,
                report_id=existing.report_id if existing else None,
            )

        payment_id = payment.id
        report_id = None
        if new_status is PaymentStatus.PAID:
            report_id = await self._ensure_report(payment_id)

        return WebhookResult(status="processed", payment_id=payment_id, report_id=report_id)

    async def _find_by_order_id(self, order_id: str) -> Optional[Payment]:
        # Always read the committed row, not a copy cached earlier in this session
        result = await self.session.execute(
            select(Payment)
            .where(Payment.external_order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _claim_pending(
        self,
        payment_id: uuid.UUID,
        order_id: str,
        attributes: OrderAttributes,
        new_status: PaymentStatus,
    ) -> bool:
        """
        Attach an order to a pending row, only if no other order got there first.

        Returns:
            True if this call claimed the row.
        """
        result = await self.session.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.external_order_id.is_(None),
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(
                external_order_id=order_id,
                amount=attributes.total,
                currency=attributes.currency.upper(),
                status=new_status.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _apply_to_existing(self, payment: Payment, new_status: PaymentStatus) -> WebhookResult:
        """
        Handle a delivery for an order we have already recorded.

        The only transition allowed is leaving "pending"; a recorded "paid"
        is never reversed. The transition is a conditional update, so of two
        deliveries racing on the same row only one applies it. A paid order
        whose report is still missing (an earlier generation failed) gets
        another generation attempt.
        """
        payment_id = payment.id

        if payment.status == PaymentStatus.PENDING.value and new_status is not PaymentStatus.PENDING:
            result = await self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING.value)
                .values(status=new_status.value)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            if result.rowcount == 1:
                logger.info(f"Payment {payment_id} moves from pending to {new_status.value}")
                report_id = await self._ensure_report(payment_id) if new_status is PaymentStatus.PAID else None
                return WebhookResult(status="processed", payment_id=payment_id, report_id=report_id)

            # A concurrent delivery applied the transition; it also owns report generation
            current = await self.session.get(Payment, payment_id, populate_existing=True)
            logger.info(f"Payment {payment_id} was updated by a concurrent delivery")
            return WebhookResult(status="already_processed", payment_id=payment_id, report_id=current.report_id)

        report_id = payment.report_id
        if payment.status == PaymentStatus.PAID.value and report_id is None:
            logger.info(f"Replayed paid order for payment {payment_id} without report, retrying generation")
            report_id = await self._ensure_report(payment_id)

        logger.info(f"Duplicate webhook delivery for payment {payment_id}, nothing to apply")
        return WebhookResult(status="already_processed", payment_id=payment_id, report_id=report_id)

    async def _match_pending(
        self,
        user_id: uuid.UUID,
        case_study_id: uuid.UUID,
        payment_id: Optional[uuid.UUID],
    ) -> Optional[Payment]:
        """
        Find the local pending row an order belongs to.

        Prefers the payment id threaded through checkout custom data, then
        falls back to the most recent pending row for the (user, case study)
        pair.
        """
        base = select(Payment).where(
            Payment.user_id == user_id,
            Payment.case_study_id == case_study_id,
            Payment.status == PaymentStatus.PENDING.value,
            Payment.external_order_id.is_(None),
        )
        if payment_id is not None:
            result = await self.session.execute(base.where(Payment.id == payment_id))
            payment = result.scalar_one_or_none()
            if payment is not None:
                return payment

        result = await self.session.execute(base.order_by(Payment.created_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def _ensure_report(self, payment_id: uuid.UUID) -> Optional[uuid.UUID]:
        """
        Make sure the paid case study has its VC report and link it to the payment.

        Generation runs at most once per case study; if a report already
        exists it is only linked. Generation failures are logged as incidents
        and leave the payment paid without a report.

        Returns:
            The report id, or None if generation failed.
        """
        payment = await self.session.get(Payment, payment_id, populate_existing=True)
        case_study_id = payment.case_study_id
        user_id = payment.user_id

        report = await self._find_report(case_study_id)
        if report is None:
            case_study = await self.session.get(CaseStudy, case_study_id)
            if case_study is None:
                logger.error(f"Payment {payment_id} is paid but case study {case_study_id} no longer exists")
                return None

            stored = await RepoContextCache(self.session).get_context(case_study.repo_url)
            try:
                content = await self.generator.generate_vc_report(
                    case_study_payload(case_study),
                    stored.context_text if stored else "",
                    stored.repo_metadata if stored else {},
                )
            except (GenerationServiceError, GenerationParseError, ConfigurationError) as e:
                logger.error(
                    f"INCIDENT: VC report generation failed for paid payment {payment_id} "
                    f"(case study {case_study_id}): {e}",
                    exc_info=True,
                )
                return None

            report = VCReport(
                case_study_id=case_study_id,
                user_id=user_id,
                scores=content.scores_dict(),
                narrative_sections=content.narrative_dict(),
                verdict=content.verdict,
            )
            self.session.add(report)
            try:
                await self.session.commit()
                logger.info(f"Stored VC report {report.id} for case study {case_study_id}")
            except IntegrityError:
                # Another delivery stored the report first; link that one
                await self.session.rollback()
                report = await self._find_report(case_study_id)
                if report is None:
                    raise

        report_id = report.id
        payment = await self.session.get(Payment, payment_id)
        if payment.report_id is None:
            payment.report_id = report_id
            await self.session.commit()
        return report_id

    async def _find_report(self, case_study_id: uuid.UUID) -> Optional[VCReport]:
        result = await self.session.execute(select(VCReport).where(VCReport.case_study_id == case_study_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_checkout(self, user_id: uuid.UUID, case_study_id: uuid.UUID) -> CheckoutResult:
        """
        Start a VC report purchase.

        Returns the existing report instead of a checkout when the case study
        already has one. Otherwise records a pending payment and asks the
        processor for a checkout session carrying our identifiers.

        Raises:
            NotFoundError: Unknown case study.
            ConfigurationError: Processor credentials are not configured.
            ExternalServiceError: The processor rejected the request.
        """
        case_study = await self.session.get(CaseStudy, case_study_id)
        if case_study is None:
            raise NotFoundError("Case study")

        report = await self._find_report(case_study_id)
        if report is not None:
            logger.info(f"Report {report.id} already exists for case study {case_study_id}, skipping checkout")
            return CheckoutResult(report_id=report.id)

        if not (
            settings.LEMON_SQUEEZY_API_KEY
            and settings.LEMON_SQUEEZY_STORE_ID
            and settings.LEMON_SQUEEZY_VARIANT_ID
        ):
            logger.error("Lemon Squeezy is not configured; cannot create checkout")
            raise ConfigurationError("Payment processor is not configured")

        payment = Payment(
            user_id=user_id,
            case_study_id=case_study_id,
            status=PaymentStatus.PENDING.value,
        )
        self.session.add(payment)
        await self.session.flush()
        payment_id = payment.id

        body: Dict[str, Any] = {
            "data": {
                "type": "checkouts",
                "attributes": {
                    "checkout_data": {
                        "custom": {
                            "user_id": str(user_id),
                            "case_study_id": str(case_study_id),
                            "payment_id": str(payment_id),
                        },
                    },
                },
                "relationships": {
                    "store": {"data": {"type": "stores", "id": str(settings.LEMON_SQUEEZY_STORE_ID)}},
                    "variant": {"data": {"type": "variants", "id": str(settings.LEMON_SQUEEZY_VARIANT_ID)}},
                },
            }
        }
        if settings.PUBLIC_URL:
            body["data"]["attributes"]["product_options"] = {
                "redirect_url": f"{settings.PUBLIC_URL.rstrip('/')}/case-studies/{case_study.slug}",
            }

        headers = {
            "Accept": "application/vnd.api+json",
            "Content-Type": "application/vnd.api+json",
            "Authorization": f"Bearer {settings.LEMON_SQUEEZY_API_KEY}",
        }

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(DEFAULT_TIMEOUT_SECONDS), transport=self._transport
            ) as client:
                response = await client.post(f"{LEMON_SQUEEZY_API_BASE}/checkouts", json=body, headers=headers)
                response.raise_for_status()
                data = response.json()["data"]
                checkout_url = data["attributes"]["url"]
                session_id = str(data["id"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            await self.session.rollback()
            logger.error(f"Checkout creation failed for case study {case_study_id}: {e}")
            raise ExternalServiceError("payment", f"Checkout creation failed: {e}") from e

        payment.checkout_id = session_id
        await self.session.commit()
        logger.info(f"Created checkout {session_id} for payment {payment_id}")
        return CheckoutResult(checkout_url=checkout_url, session_id=session_id, payment_id=payment_id)
