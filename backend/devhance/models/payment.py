import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow

if TYPE_CHECKING:
    from devhance.models.user import User


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Payment(Base):
    """
    One checkout attempt / processor order for a VC report.

    Created pending when checkout starts (external_order_id still null) and
    moved to paid/failed only by a verified webhook. external_order_id is
    unique and is the webhook deduplication key. report_id is set once,
    after the report exists, and never cleared.
    """
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    case_study_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("case_studies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    external_order_id: Mapped[str | None] = mapped_column(String(100), unique=True, index=True)
    # Amount in the smallest currency unit, as reported by the processor
    amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, nullable=False)
    # Processor checkout id, kept for support lookups
    checkout_id: Mapped[str | None] = mapped_column(String(100))
    report_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("vc_reports.id", ondelete="SET NULL"),
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, status={self.status}, "
            f"external_order_id={self.external_order_id}, report_id={self.report_id})>"
        )
