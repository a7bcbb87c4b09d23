import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict

from sqlalchemy import Text, DateTime, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow

if TYPE_CHECKING:
    from devhance.models.case_study import CaseStudy


class VCReport(Base):
    """
    Paid investor-style report for a case study.

    case_study_id is unique: at most one report per case study, which is
    the idempotency boundary for report generation.
    """
    __tablename__ = "vc_reports"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    case_study_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("case_studies.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    scores: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    narrative_sections: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    verdict: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    case_study: Mapped["CaseStudy"] = relationship("CaseStudy", back_populates="vc_report")
