import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import String, Text, Integer, DateTime, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow

if TYPE_CHECKING:
    from devhance.models.user import User
    from devhance.models.vc_report import VCReport


class CaseStudy(Base):
    """
    AI-written case study for one repository.

    repo_url holds the normalized URL and is unique: one case study per
    repository. Owned by its creator, readable publicly by slug.
    """
    __tablename__ = "case_studies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    repo_url: Mapped[str] = mapped_column(String(512), unique=True, index=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True, nullable=False)

    # Generated content
    title: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    summary: Mapped[str] = mapped_column(Text, default="", nullable=False)
    problem_summary: Mapped[str] = mapped_column(Text, default="", nullable=False)
    solution_summary: Mapped[str] = mapped_column(Text, default="", nullable=False)
    tech_stack: Mapped[str] = mapped_column(Text, default="", nullable=False)
    architecture_overview: Mapped[str] = mapped_column(Text, default="", nullable=False)
    core_features: Mapped[List[Any]] = mapped_column(JSON, default=list, nullable=False)
    challenges_and_solutions: Mapped[str] = mapped_column(Text, default="", nullable=False)
    impact: Mapped[str] = mapped_column(Text, default="", nullable=False)
    proof_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    key_folders: Mapped[List[Any]] = mapped_column(JSON, default=list, nullable=False)

    # Repository facts from the metadata resolver
    total_commits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active_period: Mapped[str] = mapped_column(String(100), default="Unknown", nullable=False)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    owner: Mapped["User"] = relationship("User", back_populates="case_studies")
    vc_report: Mapped[Optional["VCReport"]] = relationship(
        "VCReport",
        back_populates="case_study",
        uselist=False,
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<CaseStudy(id={self.id}, slug={self.slug}, repo_url={self.repo_url})>"
