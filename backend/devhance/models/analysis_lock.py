import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow


class AnalysisLock(Base):
    """
    Per-user mutual exclusion row for the "produce a case study" operation.

    The unique constraint on owner_id is what makes acquisition atomic across
    worker processes. Rows are deleted when the analysis finishes; a row older
    than ANALYSIS_LOCK_STALE_SECONDS is presumed abandoned and reclaimed.
    """
    __tablename__ = "analysis_locks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )
    repo_url: Mapped[str] = mapped_column(String(512), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="locked", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AnalysisLock(owner_id={self.owner_id}, repo_url={self.repo_url}, created_at={self.created_at})>"
