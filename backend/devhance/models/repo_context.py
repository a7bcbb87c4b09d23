from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow


class RepoContext(Base):
    """
    Shared cache of a repository's compacted context, keyed by normalized URL.

    Written by every analysis (upsert) and read again when a VC report is
    generated for the same repository, so the report never re-fetches GitHub.
    """
    __tablename__ = "repo_contexts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    repo_url: Mapped[str] = mapped_column(String(512), unique=True, index=True, nullable=False)
    owner_login: Mapped[str] = mapped_column(String(100), nullable=False)
    repo_name: Mapped[str] = mapped_column(String(100), nullable=False)
    star_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    default_branch: Mapped[str | None] = mapped_column(String(100))
    context_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Resolved metadata snapshot, passed to the report prompt as repo metrics
    repo_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
