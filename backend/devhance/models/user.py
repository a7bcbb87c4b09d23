"""User model for authentication."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devhance.db.base import Base
from devhance.utils.timeutils import utcnow

if TYPE_CHECKING:
    from devhance.models.case_study import CaseStudy
    from devhance.models.payment import Payment


class User(Base):
    """
    User model representing authenticated users.

    Identity is provisioned by the frontend auth provider; the backend
    receives JWT tokens and stores only what it needs to own records.

    Attributes:
        id: Primary key (UUID)
        email: User's email (unique, required)
        name: User's display name
        avatar_url: Profile picture URL
        github_id: GitHub user ID, when signed in through GitHub

    Relationships:
        case_studies: Case studies generated by this user
        payments: Checkout attempts and completed orders
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(String(512))
    github_id: Mapped[str | None] = mapped_column(String(100), unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    case_studies: Mapped[list["CaseStudy"]] = relationship(
        "CaseStudy",
        back_populates="owner",
        cascade="all, delete-orphan"
    )

    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
