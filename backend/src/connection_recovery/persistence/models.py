"""SQLAlchemy models for pending upload work."""
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UploadStatus:
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    RECOVERY_SKIPPED = "recovery_skipped"


class PendingUploadModel(Base):
    """A file waiting to be pushed to a cloud-storage provider.

    Rows stay ``pending`` while the provider connection is failing; the
    requeuer picks them up, oldest first, once it recovers.
    """

    __tablename__ = 'pending_uploads'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Ownership and destination
    principal_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    local_path: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default=UploadStatus.PENDING, index=True)

    # Last failure, as classified
    error_kind: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    skipped_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Retry limits
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    recovery_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_recovery_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now
    )

    __table_args__ = (
        Index('idx_pending_owner_provider_status', 'principal_id', 'provider', 'status'),
    )

    def __repr__(self) -> str:
        return (
            f"<PendingUploadModel(id={self.id}, principal_id='{self.principal_id}', "
            f"provider='{self.provider}', status='{self.status}')>"
        )
