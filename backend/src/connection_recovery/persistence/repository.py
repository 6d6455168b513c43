"""Work store backed by SQLAlchemy."""
import logging
import os
from datetime import datetime

from sqlalchemy import Engine, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from ..types import ErrorKind
from .models import Base, PendingUploadModel, UploadStatus

logger = logging.getLogger(__name__)


class UploadWorkItem:
    """Detached view of a pending upload row, as handed to the requeuer."""

    def __init__(self, model: PendingUploadModel, store: "SQLAlchemyWorkStore"):
        self.id = model.id
        self.principal_id = model.principal_id
        self.provider = model.provider
        self.local_path = model.local_path
        self.created_at = model.created_at
        self.error_kind = ErrorKind.parse(model.error_kind)
        self.retry_count = model.retry_count
        self.max_retries = model.max_retries
        self.recovery_attempts = model.recovery_attempts
        self.max_recovery_attempts = model.max_recovery_attempts
        self._store = store

    def local_source_exists(self) -> bool:
        return os.path.exists(self.local_path)

    def can_be_retried(self) -> bool:
        return (
            self.retry_count < self.max_retries
            and self.recovery_attempts < self.max_recovery_attempts
        )

    def mark_recovery_skipped(self, reason: str) -> None:
        self._store.mark_recovery_skipped(self.id, reason)

    def __repr__(self) -> str:
        return f"<UploadWorkItem(id={self.id}, provider='{self.provider}')>"


class SQLAlchemyWorkStore:
    """Pending uploads stored in a relational database.

    Each call opens its own short-lived session, so work items can be
    used across worker boundaries.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def add_pending(
        self,
        principal_id: str | int,
        provider: str,
        local_path: str,
        created_at: datetime | None = None,
        error_kind: ErrorKind | None = None
    ) -> int:
        """Queue a new upload and return its id."""
        model = PendingUploadModel(
            principal_id=str(principal_id),
            provider=provider,
            local_path=local_path,
            status=UploadStatus.PENDING,
            error_kind=error_kind.value if error_kind else None,
        )
        if created_at is not None:
            model.created_at = created_at
        with self.session_factory() as session:
            session.add(model)
            session.commit()
            return model.id

    def find_pending(
        self,
        principal_id: str | int,
        provider: str,
        recoverable_kinds: frozenset[ErrorKind]
    ) -> list[UploadWorkItem]:
        """Pending, retryable uploads for the principal and provider, oldest first."""
        stmt = (
            select(PendingUploadModel)
            .where(
                PendingUploadModel.principal_id == str(principal_id),
                PendingUploadModel.provider == provider,
                PendingUploadModel.status == UploadStatus.PENDING,
                or_(
                    PendingUploadModel.error_kind.is_(None),
                    PendingUploadModel.error_kind.in_([kind.value for kind in recoverable_kinds]),
                ),
                PendingUploadModel.retry_count < PendingUploadModel.max_retries,
                PendingUploadModel.recovery_attempts < PendingUploadModel.max_recovery_attempts,
            )
            .order_by(PendingUploadModel.created_at.asc(), PendingUploadModel.id.asc())
        )
        with self.session_factory() as session:
            return [UploadWorkItem(model, self) for model in session.scalars(stmt)]

    def most_recent_error_kind(self, principal_id: str | int, provider: str) -> ErrorKind | None:
        stmt = (
            select(PendingUploadModel.error_kind)
            .where(
                PendingUploadModel.principal_id == str(principal_id),
                PendingUploadModel.provider == provider,
                PendingUploadModel.status.in_([UploadStatus.PENDING, UploadStatus.FAILED]),
                PendingUploadModel.error_kind.is_not(None),
            )
            .order_by(PendingUploadModel.updated_at.desc(), PendingUploadModel.id.desc())
            .limit(1)
        )
        with self.session_factory() as session:
            return ErrorKind.parse(session.scalars(stmt).first())

    def record_failure(self, upload_id: int, error_kind: ErrorKind, message: str) -> None:
        """Keep the upload pending but remember why its last attempt failed."""
        stmt = (
            update(PendingUploadModel)
            .where(PendingUploadModel.id == upload_id)
            .values(
                error_kind=error_kind.value,
                last_error=message,
                retry_count=PendingUploadModel.retry_count + 1,
            )
        )
        self._execute(stmt)

    def record_recovery_attempt(self, upload_id: int) -> None:
        stmt = (
            update(PendingUploadModel)
            .where(PendingUploadModel.id == upload_id)
            .values(recovery_attempts=PendingUploadModel.recovery_attempts + 1)
        )
        self._execute(stmt)

    def mark_recovery_skipped(self, upload_id: int, reason: str) -> None:
        stmt = (
            update(PendingUploadModel)
            .where(PendingUploadModel.id == upload_id)
            .values(status=UploadStatus.RECOVERY_SKIPPED, skipped_reason=reason)
        )
        self._execute(stmt)
        logger.info(f"Upload {upload_id} skipped during recovery: {reason}")

    def get(self, upload_id: int) -> PendingUploadModel | None:
        with self.session_factory() as session:
            return session.get(PendingUploadModel, upload_id)

    def _execute(self, stmt) -> None:
        with self.session_factory() as session:
            try:
                session.execute(stmt)
                session.commit()
            except Exception:
                session.rollback()
                raise
