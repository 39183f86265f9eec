from sqlalchemy import Column, DateTime, String
from datetime import datetime
import enum
import pytz


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


class Lifecycle(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class TimestampMixin:
    """Mixin that provides created/updated timestamps and user info.

    Used on its own for append-only rows (balance history) that are never
    soft deleted.
    """
    # DateTime(timezone=True) ensures the timezone info is persisted in the database.
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)


class SoftDeleteMixin:
    """Mixin for soft-delete columns (deleted_at, deleted_by).

    Rows are never removed; ``lifecycle`` is the state callers should read
    instead of interpreting ``deleted_at`` themselves.
    """
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String, nullable=True)

    @property
    def lifecycle(self) -> Lifecycle:
        return Lifecycle.DELETED if self.deleted_at is not None else Lifecycle.ACTIVE

    def mark_deleted(self, user_id=None):
        self.deleted_at = utc_now()
        self.deleted_by = user_id

    def mark_restored(self):
        self.deleted_at = None
        self.deleted_by = None


class AuditMixin(TimestampMixin, SoftDeleteMixin):
    """Timestamps + soft-delete, used by every editable ledger row."""
    pass
