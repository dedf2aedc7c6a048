import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, text

from accounts_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(32), nullable=False, index=True)
    phone = Column(String(64), nullable=True)
    address = Column(String(255), nullable=True)
    image = Column(String(512), nullable=True)
    company_name = Column(String(255), nullable=True)
    position_gps = Column(String(64), nullable=True)
    zone_of_responsibility = Column(String(64), nullable=True, index=True)
    is_valid = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Email is unique among accounts that have not been soft-deleted.
        Index(
            "uq_users_email_active",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
