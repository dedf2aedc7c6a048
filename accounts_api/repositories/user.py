from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from accounts_api.db.models.user import User as UserModel
from accounts_api.errors import DuplicateResourceError


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    """Unwrap enum members so they bind as their stored string value."""
    return {key: (value.value if isinstance(value, Enum) else value) for key, value in values.items()}


def _active(db: Session) -> Query:
    """Base query over accounts that have not been soft-deleted."""
    return db.query(UserModel).filter(UserModel.deleted_at.is_(None))


def get_user_by_id(db: Session, user_id: str) -> UserModel | None:
    """Get a non-deleted user by ID."""
    return _active(db).filter(UserModel.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> UserModel | None:
    """Get a non-deleted user by email."""
    return _active(db).filter(UserModel.email == email).first()


def create_user(db: Session, **fields: Any) -> UserModel:
    """Insert a new user. Pure data access - no business logic.

    Raises:
        DuplicateResourceError: If the active-email unique index is violated.
    """
    db_user = UserModel(**_plain(fields))
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateResourceError("Email already registered") from exc
    db.refresh(db_user)
    return db_user


def conditional_update(
    db: Session, user_id: str, values: dict[str, Any], **criteria: Any
) -> UserModel | None:
    """
    Atomically update a non-deleted user matching ``criteria``.

    The match and the write happen in a single UPDATE statement, so of two
    concurrent callers racing on the same predicate exactly one sees a match.

    Returns:
        The refreshed user, or None when no row matched the predicate.

    Raises:
        DuplicateResourceError: If the write violates the active-email unique index.
    """
    values = {"updated_at": datetime.now(timezone.utc), **_plain(values)}
    query = _active(db).filter(UserModel.id == user_id).filter_by(**_plain(criteria))
    try:
        matched = query.update(values, synchronize_session=False)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateResourceError("Email already registered") from exc

    if not matched:
        return None
    return db.get(UserModel, user_id, populate_existing=True)


def count_users(db: Session, **criteria: Any) -> int:
    """Count non-deleted users matching the given column values."""
    return _active(db).filter_by(**_plain(criteria)).count()


def list_users(db: Session, **criteria: Any) -> list[UserModel]:
    """List non-deleted users matching the given column values, sorted by name."""
    return _active(db).filter_by(**_plain(criteria)).order_by(UserModel.name).all()


def get_all_users_paginated(
    db: Session, page: int = 1, page_size: int = 100, **criteria: Any
) -> tuple[list[UserModel], int]:
    """
    Get non-deleted users with pagination, sorted by name for stable pagination.

    Args:
        page: Page number (1-indexed)
        page_size: Number of items per page
        criteria: Optional column equality filters (role, zone_of_responsibility, ...)

    Returns:
        Tuple of (list of users, total count)
    """
    query = _active(db).filter_by(**_plain(criteria))
    total = query.count()
    skip = (page - 1) * page_size
    users = query.order_by(UserModel.name, UserModel.id).offset(skip).limit(page_size).all()
    return users, total
