"""Account lifecycle: create, update, validate/invalidate, soft-delete and scoped reads.

Every mutating operation follows the same order: locate the target
(NotFoundError wins when the id does not resolve), authorize through the
permission matrix, check business invariants, persist with a conditional
write, then emit the matching domain event. Event emission never fails the
operation.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import accounts_api.repositories.user as user_repo
from accounts_api.core.config import settings
from accounts_api.core.security import get_password_hash, validate_password
from accounts_api.db.models.user import User as UserModel
from accounts_api.domain.account_state import initial_validity
from accounts_api.domain.auth_context import AuthContext
from accounts_api.domain.permissions import (
    Action,
    Scope,
    Target,
    ensure_authorized,
    scope_for,
)
from accounts_api.domain.roles import ZONE_INHERITING_ROLES, Role
from accounts_api.errors import (
    DomainValidationError,
    DuplicateResourceError,
    ForbiddenError,
    NotFoundError,
)
from accounts_api.schemas.event import EventType
from accounts_api.schemas.user import ClientCreate, User, UserCreate, UserUpdate
from accounts_api.services.events import EventNotifier

logger = logging.getLogger(__name__)

_DELETE_DENIED_MESSAGES = {
    Role.SUPER_ADMIN: "You cannot delete another Super Admin.",
    Role.ADMIN: "You can only delete Assistant Admin, Partner or Driver users.",
    Role.ADMIN_ASSISTANT: "You can only delete Partner or Driver users.",
    Role.PARTNER: "You can only delete your own Client users.",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot(user: UserModel) -> dict[str, Any]:
    """JSON-ready view of an account, without its secret."""
    return User.model_validate(user).model_dump(mode="json")


def _parse_user_id(user_id: str) -> str:
    try:
        return str(uuid.UUID(str(user_id)))
    except ValueError:
        raise DomainValidationError("Invalid user ID") from None


def _get_active_user(db: Session, user_id: str) -> UserModel:
    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_password(password: str) -> None:
    is_valid, error_message = validate_password(password)
    if not is_valid:
        raise DomainValidationError(error_message)


def _insert_account(
    db: Session,
    actor: AuthContext | None,
    role: Role,
    data: ClientCreate,
    password: str,
    zone: str | None,
) -> UserModel:
    """
    Persist a new account with its role forced to ``role``.

    Whatever role the request carried is discarded here.

    Raises:
        DuplicateResourceError: If an active account already uses the email.
    """
    if user_repo.get_user_by_email(db, data.email):
        raise DuplicateResourceError("Email already registered")

    profile = data.model_dump(exclude={"role", "password", "zone_of_responsibility"})
    user = user_repo.create_user(
        db,
        **profile,
        password_hash=get_password_hash(password),
        role=role,
        zone_of_responsibility=zone,
        is_valid=initial_validity(role),
        created_by=actor.actor_id if actor is not None else None,
    )
    logger.info("Created %s account %s", role.value, user.id)
    return user


def _zone_for(role: Role, actor: AuthContext | None, data: ClientCreate) -> str | None:
    if role in ZONE_INHERITING_ROLES:
        return actor.zone_of_responsibility if actor is not None else None
    return data.zone_of_responsibility


def create_admin(
    db: Session, notifier: EventNotifier, actor: AuthContext, user_data: UserCreate
) -> UserModel:
    """Create an ADMIN account. Only a SUPER_ADMIN may do this."""
    ensure_authorized(
        actor, Action.CREATE, Target(role=Role.ADMIN), "Only SUPER ADMIN can create another ADMIN."
    )
    _check_password(user_data.password)
    user = _insert_account(
        db, actor, Role.ADMIN, user_data, user_data.password, _zone_for(Role.ADMIN, actor, user_data)
    )
    notifier.emit(EventType.ADMIN_CREATED, snapshot(user))
    return user


def create_admin_assistant(
    db: Session, notifier: EventNotifier, actor: AuthContext, user_data: UserCreate
) -> UserModel:
    """
    Create an ADMIN_ASSISTANT account on behalf of an ADMIN.

    The assistant inherits the creating admin's zone of responsibility, and
    the event carries the initial secret so it can be delivered out of band.
    """
    ensure_authorized(
        actor,
        Action.CREATE,
        Target(role=Role.ADMIN_ASSISTANT),
        "Only ADMIN can create an ADMIN_ASSISTANT.",
    )
    _check_password(user_data.password)
    role = Role.ADMIN_ASSISTANT
    user = _insert_account(
        db, actor, role, user_data, user_data.password, _zone_for(role, actor, user_data)
    )
    notifier.emit(
        EventType.ADMIN_ASSISTANT_CREATED,
        {
            "assistant_id": user.id,
            "assistant_email": user.email,
            "assistant_name": user.name,
            "admin_creator_id": actor.actor_id,
            "admin_creator_email": actor.email,
            "password": user_data.password,
        },
    )
    return user


def create_partner(
    db: Session, notifier: EventNotifier, actor: AuthContext | None, user_data: UserCreate
) -> UserModel:
    """
    Self-service PARTNER signup. The account starts pending validation.

    Partners have no zone of responsibility; a requested zone is discarded.
    """
    ensure_authorized(actor, Action.CREATE, Target(role=Role.PARTNER))
    _check_password(user_data.password)
    user = _insert_account(
        db,
        actor,
        Role.PARTNER,
        user_data,
        user_data.password,
        None,
    )
    notifier.emit(
        EventType.PARTNER_CREATED,
        {
            "user_id": user.id,
            "email": user.email,
            "name": user.name,
            "role": Role.PARTNER.value,
            "created_at": _now().isoformat(),
            "phone": user.phone,
            "company": user.company_name,
        },
    )
    return user


def create_client(
    db: Session, notifier: EventNotifier, actor: AuthContext, client_data: ClientCreate
) -> UserModel:
    """Create a CLIENT owned by the calling PARTNER, with the onboarding secret."""
    ensure_authorized(
        actor, Action.CREATE, Target(role=Role.CLIENT), "Only PARTNER can create a CLIENT."
    )
    user = _insert_account(
        db, actor, Role.CLIENT, client_data, settings.client_default_password, None
    )
    notifier.emit(
        EventType.CLIENT_CREATED,
        {
            "client_id": user.id,
            "client_email": user.email,
            "client_name": user.name,
            "partner_id": actor.actor_id,
        },
    )
    return user


def create_driver(
    db: Session, notifier: EventNotifier, actor: AuthContext, user_data: UserCreate
) -> UserModel:
    """Create a DRIVER in the zone of the calling ADMIN or ADMIN_ASSISTANT."""
    ensure_authorized(
        actor,
        Action.CREATE,
        Target(role=Role.DRIVER),
        "Only ADMIN or ADMIN_ASSISTANT can create a DRIVER.",
    )
    _check_password(user_data.password)
    role = Role.DRIVER
    user = _insert_account(
        db, actor, role, user_data, user_data.password, _zone_for(role, actor, user_data)
    )
    notifier.emit(
        EventType.DRIVER_CREATED,
        {
            "driver_id": user.id,
            "driver_email": user.email,
            "driver_name": user.name,
            "creator_id": actor.actor_id,
            "creator_email": actor.email,
            "password": user_data.password,
            "created_at": _now().isoformat(),
        },
    )
    return user


def update_user(
    db: Session,
    notifier: EventNotifier,
    actor: AuthContext,
    user_id: str,
    user_data: UserUpdate,
) -> UserModel:
    """
    Apply a profile patch to an account.

    - The patch can never touch role, zone of responsibility or validity
    - Email uniqueness among active accounts is re-checked when it changes

    Raises:
        DomainValidationError: If the id is malformed
        NotFoundError: If the account doesn't exist or is soft-deleted
        ForbiddenError: If the permission matrix denies the update
        DuplicateResourceError: If the new email is already taken
    """
    user_id = _parse_user_id(user_id)
    user = _get_active_user(db, user_id)

    ensure_authorized(
        actor,
        Action.UPDATE,
        Target.of(user),
        f"You are not authorized to update this {Role(user.role).value} account.",
    )

    values = {
        field: value
        for field, value in user_data.model_dump(exclude_unset=True).items()
        if value is not None
    }

    if "email" in values and values["email"] != user.email:
        existing_user = user_repo.get_user_by_email(db, values["email"])
        if existing_user:
            raise DuplicateResourceError("Email already registered")

    updated = user_repo.conditional_update(db, user_id, values)
    if updated is None:
        raise NotFoundError("User not found")

    notifier.emit(EventType.USER_UPDATED, snapshot(updated))
    return updated


def update_own_profile(
    db: Session, notifier: EventNotifier, actor: AuthContext, user_data: UserUpdate
) -> UserModel:
    """Update the calling actor's own account."""
    return update_user(db, notifier, actor, actor.actor_id, user_data)


def _set_partner_validity(
    db: Session,
    notifier: EventNotifier,
    actor: AuthContext,
    partner_id: str,
    is_valid: bool,
) -> UserModel:
    action = Action.VALIDATE if is_valid else Action.INVALIDATE
    partner_id = _parse_user_id(partner_id)
    partner = _get_active_user(db, partner_id)

    if Role(partner.role) != Role.PARTNER:
        raise ForbiddenError(f"Only PARTNER users can be {action.value}d.")
    ensure_authorized(
        actor,
        action,
        Target.of(partner),
        f"Only ADMIN or ADMIN_ASSISTANT can {action.value} partners.",
    )

    updated = user_repo.conditional_update(
        db, partner_id, {"is_valid": is_valid}, role=Role.PARTNER
    )
    if updated is None:
        raise NotFoundError(f"Partner with ID {partner_id} not found.")

    logger.info("Partner %s %sd by %s", partner_id, action.value, actor.actor_id)
    event_type = EventType.PARTNER_VALIDATED if is_valid else EventType.PARTNER_INVALIDATED
    notifier.emit(event_type, snapshot(updated))
    return updated


def validate_partner(
    db: Session, notifier: EventNotifier, actor: AuthContext, partner_id: str
) -> UserModel:
    """Approve a PARTNER account so it can log in."""
    return _set_partner_validity(db, notifier, actor, partner_id, True)


def invalidate_partner(
    db: Session, notifier: EventNotifier, actor: AuthContext, partner_id: str
) -> UserModel:
    """Revoke a PARTNER's approval; it can no longer log in or use its tokens."""
    return _set_partner_validity(db, notifier, actor, partner_id, False)


def _deletion_failed(notifier: EventNotifier, user_id: str) -> NotFoundError:
    notifier.emit(
        EventType.USER_DELETION_FAILED,
        {"user_id": user_id, "timestamp": _now().isoformat()},
    )
    return NotFoundError(f"User with ID {user_id} not found.")


def soft_delete_user(
    db: Session, notifier: EventNotifier, actor: AuthContext, user_id: str
) -> UserModel:
    """
    Soft-delete an account by setting ``deleted_at``.

    Deletion is terminal and not idempotent: deleting an account that is
    already deleted is a NotFoundError, and only one of two concurrent
    deletions can succeed.

    Raises:
        NotFoundError: If the account doesn't exist or is already deleted
        ForbiddenError: If the actor may not delete accounts of that role
        SQLAlchemyError: Re-raised after emitting CRITICAL_ERROR
    """
    user_id = _parse_user_id(user_id)
    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise _deletion_failed(notifier, user_id)

    ensure_authorized(
        actor,
        Action.DELETE,
        Target.of(user),
        _DELETE_DENIED_MESSAGES.get(
            actor.actor_role, "You are not authorized to delete any users."
        ),
    )

    try:
        deleted = user_repo.conditional_update(db, user_id, {"deleted_at": _now()})
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Soft delete of user %s failed", user_id)
        notifier.emit(
            EventType.CRITICAL_ERROR,
            {
                "action": "USER_SOFT_REMOVE",
                "user_id": user_id,
                "error": str(e),
                "timestamp": _now().isoformat(),
            },
        )
        raise

    if deleted is None:
        raise _deletion_failed(notifier, user_id)

    logger.info("User %s soft-deleted by %s", user_id, actor.actor_id)
    notifier.emit(EventType.USER_DELETED, snapshot(deleted))
    return deleted


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _list_criteria(actor: AuthContext, role: Role) -> dict[str, Any]:
    """Translate the LIST scope granted on ``role`` into query filters."""
    scope = scope_for(actor, Action.LIST, role)
    if scope is None:
        raise ForbiddenError(f"You are not allowed to list {role.value} accounts")
    if scope is Scope.SAME_ZONE:
        if not actor.zone_of_responsibility:
            raise DomainValidationError("Your zone of responsibility is missing.")
        return {"zone_of_responsibility": actor.zone_of_responsibility}
    if scope is Scope.OWNED:
        return {"created_by": actor.actor_id}
    return {}


def get_user(db: Session, actor: AuthContext, user_id: str) -> UserModel:
    """
    Get a user by ID with authorization checks.

    Raises:
        NotFoundError: If user doesn't exist
        ForbiddenError: If the actor may not read this account
    """
    user_id = _parse_user_id(user_id)
    user = _get_active_user(db, user_id)
    ensure_authorized(
        actor, Action.READ, Target.of(user), "You are not allowed to access this user"
    )
    return user


def get_user_by_email(db: Session, actor: AuthContext, email: str) -> UserModel:
    user = user_repo.get_user_by_email(db, email)
    if not user:
        raise NotFoundError(f"User with email {email} not found.")
    ensure_authorized(
        actor, Action.READ, Target.of(user), "You are not allowed to access this user"
    )
    return user


def get_all_users(
    db: Session,
    actor: AuthContext,
    page: int = 1,
    page_size: int = 100,
    role: Role | None = None,
) -> tuple[list[UserModel], int]:
    """
    Get users with pagination, optionally restricted to one role.

    Without a role filter the actor needs unrestricted LIST rights on every
    role (SUPER_ADMIN, ADMIN).

    Returns:
        Tuple of (list of users, total count)
    """
    if role is not None:
        criteria = {"role": role, **_list_criteria(actor, role)}
    else:
        if any(scope_for(actor, Action.LIST, r) is not Scope.ANY for r in Role):
            raise ForbiddenError("Not enough permissions")
        criteria = {}
    return user_repo.get_all_users_paginated(db, page=page, page_size=page_size, **criteria)


def get_users_by_role(db: Session, actor: AuthContext, role: Role) -> list[UserModel]:
    """List active accounts of ``role`` visible to the actor."""
    return user_repo.list_users(db, role=role, **_list_criteria(actor, role))


def get_partner_clients(db: Session, actor: AuthContext) -> list[UserModel]:
    """CLIENT accounts visible to the actor; a PARTNER sees only its own."""
    return get_users_by_role(db, actor, Role.CLIENT)


def get_users_by_role_in_my_zone(
    db: Session, actor: AuthContext, role: Role
) -> list[UserModel]:
    """
    Accounts of ``role`` in the actor's zone of responsibility.

    The actor still needs LIST rights on ``role``; a PARTNER only sees the
    clients it created.

    Raises:
        ForbiddenError: If the actor may not list accounts of ``role``
        DomainValidationError: If the actor has no zone of responsibility
    """
    scope = scope_for(actor, Action.LIST, role)
    if scope is None:
        raise ForbiddenError(f"You are not allowed to list {role.value} accounts")
    if not actor.zone_of_responsibility:
        raise DomainValidationError("Your zone of responsibility is missing.")

    criteria = {"role": role, "zone_of_responsibility": actor.zone_of_responsibility}
    if scope is Scope.OWNED:
        criteria["created_by"] = actor.actor_id
    return user_repo.list_users(db, **criteria)


def get_user_role_counts(db: Session, actor: AuthContext) -> dict[str, int]:
    return {
        "drivers": user_repo.count_users(
            db, role=Role.DRIVER, **_list_criteria(actor, Role.DRIVER)
        ),
        "admin_assistants": user_repo.count_users(
            db, role=Role.ADMIN_ASSISTANT, **_list_criteria(actor, Role.ADMIN_ASSISTANT)
        ),
    }


def get_partner_counts(db: Session, actor: AuthContext) -> dict[str, int]:
    criteria = {"role": Role.PARTNER, **_list_criteria(actor, Role.PARTNER)}
    total = user_repo.count_users(db, **criteria)
    active = user_repo.count_users(db, is_valid=True, **criteria)
    return {"total": total, "active": active, "inactive": total - active}
