"""Auth service: login and resolution of a session token into an AuthContext."""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from accounts_api.core.security import (
    ACCESS_TOKEN_TYPE,
    create_access_token,
    decode_token,
    verify_password,
)
from accounts_api.domain.auth_context import AuthContext
from accounts_api.domain.roles import Role
from accounts_api.errors import ForbiddenError, PartnerPendingValidationError, UnauthorizedError
from accounts_api.repositories.user import get_user_by_email, get_user_by_id
from accounts_api.schemas.event import EventType
from accounts_api.schemas.user import Token, User
from accounts_api.services.events import EventNotifier

logger = logging.getLogger(__name__)


def login(db: Session, notifier: EventNotifier, email: str, password: str) -> Token:
    """
    Authenticate user by email and password, return JWT access token.

    Unknown emails and wrong passwords produce the same error so the response
    does not reveal whether an account exists. A PARTNER that has not been
    validated yet gets a distinct error.

    Raises:
        UnauthorizedError: If email not found or password incorrect.
        PartnerPendingValidationError: If the account is an unvalidated PARTNER.
    """
    user = get_user_by_email(db, email)
    if not user:
        raise UnauthorizedError("Incorrect email or password")

    if Role(user.role) == Role.PARTNER and not user.is_valid:
        raise PartnerPendingValidationError("Partner account is pending validation")

    if not verify_password(password, user.password_hash):
        raise UnauthorizedError("Incorrect email or password")

    access_token = create_access_token(user.id, user.role, bool(user.is_valid))
    notifier.emit(
        EventType.USER_LOGGED_IN,
        {
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "is_valid": bool(user.is_valid),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info("User %s logged in", user.id)
    return Token(
        access_token=access_token,
        token_type="bearer",
        user=User.model_validate(user),
    )


def authenticate(db: Session, token: str) -> AuthContext:
    """
    Resolve a bearer token into the acting account.

    The role in the context comes from the stored account, not from the
    token claims.

    Raises:
        UnauthorizedError: If the token is invalid, expired, of the wrong type,
            or its subject no longer exists.
        ForbiddenError: If the subject is a PARTNER that is not validated.
    """
    payload = decode_token(token)
    if payload is None or payload.get("type") != ACCESS_TOKEN_TYPE:
        raise UnauthorizedError("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Could not validate credentials")

    user = get_user_by_id(db, str(user_id))
    if user is None:
        raise UnauthorizedError("User not found")

    actor = AuthContext.from_account(user)
    if actor.actor_role == Role.PARTNER and not actor.is_valid:
        raise ForbiddenError("Partner account is pending validation")
    return actor
