"""Startup provisioning of the single SUPER_ADMIN account."""

import logging

from sqlalchemy.orm import Session

from accounts_api.core.config import settings
from accounts_api.core.security import get_password_hash
from accounts_api.db.models.user import User as UserModel
from accounts_api.domain.roles import Role
from accounts_api.repositories.user import create_user, get_user_by_email
from accounts_api.schemas.event import EventType
from accounts_api.services.events import EventNotifier
from accounts_api.services.user import snapshot

logger = logging.getLogger(__name__)


def ensure_super_admin(db: Session, notifier: EventNotifier) -> UserModel | None:
    """
    Create the SUPER_ADMIN for SUPER_ADMIN_EMAIL unless it already exists.

    An existing account is never modified. Failures are logged and swallowed
    so that a broken bootstrap does not prevent the application from starting.

    Returns:
        The newly created account, or None if nothing was created.
    """
    email = settings.super_admin_email
    if not email:
        logger.error("SUPER_ADMIN_EMAIL is not configured, skipping super admin bootstrap")
        return None

    try:
        existing = get_user_by_email(db, email)
        if existing:
            if existing.role != Role.SUPER_ADMIN.value:
                logger.warning(
                    "Account %s already exists with role %s, not creating a super admin",
                    email,
                    existing.role,
                )
            else:
                logger.info("Super admin already exists")
            return None

        admin = create_user(
            db,
            email=email,
            name=settings.super_admin_name,
            password_hash=get_password_hash(settings.super_admin_password),
            role=Role.SUPER_ADMIN,
            is_valid=True,
        )
    except Exception:
        db.rollback()
        logger.exception("Super admin bootstrap failed")
        return None

    logger.info("Super admin %s created", admin.id)
    notifier.emit(EventType.ADMIN_CREATED, snapshot(admin))
    return admin
