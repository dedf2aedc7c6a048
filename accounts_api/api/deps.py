from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from accounts_api.db import SessionLocal
from accounts_api.domain.auth_context import AuthContext
from accounts_api.services.auth import authenticate
from accounts_api.services.events import EventNotifier

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier(request: Request) -> EventNotifier:
    """The process-wide notifier created by the application lifespan."""
    return request.app.state.notifier


def get_current_actor(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Resolve the bearer token into the authenticated actor."""
    return authenticate(db, token)


def get_optional_actor(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> AuthContext | None:
    """Like get_current_actor, but anonymous callers yield None."""
    if token is None:
        return None
    return authenticate(db, token)
