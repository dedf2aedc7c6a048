from __future__ import annotations

from enum import Enum

from accounts_api.domain.roles import Role


class AccountState(str, Enum):
    PENDING_VALIDATION = "PENDING_VALIDATION"
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


def state_of(*, role: Role | str, is_valid: bool, deleted_at) -> AccountState:
    """Derive the lifecycle state of an account.

    DELETED is terminal and wins over everything else. Only PARTNER accounts
    can be pending validation; for every other role ``is_valid`` is ignored.
    """
    if deleted_at is not None:
        return AccountState.DELETED
    if Role(role) == Role.PARTNER and not is_valid:
        return AccountState.PENDING_VALIDATION
    return AccountState.ACTIVE


def initial_validity(role: Role) -> bool:
    """New PARTNER accounts start unvalidated; every other role is valid."""
    return role != Role.PARTNER
