"""Permission matrix: which actor role may perform which action on which target.

The matrix is plain immutable data keyed by ``(action, target role)``; each
entry maps an actor role (``None`` for an anonymous caller) to the *scope*
within which the action is allowed. ``authorize`` is a pure function over it
and performs no I/O, so it is evaluated once per operation after the target
has been loaded.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from accounts_api.domain.auth_context import AuthContext
from accounts_api.domain.roles import Role
from accounts_api.errors import ForbiddenError


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VALIDATE = "validate"
    INVALIDATE = "invalidate"
    READ = "read"
    LIST = "list"


class Scope(str, Enum):
    """Relation the target must have with the actor for the rule to apply."""

    ANY = "any"
    SELF = "self"
    OWNED = "owned"  # target.created_by == actor id
    SAME_ZONE = "same_zone"


@dataclass(frozen=True, slots=True)
class Target:
    """What the matrix needs to know about the account being acted upon."""

    role: Role
    account_id: str | None = None
    created_by: str | None = None
    zone_of_responsibility: str | None = None

    @classmethod
    def of(cls, account) -> Target:
        return cls(
            role=Role(account.role),
            account_id=account.id,
            created_by=account.created_by,
            zone_of_responsibility=account.zone_of_responsibility,
        )


_R = Role
_ANY = Scope.ANY
_STAFF_READ = {_R.SUPER_ADMIN: _ANY, _R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: Scope.SAME_ZONE}


def _freeze(rules: dict) -> Mapping:
    return MappingProxyType({key: MappingProxyType(dict(value)) for key, value in rules.items()})


_CREATE = {
    _R.SUPER_ADMIN: {},
    _R.ADMIN: {_R.SUPER_ADMIN: _ANY},
    _R.ADMIN_ASSISTANT: {_R.ADMIN: _ANY},
    # Self-service signup: anyone, authenticated or not.
    _R.PARTNER: {None: _ANY, **{role: _ANY for role in _R}},
    _R.CLIENT: {_R.PARTNER: _ANY},
    _R.DRIVER: {_R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: _ANY},
}

_UPDATE = {
    _R.SUPER_ADMIN: {_R.SUPER_ADMIN: Scope.SELF},
    _R.ADMIN: {_R.SUPER_ADMIN: _ANY, _R.ADMIN: Scope.SELF},
    _R.ADMIN_ASSISTANT: {_R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: Scope.SELF},
    _R.PARTNER: {_R.ADMIN: _ANY, _R.PARTNER: Scope.SELF},
    # Any authenticated actor, but a PARTNER only its own clients and a CLIENT only itself.
    _R.CLIENT: {
        _R.SUPER_ADMIN: _ANY,
        _R.ADMIN: _ANY,
        _R.ADMIN_ASSISTANT: _ANY,
        _R.DRIVER: _ANY,
        _R.PARTNER: Scope.OWNED,
        _R.CLIENT: Scope.SELF,
    },
    _R.DRIVER: {_R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: _ANY},
}

_DELETE = {
    _R.SUPER_ADMIN: {},
    _R.ADMIN: {_R.SUPER_ADMIN: _ANY},
    _R.ADMIN_ASSISTANT: {_R.SUPER_ADMIN: _ANY, _R.ADMIN: _ANY},
    _R.PARTNER: {_R.SUPER_ADMIN: _ANY, _R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: _ANY},
    _R.CLIENT: {_R.SUPER_ADMIN: _ANY, _R.PARTNER: Scope.OWNED},
    _R.DRIVER: {_R.SUPER_ADMIN: _ANY, _R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: _ANY},
}

_PARTNER_REVIEW = {
    role: ({_R.ADMIN: _ANY, _R.ADMIN_ASSISTANT: _ANY} if role == _R.PARTNER else {})
    for role in _R
}

# Every actor may read its own account; staff read more broadly.
_READ = {
    role: {
        role: Scope.SELF,
        **_STAFF_READ,
        **({_R.PARTNER: Scope.OWNED} if role == _R.CLIENT else {}),
    }
    for role in _R
}

# Role-filtered queries; the scope is also used to filter the result set.
_LIST = {
    role: {
        **_STAFF_READ,
        **({_R.PARTNER: Scope.OWNED} if role == _R.CLIENT else {}),
    }
    for role in _R
}

PERMISSION_MATRIX: Mapping[Action, Mapping[Role, Mapping[Role | None, Scope]]] = MappingProxyType(
    {
        Action.CREATE: _freeze(_CREATE),
        Action.UPDATE: _freeze(_UPDATE),
        Action.DELETE: _freeze(_DELETE),
        Action.VALIDATE: _freeze(_PARTNER_REVIEW),
        Action.INVALIDATE: _freeze(_PARTNER_REVIEW),
        Action.READ: _freeze(_READ),
        Action.LIST: _freeze(_LIST),
    }
)


def scope_for(actor: AuthContext | None, action: Action, target_role: Role) -> Scope | None:
    """Return the scope granted to ``actor`` for ``action`` on ``target_role``, or None."""
    actor_role = actor.actor_role if actor is not None else None
    return PERMISSION_MATRIX[action][Role(target_role)].get(actor_role)


def _satisfies(scope: Scope, actor: AuthContext | None, target: Target) -> bool:
    if scope is Scope.ANY:
        return True
    if actor is None:
        return False
    is_self = target.account_id is not None and target.account_id == actor.actor_id
    if scope is Scope.SELF:
        return is_self
    if scope is Scope.OWNED:
        return target.created_by is not None and target.created_by == actor.actor_id
    if scope is Scope.SAME_ZONE:
        return is_self or (
            actor.zone_of_responsibility is not None
            and actor.zone_of_responsibility == target.zone_of_responsibility
        )
    return False


def authorize(actor: AuthContext | None, action: Action, target: Target) -> bool:
    """Decide whether ``actor`` may perform ``action`` on ``target``."""
    scope = scope_for(actor, action, target.role)
    if scope is None:
        return False
    return _satisfies(scope, actor, target)


def ensure_authorized(
    actor: AuthContext | None,
    action: Action,
    target: Target,
    message: str | None = None,
) -> None:
    """Raise ForbiddenError unless ``authorize`` allows the action."""
    if not authorize(actor, action, target):
        raise ForbiddenError(
            message or f"You are not allowed to {action.value} {target.role.value} accounts"
        )
