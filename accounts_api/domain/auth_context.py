from __future__ import annotations

from dataclasses import dataclass

from accounts_api.domain.roles import Role


@dataclass(frozen=True, slots=True)
class AuthContext:
    """The authenticated actor of a request.

    Built once from a verified session token and the stored account, then
    passed by value to the permission matrix and the lifecycle services.
    """

    actor_id: str
    actor_role: Role
    email: str
    zone_of_responsibility: str | None = None
    is_valid: bool = True

    @classmethod
    def from_account(cls, account) -> AuthContext:
        return cls(
            actor_id=account.id,
            actor_role=Role(account.role),
            email=account.email,
            zone_of_responsibility=account.zone_of_responsibility,
            is_valid=bool(account.is_valid),
        )
