from enum import Enum


class Role(str, Enum):
    """Closed set of account roles. There are no sub-roles."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ADMIN_ASSISTANT = "ADMIN_ASSISTANT"
    PARTNER = "PARTNER"
    CLIENT = "CLIENT"
    DRIVER = "DRIVER"


# Roles whose new accounts inherit the creator's zone of responsibility.
ZONE_INHERITING_ROLES = frozenset({Role.ADMIN_ASSISTANT, Role.DRIVER})
