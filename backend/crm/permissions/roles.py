# Overview: The four CRM roles, their fixed hierarchy, and strict parsing.

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """
    Actor roles.

    The hierarchy is for comparison and display only. It never grants
    anything by itself; see policy.py for the predicates that do.
    """
    SALESPERSON = "SALESPERSON"
    MANAGER = "MANAGER"
    BOARD = "BOARD"
    ADMIN = "ADMIN"

    @property
    def level(self) -> int:
        return ROLE_HIERARCHY[self]

    def __str__(self) -> str:
        return self.value


ROLE_HIERARCHY = {
    Role.SALESPERSON: 1,
    Role.MANAGER: 2,
    Role.BOARD: 3,
    Role.ADMIN: 4,
}

ALL_ROLES = tuple(sorted(Role, key=lambda r: ROLE_HIERARCHY[r]))


class UnknownRoleError(ValueError):
    """Raised when a role string is not one of the four enumerated roles."""


def parse_role(value, *, default: Role | None = None) -> Role:
    """
    Parse an external role value into Role.

    Values arriving from identity metadata or request bodies are untrusted:
    matching is case-insensitive on the trimmed string. Unknown values raise
    UnknownRoleError unless a default is given, in which case the default
    is returned instead.
    """
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        candidate = value.strip().upper()
        if candidate in Role.__members__:
            return Role[candidate]
    if default is not None:
        return default
    raise UnknownRoleError(f"Unknown role: {value!r}")


def has_higher_or_equal_role(role: Role, other: Role) -> bool:
    return ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[other]
