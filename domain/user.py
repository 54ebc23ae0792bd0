"""
Domain: acting users, roles and purchase capabilities.

Roles form a closed set. What a role may do is looked up in ROLE_CAPABILITIES
rather than compared as strings at call sites.

Buying rules:
- A student buys for themself only.
- A parent buys for one of their own children, named explicitly.
- Admins and tutors never buy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Mapping


class Role(str, Enum):
    ADMIN = "admin"
    TUTOR = "tutor"
    STUDENT = "student"
    PARENT = "parent"

    @staticmethod
    def parse(value: str) -> "Role":
        """Case-insensitive lookup; raises ValueError for unknown roles."""

        try:
            return Role(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


class Capability(str, Enum):
    BUY_FOR_SELF = "buy_for_self"
    BUY_FOR_CHILD = "buy_for_child"
    MANAGE_PURCHASES = "manage_purchases"
    VIEW_SALES = "view_sales"


ROLE_CAPABILITIES: Mapping[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset({Capability.MANAGE_PURCHASES, Capability.VIEW_SALES}),
    Role.TUTOR: frozenset({Capability.VIEW_SALES}),
    Role.STUDENT: frozenset({Capability.BUY_FOR_SELF}),
    Role.PARENT: frozenset({Capability.BUY_FOR_CHILD}),
}


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """
    The authenticated account, as supplied by the auth subsystem.

    child_ids is only meaningful for parents (students linked to them).
    """

    user_id: str
    role: Role
    child_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id must be a non-empty string")

    def has(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]

    @property
    def can_buy(self) -> bool:
        return self.has(Capability.BUY_FOR_SELF) or self.has(Capability.BUY_FOR_CHILD)


def can_buy_for(user: CurrentUser, beneficiary_id: str) -> bool:
    """True if `user` may place purchases that grant access to `beneficiary_id`."""

    if user.has(Capability.BUY_FOR_SELF) and beneficiary_id == user.user_id:
        return True
    if user.has(Capability.BUY_FOR_CHILD) and beneficiary_id in user.child_ids:
        return True
    return False


__all__ = [
    "Role",
    "Capability",
    "ROLE_CAPABILITIES",
    "CurrentUser",
    "can_buy_for",
]
