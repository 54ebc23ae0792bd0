"""
Buyer context: who is buying, and for whom.

Resolves the authenticated user into a BuyerContext that is passed explicitly
into every cart and checkout call.

- Student: buyer and default beneficiary are the same account.
- Parent: no default beneficiary; each cart operation must name one of their
  children.
- Admin / tutor: cannot buy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.errors import BeneficiaryRequiredError, NotPermittedError, UnauthenticatedError
from domain.user import CurrentUser, Role, can_buy_for


@dataclass(frozen=True, slots=True)
class BuyerContext:
    """
    Stable (buyer, beneficiary) resolution for one acting user.

    default_beneficiary_id is None for parents.
    """
    user: CurrentUser
    default_beneficiary_id: Optional[str]

    @property
    def buyer_id(self) -> str:
        return self.user.user_id

    @property
    def role(self) -> Role:
        return self.user.role

    def can_buy_for(self, beneficiary_id: str) -> bool:
        return can_buy_for(self.user, beneficiary_id)

    def beneficiary_for(self, requested_id: Optional[str] = None) -> str:
        """
        Resolve the beneficiary for a cart operation.

        Args:
            requested_id: Explicit beneficiary (a parent's child); optional for students

        Returns:
            The beneficiary id to use

        Raises:
            BeneficiaryRequiredError: If no id was requested and there is no default
            NotPermittedError: If the buyer may not buy for the requested id
        """
        beneficiary_id = requested_id if requested_id else self.default_beneficiary_id

        if beneficiary_id is None:
            raise BeneficiaryRequiredError(
                f"{self.role.value} {self.buyer_id} must choose which child to buy for"
            )

        if not self.can_buy_for(beneficiary_id):
            raise NotPermittedError(
                f"{self.role.value} {self.buyer_id} cannot buy for {beneficiary_id}"
            )

        return beneficiary_id


def resolve_buyer(current_user: Optional[CurrentUser]) -> BuyerContext:
    """
    Build the BuyerContext for the acting user.

    Pure lookup, no side effects.

    Raises:
        UnauthenticatedError: If there is no current user
        NotPermittedError: If the user's role cannot buy
    """
    if current_user is None:
        raise UnauthenticatedError("Please log in to buy tutorials")

    if not current_user.can_buy:
        raise NotPermittedError(f"Role {current_user.role.value} cannot make purchases")

    default_beneficiary_id = current_user.user_id if current_user.role is Role.STUDENT else None

    return BuyerContext(user=current_user, default_beneficiary_id=default_beneficiary_id)


__all__ = [
    "BuyerContext",
    "resolve_buyer",
]
