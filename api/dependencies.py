"""
Dependency wiring for the API.

Builds the service graph once per process and resolves the acting user from
the headers set by the authentication gateway (X-User-Id, X-User-Role). This
service never sees tokens or sessions.

Environment variables (optional):
- ENTITLEMENT_CACHE_TTL_SECONDS: entitlement cache lifetime (default 5, 0 disables)
- LEDGER_SERVER_SIDE_FILTER: "false" to filter purchases by beneficiary client-side
- PAYMENT_DECLINE_CARDS: comma separated card numbers the simulated gateway declines
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, FrozenSet, Mapping, Optional

from fastapi import Depends, Header

from domain.catalog import CatalogItem, ItemType
from domain.errors import UnauthenticatedError
from domain.user import CurrentUser, Role
from repositories.catalog_repository import get_catalog_item
from repositories.parent_student_repository import list_child_ids
from repositories.purchase_repository import PurchaseLedger, build_ledgers
from services.buyer_context import BuyerContext, resolve_buyer
from services.cart_store import CartChangedEvent, CartStore
from services.checkout_service import CheckoutOrchestrator
from services.entitlement_service import DEFAULT_CACHE_TTL_SECONDS, EntitlementResolver
from services.payment_gateway import PaymentGateway, SimulatedPaymentGateway, declined_cards_from_env
from services.purchase_admin_service import PurchaseAdminService

logger = logging.getLogger(__name__)

CatalogLookup = Callable[[ItemType, str], Optional[CatalogItem]]
ChildIdLoader = Callable[[str], FrozenSet[str]]


@dataclass
class Services:
    entitlements: EntitlementResolver
    cart_store: CartStore
    checkout: CheckoutOrchestrator
    admin: PurchaseAdminService


def _log_cart_change(event: CartChangedEvent) -> None:
    logger.debug(
        "Cart changed for buyer %s: %d lines, total %s",
        event.buyer_id, len(event.lines), event.total,
    )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def build_services(
    ledgers: Optional[Mapping[ItemType, PurchaseLedger]] = None,
    gateway: Optional[PaymentGateway] = None,
    *,
    cache_ttl_seconds: Optional[float] = None,
) -> Services:
    """
    Assemble the service graph.

    Defaults: Supabase ledgers, the simulated gateway, and settings from the environment.
    """
    if ledgers is None:
        ledgers = build_ledgers(server_side_filter=_env_flag("LEDGER_SERVER_SIDE_FILTER", True))
    if gateway is None:
        gateway = SimulatedPaymentGateway(declined_cards_from_env())
    if cache_ttl_seconds is None:
        cache_ttl_seconds = float(os.getenv("ENTITLEMENT_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS))

    entitlements = EntitlementResolver(ledgers, ttl_seconds=cache_ttl_seconds)
    cart_store = CartStore(entitlements)
    cart_store.subscribe(_log_cart_change)

    return Services(
        entitlements=entitlements,
        cart_store=cart_store,
        checkout=CheckoutOrchestrator(cart_store, gateway, ledgers, entitlements),
        admin=PurchaseAdminService(ledgers, entitlements),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def get_catalog_lookup() -> CatalogLookup:
    return get_catalog_item


def get_child_id_loader() -> ChildIdLoader:
    return list_child_ids


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    load_child_ids: ChildIdLoader = Depends(get_child_id_loader),
) -> CurrentUser:
    """
    The acting user, or UnauthenticatedError when the auth headers are missing.
    """
    if not x_user_id or not x_user_role:
        raise UnauthenticatedError("Missing X-User-Id / X-User-Role headers")

    try:
        role = Role.parse(x_user_role)
    except ValueError as e:
        raise UnauthenticatedError(str(e)) from e

    child_ids: FrozenSet[str] = frozenset()
    if role is Role.PARENT:
        child_ids = load_child_ids(x_user_id)

    return CurrentUser(user_id=x_user_id, role=role, child_ids=child_ids)


def get_buyer(current_user: CurrentUser = Depends(get_current_user)) -> BuyerContext:
    return resolve_buyer(current_user)
