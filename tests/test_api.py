"""
API tests using FastAPI's TestClient.

Services run on the in-memory ledgers and stub gateway from conftest; the
catalog and parent-student lookups are replaced with dictionaries.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.dependencies import build_services, get_catalog_lookup, get_child_id_loader, get_services
from api.main import app
from domain.catalog import CatalogItem, ItemType

CATALOG = {
    (ItemType.TUTORIAL, "T1"): CatalogItem("T1", ItemType.TUTORIAL, "Algebra Basics", Decimal("20.00")),
    (ItemType.RECORDED_LESSON, "L1"): CatalogItem("L1", ItemType.RECORDED_LESSON, "Cell Biology", Decimal("15.00")),
}
CHILDREN = {"parent-1": frozenset({"child-1", "child-2"})}

STUDENT = {"X-User-Id": "student-1", "X-User-Role": "student"}
PARENT = {"X-User-Id": "parent-1", "X-User-Role": "parent"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}

CARD = {
    "card_name": "Jane Smith",
    "card_number": "4242 4242 4242 4242",
    "expiry_date": "12/29",
    "cvv": "123",
}


@pytest.fixture
def services(ledgers, gateway):
    return build_services(ledgers, gateway, cache_ttl_seconds=0)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_catalog_lookup] = lambda: (lambda item_type, item_id: CATALOG.get((item_type, item_id)))
    app.dependency_overrides[get_child_id_loader] = lambda: (lambda parent_id: CHILDREN.get(parent_id, frozenset()))
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_auth_headers_is_401(client) -> None:
    response = client.get("/api/v1/cart")

    assert response.status_code == 401
    assert response.json()["error"] == "UnauthenticatedError"


def test_unknown_role_is_401(client) -> None:
    response = client.get("/api/v1/cart", headers={"X-User-Id": "x", "X-User-Role": "wizard"})

    assert response.status_code == 401


def test_admin_cannot_use_cart(client) -> None:
    response = client.get("/api/v1/cart", headers=ADMIN)

    assert response.status_code == 403


def test_student_cart_flow(client) -> None:
    """Add two items, re-add one, remove one, and read the cart back."""

    assert client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT).status_code == 201
    assert client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT).status_code == 201
    added = client.post("/api/v1/cart/items", json={"item_type": "RECORDED_LESSON", "item_id": "L1"}, headers=STUDENT)
    assert added.json()["beneficiary_id"] == "student-1"

    cart = client.get("/api/v1/cart", headers=STUDENT).json()
    assert cart["item_count"] == 2
    assert Decimal(cart["total"]) == Decimal("35.00")

    removed = client.delete("/api/v1/cart/items/TUTORIAL/T1", headers=STUDENT)
    assert removed.json() == {"removed": True}
    assert client.delete("/api/v1/cart/items/TUTORIAL/T1", headers=STUDENT).json() == {"removed": False}

    assert client.delete("/api/v1/cart", headers=STUDENT).status_code == 204
    assert client.get("/api/v1/cart", headers=STUDENT).json()["item_count"] == 0


def test_unknown_catalog_item_is_404(client) -> None:
    response = client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "nope"}, headers=STUDENT)

    assert response.status_code == 404
    assert response.json()["error"] == "CatalogItemNotFoundError"


def test_parent_must_choose_child(client) -> None:
    body = {"item_type": "TUTORIAL", "item_id": "T1"}

    assert client.post("/api/v1/cart/items", json=body, headers=PARENT).status_code == 400
    assert client.post("/api/v1/cart/items", json={**body, "beneficiary_id": "stranger"}, headers=PARENT).status_code == 403
    assert client.post("/api/v1/cart/items", json={**body, "beneficiary_id": "child-1"}, headers=PARENT).status_code == 201


def test_checkout_success_then_item_is_owned(client) -> None:
    client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)

    response = client.post("/api/v1/checkout", json=CARD, headers=STUDENT)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["payment_captured"] is True
    assert Decimal(body["total_charged"]) == Decimal("20.00")
    assert [p["item_id"] for p in body["purchases"]] == ["T1"]
    assert body["purchases"][0]["status"] == "COMPLETED"

    owned = client.get("/api/v1/entitlements/student-1/TUTORIAL/T1", headers=STUDENT).json()
    assert owned["owned"] is True

    again = client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyOwnedError"


def test_checkout_validation_errors_are_422_per_field(client) -> None:
    client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)

    response = client.post("/api/v1/checkout", json={**CARD, "cvv": "12"}, headers=STUDENT)

    assert response.status_code == 422
    assert response.json()["field_errors"] == {"cvv": "Please enter a valid 3-digit CVV"}


def test_checkout_empty_cart_is_409(client) -> None:
    response = client.post("/api/v1/checkout", json=CARD, headers=STUDENT)

    assert response.status_code == 409
    assert response.json()["detail"] == "Your cart is empty"


def test_checkout_of_line_owned_meanwhile_is_409(client, gateway, tute_ledger) -> None:
    client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)
    tute_ledger.seed("student-1", "T1")

    response = client.post("/api/v1/checkout", json=CARD, headers=STUDENT)

    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyOwnedError"
    assert gateway.calls == []
    assert client.get("/api/v1/cart", headers=STUDENT).json()["item_count"] == 0


def test_declined_checkout_is_402(client, gateway) -> None:
    gateway.decline_reason = "Card declined"
    client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)

    response = client.post("/api/v1/checkout", json=CARD, headers=STUDENT)

    assert response.status_code == 402
    assert response.json()["failure"] == "PAYMENT_DECLINED"
    assert client.get("/api/v1/cart", headers=STUDENT).json()["item_count"] == 1


def test_partial_failure_is_502_and_retry_settles(client, lesson_ledger) -> None:
    lesson_ledger.fail_item_ids.add("L1")
    client.post("/api/v1/cart/items", json={"item_type": "TUTORIAL", "item_id": "T1"}, headers=STUDENT)
    client.post("/api/v1/cart/items", json={"item_type": "RECORDED_LESSON", "item_id": "L1"}, headers=STUDENT)

    response = client.post("/api/v1/checkout", json=CARD, headers=STUDENT)

    assert response.status_code == 502
    body = response.json()
    assert body["failure"] == "LEDGER_WRITE_FAILED"
    assert body["payment_captured"] is True
    assert [f["line"]["item_id"] for f in body["failed_lines"]] == ["L1"]

    assert client.post("/api/v1/checkout", json=CARD, headers=STUDENT).status_code == 409

    lesson_ledger.heal()
    retry = client.post("/api/v1/checkout/retry", headers=STUDENT)
    assert retry.status_code == 200
    assert retry.json()["transaction_id"] == body["transaction_id"]

    assert client.post("/api/v1/checkout/retry", headers=STUDENT).status_code == 409


def test_entitlement_visibility(client, tute_ledger) -> None:
    tute_ledger.seed("child-1", "T1", buyer_id="parent-1")

    owned = client.get("/api/v1/entitlements/child-1", headers=PARENT)
    assert owned.status_code == 200
    assert owned.json()["items"] == [{"item_type": "TUTORIAL", "item_id": "T1"}]

    assert client.get("/api/v1/entitlements/child-1", headers=STUDENT).status_code == 403
    assert client.get("/api/v1/entitlements/child-1", headers=ADMIN).status_code == 200


def test_purchase_history_visibility(client, tute_ledger, lesson_ledger) -> None:
    tute_ledger.seed("child-1", "T1", buyer_id="parent-1")
    lesson_ledger.seed("child-2", "L1", buyer_id="parent-1")
    tute_ledger.seed("student-1", "T9")

    parent_all = client.get("/api/v1/purchases", headers=PARENT).json()
    assert sorted(p["item_id"] for p in parent_all) == ["L1", "T1"]

    one_child = client.get("/api/v1/purchases", params={"beneficiary_id": "child-2"}, headers=PARENT).json()
    assert [p["item_id"] for p in one_child] == ["L1"]

    assert client.get("/api/v1/purchases", params={"beneficiary_id": "student-1"}, headers=PARENT).status_code == 403
    assert [p["item_id"] for p in client.get("/api/v1/purchases", headers=STUDENT).json()] == ["T9"]
    assert len(client.get("/api/v1/purchases", headers=ADMIN).json()) == 3


def test_admin_delete_purchase(client, tute_ledger) -> None:
    record = tute_ledger.seed("student-1", "T1")

    assert client.delete(f"/api/v1/purchases/TUTORIAL/{record.purchase_id}", headers=STUDENT).status_code == 403

    response = client.delete(f"/api/v1/purchases/TUTORIAL/{record.purchase_id}", headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == {"purchase_id": record.purchase_id, "deleted": True}

    again = client.delete(f"/api/v1/purchases/TUTORIAL/{record.purchase_id}", headers=ADMIN)
    assert again.json()["deleted"] is False

    owned = client.get("/api/v1/entitlements/student-1/TUTORIAL/T1", headers=STUDENT).json()
    assert owned["owned"] is False
