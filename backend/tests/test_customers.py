"""
Customer tests: NIC identity, validation, soft delete and purchase statistics.
"""

from datetime import datetime, timedelta

import pytest

from tyrepos.models.customers import activity_status_for
from tyrepos.services import customer_service
from tyrepos.validation import ConflictError, ValidationError


def _customer_body(**overrides):
    body = {
        "nic": "901234567v",
        "name": "Kamal Silva",
        "phone": "0771234567",
        "email": "Kamal@Example.com",
        "address": {"street": "12 Main St", "city": "Galle", "district": "Galle", "postal_code": "80000"},
    }
    body.update(overrides)
    return body


class TestCreateCustomer:
    def test_create_normalizes_fields(self, client, cashier_headers):
        resp = client.post("/api/customers", json=_customer_body(), headers=cashier_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["nic"] == "901234567V"
        assert body["email"] == "kamal@example.com"
        assert body["address"]["city"] == "Galle"
        assert body["activity_status"] == "new"
        assert body["loyalty_points"] == 0

    def test_duplicate_nic_conflicts(self, client, cashier_headers):
        client.post("/api/customers", json=_customer_body(), headers=cashier_headers)
        resp = client.post("/api/customers", json=_customer_body(name="Other"), headers=cashier_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Customer with this NIC already exists"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"nic": "12345"},
            {"phone": "12"},
            {"email": "not-an-email"},
            {"customer_type": "gold"},
            {"name": ""},
        ],
    )
    def test_invalid_fields(self, client, cashier_headers, overrides):
        resp = client.post("/api/customers", json=_customer_body(**overrides), headers=cashier_headers)
        assert resp.status_code == 400

    def test_find_or_create(self, client, cashier_headers):
        resp = client.post("/api/customers/find-or-create", json=_customer_body(), headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["created"] is True

        resp = client.post("/api/customers/find-or-create", json={"nic": "901234567V"}, headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["created"] is False
        assert resp.get_json()["customer"]["name"] == "Kamal Silva"


class TestLookups:
    def test_lookup_by_nic_and_search(self, client, cashier_headers, db_session):
        customer_service.create_customer(payload=_customer_body())
        customer_service.create_customer(payload=_customer_body(nic="200012345678", name="Nadeesha Perera"))

        resp = client.get("/api/customers/nic/901234567v", headers=cashier_headers)
        assert resp.get_json()["name"] == "Kamal Silva"

        resp = client.get("/api/customers/search/pere", headers=cashier_headers)
        assert [c["name"] for c in resp.get_json()["customers"]] == ["Nadeesha Perera"]

        resp = client.get("/api/customers/nic/000000000V", headers=cashier_headers)
        assert resp.status_code == 404

    def test_list_sorting_and_status(self, client, cashier_headers, db_session):
        a = customer_service.create_customer(payload=_customer_body())
        customer_service.create_customer(payload=_customer_body(nic="200012345678", name="Nadeesha"))
        customer_service.record_purchase(customer_id=a.id, amount=500)

        resp = client.get("/api/customers?sort_by=total_spent:desc", headers=cashier_headers)
        assert [c["name"] for c in resp.get_json()["customers"]] == ["Kamal Silva", "Nadeesha"]

        resp = client.get("/api/customers?status=new", headers=cashier_headers)
        assert [c["name"] for c in resp.get_json()["customers"]] == ["Nadeesha"]

        resp = client.get("/api/customers?sort_by=password:asc", headers=cashier_headers)
        assert resp.status_code == 400


class TestDeleteCustomer:
    def test_delete_deactivates(self, client, manager_headers, db_session):
        customer = customer_service.create_customer(payload=_customer_body())
        resp = client.delete(f"/api/customers/{customer.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["is_active"] is False

        resp = client.get("/api/customers", headers=manager_headers)
        assert resp.get_json()["count"] == 0
        resp = client.get("/api/customers?is_active=all", headers=manager_headers)
        assert resp.get_json()["count"] == 1


class TestPurchaseStats:
    def test_record_purchase(self, client, cashier_headers, db_session):
        customer = customer_service.create_customer(payload=_customer_body())
        resp = client.put(
            f"/api/customers/{customer.id}/purchase", json={"sale_amount": 1250}, headers=cashier_headers
        )
        body = resp.get_json()
        assert body["purchase_count"] == 1
        assert body["total_spent"] == 1250.0
        assert body["loyalty_points"] == 12
        assert body["average_purchase_amount"] == 1250.0

    def test_zero_amount_rejected(self, db_session):
        customer = customer_service.create_customer(payload=_customer_body())
        with pytest.raises(ValidationError, match="Valid sale amount is required"):
            customer_service.record_purchase(customer_id=customer.id, amount=0)

    def test_update_to_taken_nic_conflicts(self, db_session):
        customer_service.create_customer(payload=_customer_body())
        other = customer_service.create_customer(payload=_customer_body(nic="200012345678", name="Nadeesha"))
        with pytest.raises(ConflictError):
            customer_service.update_customer(customer_id=other.id, payload={"nic": "901234567V"})


class TestActivityStatus:
    @pytest.mark.parametrize(
        "days_ago,status",
        [(None, "new"), (0, "active"), (30, "active"), (31, "inactive"), (90, "inactive"), (91, "dormant")],
    )
    def test_windows(self, days_ago, status):
        now = datetime(2026, 3, 18, 12, 0)
        last = None if days_ago is None else now - timedelta(days=days_ago)
        assert activity_status_for(last, now) == status
