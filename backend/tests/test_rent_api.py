"""
Rent register API tests.

Verifies:
- Shops, tenants and agreements can be maintained by Admin only
- A shop is Occupied while it has an Active agreement
- Rent payments resolve tenant and shop details from the agreement
- An unknown agreement returns 404 without consuming a receipt number
- Records referenced by payments cannot be deleted
"""

import pytest


def _rent_preview(client, headers) -> str:
    resp = client.get("/api/receipt-sequences/RentIncome/next", headers=headers)
    return resp.get_json()["receiptNumber"]


def _lease(client, headers, shop_id, tenant_id, **overrides):
    data = {
        "shopId": shop_id,
        "tenantId": tenant_id,
        "agreementDate": "2024-02-01",
        "duration": 11,
        "monthlyRent": 7500,
    }
    data.update(overrides)
    return client.post("/api/rent/agreements", json=data, headers=headers)


class TestRegister:
    def test_shop_crud(self, client, admin_headers):
        resp = client.post("/api/rent/shops", json={
            "shopNumber": "S-10",
            "size": "150.5",
            "monthlyRent": 6000,
            "deposit": 25000,
            "description": "Corner shop near the east gate",
        }, headers=admin_headers)
        assert resp.status_code == 201
        shop = resp.get_json()
        assert shop["status"] == "Vacant"
        assert shop["size"] == 150.5

        url = f"/api/rent/shops/{shop['id']}"
        resp = client.put(url, json={"monthlyRent": 6500, "status": "Maintenance"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["monthlyRent"] == 6500.0
        assert resp.get_json()["status"] == "Maintenance"

        resp = client.get("/api/rent/shops?status=Maintenance", headers=admin_headers)
        assert [s["shopNumber"] for s in resp.get_json()["items"]] == ["S-10"]

        assert client.delete(url, headers=admin_headers).status_code == 200
        assert client.get(url, headers=admin_headers).status_code == 404

    def test_duplicate_shop_number_is_409(self, client, admin_headers, shop):
        resp = client.post("/api/rent/shops", json={
            "shopNumber": "S-4", "size": 10, "monthlyRent": 100, "deposit": 0,
        }, headers=admin_headers)
        assert resp.status_code == 409

    def test_shop_cannot_be_marked_occupied_by_hand(self, client, admin_headers, shop):
        resp = client.put(f"/api/rent/shops/{shop.id}", json={"status": "Occupied"}, headers=admin_headers)
        assert resp.status_code == 422

    def test_tenant_crud(self, client, admin_headers):
        resp = client.post("/api/rent/tenants", json={
            "name": "Ganesh Flowers",
            "phone": "9000011111",
            "email": "Ganesh@Flowers.Example",
            "businessType": "Florist",
        }, headers=admin_headers)
        assert resp.status_code == 201
        tenant = resp.get_json()
        assert tenant["email"] == "ganesh@flowers.example"
        assert tenant["status"] == "Active"

        url = f"/api/rent/tenants/{tenant['id']}"
        resp = client.put(url, json={"status": "Inactive", "email": ""}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["email"] is None

        resp = client.get("/api/rent/tenants?search=ganesh", headers=admin_headers)
        assert resp.get_json()["count"] == 1

        assert client.delete(url, headers=admin_headers).status_code == 200

    @pytest.mark.parametrize(
        "overrides",
        [
            {"phone": "12345"},
            {"phone": "   "},
            {"name": "  "},
            {"email": "not-an-email"},
        ],
    )
    def test_invalid_tenant_is_422(self, client, admin_headers, overrides):
        payload = {"name": "Ganesh Flowers", "phone": "9000011111"}
        payload.update(overrides)
        resp = client.post("/api/rent/tenants", json=payload, headers=admin_headers)
        assert resp.status_code == 422

    def test_treasurer_cannot_maintain_register(self, client, treasurer_headers, shop):
        resp = client.post("/api/rent/shops", json={
            "shopNumber": "S-11", "size": 10, "monthlyRent": 100, "deposit": 0,
        }, headers=treasurer_headers)
        assert resp.status_code == 403

        resp = client.get("/api/rent/shops", headers=treasurer_headers)
        assert resp.status_code == 200


class TestAgreements:
    def test_agreement_occupies_and_releases_shop(self, client, admin_headers, shop, tenant):
        resp = _lease(client, admin_headers, shop.id, tenant.id)
        assert resp.status_code == 201
        agreement = resp.get_json()
        assert agreement["shopNumber"] == "S-4"
        assert agreement["tenantName"] == "Lakshmi Stores"
        assert agreement["nextDueDate"] == "2024-02-01"
        assert agreement["agreementType"] == "Commercial"

        shop_url = f"/api/rent/shops/{shop.id}"
        assert client.get(shop_url, headers=admin_headers).get_json()["status"] == "Occupied"

        # A second active lease on the same shop is refused
        resp = _lease(client, admin_headers, shop.id, tenant.id)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SHOP_UNAVAILABLE"

        resp = client.put(
            f"/api/rent/agreements/{agreement['id']}",
            json={"status": "Terminated"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert client.get(shop_url, headers=admin_headers).get_json()["status"] == "Vacant"

    def test_unknown_shop_or_tenant_is_422(self, client, admin_headers, shop, tenant):
        assert _lease(client, admin_headers, "no-such-shop", tenant.id).status_code == 422
        assert _lease(client, admin_headers, shop.id, "no-such-tenant").status_code == 422

    def test_shop_and_tenant_are_fixed(self, client, admin_headers, agreement, tenant):
        resp = client.put(
            f"/api/rent/agreements/{agreement.id}",
            json={"tenantId": tenant.id},
            headers=admin_headers,
        )
        assert resp.status_code == 422

    def test_unknown_agreement_is_404(self, client, admin_headers):
        resp = client.get("/api/rent/agreements/does-not-exist", headers=admin_headers)
        assert resp.status_code == 404

    def test_shop_with_agreement_cannot_be_deleted(self, client, admin_headers, agreement, shop, tenant):
        resp = client.delete(f"/api/rent/shops/{shop.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "RECORD_IN_USE"

        resp = client.delete(f"/api/rent/tenants/{tenant.id}", headers=admin_headers)
        assert resp.status_code == 409


class TestRentPayments:
    def test_payment_takes_details_from_agreement(self, client, treasurer_headers, admin_headers, agreement):
        resp = client.post("/api/rent/payments", json={
            "agreementId": agreement.id,
            "date": "2024-02-05",
            "paymentMethod": "UPI",
        }, headers=treasurer_headers)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["type"] == "RentIncome"
        assert data["receiptNumber"] == "0001"
        assert data["amount"] == 5000.0
        assert data["tenantName"] == "Lakshmi Stores"
        assert data["tenantContact"] == "9123456780"
        assert data["shopNumber"] == "S-4"
        assert data["agreementId"] == agreement.id
        assert data["description"] == "Rent payment for shop S-4"

        resp = client.get(f"/api/rent/agreements/{agreement.id}", headers=admin_headers)
        assert resp.get_json()["lastPaymentDate"] == "2024-02-05"

    def test_unknown_agreement_is_404_and_allocates_nothing(self, client, treasurer_headers, admin_headers):
        resp = client.post("/api/rent/payments", json={
            "agreementId": "no-such-agreement",
            "date": "2024-02-05",
            "amount": 5000,
        }, headers=treasurer_headers)

        assert resp.status_code == 404
        assert _rent_preview(client, admin_headers) == "0001"

    def test_agreement_id_is_required(self, client, treasurer_headers):
        resp = client.post("/api/rent/payments", json={"date": "2024-02-05", "amount": 5000},
                           headers=treasurer_headers)
        assert resp.status_code == 422

    @pytest.mark.parametrize("field", ["shopNumber", "tenantName", "tenantContact"])
    def test_client_cannot_set_tenant_details(self, client, treasurer_headers, admin_headers, agreement, field):
        resp = client.post("/api/rent/payments", json={
            "agreementId": agreement.id,
            "date": "2024-02-05",
            field: "forged",
        }, headers=treasurer_headers)

        assert resp.status_code == 422
        assert _rent_preview(client, admin_headers) == "0001"

    def test_replayed_key_returns_200(self, client, treasurer_headers, agreement):
        payload = {"agreementId": agreement.id, "date": "2024-02-05", "idempotencyKey": "rent-feb"}

        first = client.post("/api/rent/payments", json=payload, headers=treasurer_headers)
        second = client.post("/api/rent/payments", json=payload, headers=treasurer_headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["id"] == first.get_json()["id"]

    def test_list_by_agreement(self, client, treasurer_headers, agreement, shop):
        client.post("/api/rent/payments", json={"agreementId": agreement.id, "date": "2024-02-05"},
                    headers=treasurer_headers)
        client.post("/api/rent/payments", json={"agreementId": agreement.id, "date": "2024-03-05"},
                    headers=treasurer_headers)

        resp = client.get(f"/api/rent/payments?agreement_id={agreement.id}", headers=treasurer_headers)
        data = resp.get_json()
        assert data["count"] == 2
        assert [p["date"] for p in data["items"]] == ["2024-03-05", "2024-02-05"]

        resp = client.get("/api/rent/payments?agreement_id=other", headers=treasurer_headers)
        assert resp.get_json()["count"] == 0

    def test_agreement_with_payments_cannot_be_deleted(self, client, treasurer_headers, admin_headers, agreement):
        client.post("/api/rent/payments", json={"agreementId": agreement.id, "date": "2024-02-05"},
                    headers=treasurer_headers)

        resp = client.delete(f"/api/rent/agreements/{agreement.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "RECORD_IN_USE"

    def test_payment_agreement_cannot_be_changed(self, client, treasurer_headers, agreement):
        created = client.post("/api/rent/payments", json={"agreementId": agreement.id, "date": "2024-02-05"},
                              headers=treasurer_headers).get_json()

        resp = client.put(f"/api/transactions/{created['id']}", json={"agreementId": "other"},
                          headers=treasurer_headers)
        assert resp.status_code == 422


class TestLoansAndPenalties:
    def _loan(self, client, headers, agreement_id, **overrides):
        data = {
            "agreementId": agreement_id,
            "loanAmount": 10000,
            "interestRate": 12,
            "disbursedDate": "2024-01-10",
            "loanDuration": 2,
            "monthlyEmi": 6000,
        }
        data.update(overrides)
        return client.post("/api/loans", json=data, headers=headers)

    def _pay(self, client, headers, agreement_id, day, **extra):
        return client.post("/api/rent/payments", json=dict(agreementId=agreement_id, date=day, **extra),
                           headers=headers)

    def test_emi_repayments_complete_the_loan(self, client, treasurer_headers, admin_headers, agreement):
        resp = self._loan(client, treasurer_headers, agreement.id)
        assert resp.status_code == 201
        loan = resp.get_json()
        assert loan["outstandingBalance"] == 10000.0
        assert loan["tenantName"] == "Lakshmi Stores"
        assert loan["nextEmiDate"] == "2024-01-10"
        loan_url = f"/api/loans/{loan['id']}"

        first = self._pay(client, treasurer_headers, agreement.id, "2024-02-05", loanId=loan["id"])
        assert first.status_code == 201
        assert first.get_json()["emiAmount"] == 6000.0
        data = client.get(loan_url, headers=treasurer_headers).get_json()
        assert data["outstandingBalance"] == 4000.0
        assert data["totalRepaid"] == 6000.0
        assert data["status"] == "Active"

        # The last EMI is capped at what is still owed
        second = self._pay(client, treasurer_headers, agreement.id, "2024-03-05", loanId=loan["id"])
        assert second.get_json()["emiAmount"] == 4000.0
        data = client.get(loan_url, headers=treasurer_headers).get_json()
        assert data["outstandingBalance"] == 0.0
        assert data["status"] == "Completed"
        assert data["lastPaymentDate"] == "2024-03-05"

        resp = self._pay(client, treasurer_headers, agreement.id, "2024-04-05", loanId=loan["id"])
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "LOAN_REPAYMENT_REJECTED"

        # Deleting the last repayment reopens the loan
        assert client.delete(f"/api/rent/payments/{second.get_json()['id']}", headers=admin_headers).status_code == 200
        data = client.get(loan_url, headers=treasurer_headers).get_json()
        assert data["outstandingBalance"] == 4000.0
        assert data["status"] == "Active"

    def test_over_balance_emi_is_409(self, client, treasurer_headers, admin_headers, agreement):
        loan = self._loan(client, treasurer_headers, agreement.id).get_json()

        resp = self._pay(client, treasurer_headers, agreement.id, "2024-02-05", loanId=loan["id"], emiAmount=20000)

        assert resp.status_code == 409
        assert _rent_preview(client, admin_headers) == "0001"

    def test_unknown_loan_is_422(self, client, treasurer_headers, admin_headers, agreement):
        resp = self._pay(client, treasurer_headers, agreement.id, "2024-02-05", loanId="no-such-loan")
        assert resp.status_code == 422
        assert _rent_preview(client, admin_headers) == "0001"

    def test_loan_for_unknown_agreement_is_422(self, client, treasurer_headers):
        assert self._loan(client, treasurer_headers, "no-such-agreement").status_code == 422

    def test_emi_above_loan_amount_is_422(self, client, treasurer_headers, agreement):
        assert self._loan(client, treasurer_headers, agreement.id, monthlyEmi=20000).status_code == 422

    def test_loan_with_repayments_cannot_be_deleted(self, client, treasurer_headers, admin_headers, agreement):
        loan = self._loan(client, treasurer_headers, agreement.id).get_json()
        self._pay(client, treasurer_headers, agreement.id, "2024-02-05", loanId=loan["id"])

        resp = client.delete(f"/api/loans/{loan['id']}", headers=admin_headers)
        assert resp.status_code == 409

    def test_penalty_is_paid_once(self, client, treasurer_headers, admin_headers, agreement):
        resp = client.post("/api/rent-penalties", json={
            "agreementId": agreement.id,
            "dueDate": "2024-02-05",
            "penaltyRate": 2,
        }, headers=treasurer_headers)
        assert resp.status_code == 201
        penalty = resp.get_json()
        assert penalty["rentAmount"] == 5000.0
        assert penalty["penaltyAmount"] == 100.0
        assert penalty["status"] == "Pending"
        penalty_url = f"/api/rent-penalties/{penalty['id']}"

        paid = self._pay(client, treasurer_headers, agreement.id, "2024-02-20", penaltyId=penalty["id"])
        assert paid.status_code == 201
        assert paid.get_json()["penaltyAmount"] == 100.0
        data = client.get(penalty_url, headers=treasurer_headers).get_json()
        assert data["status"] == "Paid"
        assert data["penaltyPaid"] is True
        assert data["penaltyPaidDate"] == "2024-02-20"

        again = self._pay(client, treasurer_headers, agreement.id, "2024-02-21", penaltyId=penalty["id"])
        assert again.status_code == 409
        assert again.get_json()["code"] == "PENALTY_ALREADY_PAID"

        # A paid penalty is frozen until its payment is deleted
        assert client.put(penalty_url, json={"penaltyRate": 3}, headers=treasurer_headers).status_code == 409
        client.delete(f"/api/rent/payments/{paid.get_json()['id']}", headers=admin_headers)
        data = client.get(penalty_url, headers=treasurer_headers).get_json()
        assert data["status"] == "Pending"
        assert data["penaltyPaid"] is False

        resp = client.put(penalty_url, json={"penaltyRate": 3}, headers=treasurer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["penaltyAmount"] == 150.0

    def test_viewer_cannot_create_loans(self, client, viewer_headers, agreement):
        assert self._loan(client, viewer_headers, agreement.id).status_code == 403
