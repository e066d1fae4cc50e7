"""
Donation API tests.

Verifies:
- Creation returns 201 with a padded receipt number
- A replayed idempotency key returns 200 with the stored donation
- Invalid input returns 422 and leaves the receipt preview unchanged
- The preview endpoint returns {receiptNumber}
"""


class TestCreateDonation:
    def test_create_returns_201_with_receipt(self, client, admin_headers, donation_payload):
        resp = client.post("/api/donations", json=donation_payload, headers=admin_headers)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["receiptNumber"] == "0001"
        assert data["type"] == "Donation"
        assert data["amount"] == 501.0
        assert data["donorName"] == "Ramesh Kumar"
        assert data["date"] == "2024-01-15"
        assert data["id"]

    def test_second_donation_gets_next_receipt(self, client, admin_headers, donation_payload):
        client.post("/api/donations", json=donation_payload, headers=admin_headers)
        resp = client.post("/api/donations", json=donation_payload, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["receiptNumber"] == "0002"

    def test_replayed_key_returns_200_with_same_record(self, client, admin_headers, donation_payload):
        payload = dict(donation_payload, idempotencyKey="donation-form-1")

        first = client.post("/api/donations", json=payload, headers=admin_headers)
        second = client.post("/api/donations", json=payload, headers=admin_headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["id"] == first.get_json()["id"]
        assert second.get_json()["receiptNumber"] == "0001"

        preview = client.get("/api/donations/next-receipt-number", headers=admin_headers)
        assert preview.get_json() == {"receiptNumber": "0002"}

    def test_idempotency_key_header(self, client, admin_headers, donation_payload):
        headers = dict(admin_headers, **{"Idempotency-Key": "hdr-1"})

        first = client.post("/api/donations", json=donation_payload, headers=headers)
        second = client.post("/api/donations", json=donation_payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["idempotencyKey"] == "hdr-1"

    def test_missing_fields_return_422(self, client, admin_headers):
        resp = client.post(
            "/api/donations",
            json={"date": "2024-01-15", "amount": 10},
            headers=admin_headers,
        )

        assert resp.status_code == 422
        assert "Missing required fields" in resp.get_json()["message"]

        preview = client.get("/api/donations/next-receipt-number", headers=admin_headers)
        assert preview.get_json()["receiptNumber"] == "0001"

    def test_client_receipt_number_is_rejected(self, client, admin_headers, donation_payload):
        payload = dict(donation_payload, receiptNumber="0042")
        resp = client.post("/api/donations", json=payload, headers=admin_headers)
        assert resp.status_code == 422

    def test_non_object_body_is_rejected(self, client, admin_headers):
        resp = client.post("/api/donations", json=[1, 2, 3], headers=admin_headers)
        assert resp.status_code == 422

    def test_negative_amount_is_rejected(self, client, admin_headers, donation_payload):
        resp = client.post(
            "/api/donations",
            json=dict(donation_payload, amount=-5),
            headers=admin_headers,
        )
        assert resp.status_code == 422


class TestNextReceiptNumber:
    def test_preview_is_padded(self, client, admin_headers):
        resp = client.get("/api/donations/next-receipt-number", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {"receiptNumber": "0001"}

    def test_preview_does_not_allocate(self, client, admin_headers, donation_payload):
        client.get("/api/donations/next-receipt-number", headers=admin_headers)
        client.get("/api/donations/next-receipt-number", headers=admin_headers)

        resp = client.post("/api/donations", json=donation_payload, headers=admin_headers)
        assert resp.get_json()["receiptNumber"] == "0001"

    def test_missing_sequence_returns_500(self, client, admin_headers, db_session):
        from temple.models import ReceiptSequence
        db_session.query(ReceiptSequence).filter_by(transaction_type="Donation").delete()
        db_session.commit()

        resp = client.get("/api/donations/next-receipt-number", headers=admin_headers)
        assert resp.status_code == 500
        assert resp.get_json()["code"] == "UNKNOWN_SEQUENCE"


class TestDonationRecord:
    def test_get_update_delete(self, client, admin_headers, donation_payload):
        created = client.post("/api/donations", json=donation_payload, headers=admin_headers).get_json()
        url = f"/api/donations/{created['id']}"

        resp = client.get(url, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["receiptNumber"] == "0001"

        resp = client.put(url, json={"amount": 1001, "description": "Corrected"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["amount"] == 1001.0
        assert resp.get_json()["receiptNumber"] == "0001"

        resp = client.delete(url, headers=admin_headers)
        assert resp.status_code == 200

        resp = client.get(url, headers=admin_headers)
        assert resp.status_code == 404

    def test_unknown_id_returns_404(self, client, admin_headers):
        resp = client.get("/api/donations/does-not-exist", headers=admin_headers)
        assert resp.status_code == 404

    def test_list_filters_by_date(self, client, admin_headers, donation_payload):
        client.post("/api/donations", json=donation_payload, headers=admin_headers)
        client.post("/api/donations", json=dict(donation_payload, date="2024-05-01"), headers=admin_headers)

        resp = client.get("/api/donations?date_from=2024-04-01", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["count"] == 1
        assert data["items"][0]["date"] == "2024-05-01"

    def test_list_rejects_bad_date(self, client, admin_headers):
        resp = client.get("/api/donations?date_from=01-04-2024", headers=admin_headers)
        assert resp.status_code == 422


def _preview(client, headers) -> str:
    return client.get("/api/donations/next-receipt-number", headers=headers).get_json()["receiptNumber"]


class TestBlankAndOversizedInput:
    def test_whitespace_donor_name_returns_422(self, client, admin_headers, donation_payload):
        resp = client.post(
            "/api/donations",
            json=dict(donation_payload, donorName="   "),
            headers=admin_headers,
        )

        assert resp.status_code == 422
        assert "donor_name" in resp.get_json()["message"]
        assert _preview(client, admin_headers) == "0001"

    def test_update_cannot_blank_donor_name(self, client, admin_headers, donation_payload):
        created = client.post("/api/donations", json=donation_payload, headers=admin_headers).get_json()
        url = f"/api/donations/{created['id']}"

        resp = client.put(url, json={"donorName": "  "}, headers=admin_headers)
        assert resp.status_code == 422

        assert client.get(url, headers=admin_headers).get_json()["donorName"] == "Ramesh Kumar"

    def test_amount_per_person_beyond_column_returns_422(self, client, admin_headers, donation_payload):
        resp = client.post(
            "/api/donations",
            json=dict(donation_payload, amountPerPerson="100000000"),
            headers=admin_headers,
        )

        assert resp.status_code == 422
        assert "cannot exceed" in resp.get_json()["message"]
        assert _preview(client, admin_headers) == "0001"


class TestErrorMapping:
    def test_transient_database_error_returns_503(self, client, admin_headers, donation_payload, monkeypatch):
        from sqlalchemy.exc import OperationalError
        from temple.services import concurrency, receipt_service

        attempts = []

        def locked(transaction_type):
            attempts.append(transaction_type)
            raise OperationalError("UPDATE receipt_sequences", {}, Exception("database is locked"))

        monkeypatch.setattr(receipt_service, "_increment_and_read", locked)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

        resp = client.post("/api/donations", json=donation_payload, headers=admin_headers)

        assert resp.status_code == 503
        body = resp.get_json()
        assert body["code"] == "DB_UNAVAILABLE"
        assert body["retryable"] is True
        assert attempts == ["Donation"] * 3

        monkeypatch.undo()
        assert _preview(client, admin_headers) == "0001"

    def test_lost_idempotency_race_returns_409(self, client, admin_headers, donation_payload, monkeypatch):
        from temple.services import transaction_service

        payload = dict(donation_payload, idempotencyKey="double-click")
        first = client.post("/api/donations", json=payload, headers=admin_headers)
        assert first.status_code == 201

        # Second request read before the first one committed
        monkeypatch.setattr(transaction_service, "find_by_idempotency_key", lambda key: None)
        resp = client.post("/api/donations", json=payload, headers=admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE_SUBMISSION"
        assert _preview(client, admin_headers) == "0002"

    def test_receipt_collision_returns_409(self, client, admin_headers, donation_payload, db_session):
        from datetime import date
        from decimal import Decimal
        from temple.models import Transaction

        client.post("/api/donations", json=donation_payload, headers=admin_headers)
        db_session.add(Transaction(
            date=date(2024, 1, 1),
            type="Donation",
            category="General",
            description="Entered by hand",
            amount=Decimal("5.00"),
            receipt_number="0002",
        ))
        db_session.commit()

        resp = client.post("/api/donations", json=donation_payload, headers=admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "RECEIPT_NUMBER_CONFLICT"
        assert _preview(client, admin_headers) == "0002"
