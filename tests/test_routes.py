import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from giving import create_app
from giving.services import webhook_service


@pytest.fixture
def app(services):
    app = create_app(services=services, config={"TESTING": True, "JWT_SECRET_KEY": "test-secret"})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def auth(app, user_id=7, **claims):
    with app.app_context():
        token = create_access_token(identity=str(user_id), additional_claims=claims)
    return {"Authorization": f"Bearer {token}"}


class TestDonationRoutes:
    def test_anonymous_one_time_donation(self, client, sender):
        resp = client.post(
            "/api/donations/",
            json={"amount": "25.50", "currency": "EUR", "payment_token": "tok", "donor_email": "guest@example.com"},
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "completed"
        assert body["amount"] == "25.50"
        assert body["converted_amount_usd"] == "30.60"
        assert body["user_id"] is None
        assert sender.sent[0]["to_email"] == "guest@example.com"

    def test_missing_token(self, client):
        resp = client.post("/api/donations/", json={"amount": "5"})
        assert resp.status_code == 400

    def test_validation_error_is_json(self, client):
        resp = client.post("/api/donations/", json={"amount": "-5", "payment_token": "tok"})
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "amount must be > 0"}

    def test_unknown_currency_is_404(self, client):
        resp = client.post("/api/donations/", json={"amount": "5", "currency": "ABC", "payment_token": "tok"})
        assert resp.status_code == 404

    def test_owner_reads_history_and_record(self, app, client):
        created = client.post(
            "/api/donations/", json={"amount": "10", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        history = client.get("/api/donations/history", headers=auth(app)).get_json()
        assert [d["id"] for d in history] == [created["id"]]
        assert client.get(f"/api/donations/{created['id']}", headers=auth(app)).status_code == 200
        assert client.get(f"/api/donations/{created['id']}", headers=auth(app, user_id=8)).status_code == 403

    def test_status_change_requires_admin(self, app, client):
        created = client.post(
            "/api/donations/", json={"amount": "10", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        url = f"/api/donations/{created['id']}/status"
        assert client.patch(url, json={"status": "refunded"}, headers=auth(app)).status_code == 403
        resp = client.patch(url, json={"status": "refunded"}, headers=auth(app, user_id=1, is_admin=True))
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "refunded"
        again = client.patch(url, json={"status": "completed"}, headers=auth(app, user_id=1, is_admin=True))
        assert again.status_code == 400
        assert again.get_json()["current"] == "refunded"

    def test_history_requires_token(self, client):
        assert client.get("/api/donations/history").status_code == 401


class TestRecurringRoutes:
    def test_setup_cancel_and_history(self, app, client, scheduled):
        resp = client.post(
            "/api/donations/recurring/",
            json={"amount": "50", "frequency": "weekly", "payment_token": "tok", "total_payments_count": 4},
            headers=auth(app),
        )
        assert resp.status_code == 201
        series = resp.get_json()
        assert series["status"] == "completed"
        assert series["total_payments_count"] == 4
        assert scheduled == [series["id"]]

        listed = client.get("/api/donations/recurring/", headers=auth(app)).get_json()
        assert [s["id"] for s in listed] == [series["id"]]

        assert client.post(f"/api/donations/recurring/{series['id']}/cancel", headers=auth(app, user_id=8)).status_code == 403
        cancelled = client.post(f"/api/donations/recurring/{series['id']}/cancel", headers=auth(app))
        assert cancelled.get_json()["status"] == "cancelled"
        assert client.get(f"/api/donations/recurring/{series['id']}/history", headers=auth(app)).get_json() == []

    def test_invalid_transition(self, app, client):
        series = client.post(
            "/api/donations/recurring/", json={"amount": "50", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        resp = client.patch(
            f"/api/donations/recurring/{series['id']}/status", json={"status": "pending"}, headers=auth(app)
        )
        assert resp.status_code == 400

    def test_retry_requires_failed_series(self, app, client):
        series = client.post(
            "/api/donations/recurring/", json={"amount": "50", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        assert client.post(f"/api/donations/recurring/{series['id']}/retry", headers=auth(app)).status_code == 400

    def test_unknown_series(self, app, client):
        assert client.get("/api/donations/recurring/999", headers=auth(app)).status_code == 404


class TestCurrencyRoutes:
    def test_public_reads(self, client):
        codes = [c["code"] for c in client.get("/api/currencies/").get_json()]
        assert codes == ["EUR", "JPY", "USD"]
        assert client.get("/api/currencies/eur").get_json()["exchange_rate"] == "1.2"

    def test_convert(self, client):
        body = client.get("/api/currencies/convert/EUR/USD/100").get_json()
        assert Decimal(body["converted_amount"]) == Decimal("120")

    def test_rate_update_is_admin_only(self, app, client):
        url = "/api/currencies/EUR/rate"
        assert client.patch(url, json={"exchange_rate": "1.1"}, headers=auth(app)).status_code == 403
        resp = client.patch(url, json={"exchange_rate": "1.1"}, headers=auth(app, role="admin"))
        assert resp.status_code == 200
        body = client.get("/api/currencies/convert/EUR/USD/100").get_json()
        assert Decimal(body["converted_amount"]) == Decimal("110")

    def test_create_and_deactivate(self, app, client):
        admin = auth(app, is_admin=True)
        resp = client.post(
            "/api/currencies/",
            json={"code": "GBP", "name": "Pound", "symbol": "£", "exchange_rate": "1.27"},
            headers=admin,
        )
        assert resp.status_code == 201
        assert client.patch("/api/currencies/GBP/active", json={"is_active": False}, headers=admin).status_code == 200
        assert client.get("/api/currencies/GBP").status_code == 404


class TestPaymentMethodRoutes:
    def test_lifecycle(self, app, client):
        headers = auth(app)
        a = client.post("/api/payment-methods/", json={"payment_token": "a"}, headers=headers).get_json()
        b = client.post("/api/payment-methods/", json={"payment_token": "b"}, headers=headers).get_json()
        assert "provider_payment_id" not in a
        assert a["is_default"] is True

        resp = client.patch(f"/api/payment-methods/{b['id']}/default", headers=headers)
        assert resp.get_json()["is_default"] is True
        assert client.get(f"/api/payment-methods/{a['id']}/validate", headers=headers).get_json()["valid"] is True
        assert client.delete(f"/api/payment-methods/{a['id']}", headers=headers).status_code == 200
        assert client.delete(f"/api/payment-methods/{b['id']}", headers=headers).status_code == 400
        listed = client.get("/api/payment-methods/", headers=headers).get_json()
        assert [m["id"] for m in listed] == [b["id"]]


class TestStripeWebhook:
    @pytest.fixture(autouse=True)
    def events(self, monkeypatch):
        seen = set()

        def fake_mark(event_id, event_type, raw_event):
            if event_id in seen:
                return False
            seen.add(event_id)
            return True

        monkeypatch.setattr(webhook_service, "mark_event_processed", fake_mark)
        monkeypatch.setattr(webhook_service, "forget_event", seen.discard)
        monkeypatch.setattr(webhook_service, "STRIPE_WEBHOOK_SECRET", "")
        return seen

    def _refund(self, client, charge_id, event_id="evt_1"):
        payload = {"id": event_id, "type": "charge.refunded", "data": {"object": {"id": charge_id}}}
        return client.post("/api/webhooks/stripe", data=json.dumps(payload), content_type="application/json")

    def test_refund_marks_donation_refunded(self, client, donation_repo):
        created = client.post("/api/donations/", json={"amount": "10", "payment_token": "tok"}).get_json()
        resp = self._refund(client, created["transaction_id"])
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True, "donation_id": created["id"]}
        assert donation_repo.rows[created["id"]]["status"] == "refunded"

    def test_duplicate_event(self, client):
        created = client.post("/api/donations/", json={"amount": "10", "payment_token": "tok"}).get_json()
        self._refund(client, created["transaction_id"])
        assert self._refund(client, created["transaction_id"]).get_json()["duplicate"] is True

    def test_unknown_charge_ignored(self, client):
        resp = self._refund(client, "ch_missing")
        assert resp.status_code == 200
        assert resp.get_json()["ignored"] == "charge.refunded"

    def test_failed_donation_is_not_refunded(self, client, gateway, donation_repo):
        gateway.outcomes = [False]
        created = client.post("/api/donations/", json={"amount": "10", "payment_token": "tok"}).get_json()
        resp = self._refund(client, created["transaction_id"])
        assert resp.get_json()["reason"] == "donation is failed"
        assert donation_repo.rows[created["id"]]["status"] == "failed"

    def test_event_unmarked_when_handling_fails(self, events):
        class Broken:
            def find_by_transaction(self, charge_id):
                raise RuntimeError("db down")

        payload = json.dumps({"id": "evt_9", "type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})
        with pytest.raises(RuntimeError):
            webhook_service.process_stripe_event(payload.encode(), None, Broken())
        assert "evt_9" not in events


def test_ping(client):
    assert client.get("/__ping").get_json() == {"ok": True}


def test_api_index_lists_routes(client):
    endpoints = client.get("/api").get_json()["endpoints"]
    assert "/api/currencies/convert/<from_code>/<to_code>/<amount> (GET)" in endpoints["currencies"]
    assert any(r.startswith("/api/donations/recurring/<int:recurring_id>/cancel") for r in endpoints["recurring"])


def test_me(app, client):
    body = client.get("/api/me", headers=auth(app, is_admin=True)).get_json()
    assert body["user_id"] == 7
    assert body["is_admin"] is True


class TestMetrics:
    def test_requires_admin(self, app, client):
        assert client.get("/admin/metrics", headers=auth(app)).status_code == 403

    def test_exposes_charge_counter(self, app, client):
        client.post("/api/donations/", json={"amount": "10", "payment_token": "tok"})
        resp = client.get("/admin/metrics", headers=auth(app, is_admin=True))
        assert resp.status_code == 200
        assert b"giving_donation_charges_total" in resp.data


class TestAdminRecurring:
    def _setup(self, client, app):
        body = {"amount": "25", "frequency": "weekly", "payment_token": "tok"}
        return client.post("/api/donations/recurring/", json=body, headers=auth(app)).get_json()

    def test_due_listing_is_admin_only(self, app, client):
        assert client.get("/admin/recurring/due", headers=auth(app)).status_code == 403

    def test_due_listing(self, app, client):
        created = self._setup(client, app)
        resp = client.get("/admin/recurring/due", headers=auth(app, user_id=1, is_admin=True))
        assert resp.status_code == 200
        assert [r["id"] for r in resp.get_json()] == [created["id"]]

    def test_run_due(self, app, client, monkeypatch, gateway):
        from giving import tasks

        monkeypatch.setattr(tasks, "claim_once", lambda key, ttl: True)
        self._setup(client, app)
        resp = client.post("/admin/recurring/run-due", headers=auth(app, user_id=1, is_admin=True))
        assert resp.get_json() == {"completed": 1, "failed": 0, "skipped": 0, "errors": 0}
        assert len(gateway.charges) == 1


class TestReportingRoutes:
    def test_statistics_is_admin_only(self, app, client):
        client.post("/api/donations/", json={"amount": "10", "payment_token": "tok"}, headers=auth(app))
        assert client.get("/api/donations/statistics", headers=auth(app)).status_code == 403
        resp = client.get("/api/donations/statistics", headers=auth(app, user_id=1, is_admin=True))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total_amount"] == "10.00"
        assert body["total_count"] == 1
        assert body["by_status"] == [{"status": "completed", "count": 1}]

    def test_statistics_bad_date(self, app, client):
        resp = client.get(
            "/api/donations/statistics?start_date=soon", headers=auth(app, user_id=1, is_admin=True)
        )
        assert resp.status_code == 400

    def test_tax_year_listings(self, app, client, donation_repo):
        created = client.post(
            "/api/donations/", json={"amount": "10", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        donation_repo.rows[created["id"]]["created_at"] = datetime(2023, 5, 1, tzinfo=timezone.utc)
        mine = client.get("/api/donations/tax-year/2023", headers=auth(app)).get_json()
        assert [d["id"] for d in mine] == [created["id"]]
        assert client.get("/api/donations/tax-year/2023", headers=auth(app, user_id=8)).get_json() == []
        recurring = client.get("/api/donations/recurring/tax-year/2023", headers=auth(app))
        assert recurring.status_code == 200
        assert client.get("/api/donations/tax-year/1800", headers=auth(app)).status_code == 400


class TestReceiptRoutes:
    def _donation(self, app, client, donation_repo):
        created = client.post(
            "/api/donations/", json={"amount": "10", "payment_token": "tok"}, headers=auth(app)
        ).get_json()
        donation_repo.rows[created["id"]]["created_at"] = datetime(2023, 5, 1, tzinfo=timezone.utc)
        return created

    def test_owner_issues_and_reads_receipt(self, app, client, donation_repo):
        created = self._donation(app, client, donation_repo)
        url = f"/api/donations/{created['id']}/receipts"
        assert client.post(url, json={}, headers=auth(app, user_id=8)).status_code == 403

        resp = client.post(url, json={"tax_year": 2023}, headers=auth(app))
        assert resp.status_code == 201
        receipt = resp.get_json()
        assert receipt["tax_year"] == 2023
        assert Decimal(receipt["amount"]) == Decimal("10")

        number = receipt["receipt_number"]
        assert client.get(f"/api/receipts/{number}", headers=auth(app)).get_json()["id"] == receipt["id"]
        assert client.get(f"/api/receipts/{number}", headers=auth(app, user_id=8)).status_code == 403
        assert len(client.get(url, headers=auth(app)).get_json()) == 1
        assert [r["id"] for r in client.get("/api/receipts/year/2023", headers=auth(app)).get_json()] == [
            receipt["id"]
        ]

    def test_unknown_receipt_number(self, app, client):
        assert client.get("/api/receipts/2023-nope", headers=auth(app)).status_code == 404

    def test_recurring_receipt_needs_payments(self, app, client):
        body = {"amount": "25", "frequency": "weekly", "payment_token": "tok"}
        rid = client.post("/api/donations/recurring/", json=body, headers=auth(app)).get_json()["id"]
        resp = client.post(f"/api/donations/recurring/{rid}/receipts", json={}, headers=auth(app))
        assert resp.status_code == 400
        assert client.get(f"/api/donations/recurring/{rid}/receipts", headers=auth(app)).get_json() == []

    def test_annual_generation_is_admin_only(self, app, client, donation_repo):
        self._donation(app, client, donation_repo)
        url = "/api/admin/receipts/generate-annual/2023"
        assert client.post(url, headers=auth(app)).status_code == 403
        resp = client.post(url, headers=auth(app, user_id=1, is_admin=True))
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1
        listed = client.get("/api/admin/receipts/year/2023", headers=auth(app, user_id=1, is_admin=True))
        assert len(listed.get_json()) == 1
