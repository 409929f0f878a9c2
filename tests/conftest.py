import copy
import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from giving.services.currency_service import CurrencyService
from giving.services.donation_service import DonationService
from giving.services.factory import GivingServices
from giving.services.notification_service import NotificationService
from giving.services.payment_gateway import STRIPE_TYPES, PaymentMethodType
from giving.services.payment_method_service import PaymentMethodService
from giving.services.receipt_service import ReceiptService
from giving.services.recurring_service import RecurringDonationService


# =============================================================================
# In-memory repositories (same function names as giving.models.*)
# =============================================================================


class FakeCurrencyRepo:
    def __init__(self):
        self.rows = {}
        self.get_calls = 0

    def add(self, code, rate, *, active=True, name=None):
        self.rows[code] = {
            "code": code,
            "name": name or code,
            "symbol": code,
            "is_active": active,
            "exchange_rate": Decimal(str(rate)),
            "last_updated_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }

    def get_currency(self, code):
        self.get_calls += 1
        row = self.rows.get(code)
        return dict(row) if row else None

    def list_active_currencies(self):
        return [dict(r) for _, r in sorted(self.rows.items()) if r["is_active"]]

    def upsert_currency(self, *, code, name, symbol, exchange_rate, is_active=True):
        self.add(code, exchange_rate, active=is_active, name=name)
        self.rows[code]["symbol"] = symbol
        return dict(self.rows[code])

    def update_exchange_rate(self, code, new_rate):
        if code not in self.rows:
            return None
        self.rows[code]["exchange_rate"] = Decimal(str(new_rate))
        return dict(self.rows[code])

    def set_currency_active(self, code, active):
        if code not in self.rows:
            return None
        self.rows[code]["is_active"] = active
        return dict(self.rows[code])


class FakeDonationRepo:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)
        self.search_calls = []

    def create_donation(self, donation):
        row = dict(donation)
        row["id"] = next(self._ids)
        row["created_at"] = row["updated_at"] = datetime.now(timezone.utc)
        self.rows[row["id"]] = row
        return dict(row)

    def get_donation(self, donation_id):
        row = self.rows.get(donation_id)
        return dict(row) if row else None

    def get_donation_by_transaction(self, transaction_id):
        for row in self.rows.values():
            if row.get("transaction_id") == transaction_id:
                return dict(row)
        return None

    def update_donation_status(self, donation_id, status):
        if donation_id not in self.rows:
            return None
        self.rows[donation_id]["status"] = status
        return dict(self.rows[donation_id])

    def list_user_donations(self, user_id):
        return [dict(r) for r in self.rows.values() if r.get("user_id") == user_id]

    def list_donations_for_recurring(self, recurring_id):
        return [dict(r) for r in self.rows.values() if r.get("recurring_donation_id") == recurring_id]

    def search_donations(self, **criteria):
        self.search_calls.append(criteria)
        return []

    def list_completed_donations_between(self, start, end, *, user_id=None, one_time_only=False):
        rows = [
            dict(r)
            for r in self.rows.values()
            if r["status"] == "completed"
            and start <= r["created_at"] < end
            and (user_id is None or r.get("user_id") == user_id)
            and not (one_time_only and r.get("recurring_donation_id"))
        ]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    def donation_statistics(self, start_date=None, end_date=None):
        rows = [
            r
            for r in self.rows.values()
            if (start_date is None or r["created_at"] >= start_date)
            and (end_date is None or r["created_at"] <= end_date)
        ]
        done = [r for r in rows if r["status"] == "completed"]
        by_currency, by_status, monthly = {}, {}, {}
        for r in done:
            entry = by_currency.setdefault(
                r["currency"], {"currency": r["currency"], "total_amount": Decimal("0"), "count": 0}
            )
            entry["total_amount"] += r["amount"]
            entry["count"] += 1
            month = r["created_at"].strftime("%Y-%m")
            bucket = monthly.setdefault(month, {"month": month, "total_amount": Decimal("0"), "count": 0})
            bucket["total_amount"] += r["converted_amount_usd"]
            bucket["count"] += 1
        for r in rows:
            by_status[r["status"]] = by_status.get(r["status"], 0) + 1
        return {
            "total_amount": sum((r["converted_amount_usd"] for r in done), Decimal("0")),
            "total_count": len(done),
            "by_currency": [by_currency[k] for k in sorted(by_currency)],
            "by_status": [{"status": k, "count": by_status[k]} for k in sorted(by_status)],
            "monthly": [monthly[k] for k in sorted(monthly)],
        }


class FakeRecurringRepo:
    def __init__(self, donations=None):
        self.rows = {}
        self.donations = donations
        self._ids = itertools.count(1)

    def create_recurring_donation(self, recurring):
        row = copy.deepcopy(recurring)
        row["id"] = next(self._ids)
        row.setdefault("last_payment_date", None)
        row["ended_at"] = None
        row["created_at"] = row["updated_at"] = datetime.now(timezone.utc)
        self.rows[row["id"]] = row
        return dict(row)

    def get_recurring_donation(self, recurring_id):
        row = self.rows.get(recurring_id)
        return dict(row) if row else None

    def list_user_recurring_donations(self, user_id):
        return [dict(r) for r in self.rows.values() if r["user_id"] == user_id]

    def list_due_recurring_donations(self, now, limit=100):
        due = [
            dict(r)
            for r in self.rows.values()
            if r["status"] == "completed" and r["ended_at"] is None and r["next_payment_date"] <= now
        ]
        return sorted(due, key=lambda r: r["next_payment_date"])[:limit]

    def _update(self, recurring_id, **changes):
        if recurring_id not in self.rows:
            return None
        self.rows[recurring_id].update(changes)
        return dict(self.rows[recurring_id])

    def update_recurring_payment_count(self, recurring_id, count):
        return self._update(
            recurring_id, completed_payments_count=count, last_payment_date=datetime.now(timezone.utc)
        )

    def update_next_payment_date(self, recurring_id, next_date):
        return self._update(recurring_id, next_payment_date=next_date)

    def update_recurring_status(self, recurring_id, status):
        return self._update(recurring_id, status=status)

    def complete_recurring_donation(self, recurring_id):
        return self._update(recurring_id, status="completed", ended_at=datetime.now(timezone.utc))

    def list_recurring_charged_between(self, start, end, *, user_id=None):
        paid = {
            d.get("recurring_donation_id")
            for d in self.donations.rows.values()
            if d["status"] == "completed" and start <= d["created_at"] < end
        }
        rows = [
            dict(r)
            for r in self.rows.values()
            if r["id"] in paid and (user_id is None or r["user_id"] == user_id)
        ]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)


class FakePaymentMethodRepo:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)

    def create_payment_method(self, method):
        row = dict(method)
        row["id"] = next(self._ids)
        row["is_default"] = bool(method.get("is_default"))
        row["is_active"] = method.get("is_active", True)
        self.rows[row["id"]] = row
        return dict(row)

    def list_user_payment_methods(self, user_id):
        rows = [dict(r) for r in self.rows.values() if r["user_id"] == user_id and r["is_active"]]
        return sorted(rows, key=lambda r: not r["is_default"])

    def get_payment_method(self, method_id, user_id):
        row = self.rows.get(method_id)
        if not row or row["user_id"] != user_id or not row["is_active"]:
            return None
        return dict(row)

    def set_default_payment_method(self, method_id, user_id):
        target = self.rows.get(method_id)
        if not target or target["user_id"] != user_id or not target["is_active"]:
            return None
        for row in self.rows.values():
            if row["user_id"] == user_id and row["id"] != method_id:
                row["is_default"] = False
        target["is_default"] = True
        return dict(target)

    def deactivate_payment_method(self, method_id, user_id):
        row = self.rows.get(method_id)
        if not row or row["user_id"] != user_id:
            return None
        row["is_active"] = False
        row["is_default"] = False
        return dict(row)


class FakeReceiptRepo:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)

    def create_receipt(self, receipt):
        if self.find_receipt(
            tax_year=receipt["tax_year"],
            donation_id=receipt.get("donation_id"),
            recurring_donation_id=receipt.get("recurring_donation_id"),
        ):
            return None
        row = dict(receipt)
        row["id"] = next(self._ids)
        row["issued_at"] = row["created_at"] = datetime.now(timezone.utc)
        self.rows[row["id"]] = row
        return dict(row)

    def find_receipt(self, *, tax_year, donation_id=None, recurring_donation_id=None):
        for row in self.rows.values():
            if (
                row["tax_year"] == tax_year
                and row.get("donation_id") == donation_id
                and row.get("recurring_donation_id") == recurring_donation_id
            ):
                return dict(row)
        return None

    def get_receipt_by_number(self, receipt_number):
        for row in self.rows.values():
            if row["receipt_number"] == receipt_number:
                return dict(row)
        return None

    def list_receipts_for_donation(self, donation_id):
        return [dict(r) for r in self.rows.values() if r.get("donation_id") == donation_id]

    def list_receipts_for_recurring(self, recurring_id):
        return [dict(r) for r in self.rows.values() if r.get("recurring_donation_id") == recurring_id]

    def list_receipts_by_tax_year(self, tax_year, user_id=None):
        return [
            dict(r)
            for r in self.rows.values()
            if r["tax_year"] == tax_year and (user_id is None or r.get("user_id") == user_id)
        ]


class FakeEmailLog:
    def __init__(self):
        self.emails = {}
        self.logs = []

    def get_user_email(self, user_id):
        return self.emails.get(user_id)

    def log_email(self, **entry):
        self.logs.append(entry)


# =============================================================================
# External collaborators
# =============================================================================


class FakeSender:
    """Stands in for giving.utils.email_sender.send_email."""

    def __init__(self):
        self.sent = []
        self.fail_with = None

    def __call__(self, **message):
        if self.fail_with:
            return None, self.fail_with
        self.sent.append(message)
        return "test", f"msg-{len(self.sent)}"


class FakeGateway:
    def __init__(self):
        self.charges = []
        self.validated = []
        self.detached = []
        self.attached = []
        self.charge_options = []
        self.outcomes = []
        self.existing = True
        self._txn = itertools.count(1)

    def validate_method(self, token, payment_type):
        self.validated.append((token, payment_type))
        return {
            "id": f"pm_{token}",
            "payment_type": getattr(payment_type, "value", payment_type),
            "last_four": "4242",
            "expiry_date": "12/2030",
            "card_brand": "visa",
        }

    def attach_customer(self, provider_id, payment_type, *, customer_id=None, user_id=None):
        if PaymentMethodType.parse(payment_type) not in STRIPE_TYPES:
            return None
        self.attached.append((provider_id, customer_id))
        return customer_id or f"cus_{user_id}"

    def charge(self, token, amount, currency="usd", *, customer=None, idempotency_key=None):
        self.charges.append((token, amount, currency))
        self.charge_options.append({"customer": customer, "idempotency_key": idempotency_key})
        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        return {"transaction_id": f"ch_{next(self._txn)}", "success": outcome}

    def deactivate(self, provider_id):
        self.detached.append(provider_id)

    def validate_existing(self, provider_id):
        return self.existing


class _StripeResource:
    def __init__(self, name, stub):
        self.name = name
        self.stub = stub

    def __getattr__(self, action):
        def call(*args, **kwargs):
            self.stub.calls.append((f"{self.name}.{action}", args, kwargs))
            item = self.stub.results.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        return call


class FakeStripe:
    """Stands in for the stripe module; replays queued results (or raises queued errors)."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.PaymentMethod = _StripeResource("PaymentMethod", self)
        self.PaymentIntent = _StripeResource("PaymentIntent", self)
        self.Customer = _StripeResource("Customer", self)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeResponse:
    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for requests.Session.request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def currency_repo():
    repo = FakeCurrencyRepo()
    repo.add("USD", "1.0")
    repo.add("EUR", "1.2")
    repo.add("JPY", "0.0067")
    repo.add("XTS", "2.0", active=False)
    return repo


@pytest.fixture
def currency(currency_repo):
    return CurrencyService(currency_repo)


@pytest.fixture
def donation_repo():
    return FakeDonationRepo()


@pytest.fixture
def recurring_repo(donation_repo):
    return FakeRecurringRepo(donation_repo)


@pytest.fixture
def receipt_repo():
    return FakeReceiptRepo()


@pytest.fixture
def method_repo():
    return FakePaymentMethodRepo()


@pytest.fixture
def email_log():
    log = FakeEmailLog()
    log.emails[7] = "donor@example.com"
    return log


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifications(email_log, sender):
    return NotificationService(email_log, sender, from_email="giving@example.com")


@pytest.fixture
def payment_methods(gateway, method_repo):
    return PaymentMethodService(gateway, method_repo)


@pytest.fixture
def donations(currency, gateway, notifications, donation_repo):
    return DonationService(currency, gateway, notifications, donation_repo)


@pytest.fixture
def scheduled():
    """Series ids handed to the enqueue hook."""
    return []


@pytest.fixture
def recurring(donations, payment_methods, currency, notifications, recurring_repo, clock, scheduled):
    return RecurringDonationService(
        donations,
        payment_methods,
        currency,
        notifications,
        recurring_repo,
        clock=clock,
        enqueue_cycle=scheduled.append,
    )


@pytest.fixture
def receipts(donations, recurring, notifications, receipt_repo, clock):
    return ReceiptService(donations, recurring, notifications, receipt_repo, clock=clock)


@pytest.fixture
def services(currency, gateway, payment_methods, notifications, donations, recurring, receipts):
    return GivingServices(
        currency=currency,
        gateway=gateway,
        payment_methods=payment_methods,
        notifications=notifications,
        donations=donations,
        recurring=recurring,
        receipts=receipts,
    )
