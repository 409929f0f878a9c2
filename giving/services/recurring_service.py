"""
Recurring donation scheduler.

A series in status ``completed`` is actively recurring. Each cycle charges
the stored payment method once, records the attempt as a donation row and
then either advances ``next_payment_date`` or retires the series. A decline
pauses the series in ``failed`` until someone retries it; nothing is retried
automatically.

The first cycle is due at ``start_date``, so a weekly series set up on
2024-01-01 is charged on the 1st, 8th and 15th and is next due on the 22nd.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as date_parser

from giving.models import recurring_donation as recurring_model
from giving.services import schedule
from giving.services.currency_service import CurrencyService
from giving.services.donation_service import DonationService
from giving.services.donation_status import DonationStatus, validate_transition
from giving.services.exceptions import (
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from giving.services.notification_service import NotificationService
from giving.services.payment_gateway import PaymentMethodType
from giving.services.payment_method_service import PaymentMethodService
from giving.services.schedule import DonationFrequency
from giving.utils.metrics import RECURRING_CYCLES
from giving.utils.money import parse_positive_amount

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_total(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        total = int(value)
    except (TypeError, ValueError):
        raise ValidationError("total_payments_count must be an integer")
    if total <= 0:
        raise ValidationError("total_payments_count must be > 0")
    return total


def _parse_end_date(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        end = value
    else:
        try:
            end = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            raise ValidationError("end_date must be an ISO 8601 date")
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end


def _cycle_key(recurring: Dict[str, Any]) -> str:
    """Idempotency key for the charge of one due date."""
    return f"recurring-{recurring['id']}-{recurring['next_payment_date'].isoformat()}"


class RecurringDonationService:
    def __init__(
        self,
        donations: DonationService,
        payment_methods: PaymentMethodService,
        currency: CurrencyService,
        notifications: NotificationService,
        repository=recurring_model,
        *,
        clock: Callable[[], datetime] = _utcnow,
        enqueue_cycle: Optional[Callable[[int], Any]] = None,
    ):
        self.donations = donations
        self.payment_methods = payment_methods
        self.currency = currency
        self.notifications = notifications
        self.repository = repository
        self.clock = clock
        # called with a series id whenever a cycle becomes due right away
        self.enqueue_cycle = enqueue_cycle

    # -- setup --------------------------------------------------------------

    def setup(self, recurring: Dict[str, Any], payment_token: str) -> Dict[str, Any]:
        user_id = recurring.get("user_id")
        if user_id is None:
            raise ValidationError("user_id required")

        # everything that can be checked locally is checked before the
        # provider is contacted or anything is stored
        amount = parse_positive_amount(recurring.get("amount"))
        total = _parse_total(recurring.get("total_payments_count"))
        frequency = DonationFrequency.parse(recurring.get("frequency") or "monthly")
        method_type = PaymentMethodType.parse(recurring.get("payment_method") or "credit_card")
        code = self.currency.supported_code(recurring.get("currency") or "USD")
        now = self.clock()
        end_date = _parse_end_date(recurring.get("end_date"))
        if end_date is not None and end_date <= now:
            raise ValidationError("end_date must be in the future")
        if not (payment_token or "").strip():
            raise ValidationError("payment_token required")

        method = self.payment_methods.create(
            user_id, payment_token, method_type, billing=recurring.get("billing")
        )

        created = self.repository.create_recurring_donation(
            {
                "user_id": user_id,
                "amount": amount,
                "currency": code,
                "frequency": frequency.value,
                "payment_method": method_type.value,
                "payment_method_id": method["id"],
                "status": DonationStatus.COMPLETED.value,
                "start_date": now,
                "next_payment_date": now,
                "end_date": end_date,
                "total_payments_count": total,
                "completed_payments_count": 0,
            }
        )
        logger.info(
            "recurring donation %s set up: %s %s %s for user %s",
            created["id"],
            frequency.value,
            code,
            amount,
            user_id,
        )

        # confirm before the first cycle can run inline and report on itself
        self.notifications.send_donation_confirmation(user_id, created["id"], code, amount, True)
        self._schedule(created["id"])
        return self.repository.get_recurring_donation(created["id"]) or created

    def _schedule(self, recurring_id: int) -> None:
        """
        Hand a series to the cycle runner. The series is already stored and
        due, so if the queue or claim store is down the next sweep charges
        it; the caller still gets its record.
        """
        if self.enqueue_cycle is None:
            return
        try:
            self.enqueue_cycle(recurring_id)
        except Exception:
            logger.exception("could not schedule recurring %s; left for the sweep", recurring_id)

    # -- cycles -------------------------------------------------------------

    def next_payment_date(self, current: datetime, frequency) -> datetime:
        return schedule.next_payment_date(current, frequency)

    def run_cycle(self, recurring: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Charge one cycle of an active series. Returns the recorded donation,
        or None when the series is not active and nothing was charged.
        """
        if DonationStatus.parse(recurring["status"]) is not DonationStatus.COMPLETED:
            logger.debug("recurring %s skipped: status %s", recurring["id"], recurring["status"])
            return None
        if recurring.get("ended_at"):
            logger.debug("recurring %s skipped: already ended", recurring["id"])
            return None
        return self._charge_cycle(recurring, retry=False)

    def retry_failed(self, recurring_id: int) -> Dict[str, Any]:
        """Manually charge a series that a decline paused."""
        recurring = self.get(recurring_id)
        status = DonationStatus.parse(recurring["status"])
        if status is not DonationStatus.FAILED:
            raise InvalidTransitionError(status, DonationStatus.COMPLETED)
        self._charge_cycle(recurring, retry=True)
        return self.get(recurring_id)

    def _charge_cycle(self, recurring: Dict[str, Any], *, retry: bool) -> Optional[Dict[str, Any]]:
        rid = recurring["id"]
        method = None
        if recurring.get("payment_method_id") is not None:
            method = self.payment_methods.repository.get_payment_method(
                recurring["payment_method_id"], recurring["user_id"]
            )
        if not method or not method.get("provider_payment_id"):
            logger.warning("recurring %s has no active payment method", rid)
            self.mark_cycle_failed(rid)
            self._notify_failed(recurring)
            return None

        donation = {
            "user_id": recurring["user_id"],
            "amount": recurring["amount"],
            "currency": recurring["currency"],
            "payment_method": recurring.get("payment_method"),
            "recurring_donation_id": rid,
        }
        try:
            recorded = self.donations.process_donation(
                donation,
                method["provider_payment_id"],
                notify=False,
                customer=method.get("provider_customer_id"),
                # a manual retry must not replay the declined attempt
                idempotency_key=None if retry else _cycle_key(recurring),
            )
        except ExternalServiceError:
            self.mark_cycle_failed(rid)
            RECURRING_CYCLES.labels(outcome="error").inc()
            raise

        if DonationStatus.parse(recorded["status"]) is not DonationStatus.COMPLETED:
            logger.info("recurring %s declined (donation %s)", rid, recorded["id"])
            RECURRING_CYCLES.labels(outcome="failed").inc()
            self.mark_cycle_failed(rid)
            self._notify_failed(recurring)
            return recorded

        count = int(recurring.get("completed_payments_count") or 0) + 1
        self.repository.update_recurring_payment_count(rid, count)
        if retry:
            validate_transition(DonationStatus.FAILED, DonationStatus.COMPLETED)
            self.repository.update_recurring_status(rid, DonationStatus.COMPLETED.value)

        frequency = DonationFrequency.parse(recurring["frequency"])
        total = recurring.get("total_payments_count")
        upcoming = self.next_payment_date(recurring["next_payment_date"], frequency)
        end_date = recurring.get("end_date")

        if (
            (total is not None and count >= int(total))
            or frequency is DonationFrequency.ONE_TIME
            or (end_date is not None and upcoming > end_date)
        ):
            self.complete(rid)
            RECURRING_CYCLES.labels(outcome="finished").inc()
            logger.info("recurring %s finished after %s payments", rid, count)
        else:
            self.repository.update_next_payment_date(rid, upcoming)
            RECURRING_CYCLES.labels(outcome="completed").inc()
            logger.info("recurring %s paid (%s), next due %s", rid, count, upcoming.isoformat())

        if retry:
            self.notifications.send_payment_retry_success(
                recurring["user_id"], rid, recurring["currency"], recurring["amount"]
            )
        return recorded

    def _notify_failed(self, recurring: Dict[str, Any]) -> None:
        self.notifications.send_payment_failed(
            recurring["user_id"], recurring["id"], recurring["currency"], recurring["amount"]
        )

    def mark_cycle_failed(self, recurring_id: int) -> Optional[Dict[str, Any]]:
        """
        Pause a series after an unsuccessful cycle.

        This is the one status change the scheduler makes outside the
        transition table (completed -> failed); the series leaves ``failed``
        again only through the table.
        """
        recurring = self.repository.get_recurring_donation(recurring_id)
        if not recurring:
            raise NotFoundError("recurring donation not found")
        status = DonationStatus.parse(recurring["status"])
        if status is DonationStatus.FAILED:
            return recurring
        if status is not DonationStatus.COMPLETED:
            raise InvalidTransitionError(status, DonationStatus.FAILED)
        return self.repository.update_recurring_status(recurring_id, DonationStatus.FAILED.value)

    def complete(self, recurring_id: int) -> Dict[str, Any]:
        """Retire a series whose payment limit or end date was reached."""
        done = self.repository.complete_recurring_donation(recurring_id)
        if not done:
            raise NotFoundError("recurring donation not found")
        return done

    # -- status -------------------------------------------------------------

    def update_status(self, recurring_id: int, status) -> Dict[str, Any]:
        recurring = self.get(recurring_id)
        current = DonationStatus.parse(recurring["status"])
        new_status = DonationStatus.parse(status)
        if recurring.get("ended_at"):
            # a finished series is terminal
            raise InvalidTransitionError(current, new_status)
        validate_transition(current, new_status)

        updated = self.repository.update_recurring_status(recurring_id, new_status.value)
        if not updated:
            raise NotFoundError("recurring donation not found")
        logger.info("recurring %s: %s -> %s", recurring_id, current.value, new_status.value)

        if current is DonationStatus.PENDING and new_status is DonationStatus.COMPLETED:
            self._schedule(recurring_id)
        return updated

    def cancel(self, recurring_id: int) -> Dict[str, Any]:
        return self.update_status(recurring_id, DonationStatus.CANCELLED)

    # -- reads --------------------------------------------------------------

    def get(self, recurring_id: int) -> Dict[str, Any]:
        recurring = self.repository.get_recurring_donation(recurring_id)
        if not recurring:
            raise NotFoundError("recurring donation not found")
        return recurring

    def list_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return self.repository.list_user_recurring_donations(user_id)

    def history(self, recurring_id: int) -> List[Dict[str, Any]]:
        self.get(recurring_id)
        return self.donations.history_for_recurring(recurring_id)

    def list_due(self, now: Optional[datetime] = None, limit: int = 100) -> List[Dict[str, Any]]:
        return self.repository.list_due_recurring_donations(now or self.clock(), limit)

    def by_tax_year(self, tax_year, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Series that collected at least one completed payment in the calendar year."""
        year = schedule.parse_tax_year(tax_year, self.clock().year)
        start, end = schedule.tax_year_bounds(year)
        return self.repository.list_recurring_charged_between(start, end, user_id=user_id)
