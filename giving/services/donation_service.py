"""
One-time donations and the charge-then-record step shared with recurring
cycles.

The outcome of every charge attempt is written to ``donations`` before any
email goes out; a decline is stored as ``failed`` rather than raised.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from giving.models import donation as donation_model
from giving.services.currency_service import BASE_CURRENCY, CurrencyService
from giving.services import schedule
from giving.services.donation_status import DonationStatus, validate_transition
from giving.services.exceptions import ExternalServiceError, NotFoundError, ValidationError
from giving.services.notification_service import NotificationService
from giving.services.payment_gateway import PaymentGateway, PaymentMethodType
from giving.utils.metrics import DONATION_CHARGES
from giving.utils.money import parse_positive_amount, to_decimal

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
MAX_PER_PAGE = 100


def _parse_when(value, field: str):
    if value in (None, ""):
        return None
    try:
        when = date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        raise ValidationError(f"{field} must be an ISO 8601 date")
    return when if when.tzinfo else when.replace(tzinfo=timezone.utc)


class DonationService:
    def __init__(
        self,
        currency: CurrencyService,
        gateway: PaymentGateway,
        notifications: NotificationService,
        repository=donation_model,
    ):
        self.currency = currency
        self.gateway = gateway
        self.notifications = notifications
        self.repository = repository

    def process_donation(
        self,
        donation: Dict[str, Any],
        payment_token: str,
        *,
        notify: bool = True,
        customer: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Convert, charge and persist a donation; returns the stored row.

        The row is written as ``completed`` or ``failed`` depending on the
        charge. If the provider call itself errors, a ``failed`` row is still
        written before the ExternalServiceError propagates.
        """
        amount = parse_positive_amount(donation.get("amount"))
        code = self.currency.supported_code(donation.get("currency") or "USD")
        method = PaymentMethodType.parse(donation.get("payment_method") or "credit_card")

        record = {
            "amount": amount,
            "currency": code,
            "status": DonationStatus.PENDING.value,
            "payment_method": method.value,
            "transaction_id": None,
            "donor_name": donation.get("donor_name"),
            "donor_email": donation.get("donor_email"),
            "donor_phone": donation.get("donor_phone"),
            "user_id": donation.get("user_id"),
            "message": donation.get("message"),
            "is_anonymous": bool(donation.get("is_anonymous")),
            "recurring_donation_id": donation.get("recurring_donation_id"),
            "ip_address": donation.get("ip_address"),
            "country_code": donation.get("country_code"),
        }
        record["converted_amount_usd"] = self.currency.to_base(amount, code).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )

        try:
            result = self.gateway.charge(
                payment_token, amount, code, customer=customer, idempotency_key=idempotency_key
            )
        except ExternalServiceError:
            validate_transition(DonationStatus.PENDING, DonationStatus.FAILED)
            record["status"] = DonationStatus.FAILED.value
            stored = self.repository.create_donation(record)
            logger.warning("donation %s recorded as failed after provider error", stored["id"])
            DONATION_CHARGES.labels(outcome="error").inc()
            raise

        new_status = DonationStatus.COMPLETED if result.get("success") else DonationStatus.FAILED
        validate_transition(DonationStatus.PENDING, new_status)
        record["status"] = new_status.value
        record["transaction_id"] = result.get("transaction_id")

        stored = self.repository.create_donation(record)
        DONATION_CHARGES.labels(outcome=new_status.value).inc()
        logger.info(
            "donation %s %s: %s %s (base %s)",
            stored["id"],
            new_status.value,
            code,
            amount,
            record["converted_amount_usd"],
        )

        if notify and new_status is DonationStatus.COMPLETED:
            self._confirm(stored)
        return stored

    def _confirm(self, donation: Dict[str, Any]) -> None:
        # signed-in donors get mail at their account address
        to_email = None if donation.get("user_id") else donation.get("donor_email")
        if donation.get("user_id") is None and not to_email:
            return
        self.notifications.send_donation_confirmation(
            donation.get("user_id"),
            donation["id"],
            donation["currency"],
            donation["amount"],
            False,
            to_email=to_email,
        )

    def update_status(self, donation_id: int, status) -> Dict[str, Any]:
        donation = self.get(donation_id)
        new_status = DonationStatus.parse(status)
        validate_transition(donation["status"], new_status)
        updated = self.repository.update_donation_status(donation_id, new_status.value)
        if not updated:
            raise NotFoundError("donation not found")
        logger.info("donation %s: %s -> %s", donation_id, donation["status"], new_status.value)
        return updated

    def get(self, donation_id: int) -> Dict[str, Any]:
        donation = self.repository.get_donation(donation_id)
        if not donation:
            raise NotFoundError("donation not found")
        return donation

    def find_by_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        if not transaction_id:
            return None
        return self.repository.get_donation_by_transaction(transaction_id)

    def history(self, user_id: int) -> List[Dict[str, Any]]:
        return self.repository.list_user_donations(user_id)

    def history_for_recurring(self, recurring_id: int) -> List[Dict[str, Any]]:
        return self.repository.list_donations_for_recurring(recurring_id)

    def search(
        self, filters: Optional[Dict[str, Any]] = None, page: int = 1, per_page: int = 20
    ) -> List[Dict[str, Any]]:
        filters = filters or {}
        try:
            page = int(page)
            per_page = int(per_page)
        except (TypeError, ValueError):
            raise ValidationError("page and per_page must be integers")
        if page < 1 or not 1 <= per_page <= MAX_PER_PAGE:
            raise ValidationError(f"page must be >= 1 and per_page between 1 and {MAX_PER_PAGE}")

        criteria: Dict[str, Any] = {
            "start_date": _parse_when(filters.get("start_date"), "start_date"),
            "end_date": _parse_when(filters.get("end_date"), "end_date"),
            "min_amount": None,
            "max_amount": None,
            "status": None,
            "currency": None,
            "donor_email": (filters.get("donor_email") or "").strip() or None,
            "user_id": None,
        }
        for field in ("min_amount", "max_amount"):
            if filters.get(field) not in (None, ""):
                criteria[field] = to_decimal(filters[field], field)
        if filters.get("status"):
            criteria["status"] = DonationStatus.parse(filters["status"]).value
        if filters.get("currency"):
            criteria["currency"] = str(filters["currency"]).strip().upper()
        if filters.get("user_id") not in (None, ""):
            try:
                criteria["user_id"] = int(filters["user_id"])
            except (TypeError, ValueError):
                raise ValidationError("user_id must be an integer")

        return self.repository.search_donations(
            **criteria, limit=per_page, offset=(page - 1) * per_page
        )

    def by_tax_year(
        self, tax_year, user_id: Optional[int] = None, *, one_time_only: bool = False
    ) -> List[Dict[str, Any]]:
        """Completed donations made in the calendar year, optionally for one donor."""
        year = schedule.parse_tax_year(tax_year, datetime.now(timezone.utc).year)
        start, end = schedule.tax_year_bounds(year)
        return self.repository.list_completed_donations_between(
            start, end, user_id=user_id, one_time_only=one_time_only
        )

    def statistics(self, start_date=None, end_date=None) -> Dict[str, Any]:
        start = _parse_when(start_date, "start_date")
        end = _parse_when(end_date, "end_date")
        if start and end and start > end:
            raise ValidationError("start_date must be before end_date")

        stats = self.repository.donation_statistics(start, end)
        total = Decimal(stats["total_amount"] or 0)
        count = int(stats["total_count"] or 0)
        stats["total_amount"] = total.quantize(CENTS, rounding=ROUND_HALF_UP)
        stats["total_count"] = count
        stats["average_amount"] = (
            (total / count).quantize(CENTS, rounding=ROUND_HALF_UP) if count else Decimal("0.00")
        )
        stats["base_currency"] = BASE_CURRENCY
        return stats
