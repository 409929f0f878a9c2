"""
Tax receipts.

A receipt covers either one completed one-time donation or every completed
payment of a recurring series within one calendar tax year. Each donation
and each series gets at most one receipt per tax year; issuing again returns
the receipt already on file and sends no second email.
"""

from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from giving.models import receipt as receipt_model
from giving.services import schedule
from giving.services.donation_service import DonationService
from giving.services.donation_status import DonationStatus
from giving.services.exceptions import NotFoundError, ValidationError
from giving.services.notification_service import NotificationService
from giving.services.recurring_service import RecurringDonationService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def receipt_number(tax_year: int) -> str:
    return f"{tax_year}-{uuid.uuid4().hex}"


class ReceiptService:
    def __init__(
        self,
        donations: DonationService,
        recurring: RecurringDonationService,
        notifications: NotificationService,
        repository=receipt_model,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.donations = donations
        self.recurring = recurring
        self.notifications = notifications
        self.repository = repository
        self.clock = clock

    def _tax_year(self, value) -> int:
        return schedule.parse_tax_year(value, self.clock().year)

    # -- issuing --------------------------------------------------------------

    def issue_for_donation(
        self, donation_id: int, tax_year=None, *, notify: bool = True
    ) -> Dict[str, Any]:
        donation = self.donations.get(donation_id)
        if donation["status"] != DonationStatus.COMPLETED.value:
            raise ValidationError("only completed donations can be receipted", status=donation["status"])
        if donation.get("recurring_donation_id"):
            raise ValidationError(
                "recurring payments are receipted on their series",
                recurring_donation_id=donation["recurring_donation_id"],
            )

        made_in = donation["created_at"].astimezone(timezone.utc).year
        year = made_in if tax_year in (None, "") else self._tax_year(tax_year)
        if year != made_in:
            raise ValidationError(f"donation was made in {made_in}, not {year}")

        return self._issue(
            {
                "donation_id": donation["id"],
                "recurring_donation_id": None,
                "user_id": donation.get("user_id"),
                "tax_year": year,
                "amount": donation["amount"],
                "currency": donation["currency"],
            },
            notify=notify,
            to_email=None if donation.get("user_id") else donation.get("donor_email"),
        )

    def issue_for_recurring(
        self, recurring_id: int, tax_year=None, *, notify: bool = True
    ) -> Dict[str, Any]:
        recurring = self.recurring.get(recurring_id)
        year = self.clock().year if tax_year in (None, "") else self._tax_year(tax_year)
        start, end = schedule.tax_year_bounds(year)

        paid = [
            d
            for d in self.donations.history_for_recurring(recurring_id)
            if d["status"] == DonationStatus.COMPLETED.value and start <= d["created_at"] < end
        ]
        if not paid:
            raise ValidationError(f"no completed payments in {year}")

        return self._issue(
            {
                "donation_id": None,
                "recurring_donation_id": recurring["id"],
                "user_id": recurring["user_id"],
                "tax_year": year,
                "amount": sum((Decimal(d["amount"]) for d in paid), Decimal("0")),
                "currency": recurring["currency"],
            },
            notify=notify,
        )

    def _issue(self, fields: Dict[str, Any], *, notify: bool, to_email: Optional[str] = None):
        created = self.repository.create_receipt(
            {"receipt_number": receipt_number(fields["tax_year"]), **fields}
        )
        if created is None:
            existing = self.repository.find_receipt(
                tax_year=fields["tax_year"],
                donation_id=fields["donation_id"],
                recurring_donation_id=fields["recurring_donation_id"],
            )
            if existing is None:
                # lost a race with a delete; nothing sensible to return
                raise NotFoundError("receipt not found")
            return existing

        logger.info(
            "receipt %s issued (donation=%s recurring=%s year=%s)",
            created["receipt_number"],
            created["donation_id"],
            created["recurring_donation_id"],
            created["tax_year"],
        )
        if notify and (created.get("user_id") is not None or to_email):
            self.notifications.send_receipt(
                created.get("user_id"),
                created["id"],
                created["receipt_number"],
                created["tax_year"],
                created["currency"],
                created["amount"],
                to_email=to_email,
            )
        return created

    def generate_annual(self, tax_year) -> List[Dict[str, Any]]:
        """
        Receipt every completed one-time donation and every series with a
        completed payment in the year. Safe to rerun; existing receipts are
        returned unchanged. No emails go out.
        """
        year = self._tax_year(tax_year)
        receipts = []
        for donation in self.donations.by_tax_year(year, one_time_only=True):
            receipts.append(self.issue_for_donation(donation["id"], year, notify=False))
        for recurring in self.recurring.by_tax_year(year):
            receipts.append(self.issue_for_recurring(recurring["id"], year, notify=False))
        logger.info("annual receipts for %s: %d", year, len(receipts))
        return receipts

    # -- lookups --------------------------------------------------------------

    def get_by_number(self, number: str) -> Dict[str, Any]:
        receipt = self.repository.get_receipt_by_number((number or "").strip())
        if not receipt:
            raise NotFoundError("receipt not found")
        return receipt

    def for_donation(self, donation_id: int) -> List[Dict[str, Any]]:
        self.donations.get(donation_id)
        return self.repository.list_receipts_for_donation(donation_id)

    def for_recurring(self, recurring_id: int) -> List[Dict[str, Any]]:
        self.recurring.get(recurring_id)
        return self.repository.list_receipts_for_recurring(recurring_id)

    def by_tax_year(self, tax_year, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.repository.list_receipts_by_tax_year(self._tax_year(tax_year), user_id)
