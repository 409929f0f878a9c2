"""
Donor notifications.

Sending is best-effort: every attempt is written to ``email_logs`` as
``sent`` or ``failed`` and the methods return a bool instead of raising, so
a mail problem never undoes a recorded payment.
"""

from __future__ import annotations
import logging
from decimal import Decimal
from typing import Optional

from giving.models import email_log
from giving.utils.metrics import NOTIFICATIONS
from giving.utils.email_sender import DEFAULT_FROM_EMAIL, DEFAULT_FROM_NAME, send_email

logger = logging.getLogger(__name__)


def _html(title: str, text: str, from_name: str) -> str:
    return (
        "<html><body>"
        f"<h2>{title}</h2>"
        f"<p>{text}</p>"
        f"<p>Best regards,<br>{from_name}</p>"
        "</body></html>"
    )


class NotificationService:
    def __init__(
        self,
        repository=email_log,
        sender=send_email,
        from_email: str = DEFAULT_FROM_EMAIL,
        from_name: str = DEFAULT_FROM_NAME,
    ):
        self.repository = repository
        self.sender = sender
        self.from_email = from_email
        self.from_name = from_name

    def send_donation_confirmation(
        self,
        user_id: Optional[int],
        reference_id: Optional[int],
        currency: str,
        amount: Decimal,
        is_recurring: bool,
        to_email: Optional[str] = None,
    ) -> bool:
        kind = "recurring" if is_recurring else "one-time"
        subject = "Recurring Donation Setup Successful" if is_recurring else "Donation Successful"
        text = f"Thank you for your {kind} donation of {currency} {amount}."
        return self._deliver(
            user_id=user_id,
            reference_id=reference_id,
            to_email=to_email,
            subject=subject,
            body_text=text,
            body_html=_html("Donation Confirmation", text, self.from_name),
        )

    def send_payment_retry_success(
        self,
        user_id: int,
        reference_id: Optional[int],
        currency: str,
        amount: Decimal,
        to_email: Optional[str] = None,
    ) -> bool:
        text = (
            f"Your recurring donation payment of {currency} {amount} "
            "has been successfully processed."
        )
        return self._deliver(
            user_id=user_id,
            reference_id=reference_id,
            to_email=to_email,
            subject="Recurring Donation Payment Successful",
            body_text=text,
            body_html=_html("Payment Successful", text, self.from_name),
        )

    def send_payment_failed(
        self,
        user_id: int,
        reference_id: Optional[int],
        currency: str,
        amount: Decimal,
        to_email: Optional[str] = None,
    ) -> bool:
        text = (
            f"We could not process your recurring donation payment of {currency} {amount}. "
            "Please update your payment method to resume your donation."
        )
        return self._deliver(
            user_id=user_id,
            reference_id=reference_id,
            to_email=to_email,
            subject="Recurring Donation Payment Failed",
            body_text=text,
            body_html=_html("Payment Failed", text, self.from_name),
        )

    def send_receipt(
        self,
        user_id: Optional[int],
        receipt_id: int,
        receipt_number: str,
        tax_year: int,
        currency: str,
        amount: Decimal,
        to_email: Optional[str] = None,
    ) -> bool:
        text = (
            f"Your {tax_year} donation receipt {receipt_number} for {currency} {amount} "
            "is ready. Please keep it for your tax records."
        )
        return self._deliver(
            user_id=user_id,
            reference_id=receipt_id,
            to_email=to_email,
            subject=f"Donation Receipt {receipt_number}",
            body_text=text,
            body_html=_html("Donation Receipt", text, self.from_name),
        )

    def _deliver(
        self,
        *,
        user_id: Optional[int],
        reference_id: Optional[int],
        to_email: Optional[str],
        subject: str,
        body_text: str,
        body_html: str,
    ) -> bool:
        try:
            if not to_email and user_id is not None:
                to_email = self.repository.get_user_email(user_id)
        except Exception:
            logger.exception("could not look up email for user %s", user_id)
            to_email = None

        if not to_email:
            self._log(user_id, reference_id, None, subject, body_html, "failed", "no recipient address")
            return False

        try:
            provider, result = self.sender(
                to_email=to_email,
                subject=subject,
                body_text=body_text,
                body_html=body_html,
                from_email=self.from_email,
                from_name=self.from_name,
            )
        except Exception as e:
            provider, result = None, str(e)

        NOTIFICATIONS.labels(status="sent" if provider else "failed").inc()
        if provider:
            self._log(user_id, reference_id, to_email, subject, body_html, "sent", None)
            logger.info("sent %r via %s (ref=%s)", subject, provider, reference_id)
            return True

        logger.warning("email %r to user %s failed: %s", subject, user_id, result)
        self._log(user_id, reference_id, to_email, subject, body_html, "failed", result)
        return False

    def _log(self, user_id, reference_id, to_email, subject, body, status, error) -> None:
        try:
            self.repository.log_email(
                user_id=user_id,
                reference_id=reference_id,
                email_to=to_email,
                email_from=self.from_email,
                subject=subject,
                body=body,
                status=status,
                error_message=error,
            )
        except Exception:
            logger.exception("could not write email log (ref=%s)", reference_id)
