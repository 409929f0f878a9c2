"""Builds the process-wide service graph once per app or worker."""

from __future__ import annotations
from typing import Any, Callable, Optional

from flask import current_app

from giving.services.currency_service import CurrencyService
from giving.services.donation_service import DonationService
from giving.services.notification_service import NotificationService
from giving.services.payment_gateway import PaymentGateway
from giving.services.payment_method_service import PaymentMethodService
from giving.services.receipt_service import ReceiptService
from giving.services.recurring_service import RecurringDonationService


class GivingServices:
    def __init__(
        self,
        *,
        currency: CurrencyService,
        gateway: PaymentGateway,
        payment_methods: PaymentMethodService,
        notifications: NotificationService,
        donations: DonationService,
        recurring: RecurringDonationService,
        receipts: ReceiptService,
    ):
        self.currency = currency
        self.gateway = gateway
        self.payment_methods = payment_methods
        self.notifications = notifications
        self.donations = donations
        self.recurring = recurring
        self.receipts = receipts


def build_services(
    *,
    gateway: Optional[PaymentGateway] = None,
    enqueue_cycle: Optional[Callable[[int], Any]] = None,
) -> GivingServices:
    currency = CurrencyService()
    gateway = gateway or PaymentGateway.from_env()
    notifications = NotificationService()
    payment_methods = PaymentMethodService(gateway)
    donations = DonationService(currency, gateway, notifications)
    recurring = RecurringDonationService(
        donations, payment_methods, currency, notifications, enqueue_cycle=enqueue_cycle
    )
    receipts = ReceiptService(donations, recurring, notifications)
    return GivingServices(
        currency=currency,
        gateway=gateway,
        payment_methods=payment_methods,
        notifications=notifications,
        donations=donations,
        recurring=recurring,
        receipts=receipts,
    )


def services() -> GivingServices:
    return current_app.extensions["giving"]
