from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from giving.models import payment_method as payment_method_model
from giving.services.exceptions import NotFoundError, ValidationError
from giving.services.payment_gateway import PaymentGateway, PaymentMethodType

logger = logging.getLogger(__name__)

BILLING_FIELDS = (
    "billing_address_line1",
    "billing_address_line2",
    "billing_city",
    "billing_state",
    "billing_postal_code",
    "billing_country",
)


class PaymentMethodService:
    """Stored payment methods: at most one default per user, soft deletes only."""

    def __init__(self, gateway: PaymentGateway, repository=payment_method_model):
        self.gateway = gateway
        self.repository = repository

    def create(
        self,
        user_id: int,
        payment_token: str,
        payment_type,
        billing: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payment_type = PaymentMethodType.parse(payment_type)
        validated = self.gateway.validate_method(payment_token, payment_type)
        existing = self.repository.list_user_payment_methods(user_id)
        if not validated.get("customer_id"):
            # one provider customer per user, reused across their cards
            known = next(
                (m["provider_customer_id"] for m in existing if m.get("provider_customer_id")), None
            )
            validated["customer_id"] = self.gateway.attach_customer(
                validated["id"], payment_type, customer_id=known, user_id=user_id
            )
        # the user's first method becomes their default
        make_default = not existing
        return self.store(user_id, validated, billing=billing, is_default=make_default)

    def store(
        self,
        user_id: int,
        validated: Dict[str, Any],
        *,
        billing: Optional[Dict[str, Any]] = None,
        is_default: bool = False,
    ) -> Dict[str, Any]:
        """Persist a method the gateway already validated."""
        billing = billing or {}
        row = {
            "user_id": user_id,
            "payment_type": validated["payment_type"],
            "provider_payment_id": validated["id"],
            "provider_customer_id": validated.get("customer_id"),
            "last_four": validated.get("last_four"),
            "expiry_date": validated.get("expiry_date"),
            "card_brand": validated.get("card_brand"),
            "is_default": False,
            "is_active": True,
        }
        for field in BILLING_FIELDS:
            row[field] = billing.get(field)

        stored = self.repository.create_payment_method(row)
        if is_default:
            stored = self.repository.set_default_payment_method(stored["id"], user_id) or stored
        logger.info("stored %s payment method %s for user %s", row["payment_type"], stored["id"], user_id)
        return stored

    def list(self, user_id: int) -> List[Dict[str, Any]]:
        return self.repository.list_user_payment_methods(user_id)

    def get(self, method_id: int, user_id: int) -> Dict[str, Any]:
        method = self.repository.get_payment_method(method_id, user_id)
        if not method:
            raise NotFoundError("payment method not found")
        return method

    def set_default(self, method_id: int, user_id: int) -> Dict[str, Any]:
        method = self.repository.set_default_payment_method(method_id, user_id)
        if not method:
            raise NotFoundError("payment method not found")
        return method

    def deactivate(self, method_id: int, user_id: int) -> Dict[str, Any]:
        method = self.get(method_id, user_id)
        if method.get("is_default"):
            active = self.repository.list_user_payment_methods(user_id)
            if len(active) <= 1:
                raise ValidationError("cannot remove the only active payment method")

        if method.get("provider_payment_id"):
            self.gateway.deactivate(method["provider_payment_id"])
        removed = self.repository.deactivate_payment_method(method_id, user_id)
        if not removed:
            raise NotFoundError("payment method not found")
        return removed

    def validate(self, method_id: int, user_id: int) -> bool:
        method = self.get(method_id, user_id)
        if not method.get("provider_payment_id"):
            return False
        return self.gateway.validate_existing(method["provider_payment_id"])
