"""
Payment provider integration.

Validation of a payment token is provider specific and lives in one
``PaymentValidator`` per provider, registered against the payment method
types it handles. Cards go through the Stripe SDK: a stored card is attached
to a Customer, and later charges are confirmed PaymentIntents against it.
The other providers are plain JSON over HTTP.

Configure via env:
- STRIPE_SECRET_KEY
- PAYPAL_CLIENT_ID, PAYPAL_SECRET, PAYPAL_API_BASE
- PLAID_CLIENT_ID, PLAID_SECRET_KEY, PLAID_API_BASE
- APPLE_PAY_SECRET_KEY, APPLE_PAY_API_BASE
- GOOGLE_PAY_SECRET_KEY, GOOGLE_PAY_API_BASE
- PAYMENT_HTTP_TIMEOUT (seconds, default 15)
- PAYMENT_DEV_MODE=1: with no Stripe key, return fake provider ids instead of failing
"""

from __future__ import annotations
import logging
import os
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

import requests
import stripe

from giving.services.exceptions import ExternalServiceError, ValidationError
from giving.utils.money import to_minor_units

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = float(os.getenv("PAYMENT_HTTP_TIMEOUT", "15"))


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CRYPTO = "crypto"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"

    @classmethod
    def parse(cls, value) -> "PaymentMethodType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "credit_card").strip().lower())
        except ValueError:
            raise ValidationError(f"invalid payment method type: {value}")


# types Stripe stores as reusable PaymentMethods
STRIPE_TYPES = (PaymentMethodType.CREDIT_CARD, PaymentMethodType.DEBIT_CARD)


def _payment_method(
    provider_id: str,
    payment_type: PaymentMethodType,
    *,
    last_four: Optional[str] = None,
    expiry_date: Optional[str] = None,
    card_brand: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": provider_id,
        "user_id": None,
        "payment_type": payment_type.value,
        "last_four": last_four,
        "expiry_date": expiry_date,
        "card_brand": card_brand,
        "customer_id": customer_id,
        "is_default": False,
        "created_at": datetime.now(timezone.utc),
    }


def _field(obj, name):
    """Read a field from a Stripe object (or anything attribute-shaped)."""
    return getattr(obj, name, None) if obj is not None else None


def _stripe_failure(action: str, e: Exception) -> ExternalServiceError:
    logger.warning("stripe %s failed: %s", action, getattr(e, "user_message", None) or e)
    return ExternalServiceError(f"stripe {action} failed", provider="stripe")


def _expiry(month, year) -> Optional[str]:
    if month is None or year is None:
        return None
    return f"{int(month):02d}/{int(year)}"


class ProviderClient:
    """Thin JSON-over-HTTP client with a bounded timeout on every call."""

    def __init__(self, session=None, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def request(self, method: str, url: str, *, provider: str, **kwargs) -> Dict[str, Any]:
        resp = self.send(method, url, provider=provider, **kwargs)
        if not 200 <= resp.status_code < 300:
            raise ExternalServiceError(
                f"{provider} returned HTTP {resp.status_code}", provider=provider
            )
        return self.json(resp, provider)

    def send(self, method: str, url: str, *, provider: str, **kwargs):
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            raise ExternalServiceError(f"{provider} timed out", provider=provider)
        except requests.RequestException as e:
            logger.warning("%s request failed: %s", provider, e)
            raise ExternalServiceError(f"{provider} unreachable", provider=provider)

    @staticmethod
    def json(resp, provider: str) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            raise ExternalServiceError(f"{provider} returned malformed JSON", provider=provider)
        if not isinstance(data, dict):
            raise ExternalServiceError(f"{provider} returned malformed JSON", provider=provider)
        return data


def _require(data: Dict[str, Any], *path, provider: str):
    cur: Any = data
    for key in path:
        if not isinstance(cur, dict) or cur.get(key) in (None, ""):
            raise ExternalServiceError(
                f"{provider} response missing {'.'.join(path)}", provider=provider
            )
        cur = cur[key]
    return cur


class PaymentValidator:
    """Validates a payment token with one provider."""

    provider = "unknown"
    handles: tuple = ()

    def __init__(self, client: ProviderClient):
        self.client = client

    def validate(self, token: str, payment_type: PaymentMethodType) -> Dict[str, Any]:
        raise NotImplementedError


class StripeCardValidator(PaymentValidator):
    """Cards are Stripe PaymentMethods (``pm_...``) created client side."""

    provider = "stripe"
    handles = STRIPE_TYPES

    def __init__(self, client, secret_key: str, stripe_api=stripe):
        super().__init__(client)
        self.secret_key = secret_key
        self.stripe = stripe_api

    def validate(self, token, payment_type):
        if not self.secret_key:
            raise ExternalServiceError("STRIPE_SECRET_KEY not configured", provider=self.provider)
        try:
            pm = self.stripe.PaymentMethod.retrieve(token, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise _stripe_failure("validate", e)
        card = _field(pm, "card")
        if not _field(pm, "id") or card is None:
            raise ExternalServiceError("stripe response missing card", provider=self.provider)
        return _payment_method(
            _field(pm, "id"),
            payment_type,
            last_four=_field(card, "last4"),
            expiry_date=_expiry(_field(card, "exp_month"), _field(card, "exp_year")),
            card_brand=_field(card, "brand"),
            customer_id=_field(pm, "customer"),
        )


class PayPalValidator(PaymentValidator):
    provider = "paypal"
    handles = (PaymentMethodType.PAYPAL,)

    def __init__(self, client, client_id: str, secret: str, api_base: str):
        super().__init__(client)
        self.client_id = client_id
        self.secret = secret
        self.api_base = api_base.rstrip("/")

    def validate(self, token, payment_type):
        if not (self.client_id and self.secret):
            raise ExternalServiceError("PayPal credentials not configured", provider=self.provider)
        auth = self.client.request(
            "POST",
            f"{self.api_base}/v1/oauth2/token",
            provider=self.provider,
            auth=(self.client_id, self.secret),
            data={"grant_type": "client_credentials"},
        )
        access_token = _require(auth, "access_token", provider=self.provider)
        data = self.client.request(
            "GET",
            f"{self.api_base}/v1/payments/payment/{token}",
            provider=self.provider,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return _payment_method(data.get("id") or token, payment_type)


class PlaidBankValidator(PaymentValidator):
    provider = "plaid"
    handles = (PaymentMethodType.BANK_TRANSFER,)

    def __init__(self, client, client_id: str, secret: str, api_base: str):
        super().__init__(client)
        self.client_id = client_id
        self.secret = secret
        self.api_base = api_base.rstrip("/")

    def validate(self, token, payment_type):
        if not (self.client_id and self.secret):
            raise ExternalServiceError("Plaid credentials not configured", provider=self.provider)
        data = self.client.request(
            "POST",
            f"{self.api_base}/payment_methods/get",
            provider=self.provider,
            headers={"PLAID-CLIENT-ID": self.client_id, "PLAID-SECRET": self.secret},
            json={"payment_token": token},
        )
        return _payment_method(
            _require(data, "payment_id", provider=self.provider),
            payment_type,
            last_four=data.get("account_last4"),
        )


class CryptoValidator(PaymentValidator):
    """Wallet addresses are accepted as-is; settlement is confirmed on charge."""

    provider = "crypto"
    handles = (PaymentMethodType.CRYPTO,)

    def validate(self, token, payment_type):
        return _payment_method(token, payment_type)


class WalletValidator(PaymentValidator):
    """Apple Pay / Google Pay token validation share a response shape."""

    def __init__(self, client, secret_key: str, api_base: str):
        super().__init__(client)
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")

    def validate(self, token, payment_type):
        if not self.secret_key:
            raise ExternalServiceError(f"{self.provider} key not configured", provider=self.provider)
        data = self.client.request(
            "POST",
            f"{self.api_base}/v1/payments/validate",
            provider=self.provider,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            json={"token": token},
        )
        card = _require(data, "card", provider=self.provider)
        return _payment_method(
            _require(data, "id", provider=self.provider),
            payment_type,
            last_four=card.get("last_four"),
            expiry_date=_expiry(card.get("expiry_month"), card.get("expiry_year")),
        )


class ApplePayValidator(WalletValidator):
    provider = "apple_pay"
    handles = (PaymentMethodType.APPLE_PAY,)


class GooglePayValidator(WalletValidator):
    provider = "google_pay"
    handles = (PaymentMethodType.GOOGLE_PAY,)


class PaymentGateway:
    def __init__(
        self,
        *,
        stripe_secret: str = "",
        validators: Optional[list] = None,
        client: Optional[ProviderClient] = None,
        dev_mode: bool = False,
        stripe_api=stripe,
    ):
        self.client = client or ProviderClient()
        self.stripe_secret = stripe_secret
        self.stripe = stripe_api
        self.dev_mode = dev_mode and not stripe_secret
        self.validators: Dict[PaymentMethodType, PaymentValidator] = {}
        for validator in validators or []:
            self.register(validator)

    @classmethod
    def from_env(cls, session=None) -> "PaymentGateway":
        client = ProviderClient(session=session)
        stripe_secret = os.getenv("STRIPE_SECRET_KEY", "").strip()
        validators = [
            StripeCardValidator(client, stripe_secret),
            PayPalValidator(
                client,
                os.getenv("PAYPAL_CLIENT_ID", ""),
                os.getenv("PAYPAL_SECRET", ""),
                os.getenv("PAYPAL_API_BASE", "https://api-m.paypal.com"),
            ),
            PlaidBankValidator(
                client,
                os.getenv("PLAID_CLIENT_ID", ""),
                os.getenv("PLAID_SECRET_KEY", ""),
                os.getenv("PLAID_API_BASE", "https://production.plaid.com"),
            ),
            CryptoValidator(client),
            ApplePayValidator(
                client,
                os.getenv("APPLE_PAY_SECRET_KEY", ""),
                os.getenv("APPLE_PAY_API_BASE", "https://apple-pay-gateway.apple.com"),
            ),
            GooglePayValidator(
                client,
                os.getenv("GOOGLE_PAY_SECRET_KEY", ""),
                os.getenv("GOOGLE_PAY_API_BASE", "https://payments.google.com"),
            ),
        ]
        return cls(
            stripe_secret=stripe_secret,
            validators=validators,
            client=client,
            dev_mode=os.getenv("PAYMENT_DEV_MODE", "0") == "1",
        )

    def register(self, validator: PaymentValidator) -> None:
        for payment_type in validator.handles:
            self.validators[payment_type] = validator

    def _require_stripe(self) -> None:
        if not self.stripe_secret:
            raise ExternalServiceError("STRIPE_SECRET_KEY not configured", provider="stripe")

    # -- validation ---------------------------------------------------------

    def validate_method(self, token: str, payment_type) -> Dict[str, Any]:
        if not (token or "").strip():
            raise ValidationError("payment_token required")
        payment_type = PaymentMethodType.parse(payment_type)
        if self.dev_mode:
            return _payment_method(f"pm_dev_{uuid.uuid4().hex[:16]}", payment_type, last_four="4242")
        validator = self.validators.get(payment_type)
        if validator is None:
            raise ValidationError(f"unsupported payment method type: {payment_type.value}")
        return validator.validate(token.strip(), payment_type)

    def attach_customer(
        self, provider_id: str, payment_type, *, customer_id: Optional[str] = None, user_id=None
    ) -> Optional[str]:
        """
        Attach a validated Stripe method to a Customer so it can be charged
        again off-session. Returns the customer id, or None for method types
        that Stripe does not store.
        """
        if PaymentMethodType.parse(payment_type) not in STRIPE_TYPES:
            return None
        if self.dev_mode:
            return customer_id or f"cus_dev_{uuid.uuid4().hex[:14]}"
        self._require_stripe()
        try:
            if not customer_id:
                customer = self.stripe.Customer.create(
                    api_key=self.stripe_secret,
                    metadata={"user_id": str(user_id)} if user_id is not None else {},
                )
                customer_id = _field(customer, "id")
            self.stripe.PaymentMethod.attach(
                provider_id, customer=customer_id, api_key=self.stripe_secret
            )
        except stripe.StripeError as e:
            raise _stripe_failure("attach", e)
        logger.info("attached payment method to customer %s", customer_id)
        return customer_id

    # -- charges ------------------------------------------------------------

    def charge(
        self,
        token: str,
        amount: Decimal,
        currency: str = "usd",
        *,
        customer: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Charge `amount` (major units) against `token` with a confirmed
        PaymentIntent. With `customer` the charge runs off-session against
        the stored method.

        A card decline comes back as success=False so the caller can record
        the failed attempt; only provider or transport problems raise.
        """
        minor = to_minor_units(amount, currency)
        if minor <= 0:
            raise ValidationError("charge amount must be > 0")

        if self.dev_mode:
            return {"transaction_id": f"ch_dev_{uuid.uuid4().hex}", "success": True}
        self._require_stripe()

        params: Dict[str, Any] = {
            "amount": minor,
            "currency": currency.lower(),
            "payment_method": token,
            "confirm": True,
            "description": "Donation",
            "api_key": self.stripe_secret,
        }
        if customer:
            params.update(customer=customer, off_session=True)
        else:
            params["automatic_payment_methods"] = {"enabled": True, "allow_redirects": "never"}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = self.stripe.PaymentIntent.create(**params)
        except stripe.CardError as e:
            logger.info("charge declined: %s", e.code)
            return {"transaction_id": _field(e.error, "charge"), "success": False}
        except stripe.StripeError as e:
            raise _stripe_failure("charge", e)

        return {
            "transaction_id": _field(intent, "latest_charge") or _field(intent, "id"),
            "success": _field(intent, "status") == "succeeded",
        }

    # -- stored methods -----------------------------------------------------

    def deactivate(self, provider_id: str) -> None:
        if self.dev_mode:
            return
        self._require_stripe()
        try:
            self.stripe.PaymentMethod.detach(provider_id, api_key=self.stripe_secret)
        except stripe.InvalidRequestError as e:
            # already detached / unknown at the provider counts as done
            if e.http_status != 404 and e.code != "resource_missing":
                raise _stripe_failure("detach", e)
        except stripe.StripeError as e:
            raise _stripe_failure("detach", e)

    def validate_existing(self, provider_id: str) -> bool:
        if self.dev_mode:
            return True
        self._require_stripe()
        try:
            self.stripe.PaymentMethod.retrieve(provider_id, api_key=self.stripe_secret)
        except stripe.InvalidRequestError:
            return False
        except stripe.StripeError as e:
            raise _stripe_failure("lookup", e)
        return True
