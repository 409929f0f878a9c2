"""
Currency lookups, exchange-rate updates and conversion.

Exchange rates are stored relative to the base currency (USD): a currency
with rate R converts to base as ``amount * R`` and back as ``amount / R``.
Lookups go through a per-process cache that is refreshed on read once an
entry is older than the TTL and written through on rate updates.
"""

from __future__ import annotations
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from giving.models import currency as currency_model
from giving.services.exceptions import NotFoundError, ValidationError
from giving.utils.money import to_decimal

logger = logging.getLogger(__name__)

BASE_CURRENCY = os.getenv("BASE_CURRENCY", "USD").upper()
CACHE_TTL_SECONDS = int(os.getenv("CURRENCY_CACHE_TTL_SECONDS", "3600"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str | None) -> str:
    value = (code or "").strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValidationError(f"invalid currency code: {code}")
    return value


class CurrencyService:
    def __init__(
        self,
        repository=currency_model,
        *,
        ttl: timedelta = timedelta(seconds=CACHE_TTL_SECONDS),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.ttl = ttl
        self.clock = clock
        self._cache: Dict[str, Tuple[Dict[str, Any], datetime]] = {}
        self._lock = threading.Lock()

    # -- cache --------------------------------------------------------------

    def _cached(self, code: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._cache.get(code)
        if entry is None:
            return None
        currency, cached_at = entry
        if self.clock() - cached_at >= self.ttl:
            return None
        return currency

    def _store(self, currency: Dict[str, Any]) -> None:
        with self._lock:
            self._cache[currency["code"]] = (currency, self.clock())

    def _evict(self, code: str) -> None:
        with self._lock:
            self._cache.pop(code, None)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    # -- lookups ------------------------------------------------------------

    def get_currency(self, code: str) -> Dict[str, Any]:
        code = normalize_code(code)
        cached = self._cached(code)
        if cached is not None:
            return cached

        currency = self.repository.get_currency(code)
        if not currency or not currency.get("is_active"):
            raise NotFoundError(f"currency not found: {code}")
        self._store(currency)
        logger.debug("currency %s loaded (rate=%s)", code, currency["exchange_rate"])
        return currency

    def supported_code(self, code: str) -> str:
        """Normalized code, or NotFoundError if it can't be converted."""
        code = normalize_code(code)
        if code != BASE_CURRENCY:
            self.get_currency(code)
        return code

    def list_active(self) -> List[Dict[str, Any]]:
        return self.repository.list_active_currencies()

    # -- conversion ---------------------------------------------------------

    def to_base(self, amount, code: str) -> Decimal:
        amount = to_decimal(amount)
        if normalize_code(code) == BASE_CURRENCY:
            return amount
        return amount * to_decimal(self.get_currency(code)["exchange_rate"])

    def from_base(self, amount, code: str) -> Decimal:
        amount = to_decimal(amount)
        if normalize_code(code) == BASE_CURRENCY:
            return amount
        return amount / to_decimal(self.get_currency(code)["exchange_rate"])

    def convert(self, amount, from_code: str, to_code: str) -> Decimal:
        amount = to_decimal(amount)
        if normalize_code(from_code) == normalize_code(to_code):
            return amount
        return self.from_base(self.to_base(amount, from_code), to_code)

    # -- admin --------------------------------------------------------------

    def create_currency(
        self, *, code: str, name: str, symbol: str, exchange_rate, is_active: bool = True
    ) -> Dict[str, Any]:
        code = normalize_code(code)
        rate = to_decimal(exchange_rate, "exchange_rate")
        if rate <= 0:
            raise ValidationError("exchange_rate must be > 0")
        if not (name or "").strip():
            raise ValidationError("name required")
        currency = self.repository.upsert_currency(
            code=code,
            name=name.strip(),
            symbol=(symbol or code).strip(),
            exchange_rate=rate,
            is_active=is_active,
        )
        if currency.get("is_active"):
            self._store(currency)
        else:
            self._evict(code)
        return currency

    def update_exchange_rate(self, code: str, new_rate) -> Dict[str, Any]:
        code = normalize_code(code)
        rate = to_decimal(new_rate, "exchange_rate")
        if rate <= 0:
            raise ValidationError("exchange_rate must be > 0")
        currency = self.repository.update_exchange_rate(code, rate)
        if not currency:
            raise NotFoundError(f"currency not found: {code}")
        if currency.get("is_active"):
            self._store(currency)
        else:
            self._evict(code)
        logger.info("exchange rate for %s set to %s", code, rate)
        return currency

    def set_active(self, code: str, active: bool) -> Dict[str, Any]:
        code = normalize_code(code)
        currency = self.repository.set_currency_active(code, bool(active))
        if not currency:
            raise NotFoundError(f"currency not found: {code}")
        self._evict(code)
        return currency
