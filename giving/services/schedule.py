"""Payment frequencies, next-due-date and tax-year arithmetic."""

from datetime import datetime, timedelta, timezone
from typing import Tuple
from enum import Enum

from dateutil.relativedelta import relativedelta

from giving.services.exceptions import ValidationError


class DonationFrequency(str, Enum):
    ONE_TIME = "one_time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value) -> "DonationFrequency":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower().replace("-", "_")
        if raw == "onetime":
            raw = "one_time"
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f"invalid frequency: {value}")


# relativedelta clips to the last day of the month (Jan 31 + 1 month -> Feb 28/29)
_STEPS = {
    DonationFrequency.DAILY: timedelta(days=1),
    DonationFrequency.WEEKLY: timedelta(days=7),
    DonationFrequency.MONTHLY: relativedelta(months=1),
    DonationFrequency.QUARTERLY: relativedelta(months=3),
    DonationFrequency.YEARLY: relativedelta(months=12),
}


def next_payment_date(current: datetime, frequency) -> datetime:
    freq = DonationFrequency.parse(frequency)
    step = _STEPS.get(freq)
    if step is None:
        return current
    try:
        return current + step
    except (OverflowError, ValueError):
        # past datetime.max; keep the current date rather than fail the cycle
        return current


FIRST_TAX_YEAR = 1900


def parse_tax_year(value, latest: int) -> int:
    """Calendar tax year between FIRST_TAX_YEAR and ``latest`` inclusive."""
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError("tax_year must be an integer")
    if not FIRST_TAX_YEAR <= year <= latest:
        raise ValidationError(f"tax_year must be between {FIRST_TAX_YEAR} and {latest}")
    return year


def tax_year_bounds(year: int) -> Tuple[datetime, datetime]:
    """[Jan 1, next Jan 1) in UTC."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )
