"""
Donation status values and the transition table shared by one-time and
recurring donations.

For a recurring series "completed" means actively recurring; the series is
retired (limit reached) through ``ended_at`` rather than a separate status.
"""

from enum import Enum
from typing import Dict, FrozenSet

from giving.services.exceptions import InvalidTransitionError, ValidationError


class DonationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value) -> "DonationStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"invalid donation status: {value}")


ALLOWED_TRANSITIONS: Dict[DonationStatus, FrozenSet[DonationStatus]] = {
    DonationStatus.PENDING: frozenset(
        {
            DonationStatus.COMPLETED,
            DonationStatus.FAILED,
            DonationStatus.REFUNDED,
            DonationStatus.CANCELLED,
        }
    ),
    DonationStatus.COMPLETED: frozenset({DonationStatus.REFUNDED, DonationStatus.CANCELLED}),
    DonationStatus.FAILED: frozenset({DonationStatus.COMPLETED, DonationStatus.CANCELLED}),
    DonationStatus.REFUNDED: frozenset(),
    DonationStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def can_transition(current, new) -> bool:
    return DonationStatus.parse(new) in ALLOWED_TRANSITIONS[DonationStatus.parse(current)]


def validate_transition(current, new) -> None:
    """Raise InvalidTransitionError unless current -> new is in the table."""
    cur = DonationStatus.parse(current)
    nxt = DonationStatus.parse(new)
    if nxt not in ALLOWED_TRANSITIONS[cur]:
        raise InvalidTransitionError(cur, nxt)
