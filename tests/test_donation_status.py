import itertools

import pytest

from giving.services.donation_status import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    DonationStatus,
    can_transition,
    validate_transition,
)
from giving.services.exceptions import InvalidTransitionError, ValidationError

ALLOWED = {
    ("pending", "completed"),
    ("pending", "failed"),
    ("pending", "refunded"),
    ("pending", "cancelled"),
    ("completed", "refunded"),
    ("completed", "cancelled"),
    ("failed", "completed"),
    ("failed", "cancelled"),
}

ALL_PAIRS = list(itertools.product([s.value for s in DonationStatus], repeat=2))


class TestTransitionTable:
    @pytest.mark.parametrize("current,new", sorted(ALLOWED))
    def test_allowed_pairs_pass(self, current, new):
        validate_transition(current, new)
        assert can_transition(current, new)

    @pytest.mark.parametrize("current,new", [p for p in ALL_PAIRS if p not in ALLOWED])
    def test_every_other_pair_is_rejected(self, current, new):
        with pytest.raises(InvalidTransitionError):
            validate_transition(current, new)
        assert not can_transition(current, new)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {DonationStatus.REFUNDED, DonationStatus.CANCELLED}
        for status in TERMINAL_STATUSES:
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_invalid_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            validate_transition(DonationStatus.REFUNDED, DonationStatus.COMPLETED)
        assert exc.value.status_code == 400
        assert exc.value.to_dict() == {
            "error": "invalid status transition from refunded to completed",
            "current": "refunded",
            "requested": "completed",
        }


class TestParse:
    def test_accepts_enum_and_mixed_case(self):
        assert DonationStatus.parse(DonationStatus.FAILED) is DonationStatus.FAILED
        assert DonationStatus.parse(" Completed ") is DonationStatus.COMPLETED

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            DonationStatus.parse("succeeded")
