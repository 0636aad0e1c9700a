import itertools
import pytest
from decimal import Decimal

from exceptions import InvalidStateTransition
from lifecycle import LEGAL_TRANSITIONS, TransactionRecord, TransactionState, transition

S = TransactionState

ALLOWED = [
    (S.NEW, S.IN_DISPUTE),
    (S.IN_DISPUTE, S.RESOLVED),
    (S.IN_DISPUTE, S.CHARGEDBACK),
]

DISALLOWED = [
    (S.NEW, S.RESOLVED),
    (S.NEW, S.CHARGEDBACK),
    (S.IN_DISPUTE, S.NEW),
    (S.RESOLVED, S.NEW),
    (S.RESOLVED, S.IN_DISPUTE),
    (S.RESOLVED, S.CHARGEDBACK),
    (S.CHARGEDBACK, S.NEW),
    (S.CHARGEDBACK, S.IN_DISPUTE),
    (S.CHARGEDBACK, S.RESOLVED),
]


class TestTransition:
    """Every ordered pair of lifecycle states."""

    @pytest.mark.parametrize("current,requested", ALLOWED)
    def test_allowed(self, current, requested):
        assert transition(0, current, requested) == requested

    @pytest.mark.parametrize("state", list(S))
    def test_self_transition_is_noop(self, state):
        assert transition(0, state, state) == state

    @pytest.mark.parametrize("current,requested", DISALLOWED)
    def test_disallowed(self, current, requested):
        with pytest.raises(InvalidStateTransition) as exc_info:
            transition(7, current, requested)

        assert exc_info.value.tx == 7
        assert exc_info.value.from_state == current
        assert exc_info.value.to_state == requested
        assert exc_info.value.error_code == "INVALID_STATE_TRANSITION"

    def test_grid_is_complete(self):
        """The three lists above cover all 16 pairs exactly once."""
        identity = [(s, s) for s in S]
        covered = ALLOWED + DISALLOWED + identity
        assert len(covered) == 16
        assert set(covered) == set(itertools.product(S, S))
        assert set(ALLOWED) == LEGAL_TRANSITIONS


class TestTransactionRecord:
    def test_new_record_starts_new(self):
        record = TransactionRecord(1, Decimal("2.5"))
        assert record.state == S.NEW

    def test_moves_to_reports_change_without_applying_it(self):
        record = TransactionRecord(1, Decimal("2.5"))

        assert record.moves_to(S.IN_DISPUTE) is True
        assert record.state == S.NEW

    def test_moves_to_self_is_false(self):
        record = TransactionRecord(1, Decimal("2.5"), S.IN_DISPUTE)

        assert record.moves_to(S.IN_DISPUTE) is False

    def test_illegal_move_keeps_state(self):
        record = TransactionRecord(1, Decimal("2.5"))

        with pytest.raises(InvalidStateTransition):
            record.moves_to(S.RESOLVED)

        assert record.state == S.NEW

    def test_cannot_dispute_twice(self):
        record = TransactionRecord(1, Decimal("2.5"), S.RESOLVED)

        with pytest.raises(InvalidStateTransition):
            record.moves_to(S.IN_DISPUTE)
        assert record.state == S.RESOLVED
