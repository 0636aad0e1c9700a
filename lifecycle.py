from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Tuple

from exceptions import InvalidStateTransition


class TransactionState(str, Enum):
    NEW = "new"
    IN_DISPUTE = "in_dispute"
    RESOLVED = "resolved"
    CHARGEDBACK = "chargedback"


# A transaction can be disputed only once: there is no way back into
# IN_DISPUTE from either terminal state.
LEGAL_TRANSITIONS: FrozenSet[Tuple[TransactionState, TransactionState]] = frozenset({
    (TransactionState.NEW, TransactionState.IN_DISPUTE),
    (TransactionState.IN_DISPUTE, TransactionState.RESOLVED),
    (TransactionState.IN_DISPUTE, TransactionState.CHARGEDBACK),
})


def transition(tx: int, current: TransactionState, requested: TransactionState) -> TransactionState:
    """Return the state reached by moving ``current`` to ``requested``.

    Self-transitions are always legal no-ops. Any other pair not listed in
    LEGAL_TRANSITIONS raises InvalidStateTransition.
    """
    if current == requested:
        return current
    if (current, requested) in LEGAL_TRANSITIONS:
        return requested
    raise InvalidStateTransition(tx, current, requested)


@dataclass
class TransactionRecord:
    """Lifecycle of one deposit or withdrawal.

    ``amount`` is signed: positive for deposits, negative for withdrawals.
    """

    tx: int
    amount: Decimal
    state: TransactionState = TransactionState.NEW

    def moves_to(self, requested: TransactionState) -> bool:
        """Check a transition without applying it.

        Raises InvalidStateTransition for an illegal pair and returns False
        for a self-transition, so callers commit balances and state together.
        """
        return transition(self.tx, self.state, requested) != self.state
