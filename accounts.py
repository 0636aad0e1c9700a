from decimal import (
    Context, Decimal, DivisionByZero, Inexact, InvalidOperation, Overflow, ROUND_HALF_EVEN, localcontext,
)
from typing import Dict, Optional, assert_never
import structlog

from exceptions import (
    AccountLocked,
    DisputeInsufficientFunds,
    DuplicateTransaction,
    InsufficientFunds,
    PrecisionExceeded,
    TransactionNotFound,
)
from lifecycle import TransactionRecord, TransactionState
from models import AccountSnapshot, Chargeback, Deposit, Dispute, Operation, Resolve, Withdrawal

logger = structlog.get_logger()

ZERO = Decimal(0)

# Balance arithmetic never rounds: any result needing more than 50
# significant digits raises Inexact.
EXACT_CONTEXT = Context(
    prec=50,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)


class AccountLedger:
    """Balances, lock flag and transaction records of a single client.

    Every handler either commits its whole delta or raises before touching
    anything, and each delta moves exactly two of the three balances by the
    same amount, so ``total == available + held`` always holds.
    """

    def __init__(self, client_id: int):
        self.client_id = client_id
        self.available = Decimal(0)
        self.held = Decimal(0)
        self.total = Decimal(0)
        self.locked = False
        # Order of transactions is irrelevant, only lookup by id is needed.
        self._records: Dict[int, TransactionRecord] = {}

    def apply(self, operation: Operation) -> None:
        """Apply one operation, raising an OperationError if it is rejected."""
        if self.locked:
            raise AccountLocked(operation.tx)

        kind = operation.kind
        if isinstance(kind, Deposit):
            self._deposit(operation.tx, kind.amount)
        elif isinstance(kind, Withdrawal):
            self._withdraw(operation.tx, kind.amount)
        elif isinstance(kind, Dispute):
            self._dispute(operation.tx)
        elif isinstance(kind, Resolve):
            self._resolve(operation.tx)
        elif isinstance(kind, Chargeback):
            self._chargeback(operation.tx)
        else:
            assert_never(kind)

    def get_record(self, tx: int) -> Optional[TransactionRecord]:
        return self._records.get(tx)

    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            client=self.client_id,
            available=self.available,
            held=self.held,
            total=self.total,
            locked=self.locked,
        )

    def _shift(self, tx: int, available: Decimal = ZERO, held: Decimal = ZERO, total: Decimal = ZERO) -> None:
        """Move the balances by the given deltas, all or nothing.

        Sums are computed in EXACT_CONTEXT; a result that cannot be
        represented without rounding rejects the operation.
        """
        with localcontext(EXACT_CONTEXT):
            try:
                new_available = self.available + available
                new_held = self.held + held
                new_total = self.total + total
            except Inexact:
                raise PrecisionExceeded(tx, EXACT_CONTEXT.prec) from None

        self.available, self.held, self.total = new_available, new_held, new_total

    def _deposit(self, tx: int, amount: Decimal) -> None:
        if tx in self._records:
            raise DuplicateTransaction(tx)

        self._shift(tx, available=amount, total=amount)
        self._records[tx] = TransactionRecord(tx, amount)

        logger.debug("Deposit applied", client=self.client_id, tx=tx, amount=str(amount))

    def _withdraw(self, tx: int, amount: Decimal) -> None:
        if tx in self._records:
            raise DuplicateTransaction(tx)
        if self.available < amount:
            raise InsufficientFunds(tx, available=self.available, requested=amount)

        # copy_negate() is exact, unary minus would round in the current context
        signed = amount.copy_negate()
        self._shift(tx, available=signed, total=signed)
        self._records[tx] = TransactionRecord(tx, signed)

        logger.debug("Withdrawal applied", client=self.client_id, tx=tx, amount=str(amount))

    def _existing(self, tx: int) -> TransactionRecord:
        record = self._records.get(tx)
        if record is None:
            raise TransactionNotFound(tx)
        return record

    def _dispute(self, tx: int) -> None:
        """Hold the funds of a transaction the client claims was erroneous.

        The signed amount is used, so disputing a withdrawal moves a negative
        amount into ``held`` and raises ``available``.
        """
        record = self._existing(tx)
        if self.available < record.amount:
            raise DisputeInsufficientFunds(tx)

        if record.moves_to(TransactionState.IN_DISPUTE):
            self._shift(tx, available=record.amount.copy_negate(), held=record.amount)
            record.state = TransactionState.IN_DISPUTE
            logger.debug("Dispute applied", client=self.client_id, tx=tx, amount=str(record.amount))

    def _resolve(self, tx: int) -> None:
        """Release held funds of a disputed transaction back to available."""
        record = self._existing(tx)

        if record.moves_to(TransactionState.RESOLVED):
            self._shift(tx, available=record.amount, held=record.amount.copy_negate())
            record.state = TransactionState.RESOLVED
            logger.debug("Resolve applied", client=self.client_id, tx=tx, amount=str(record.amount))

    def _chargeback(self, tx: int) -> None:
        """Reverse a disputed transaction and freeze the account for good."""
        record = self._existing(tx)

        if record.moves_to(TransactionState.CHARGEDBACK):
            self._shift(tx, held=record.amount.copy_negate(), total=record.amount.copy_negate())
            record.state = TransactionState.CHARGEDBACK
            self.locked = True
            logger.info("Account locked after chargeback", client=self.client_id, tx=tx)
