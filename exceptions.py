from decimal import Decimal
from typing import Optional


class PaymentsError(Exception):
    """Base class for every error raised by the payments engine."""

    error_code = "PAYMENTS_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class MalformedInput(PaymentsError):
    """The input stream as a whole cannot be read (bad or missing header)."""

    error_code = "MALFORMED_INPUT"


class DecodeError(PaymentsError):
    """A single input row could not be turned into an operation."""

    error_code = "DECODE_ERROR"

    def __init__(self, reason: str, line: Optional[int] = None):
        detail = f"failed to parse input, reason: `{reason}`"
        if line is not None:
            detail = f"line {line}: {detail}"
        super().__init__(detail)
        self.reason = reason
        self.line = line


class OperationError(PaymentsError):
    """An operation was rejected by an account ledger. Nothing was mutated."""

    error_code = "OPERATION_ERROR"

    def __init__(self, tx: int, detail: str):
        super().__init__(detail)
        self.tx = tx


class DuplicateTransaction(OperationError):
    error_code = "DUPLICATE_TRANSACTION"

    def __init__(self, tx: int):
        super().__init__(tx, f"transaction ID `{tx}` (for deposit/withdrawal) is duplicated")


class TransactionNotFound(OperationError):
    error_code = "TRANSACTION_NOT_FOUND"

    def __init__(self, tx: int):
        super().__init__(tx, f"transaction ID `{tx}` (for dispute/resolve/chargeback) not found")


class InsufficientFunds(OperationError):
    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, tx: int, available: Decimal, requested: Decimal):
        super().__init__(
            tx,
            f"withdrawal transaction ID `{tx}` of {requested} failed because of "
            f"insufficient funds: {available}",
        )
        self.available = available
        self.requested = requested


class DisputeInsufficientFunds(OperationError):
    error_code = "DISPUTE_INSUFFICIENT_FUNDS"

    def __init__(self, tx: int):
        super().__init__(
            tx,
            f"failed to dispute transaction ID `{tx}` as it would result in negative available balance",
        )


class InvalidStateTransition(OperationError):
    error_code = "INVALID_STATE_TRANSITION"

    def __init__(self, tx: int, from_state, to_state):
        super().__init__(
            tx,
            f"invalid transaction state transition for ID `{tx}` "
            f"({from_state.value} -> {to_state.value})",
        )
        self.from_state = from_state
        self.to_state = to_state


class AccountLocked(OperationError):
    error_code = "ACCOUNT_LOCKED"

    def __init__(self, tx: int):
        super().__init__(tx, f"transaction ID `{tx}` was tried on a locked account")


class PrecisionExceeded(OperationError):
    error_code = "PRECISION_EXCEEDED"

    def __init__(self, tx: int, digits: int):
        super().__init__(
            tx,
            f"transaction ID `{tx}` would need more than {digits} significant digits and was not applied",
        )
        self.digits = digits
