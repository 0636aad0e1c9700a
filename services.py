from typing import Iterable, List, Union
import structlog

from exceptions import DecodeError, OperationError
from models import AccountSnapshot, BatchResponse, Operation, RejectedOperation
from repositories import AccountRepository

logger = structlog.get_logger()


class LedgerService:
    """Routes operations to per-client ledgers and reports their balances.

    One instance holds the state of exactly one batch; build a new one (with
    a fresh repository) for every input stream.
    """

    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo

    def apply(self, operation: Operation) -> None:
        """Apply a single operation to its client's ledger.

        The ledger is created on first reference and stays registered even
        when the operation itself is rejected.
        """
        ledger = self.account_repo.get_or_create(operation.client)
        ledger.apply(operation)

    def snapshot(self) -> List[AccountSnapshot]:
        """Final balances, one row per known client, ascending by client id."""
        return [ledger.snapshot() for ledger in self.account_repo.list_accounts()]

    def process(
        self,
        items: Iterable[Union[Operation, DecodeError]],
        strict: bool = False,
    ) -> BatchResponse:
        """Apply a whole decoded stream in arrival order.

        Rejected operations and undecodable rows are logged and collected;
        processing continues. With ``strict`` the first DecodeError is raised.
        """
        applied = 0
        rejected: List[RejectedOperation] = []

        logger.info("Processing batch", strict=strict)

        for item in items:
            if isinstance(item, DecodeError):
                if strict:
                    logger.error("Aborting batch on undecodable row", line=item.line, reason=item.reason)
                    raise item
                logger.warning("Skipping undecodable row", line=item.line, reason=item.reason)
                rejected.append(RejectedOperation(
                    line=item.line,
                    error_code=item.error_code,
                    detail=item.detail,
                ))
                continue

            try:
                self.apply(item)
            except OperationError as e:
                logger.warning(
                    "Transaction failed",
                    client=item.client,
                    tx=item.tx,
                    type=item.kind.type,
                    error_code=e.error_code,
                    detail=e.detail,
                )
                rejected.append(RejectedOperation(
                    client=item.client,
                    tx=item.tx,
                    error_code=e.error_code,
                    detail=e.detail,
                ))
            else:
                applied += 1

        logger.info(
            "Batch processed",
            applied=applied,
            rejected=len(rejected),
            accounts=self.account_repo.get_accounts_count(),
        )

        return BatchResponse(accounts=self.snapshot(), applied=applied, rejected=rejected)


# Factory function for dependency injection
def get_ledger_service(account_repo: AccountRepository) -> LedgerService:
    return LedgerService(account_repo)
