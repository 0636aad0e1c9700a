from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal

from exceptions import DecodeError


def format_amount(value: Decimal) -> str:
    # Fixed-point at full precision, never exponent notation.
    return f"{value:f}"


ClientId = Annotated[int, Field(ge=0, le=2**16 - 1, description="Account identifier")]
TransactionId = Annotated[int, Field(ge=0, le=2**32 - 1, description="Transaction identifier")]
Amount = Annotated[Decimal, Field(ge=0, description="Exact, non-negative amount")]


class Deposit(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["deposit"] = "deposit"
    amount: Amount


class Withdrawal(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["withdrawal"] = "withdrawal"
    amount: Amount


class Dispute(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["dispute"] = "dispute"


class Resolve(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["resolve"] = "resolve"


class Chargeback(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["chargeback"] = "chargeback"


OperationKind = Annotated[
    Union[Deposit, Withdrawal, Dispute, Resolve, Chargeback],
    Field(discriminator="type"),
]


class Operation(BaseModel):
    """One instruction of the input stream, already decoded and typed."""

    model_config = ConfigDict(frozen=True)

    tx: TransactionId
    client: ClientId
    kind: OperationKind


class TransactionRow(BaseModel):
    """Raw CSV row: ``type, client, tx, amount``."""

    type: Literal["deposit", "withdrawal", "dispute", "resolve", "chargeback"]
    client: ClientId
    tx: TransactionId
    amount: Optional[Amount] = None

    @field_validator('amount', mode='before')
    @classmethod
    def empty_amount_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_operation(self) -> Operation:
        if self.type in ("deposit", "withdrawal"):
            if self.amount is None:
                raise DecodeError(f"{self.type} transaction must have amount")
            kind = Deposit(amount=self.amount) if self.type == "deposit" else Withdrawal(amount=self.amount)
        elif self.type == "dispute":
            kind = Dispute()
        elif self.type == "resolve":
            kind = Resolve()
        else:
            kind = Chargeback()
        return Operation(tx=self.tx, client=self.client, kind=kind)

    @classmethod
    def decode(cls, raw: dict, line: Optional[int] = None) -> Operation:
        """Validate a raw row and build its operation, raising DecodeError."""
        try:
            return cls.model_validate(raw).to_operation()
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise DecodeError(reasons, line=line) from e
        except DecodeError as e:
            raise DecodeError(e.reason, line=line) from e


class AccountSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: ClientId
    available: Decimal = Field(..., description="Spendable funds")
    held: Decimal = Field(..., description="Funds frozen pending dispute resolution")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Account frozen after a chargeback")

    @field_serializer('available', 'held', 'total', when_used='json')
    def serialize_amount(self, value: Decimal) -> str:
        return format_amount(value)


class RejectedOperation(BaseModel):
    line: Optional[int] = Field(None, description="Input line of the rejected row")
    client: Optional[int] = None
    tx: Optional[int] = None
    error_code: str = Field(..., description="Machine-readable error code")
    detail: str = Field(..., description="Error description")


class BatchResponse(BaseModel):
    accounts: List[AccountSnapshot] = Field(..., description="Final balances, ascending by client")
    applied: int = Field(..., description="Number of operations applied")
    rejected: List[RejectedOperation] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(default_factory=datetime.now)
