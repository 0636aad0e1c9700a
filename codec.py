"""CSV input decoding and snapshot encoding.

Input rows look like ``type, client, tx, amount``; the amount column may be
empty or missing for dispute, resolve and chargeback rows. Output rows are
``client, available, held, total, locked``.
"""
import csv
import io
from typing import Iterable, Iterator, List, TextIO, Union

from exceptions import DecodeError, MalformedInput
from models import AccountSnapshot, Operation, TransactionRow, format_amount

REQUIRED_COLUMNS = ("type", "client", "tx")
OUTPUT_COLUMNS = ("client", "available", "held", "total", "locked")


def _clean(value: str, trim: bool) -> str:
    return value.strip() if trim else value


def read_operations(stream: TextIO, trim: bool = True) -> Iterator[Union[Operation, DecodeError]]:
    """Lazily decode a CSV stream.

    Yields an Operation per well-formed row and a DecodeError (not raised) per
    malformed one, so a bad row never stops the stream. Raises MalformedInput
    when the header itself is unusable.
    """
    reader = csv.reader(stream)
    try:
        header = [_clean(name, trim) for name in next(reader)]
    except StopIteration:
        raise MalformedInput("input is empty, expected a header row") from None

    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        raise MalformedInput(f"header is missing column(s): {', '.join(missing)}")

    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        if len(row) > len(header):
            yield DecodeError(
                f"expected at most {len(header)} fields, found {len(row)}", line=reader.line_num
            )
            continue

        raw = dict(zip(header, (_clean(cell, trim) for cell in row)))
        try:
            yield TransactionRow.decode(raw, line=reader.line_num)
        except DecodeError as e:
            yield e


def snapshot_rows(accounts: Iterable[AccountSnapshot]) -> Iterator[List[str]]:
    for account in accounts:
        yield [
            str(account.client),
            format_amount(account.available),
            format_amount(account.held),
            format_amount(account.total),
            "true" if account.locked else "false",
        ]


def write_snapshot(accounts: Iterable[AccountSnapshot], stream: TextIO) -> None:
    """Write the snapshot as CSV. Nothing at all is written for no accounts."""
    writer = csv.writer(stream, lineterminator="\n")
    header_written = False
    for row in snapshot_rows(accounts):
        if not header_written:
            writer.writerow(OUTPUT_COLUMNS)
            header_written = True
        writer.writerow(row)


def snapshot_to_csv(accounts: Iterable[AccountSnapshot]) -> str:
    buffer = io.StringIO()
    write_snapshot(accounts, buffer)
    return buffer.getvalue()
