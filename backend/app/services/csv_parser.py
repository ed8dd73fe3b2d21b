"""CSV tokenizing helpers for statement imports.

The lexer is deliberately lenient: a quote left open at the end of the input
is closed at end of stream instead of raising, so a truncated export still
yields its complete rows.
"""
import csv
import io
import re
from datetime import datetime, timezone

_AMOUNT_JUNK = re.compile(r"[$,\s]")


def parse_csv_rows(content: str, delimiter: str = ",") -> list[list[str]]:
    """Parse delimited text into rows of trimmed fields.

    Quoted fields may contain the delimiter and raw newlines, a doubled quote
    is a literal quote, and ``\\r\\n``, ``\\n`` and bare ``\\r`` all end a row.
    Rows made only of empty fields are dropped.
    """
    if len(delimiter) != 1:
        raise ValueError(f"Delimiter must be a single character, got {delimiter!r}")

    # newline="" lets the reader see every terminator style untranslated
    reader = csv.reader(
        io.StringIO(content, newline=""),
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
        skipinitialspace=True,
        strict=False,
    )

    # An open quote swallows the rest of the input into one field
    previous_limit = csv.field_size_limit()
    csv.field_size_limit(max(previous_limit, len(content) + 1))
    rows = []
    try:
        for raw_row in reader:
            row = [field.strip() for field in raw_row]
            if any(row):
                rows.append(row)
    finally:
        csv.field_size_limit(previous_limit)
    return rows


def parse_csv(content: str, delimiter: str = ",") -> list[dict[str, str]]:
    """Parse CSV content into dicts keyed by the header row.

    Missing trailing fields come back as empty strings.
    """
    rows = parse_csv_rows(content, delimiter)
    if not rows:
        return []
    return key_rows(rows[0], rows[1:])


def key_rows(headers: list[str], rows: list[list[str]]) -> list[dict[str, str]]:
    """Key raw rows by ``headers``, padding short rows with empty strings."""
    return [
        {header: (row[idx] if idx < len(row) else "") for idx, header in enumerate(headers)}
        for row in rows
    ]


def parse_date(date_str: str, date_format: str = "%m/%d/%Y") -> datetime | None:
    """Parse a statement date (midnight UTC), or None if it does not parse."""
    try:
        parsed = datetime.strptime(date_str.strip(), date_format)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def parse_amount(amount_str: str) -> float:
    """Parse an amount string (handles negative values and currency symbols)."""
    cleaned = _AMOUNT_JUNK.sub("", amount_str or "")
    try:
        return float(cleaned)
    except ValueError:
        return 0.0
