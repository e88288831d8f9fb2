"""
ingest.py
----------
Conversion between tabular transaction data and Transaction records.

The engine itself works on Transaction records. This module is the strict
edge: it is the only place that raises InputValidationError for malformed
rows, so the algorithms behind it never have to.
"""

import logging
import os
import pandas as pd
from typing import Iterable, List

from core.exceptions import InputValidationError
from core.models import Transaction

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = [
    "id", "date", "amount", "merchant", "category", "account", "type", "status",
]
OPTIONAL_COLUMNS = ["tags", "goal_id", "is_recurring", "recurring_id", "notes"]

# Tags are stored as a single delimited cell in CSV files.
TAG_SEPARATOR = "|"


def _optional(value):
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


def _parse_tags(value) -> tuple[str, ...]:
    value = _optional(value)
    if value is None or value == "":
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return tuple(t.strip() for t in str(value).split(TAG_SEPARATOR) if t.strip())


def _parse_flag(value) -> bool:
    value = _optional(value)
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def transactions_from_frame(df: pd.DataFrame) -> List[Transaction]:
    """
    Validates a transactions DataFrame and converts it to records.

    Raises:
        InputValidationError: Missing required columns, unparsable dates or
            non-numeric amounts.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InputValidationError(f"Missing required columns: {missing}")

    if df.empty:
        return []

    dates = pd.to_datetime(df["date"], errors="coerce")
    bad_dates = df.loc[dates.isna(), "id"].tolist()
    if bad_dates:
        raise InputValidationError(f"Unparsable dates for transactions: {bad_dates}")

    amounts = pd.to_numeric(df["amount"], errors="coerce")
    bad_amounts = df.loc[amounts.isna(), "id"].tolist()
    if bad_amounts:
        raise InputValidationError(f"Non-numeric amounts for transactions: {bad_amounts}")

    records: List[Transaction] = []
    for i, row in enumerate(df.to_dict("records")):
        recurring_id = _optional(row.get("recurring_id"))
        goal_id = _optional(row.get("goal_id"))
        records.append(Transaction(
            id=str(row["id"]),
            date=dates.iloc[i].date(),
            amount=float(amounts.iloc[i]),
            merchant=str(row["merchant"]),
            category=str(row["category"]),
            account=str(row["account"]),
            type=str(row["type"]),
            status=str(row["status"]),
            tags=_parse_tags(row.get("tags")),
            goal_id=str(goal_id) if goal_id is not None else None,
            is_recurring=_parse_flag(row.get("is_recurring")),
            recurring_id=str(recurring_id) if recurring_id is not None else None,
            notes=_optional(row.get("notes")),
        ))

    return records


def load_transactions(path: str) -> List[Transaction]:
    """
    Reads a transactions CSV.

    Raises:
        FileNotFoundError: If path does not exist.
        InputValidationError: See transactions_from_frame().
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Transactions file not found: {path}")

    # Everything as text; transactions_from_frame() does the typed parsing
    df = pd.read_csv(path, dtype=str)
    logger.info(f"Loaded {len(df):,} rows from {path}")
    return transactions_from_frame(df)


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Flattens records back into a DataFrame (tags joined with TAG_SEPARATOR)."""
    rows = [
        {
            "id": t.id,
            "date": t.date.strftime("%Y-%m-%d"),
            "amount": t.amount,
            "merchant": t.merchant,
            "category": t.category,
            "account": t.account,
            "type": t.type,
            "status": t.status,
            "tags": TAG_SEPARATOR.join(t.tags),
            "goal_id": t.goal_id,
            "is_recurring": t.is_recurring,
            "recurring_id": t.recurring_id,
            "notes": t.notes,
        }
        for t in transactions
    ]
    return pd.DataFrame(rows, columns=REQUIRED_COLUMNS + OPTIONAL_COLUMNS)
