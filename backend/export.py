import csv
import json
from datetime import datetime
from typing import Iterable, Sequence

import pandas as pd

from store import MULTI_SELECT_COLUMN, Raw, Structured

MULTI_VALUE_SEPARATOR = ";"


def _flatten_multi(value) -> str:
    if isinstance(value, Structured):
        return MULTI_VALUE_SEPARATOR.join(value.values)
    if isinstance(value, Raw):
        return value.value
    if isinstance(value, (list, tuple)):
        return MULTI_VALUE_SEPARATOR.join(str(v) for v in value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return value
        if isinstance(parsed, list):
            return MULTI_VALUE_SEPARATOR.join(str(v) for v in parsed)
        return value
    return str(value)


def _cell(column: str, value) -> str:
    if value is None:
        return ""
    if column == MULTI_SELECT_COLUMN:
        return _flatten_multi(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value)


def collect_columns(records: Iterable[dict], base_columns: Sequence[str] = ()) -> list[str]:
    """Union of field names, in first-seen order, starting with ``base_columns``."""
    columns = list(base_columns)
    seen = set(columns)
    for record in records:
        for key in record:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def to_csv(records: Sequence[dict], base_columns: Sequence[str] = ()) -> str:
    """Render records as CSV with every cell quoted.

    Records may differ in shape; missing values render as empty strings and
    the multi-select column is joined with ``;`` so it never collides with the
    delimiter.
    """
    columns = collect_columns(records, base_columns)
    if not columns:
        return ""
    rows = [[_cell(c, r.get(c)) for c in columns] for r in records]
    df = pd.DataFrame(rows, columns=columns, dtype=object)
    return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
