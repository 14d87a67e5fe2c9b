# sqlrunner/delivery/renderer.py
"""Formats result sets for stdout as a table, csv or json."""

import pandas as pd
from typing import List, Sequence

from sqlrunner.management.db_utils import ResultSet


def unique_column_labels(columns: Sequence[str]) -> List[str]:
    """Labels every column uniquely.

    SQL Server returns '' for unnamed expressions and joins can repeat a name;
    blank names become column1, column2... (by position) and repeats get _2, _3...

    Args:
        columns: Column names as reported by the driver.

    Returns:
        Labels in the same order, all distinct and non-blank.
    """
    labels: List[str] = []
    seen = set()
    for position, name in enumerate(columns, start=1):
        base = name if name and str(name).strip() else f"column{position}"
        label = base
        suffix = 2
        while label in seen:
            label = f"{base}_{suffix}"
            suffix += 1
        seen.add(label)
        labels.append(label)
    return labels


def _to_frame(result: ResultSet) -> pd.DataFrame:
    return pd.DataFrame.from_records(result.rows, columns=unique_column_labels(result.columns))


def render_result_set(result: ResultSet, output_format: str = "table") -> str:
    """Formats one result set.

    Args:
        result: Columns and rows returned by the driver.
        output_format: 'table', 'csv' or 'json'.

    Returns:
        Text ready for stdout.
    """
    if not result.columns:
        if result.rows_affected >= 0:
            return f"({result.rows_affected} rows affected)"
        return ""

    df = _to_frame(result)
    if output_format == "csv":
        return df.to_csv(index=False).rstrip("\n")
    if output_format == "json":
        return df.to_json(orient="records", date_format="iso", default_handler=str)

    if df.empty:
        # pandas prints "Empty DataFrame" for zero rows; show the header instead.
        return "  ".join(df.columns) + "\n(0 rows)"
    return df.to_string(index=False) + f"\n({len(df)} rows)"


def render_result_sets(results: Sequence[ResultSet], output_format: str = "table") -> str:
    """Formats every result set, separated by blank lines."""
    blocks: List[str] = []
    for result in results:
        # Row counts of DML statements are noise in machine-readable output.
        if output_format != "table" and not result.columns:
            continue
        text = render_result_set(result, output_format)
        if text:
            blocks.append(text)
    return "\n\n".join(blocks)
