"""pandas views over comparison tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .models import TOTALS_ROW_IDS, TOTALS_SECTION, ComparisonTable
from .values import is_unconfirmed

FRAME_COLUMNS = [
    "SECTION",
    "ROW_ID",
    "LABEL",
    "VENDOR",
    "AMOUNT",
    "DISPLAY",
    "STATUS",
    "CONFIRMED",
    "IS_SUBTOTAL",
    "IS_DISCOUNT",
    "NOTE",
]

BENCHMARK_COLUMNS = [
    "ANALYSIS_ID",
    "PROJECT_NAME",
    "VENDOR",
    "HEADCOUNT",
    "YEAR1_DISPLAY",
    "YEAR1_AMOUNT",
    "TOTAL3YR_DISPLAY",
    "TOTAL3YR_AMOUNT",
]


def table_to_frame(table: ComparisonTable) -> pd.DataFrame:
    """One row per cell, in section/row/vendor order."""

    records = []
    for _si, _ri, vi, section, row, value in table.iter_cells():
        records.append(
            {
                "SECTION": section.name,
                "ROW_ID": row.id,
                "LABEL": row.label,
                "VENDOR": table.vendors[vi],
                "AMOUNT": value.amount,
                "DISPLAY": value.display,
                "STATUS": value.status.value if value.status else None,
                "CONFIRMED": value.is_confirmed,
                "IS_SUBTOTAL": row.is_subtotal,
                "IS_DISCOUNT": row.is_discount,
                "NOTE": value.note,
            }
        )
    frame = pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)
    frame["AMOUNT"] = pd.to_numeric(frame["AMOUNT"], errors="coerce")
    return frame


def totals_frame(table: ComparisonTable) -> pd.DataFrame:
    """Totals amounts indexed by row id, one column per vendor."""

    section = table.find_section(TOTALS_SECTION)
    data = {vendor: [] for vendor in table.vendors}
    index: List[str] = []
    if section is not None:
        for row in section.rows:
            if row.id not in TOTALS_ROW_IDS:
                continue
            index.append(row.id)
            for vi, vendor in enumerate(table.vendors):
                data[vendor].append(row.values[vi].amount)
    frame = pd.DataFrame(data, index=pd.Index(index, name="ROW_ID"), columns=list(table.vendors))
    return frame.apply(pd.to_numeric, errors="coerce")


def unconfirmed_cells(table: ComparisonTable) -> pd.DataFrame:
    """Data cells that still count as 'to be confirmed'."""

    records = []
    for _si, _ri, vi, section, row, value in table.iter_cells():
        if row.is_subtotal or section.name == TOTALS_SECTION:
            continue
        if is_unconfirmed(value):
            records.append(
                {
                    "SECTION": section.name,
                    "ROW_ID": row.id,
                    "LABEL": row.label,
                    "VENDOR": table.vendors[vi],
                    "DISPLAY": value.display,
                }
            )
    return pd.DataFrame.from_records(records, columns=["SECTION", "ROW_ID", "LABEL", "VENDOR", "DISPLAY"])


@dataclass
class BenchmarkEntry:
    """Latest analysis of one completed project."""

    analysis_id: str
    project_name: str
    table: ComparisonTable


def benchmark_summary(
    entries: Iterable[BenchmarkEntry],
    min_headcount: Optional[float] = None,
    max_headcount: Optional[float] = None,
    vendor_filter: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Year-1 and three-year totals per vendor across past analyses.

    Headcount bounds only exclude analyses whose headcount is known.  A vendor
    filter keeps analyses where any vendor name contains one of the filter
    names (case-insensitive).
    """

    filters = [name.lower() for name in (vendor_filter or []) if name]
    records = []
    for entry in entries:
        table = entry.table
        headcount = table.normalized_headcount
        if filters and not any(f in vendor.lower() for vendor in table.vendors for f in filters):
            continue
        if min_headcount and headcount and headcount < min_headcount:
            continue
        if max_headcount and headcount and headcount > max_headcount:
            continue
        totals = table.find_section(TOTALS_SECTION)
        year1_row = next((row for row in totals.rows if row.id == "year1"), None) if totals else None
        total_row = next((row for row in totals.rows if row.id == "total3yr"), None) if totals else None
        for vi, vendor in enumerate(table.vendors):
            year1 = year1_row.values[vi] if year1_row else None
            total3yr = total_row.values[vi] if total_row else None
            records.append(
                {
                    "ANALYSIS_ID": entry.analysis_id,
                    "PROJECT_NAME": entry.project_name,
                    "VENDOR": vendor,
                    "HEADCOUNT": headcount,
                    "YEAR1_DISPLAY": year1.display if year1 else "N/A",
                    "YEAR1_AMOUNT": year1.amount if year1 else None,
                    "TOTAL3YR_DISPLAY": total3yr.display if total3yr else "N/A",
                    "TOTAL3YR_AMOUNT": total3yr.amount if total3yr else None,
                }
            )
    frame = pd.DataFrame.from_records(records, columns=BENCHMARK_COLUMNS)
    for column in ("HEADCOUNT", "YEAR1_AMOUNT", "TOTAL3YR_AMOUNT"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    return frame


__all__ = [
    "BENCHMARK_COLUMNS",
    "BenchmarkEntry",
    "FRAME_COLUMNS",
    "benchmark_summary",
    "table_to_frame",
    "totals_frame",
    "unconfirmed_cells",
]
