import pandas as pd

from .frames import totals_frame, unconfirmed_cells
from .models import ComparisonTable
from .values import format_currency


def make_summary_text(table: ComparisonTable) -> str:
    totals = totals_frame(table)
    unconfirmed = unconfirmed_cells(table)
    if "total3yr" not in totals.index:
        return "No totals available; recalculate the comparison first.\n"

    three_year = totals.loc["total3yr"].dropna()
    year1 = totals.loc["year1"] if "year1" in totals.index else pd.Series(dtype=float)
    pending = unconfirmed.groupby("VENDOR").size() if not unconfirmed.empty else pd.Series(dtype=int)

    lines = []
    if table.normalized_headcount:
        lines.append(f"Normalized to {table.normalized_headcount:g} employees.")
    lines.append("3-year total by vendor:")
    for vendor in table.vendors:
        amount = three_year.get(vendor)
        text = format_currency(float(amount)) if amount is not None else "To be confirmed"
        y1 = year1.get(vendor)
        y1_text = f" (year 1 {format_currency(float(y1))})" if y1 is not None and pd.notna(y1) else ""
        flag = f" [{int(pending.get(vendor, 0))} unconfirmed]" if pending.get(vendor, 0) else ""
        lines.append(f"  {vendor}: {text}{y1_text}{flag}")

    confirmed = [vendor for vendor in three_year.index if not pending.get(vendor, 0)]
    if confirmed:
        lowest = three_year.loc[confirmed].idxmin()
        lines.append(f"Lowest fully confirmed 3-year total: {lowest} ({format_currency(float(three_year[lowest]))}).")
    lines.append(f"Unconfirmed items: {len(unconfirmed)}.")
    return "\n".join(lines) + "\n"
