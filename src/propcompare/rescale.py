"""Scale recurring per-employee fees to a new normalized headcount."""

from __future__ import annotations

import logging
import math

from .models import SERVICE_SECTION, SOFTWARE_SECTION, ComparisonTable, check_structure
from .values import format_currency

LOGGER = logging.getLogger(__name__)

# Implementation fees are one-time and do not depend on headcount.
RECURRING_SECTIONS = (SOFTWARE_SECTION, SERVICE_SECTION)


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def rescale(table: ComparisonTable, new_headcount: float) -> ComparisonTable:
    """Return a copy of ``table`` with recurring fees scaled to ``new_headcount``.

    Subtotals and totals are left stale; run :func:`propcompare.recalculate.recalculate`
    on the result.
    """

    check_structure(table)
    old_headcount = table.normalized_headcount
    if not old_headcount or old_headcount <= 0:
        raise ValueError("Cannot rescale a table without a known normalized headcount")
    if new_headcount is None or new_headcount <= 0:
        raise ValueError(f"New headcount must be positive, got {new_headcount!r}")

    result = table.clone()
    if new_headcount == old_headcount:
        return result

    ratio = float(new_headcount) / float(old_headcount)
    scaled = 0
    for section in result.sections:
        if section.name not in RECURRING_SECTIONS:
            continue
        for row in section.data_rows():
            for value in row.values:
                if value.amount is None or value.amount == 0:
                    continue
                value.amount = _round_half_up(value.amount * ratio)
                value.display = format_currency(value.amount)
                scaled += 1

    result.normalized_headcount = float(new_headcount)
    LOGGER.info(
        "Rescaled %d recurring cell(s) from %s to %s employees (ratio %.4f)",
        scaled,
        f"{old_headcount:g}",
        f"{float(new_headcount):g}",
        ratio,
    )
    return result


__all__ = ["RECURRING_SECTIONS", "rescale"]
