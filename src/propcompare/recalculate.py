"""Recompute section subtotals and the Totals section of a comparison table.

The engine runs in two strict phases.  Section subtotal rows are rebuilt
first; the Totals pass then reads the Software subtotal it just produced and
sums the other fee sections directly.  Nothing in the Totals section feeds
back into a section, so a single pass of each phase is always consistent.

Unconfirmed cells (no amount and not a categorical zero such as "Included")
never break a sum.  They are counted instead, and any aggregate with a
non-zero count is marked unconfirmed with a note naming the count.
That note belongs to the engine: once the aggregate is fully confirmed the
engine removes its own count note, while any other note on the cell is kept.

Computed cells are owned by this module.  They always carry the currency
status and never a playbook rule stamp.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .models import (
    DISCOUNT_SECTION,
    IMPLEMENTATION_SECTION,
    SERVICE_SECTION,
    SOFTWARE_SECTION,
    TOTALS_SECTION,
    CellAudit,
    CellStatus,
    ComparisonTable,
    DiscountToggles,
    HiddenRows,
    TableSection,
    VendorValue,
    check_structure,
    normalize_hidden_rows,
)
from .values import format_currency, is_zero_contribution

LOGGER = logging.getLogger(__name__)

UNCONFIRMED_NOTE = "{count} item(s) still unconfirmed"
_UNCONFIRMED_NOTE_RE = re.compile(r"^\d+ item\(s\) still unconfirmed$")

# Displays that drop a discount row out of the total for that vendor.
_SKIPPED_DISCOUNT_DISPLAYS = frozenset({"n/a", "-", "not included"})

TOTALS_FORMULAS = {
    "year1_before_discounts": "software + implementation + service",
    "year1_discounts": "discounts",
    "year1": "year1_before_discounts + year1_discounts",
    "year2": "software + service + year1_discounts",
    "year3": "year2",
    "total3yr": "year1 + year2 + year3",
}


@dataclass(frozen=True)
class SectionResult:
    """Running sum for one vendor column plus the number of unconfirmed addends."""

    amount: float = 0.0
    tbc: int = 0
    row_ids: Tuple[str, ...] = ()

    @property
    def is_confirmed(self) -> bool:
        return self.tbc == 0

    def __add__(self, other: "SectionResult") -> "SectionResult":
        return SectionResult(self.amount + other.amount, self.tbc + other.tbc, self.row_ids + other.row_ids)


ZERO = SectionResult()


def sum_section(section: Optional[TableSection], vendor_index: int, hidden_rows: HiddenRows) -> SectionResult:
    """Sum visible data rows of ``section`` for one vendor, counting unconfirmed cells."""

    if section is None:
        return ZERO
    total = 0.0
    tbc = 0
    row_ids = []
    for row in section.rows:
        if row.is_subtotal or row.id in hidden_rows:
            continue
        row_ids.append(row.id)
        value = row.values[vendor_index]
        if value.amount is not None:
            total += value.amount
        elif not is_zero_contribution(value):
            tbc += 1
    return SectionResult(total, tbc, tuple(row_ids))


def sum_discounts(
    section: Optional[TableSection],
    vendor_index: int,
    vendor_name: str,
    discount_toggles: DiscountToggles,
    hidden_rows: HiddenRows,
) -> SectionResult:
    """Sum the enabled discount rows for one vendor (amounts are non-positive)."""

    if section is None:
        return ZERO
    toggles = discount_toggles.get(vendor_name) or {}
    total = 0.0
    tbc = 0
    row_ids = []
    for row in section.rows:
        if row.is_subtotal or row.id in hidden_rows:
            continue
        if toggles.get(row.id) is False:
            continue
        value = row.values[vendor_index]
        if (value.display or "").strip().lower() in _SKIPPED_DISCOUNT_DISPLAYS:
            continue
        row_ids.append(row.id)
        if value.amount is not None:
            total += value.amount
        elif not is_zero_contribution(value):
            tbc += 1
    return SectionResult(total, tbc, tuple(row_ids))


def _computed_value(existing: VendorValue, result: SectionResult, formula: str) -> VendorValue:
    audit = existing.audit.clone() if existing.audit else CellAudit()
    audit.formula = formula
    audit.playbook_rule_id = None
    audit.playbook_rule_version = None
    if result.tbc > 0:
        note = UNCONFIRMED_NOTE.format(count=result.tbc)
    elif existing.note and _UNCONFIRMED_NOTE_RE.match(existing.note):
        note = None
    else:
        note = existing.note
    return VendorValue(
        amount=result.amount,
        display=format_currency(result.amount),
        note=note,
        is_confirmed=result.is_confirmed,
        status=CellStatus.CURRENCY,
        citation=existing.citation.clone() if existing.citation else None,
        audit=audit,
    )


def recalculate(
    table: ComparisonTable,
    discount_toggles: Optional[DiscountToggles] = None,
    hidden_rows: object | None = None,
) -> ComparisonTable:
    """Return a new table with every subtotal and total row recomputed.

    ``table`` is never modified.  ``hidden_rows`` accepts a set of row ids or
    the legacy ``{row_id: bool}`` mapping.
    """

    check_structure(table)
    toggles = discount_toggles or {}
    hidden = normalize_hidden_rows(hidden_rows)
    result = table.clone()

    subtotals: Dict[Tuple[str, int], SectionResult] = {}
    for section in result.sections:
        if section.name in (TOTALS_SECTION, DISCOUNT_SECTION):
            continue
        for row in section.rows:
            if not row.is_subtotal:
                continue
            new_values = []
            for vi, existing in enumerate(row.values):
                section_result = sum_section(section, vi, hidden)
                subtotals[(section.name, vi)] = section_result
                formula = f"SUM({', '.join(section_result.row_ids)})"
                new_values.append(_computed_value(existing, section_result, formula))
            row.values = new_values

    totals = result.find_section(TOTALS_SECTION)
    if totals is None:
        LOGGER.debug("No %s section; recalculated section subtotals only", TOTALS_SECTION)
        return result

    software = result.find_section(SOFTWARE_SECTION)
    implementation = result.find_section(IMPLEMENTATION_SECTION)
    service = result.find_section(SERVICE_SECTION)
    discounts = result.find_section(DISCOUNT_SECTION)

    for vi, vendor in enumerate(result.vendors):
        software_result = _software_total(software, vi, hidden, subtotals)
        impl_result = sum_section(implementation, vi, hidden)
        service_result = sum_section(service, vi, hidden)
        discount_result = sum_discounts(discounts, vi, vendor, toggles, hidden)

        year1_before = software_result + impl_result + service_result
        year1 = year1_before + discount_result
        year2 = software_result + service_result + discount_result
        year3 = year2
        total3yr = year1 + year2 + year3

        totals_map = {
            "year1_before_discounts": year1_before,
            "year1_discounts": discount_result,
            "year1": year1,
            "year2": year2,
            "year3": year3,
            "total3yr": total3yr,
        }
        for row in totals.rows:
            if row.id not in totals_map:
                continue
            row.values[vi] = _computed_value(row.values[vi], totals_map[row.id], TOTALS_FORMULAS[row.id])

        LOGGER.debug(
            "%s: year1=%.2f year2=%.2f total3yr=%.2f (unconfirmed=%d)",
            vendor,
            year1.amount,
            year2.amount,
            total3yr.amount,
            total3yr.tbc,
        )

    return result


def _software_total(
    section: Optional[TableSection],
    vendor_index: int,
    hidden_rows: HiddenRows,
    subtotals: Dict[Tuple[str, int], SectionResult],
) -> SectionResult:
    if section is None:
        return ZERO
    if section.subtotal_row() is None:
        return sum_section(section, vendor_index, hidden_rows)
    # Pass 1 rebuilt every Software subtotal cell, hidden rows excluded.
    return subtotals[(section.name, vendor_index)]


__all__ = ["SectionResult", "TOTALS_FORMULAS", "UNCONFIRMED_NOTE", "recalculate", "sum_discounts", "sum_section"]
