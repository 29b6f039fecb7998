from __future__ import annotations

from typing import Callable, Dict, List, Optional

import pytest

from propcompare.models import (
    DISCOUNT_SECTION,
    IMPLEMENTATION_SECTION,
    SERVICE_SECTION,
    SOFTWARE_SECTION,
    TOTALS_ROW_IDS,
    TOTALS_SECTION,
    CellStatus,
    ComparisonTable,
    TableRow,
    TableSection,
    VendorValue,
)
from propcompare.values import display_for_status, format_currency


def _money(amount: float) -> VendorValue:
    return VendorValue(amount=amount, display=format_currency(amount), status=CellStatus.CURRENCY)


def _status(status: CellStatus) -> VendorValue:
    return VendorValue(
        amount=None,
        display=display_for_status(status),
        status=status,
        is_confirmed=status is not CellStatus.TBC,
    )


def _placeholder() -> VendorValue:
    return VendorValue(amount=None, display="", is_confirmed=False)


@pytest.fixture
def money() -> Callable[[float], VendorValue]:
    return _money


@pytest.fixture
def status_cell() -> Callable[[CellStatus], VendorValue]:
    return _status


@pytest.fixture
def table_factory() -> Callable[..., ComparisonTable]:
    """Two-vendor comparison (Acme, Zenith) with every recognized section."""

    def _create(
        software: Optional[Dict[str, List[VendorValue]]] = None,
        implementation: Optional[Dict[str, List[VendorValue]]] = None,
        service: Optional[Dict[str, List[VendorValue]]] = None,
        discounts: Optional[Dict[str, List[VendorValue]]] = None,
        software_subtotal: bool = True,
        headcount: Optional[float] = 100,
        canonical_totals: bool = True,
    ) -> ComparisonTable:
        vendors = ["Acme", "Zenith"]
        software = software if software is not None else {
            "sw_platform": [_money(12000), _money(10000)],
            "sw_payroll": [_money(6000), _status(CellStatus.INCLUDED)],
        }
        implementation = implementation if implementation is not None else {
            "impl_setup": [_money(5000), _money(4000)],
            "impl_training": [_money(2000), _money(1500)],
        }
        service = service if service is not None else {
            "svc_support": [_money(1200), _money(1000)],
        }
        discounts = discounts if discounts is not None else {
            "discount_vendorA_1": [_money(-1000), _money(-500)],
        }

        def _rows(data: Dict[str, List[VendorValue]], **flags) -> List[TableRow]:
            return [
                TableRow(id=row_id, label=row_id.replace("_", " ").title(), values=list(values), **flags)
                for row_id, values in data.items()
            ]

        software_rows = _rows(software)
        if software_subtotal:
            software_rows.append(
                TableRow(id="sw_subtotal", label="Software Subtotal", values=[_placeholder(), _placeholder()], is_subtotal=True)
            )
        impl_rows = _rows(implementation)
        impl_rows.append(
            TableRow(id="impl_subtotal", label="Implementation Subtotal", values=[_placeholder(), _placeholder()], is_subtotal=True)
        )
        # Stored tables flag year1_discounts as a discount and the other totals
        # as subtotals; older tables carry no flags on Totals rows.
        totals_rows = [
            TableRow(
                id=row_id,
                label=row_id,
                values=[_placeholder(), _placeholder()],
                is_subtotal=canonical_totals and row_id != "year1_discounts",
                is_discount=canonical_totals and row_id == "year1_discounts",
            )
            for row_id in TOTALS_ROW_IDS
        ]
        return ComparisonTable(
            vendors=vendors,
            normalized_headcount=headcount,
            sections=[
                TableSection(name=SOFTWARE_SECTION, rows=software_rows),
                TableSection(name=IMPLEMENTATION_SECTION, rows=impl_rows),
                TableSection(name=SERVICE_SECTION, rows=_rows(service)),
                TableSection(name=DISCOUNT_SECTION, rows=_rows(discounts, is_discount=True)),
                TableSection(name=TOTALS_SECTION, rows=totals_rows),
            ],
        )

    return _create


def totals_value(table: ComparisonTable, row_id: str, vendor: str) -> VendorValue:
    section = table.find_section(TOTALS_SECTION)
    assert section is not None
    row = next(row for row in section.rows if row.id == row_id)
    return row.values[table.vendors.index(vendor)]


def row_value(table: ComparisonTable, row_id: str, vendor: str) -> VendorValue:
    for section in table.sections:
        for row in section.rows:
            if row.id == row_id:
                return row.values[table.vendors.index(vendor)]
    raise KeyError(row_id)


@pytest.fixture
def totals_of() -> Callable[[ComparisonTable, str, str], VendorValue]:
    return totals_value


@pytest.fixture
def cell_of() -> Callable[[ComparisonTable, str, str], VendorValue]:
    return row_value
