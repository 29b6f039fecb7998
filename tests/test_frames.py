import pandas as pd

from propcompare.frames import (
    BENCHMARK_COLUMNS,
    FRAME_COLUMNS,
    BenchmarkEntry,
    benchmark_summary,
    table_to_frame,
    totals_frame,
    unconfirmed_cells,
)
from propcompare.models import CellStatus
from propcompare.recalculate import recalculate


def test_table_to_frame_has_one_row_per_cell(table_factory):
    table = recalculate(table_factory())
    frame = table_to_frame(table)

    assert list(frame.columns) == FRAME_COLUMNS
    assert len(frame) == sum(len(row.values) for section in table.sections for row in section.rows)
    subtotal = frame[(frame["ROW_ID"] == "sw_subtotal") & (frame["VENDOR"] == "Acme")].iloc[0]
    assert subtotal["AMOUNT"] == 18000
    assert bool(subtotal["IS_SUBTOTAL"])
    payroll = frame[(frame["ROW_ID"] == "sw_payroll") & (frame["VENDOR"] == "Zenith")].iloc[0]
    assert pd.isna(payroll["AMOUNT"])
    assert payroll["STATUS"] == "included"


def test_totals_frame(table_factory):
    frame = totals_frame(recalculate(table_factory()))
    assert frame.index.name == "ROW_ID"
    assert list(frame.columns) == ["Acme", "Zenith"]
    assert frame.loc["total3yr", "Acme"] == 61600
    assert frame.loc["year2", "Zenith"] == 10500


def test_unconfirmed_cells_lists_tbc_data_cells(table_factory, money, status_cell):
    table = recalculate(
        table_factory(implementation={"impl_setup": [money(5000), status_cell(CellStatus.TBC)]})
    )
    pending = unconfirmed_cells(table)
    assert pending[["ROW_ID", "VENDOR"]].values.tolist() == [["impl_setup", "Zenith"]]
    assert pending.iloc[0]["LABEL"] == "Impl Setup"


def test_benchmark_summary_filters(table_factory):
    entries = [
        BenchmarkEntry("a1", "Small co", recalculate(table_factory(headcount=100))),
        BenchmarkEntry("a2", "Large co", recalculate(table_factory(headcount=500))),
        BenchmarkEntry("a3", "Unknown size", recalculate(table_factory(headcount=None))),
    ]

    everything = benchmark_summary(entries)
    assert list(everything.columns) == BENCHMARK_COLUMNS
    assert len(everything) == 6

    small = benchmark_summary(entries, max_headcount=200)
    assert sorted(set(small["ANALYSIS_ID"])) == ["a1", "a3"]

    acme = benchmark_summary(entries, min_headcount=300, vendor_filter=["acm"])
    assert sorted(set(acme["ANALYSIS_ID"])) == ["a2", "a3"]
    row = acme[(acme["ANALYSIS_ID"] == "a2") & (acme["VENDOR"] == "Acme")].iloc[0]
    assert row["TOTAL3YR_AMOUNT"] == 61600
    assert row["YEAR1_DISPLAY"] == "$25,200"

    assert benchmark_summary(entries, vendor_filter=["Globex"]).empty
