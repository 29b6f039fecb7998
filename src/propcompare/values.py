"""Cell status vocabulary and numeric-contribution rules."""

from __future__ import annotations

import math
from typing import Optional

from .models import CellStatus, VendorValue

STATUS_DISPLAY = {
    CellStatus.CURRENCY: "",
    CellStatus.TBC: "To be confirmed",
    CellStatus.INCLUDED: "Included",
    CellStatus.INCLUDED_IN_BUNDLE: "Included in bundle",
    CellStatus.NOT_INCLUDED: "Not included",
    CellStatus.NA: "N/A",
    CellStatus.HIDDEN: "Hidden",
}

ZERO_CONTRIBUTION_STATUSES = frozenset(
    {
        CellStatus.NOT_INCLUDED,
        CellStatus.NA,
        CellStatus.INCLUDED,
        CellStatus.INCLUDED_IN_BUNDLE,
        CellStatus.HIDDEN,
    }
)

# Display strings written by tables stored before cells carried a status.
LEGACY_ZERO_DISPLAYS = frozenset(
    {"not included", "n/a", "included", "included in bundle", "hidden", "$0", "-"}
)

_LEGACY_STATUS_BY_DISPLAY = {
    "to be confirmed": CellStatus.TBC,
    "tbc": CellStatus.TBC,
    "included": CellStatus.INCLUDED,
    "included in bundle": CellStatus.INCLUDED_IN_BUNDLE,
    "not included": CellStatus.NOT_INCLUDED,
    "n/a": CellStatus.NA,
    "-": CellStatus.NA,
    "hidden": CellStatus.HIDDEN,
}


def parse_status(value: object) -> Optional[CellStatus]:
    """Return the :class:`CellStatus` named by ``value`` or ``None``."""

    if isinstance(value, CellStatus):
        return value
    if not isinstance(value, str):
        return None
    try:
        return CellStatus(value.strip())
    except ValueError:
        return None


def display_for_status(status: CellStatus, fallback: str = "") -> str:
    return STATUS_DISPLAY.get(status) or fallback


def format_currency(amount: float) -> str:
    """Format ``amount`` as en-US dollars: ``$18,000``, ``-$1,000``, ``$12.50``."""

    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if math.isclose(value, round(value), abs_tol=1e-9):
        return f"{sign}${round(value):,}"
    return f"{sign}${value:,.2f}"


def is_zero_contribution(value: VendorValue) -> bool:
    """True when a cell counts as a categorical zero rather than an unknown."""

    if value.status is not None:
        return value.status in ZERO_CONTRIBUTION_STATUSES
    return _legacy_is_zero(value.display)


def _legacy_is_zero(display: str) -> bool:
    return (display or "").strip().lower() in LEGACY_ZERO_DISPLAYS


def is_unconfirmed(value: VendorValue) -> bool:
    """True when a cell has no amount and is not a categorical zero (TBC)."""

    return value.amount is None and not is_zero_contribution(value)


def infer_legacy_status(display: str) -> Optional[CellStatus]:
    """Best-effort status for stored cells that predate the status field."""

    return _LEGACY_STATUS_BY_DISPLAY.get((display or "").strip().lower())


__all__ = [
    "LEGACY_ZERO_DISPLAYS",
    "STATUS_DISPLAY",
    "ZERO_CONTRIBUTION_STATUSES",
    "display_for_status",
    "format_currency",
    "infer_legacy_status",
    "is_unconfirmed",
    "is_zero_contribution",
    "parse_status",
]
