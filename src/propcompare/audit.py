"""Provenance for comparison cells: source pointers and the append-only event log."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import (
    TOTALS_SECTION,
    CellAuditEvent,
    CellStatus,
    ComparisonTable,
    OverrideMetadata,
    ParsedProposal,
    SourcePointer,
    VendorValue,
)
from .values import display_for_status, format_currency, infer_legacy_status

LOGGER = logging.getLogger(__name__)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
EXTRACTION_SET_CELL = "extraction_set_cell"
USER_OVERRIDE_CELL = "user_override_cell"

# Shorter normalized snippets match too many unrelated places.
MIN_FUZZY_SNIPPET = 10

_CELL_PATH_RE = re.compile(r"^sections\[(\d+)\]\.rows\[(\d+)\]\.values\[(\d+)\]$")
_WHITESPACE_RE = re.compile(r"\s+")


class ProtectedCellError(ValueError):
    """Raised when a caller tries to overwrite a cell owned by the recalculation engine."""


@dataclass(frozen=True)
class CharOffsets:
    start: int
    end: int

    @property
    def found(self) -> bool:
        return self.start != -1


NOT_FOUND = CharOffsets(-1, -1)


def _now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def cell_path(section_index: int, row_index: int, vendor_index: int) -> str:
    return f"sections[{section_index}].rows[{row_index}].values[{vendor_index}]"


def resolve_cell_path(table: ComparisonTable, path: str) -> VendorValue:
    """Return the cell addressed by a ``sections[i].rows[j].values[k]`` path."""

    match = _CELL_PATH_RE.match(path)
    if not match:
        raise ValueError(f"Malformed cell path: {path!r}")
    si, ri, vi = (int(part) for part in match.groups())
    try:
        return table.sections[si].rows[ri].values[vi]
    except IndexError as exc:
        raise ValueError(f"Cell path out of range: {path!r}") from exc


def build_initial_audit_log(table: ComparisonTable, timestamp: Optional[str] = None) -> List[CellAuditEvent]:
    """One ``extraction_set_cell`` event per data cell, in section/row/vendor order."""

    stamp = timestamp or _now()
    events: List[CellAuditEvent] = []
    for si, ri, vi, _section, row, value in table.iter_cells():
        if row.is_subtotal:
            continue
        events.append(
            CellAuditEvent(
                type=EXTRACTION_SET_CELL,
                timestamp=stamp,
                cell_path=cell_path(si, ri, vi),
                user_id=None,
                display=value.display,
                amount=value.amount,
            )
        )
    return events


def augment_audit_data(table: ComparisonTable, proposals: Iterable[ParsedProposal]) -> None:
    """Attach a source pointer to every cell of ``table`` (in place).

    Cells with a citation point at the cited document; other data cells point
    at the vendor's proposal as a whole.  Offsets stay at ``-1`` until
    :func:`augment_with_document_text` locates the excerpt.
    """

    by_vendor: Dict[str, ParsedProposal] = {proposal.vendor_name: proposal for proposal in proposals}
    for _si, _ri, vi, _section, row, value in table.iter_cells():
        vendor = table.vendors[vi]
        proposal = by_vendor.get(vendor)
        audit = value.ensure_audit()
        label = f"{vendor} Proposal"
        if value.citation is not None and proposal is not None:
            citation = value.citation
            audit.sources = [
                SourcePointer(
                    document_id=citation.document_id or proposal.document_id,
                    document_name=citation.document_name or proposal.document_name,
                    vendor_name=citation.vendor_name or vendor,
                    label=label if citation.excerpt else (citation.document_name or label),
                )
            ]
        elif proposal is not None and not row.is_subtotal:
            audit.sources = [
                SourcePointer(
                    document_id=proposal.document_id,
                    document_name=proposal.document_name,
                    vendor_name=vendor,
                    label=label,
                )
            ]


def find_char_offsets(full_text: str, snippet: str) -> CharOffsets:
    """Locate ``snippet`` in ``full_text``: exact match first, then whitespace/case-insensitive."""

    if not full_text or not snippet:
        return NOT_FOUND
    index = full_text.find(snippet)
    if index != -1:
        return CharOffsets(index, index + len(snippet))

    norm_full = _WHITESPACE_RE.sub(" ", full_text).lower()
    norm_snippet = _WHITESPACE_RE.sub(" ", snippet).lower().strip()
    if len(norm_snippet) < MIN_FUZZY_SNIPPET:
        return NOT_FOUND
    index = norm_full.find(norm_snippet)
    if index != -1:
        # Offsets refer to the whitespace-normalized text.
        return CharOffsets(index, index + len(norm_snippet))
    return NOT_FOUND


def augment_with_document_text(table: ComparisonTable, document_texts: Mapping[str, str]) -> int:
    """Fill offsets of unlocated source pointers from citation excerpts (in place).

    ``document_texts`` maps document id to raw extracted text.  Returns the
    number of pointers located.
    """

    located = 0
    for _si, _ri, _vi, _section, _row, value in table.iter_cells():
        if value.audit is None or value.citation is None or not value.citation.excerpt:
            continue
        for source in value.audit.sources:
            if source.located:
                continue
            full_text = document_texts.get(source.document_id)
            if not full_text:
                continue
            offsets = find_char_offsets(full_text, value.citation.excerpt)
            source.char_offset_start = offsets.start
            source.char_offset_end = offsets.end
            if offsets.found:
                located += 1
    LOGGER.debug("Located %d source excerpt(s) in document text", located)
    return located


def record_override(
    table: ComparisonTable,
    section_index: int,
    row_index: int,
    vendor_index: int,
    *,
    display: Optional[str] = None,
    amount: Optional[float] = None,
    status: Optional[CellStatus] = None,
    user_id: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> Tuple[ComparisonTable, CellAuditEvent]:
    """Apply a manual edit to one cell and append a ``user_override_cell`` event.

    Returns a new table; ``table`` is not modified.  The override metadata keeps
    the value the cell held before its first manual edit, so repeated edits
    never lose the extracted original.  Subtotal rows and the Totals section
    are written only by the recalculation engine.
    """

    section = table.sections[section_index]
    row = section.rows[row_index]
    if row.is_subtotal or section.name == TOTALS_SECTION:
        raise ProtectedCellError(f"Row {row.id!r} is computed and cannot be overridden")
    if display is None and amount is None and status is None:
        raise ValueError("An override needs a display, an amount or a status")

    stamp = timestamp or _now()
    result = table.clone()
    cell = result.sections[section_index].rows[row_index].values[vendor_index]
    audit = cell.ensure_audit()
    if audit.override is None:
        audit.override = OverrideMetadata(
            previous_display=cell.display,
            previous_amount=cell.amount,
            timestamp=stamp,
            user_id=user_id,
        )
    else:
        audit.override.timestamp = stamp
        audit.override.user_id = user_id
    # A human is now the last writer of this cell.
    audit.playbook_rule_id = None
    audit.playbook_rule_version = None

    if amount is None and status is None:
        status = infer_legacy_status(display or "")
    if status is not None and status is not CellStatus.CURRENCY:
        cell.status = status
        cell.amount = None
        cell.display = display_for_status(status, display or cell.display)
        cell.is_confirmed = status is not CellStatus.TBC
    elif amount is not None:
        cell.amount = amount
        cell.status = CellStatus.CURRENCY
        cell.display = display if display is not None else format_currency(amount)
        cell.is_confirmed = True
    else:
        # Free text with no amount stays unconfirmed until someone prices it.
        cell.amount = None
        cell.status = None
        cell.display = display or ""
        cell.is_confirmed = False

    event = CellAuditEvent(
        type=USER_OVERRIDE_CELL,
        timestamp=stamp,
        cell_path=cell_path(section_index, row_index, vendor_index),
        user_id=user_id,
        display=cell.display,
        amount=cell.amount,
    )
    result.audit_log = result.audit_log + [event]
    LOGGER.info("Override %s on %s/%s by %s", event.cell_path, row.id, table.vendors[vendor_index], user_id)
    return result, event


__all__ = [
    "CharOffsets",
    "EXTRACTION_SET_CELL",
    "ISO_FORMAT",
    "NOT_FOUND",
    "ProtectedCellError",
    "USER_OVERRIDE_CELL",
    "augment_audit_data",
    "augment_with_document_text",
    "build_initial_audit_log",
    "cell_path",
    "find_char_offsets",
    "record_override",
    "resolve_cell_path",
]
