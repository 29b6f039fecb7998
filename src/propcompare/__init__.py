"""Recalculation, playbook and provenance engine for vendor proposal comparisons."""

from .audit import (
    augment_audit_data,
    augment_with_document_text,
    build_initial_audit_log,
    find_char_offsets,
    record_override,
)
from .models import (
    CellAudit,
    CellAuditEvent,
    CellStatus,
    Citation,
    ComparisonTable,
    ParsedProposal,
    SourcePointer,
    TableRow,
    TableSection,
    VendorValue,
)
from .playbooks.rules import PlaybookRule, apply_playbook_rules, matches_condition
from .recalculate import recalculate
from .rescale import rescale

__all__ = [
    "CellAudit",
    "CellAuditEvent",
    "CellStatus",
    "Citation",
    "ComparisonTable",
    "ParsedProposal",
    "PlaybookRule",
    "SourcePointer",
    "TableRow",
    "TableSection",
    "VendorValue",
    "apply_playbook_rules",
    "augment_audit_data",
    "augment_with_document_text",
    "build_initial_audit_log",
    "find_char_offsets",
    "matches_condition",
    "recalculate",
    "record_override",
    "rescale",
]
