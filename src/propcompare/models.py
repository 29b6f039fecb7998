"""Comparison table data model and its persisted JSON form."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

SOFTWARE_SECTION = "Software Fees (Recurring)"
IMPLEMENTATION_SECTION = "Implementation Fees (One-Time)"
SERVICE_SECTION = "Service Fees (Recurring)"
DISCOUNT_SECTION = "Discounts"
TOTALS_SECTION = "Totals"

TOTALS_ROW_IDS = (
    "year1_before_discounts",
    "year1_discounts",
    "year1",
    "year2",
    "year3",
    "total3yr",
)

# vendor name -> (discount row id -> enabled)
DiscountToggles = Dict[str, Dict[str, bool]]
HiddenRows = Set[str]


class TableStructureError(ValueError):
    """Raised when a table violates the vendor/value alignment invariants."""


class CellStatus(str, Enum):
    CURRENCY = "currency"
    INCLUDED = "included"
    INCLUDED_IN_BUNDLE = "included_in_bundle"
    NOT_INCLUDED = "not_included"
    TBC = "tbc"
    NA = "na"
    HIDDEN = "hidden"


def section_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return slug or "section"


@dataclass
class Citation:
    document_id: str = ""
    document_name: str = ""
    vendor_name: str = ""
    excerpt: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Citation":
        return cls(
            document_id=raw.get("documentId") or "",
            document_name=raw.get("documentName") or "",
            vendor_name=raw.get("vendorName") or "",
            excerpt=raw.get("excerpt") or "",
        )

    def to_dict(self) -> dict:
        return {
            "documentId": self.document_id,
            "documentName": self.document_name,
            "vendorName": self.vendor_name,
            "excerpt": self.excerpt,
        }

    def clone(self) -> "Citation":
        return Citation(self.document_id, self.document_name, self.vendor_name, self.excerpt)


@dataclass
class SourcePointer:
    """Location of a cell's value inside a source document.

    Offsets of ``-1`` mean the excerpt has not been located in the document text.
    """

    document_id: str
    document_name: str
    vendor_name: str
    label: str
    char_offset_start: int = -1
    char_offset_end: int = -1

    @property
    def located(self) -> bool:
        return self.char_offset_start != -1

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SourcePointer":
        return cls(
            document_id=raw.get("documentId") or "",
            document_name=raw.get("documentName") or "",
            vendor_name=raw.get("vendorName") or "",
            label=raw.get("label") or "",
            char_offset_start=int(raw.get("charOffsetStart", -1)),
            char_offset_end=int(raw.get("charOffsetEnd", -1)),
        )

    def to_dict(self) -> dict:
        return {
            "documentId": self.document_id,
            "documentName": self.document_name,
            "vendorName": self.vendor_name,
            "label": self.label,
            "charOffsetStart": self.char_offset_start,
            "charOffsetEnd": self.char_offset_end,
        }

    def clone(self) -> "SourcePointer":
        return SourcePointer(
            self.document_id,
            self.document_name,
            self.vendor_name,
            self.label,
            self.char_offset_start,
            self.char_offset_end,
        )


@dataclass
class OverrideMetadata:
    """Pre-override value of a cell a human has edited."""

    previous_display: str
    previous_amount: Optional[float]
    timestamp: str
    user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OverrideMetadata":
        return cls(
            previous_display=raw.get("previousDisplay") or "",
            previous_amount=_to_amount(raw.get("previousAmount")),
            timestamp=raw.get("timestamp") or "",
            user_id=raw.get("userId"),
        )

    def to_dict(self) -> dict:
        return {
            "previousDisplay": self.previous_display,
            "previousAmount": self.previous_amount,
            "timestamp": self.timestamp,
            "userId": self.user_id,
        }

    def clone(self) -> "OverrideMetadata":
        return OverrideMetadata(self.previous_display, self.previous_amount, self.timestamp, self.user_id)


@dataclass
class CellAudit:
    sources: List[SourcePointer] = field(default_factory=list)
    override: Optional[OverrideMetadata] = None
    formula: Optional[str] = None
    playbook_rule_id: Optional[str] = None
    playbook_rule_version: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CellAudit":
        override = raw.get("override")
        version = raw.get("playbookRuleVersion")
        return cls(
            sources=[SourcePointer.from_dict(item) for item in raw.get("sources") or []],
            override=OverrideMetadata.from_dict(override) if override else None,
            formula=raw.get("formula"),
            playbook_rule_id=raw.get("playbookRuleId"),
            playbook_rule_version=int(version) if version is not None else None,
        )

    def to_dict(self) -> dict:
        data: dict = {
            "sources": [source.to_dict() for source in self.sources],
            "override": self.override.to_dict() if self.override else None,
            "formula": self.formula,
        }
        if self.playbook_rule_id is not None:
            data["playbookRuleId"] = self.playbook_rule_id
        if self.playbook_rule_version is not None:
            data["playbookRuleVersion"] = self.playbook_rule_version
        return data

    def clone(self) -> "CellAudit":
        return CellAudit(
            sources=[source.clone() for source in self.sources],
            override=self.override.clone() if self.override else None,
            formula=self.formula,
            playbook_rule_id=self.playbook_rule_id,
            playbook_rule_version=self.playbook_rule_version,
        )


@dataclass
class VendorValue:
    """One vendor's answer for one row."""

    amount: Optional[float]
    display: str
    note: Optional[str] = None
    is_confirmed: bool = True
    status: Optional[CellStatus] = None
    citation: Optional[Citation] = None
    audit: Optional[CellAudit] = None

    @property
    def is_overridden(self) -> bool:
        return self.audit is not None and self.audit.override is not None

    def ensure_audit(self) -> CellAudit:
        if self.audit is None:
            self.audit = CellAudit()
        return self.audit

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "VendorValue":
        status = raw.get("status")
        citation = raw.get("citation")
        audit = raw.get("audit")
        return cls(
            amount=_to_amount(raw.get("amount")),
            display=raw.get("display") or "",
            note=raw.get("note"),
            is_confirmed=bool(raw.get("isConfirmed", True)),
            status=CellStatus(status) if status else None,
            citation=Citation.from_dict(citation) if citation else None,
            audit=CellAudit.from_dict(audit) if audit else None,
        )

    def to_dict(self) -> dict:
        data: dict = {
            "amount": self.amount,
            "display": self.display,
            "note": self.note,
            "citation": self.citation.to_dict() if self.citation else None,
            "isConfirmed": self.is_confirmed,
        }
        if self.status is not None:
            data["status"] = self.status.value
        if self.audit is not None:
            data["audit"] = self.audit.to_dict()
        return data

    def clone(self) -> "VendorValue":
        return VendorValue(
            amount=self.amount,
            display=self.display,
            note=self.note,
            is_confirmed=self.is_confirmed,
            status=self.status,
            citation=self.citation.clone() if self.citation else None,
            audit=self.audit.clone() if self.audit else None,
        )


@dataclass
class TableRow:
    id: str
    label: str
    values: List[VendorValue] = field(default_factory=list)
    is_subtotal: bool = False
    is_discount: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TableRow":
        return cls(
            id=str(raw["id"]),
            label=raw.get("label") or "",
            values=[VendorValue.from_dict(item) for item in raw.get("values") or []],
            is_subtotal=bool(raw.get("isSubtotal", False)),
            is_discount=bool(raw.get("isDiscount", False)),
        )

    def to_dict(self) -> dict:
        data: dict = {
            "id": self.id,
            "label": self.label,
            "values": [value.to_dict() for value in self.values],
        }
        if self.is_subtotal:
            data["isSubtotal"] = True
        if self.is_discount:
            data["isDiscount"] = True
        return data

    def clone(self) -> "TableRow":
        return TableRow(
            id=self.id,
            label=self.label,
            values=[value.clone() for value in self.values],
            is_subtotal=self.is_subtotal,
            is_discount=self.is_discount,
        )


@dataclass
class TableSection:
    name: str
    rows: List[TableRow] = field(default_factory=list)
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = section_slug(self.name)

    def subtotal_row(self) -> Optional[TableRow]:
        return next((row for row in self.rows if row.is_subtotal), None)

    def data_rows(self) -> List[TableRow]:
        return [row for row in self.rows if not row.is_subtotal]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TableSection":
        return cls(
            name=raw.get("name") or "",
            rows=[TableRow.from_dict(item) for item in raw.get("rows") or []],
            id=raw.get("id") or "",
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "rows": [row.to_dict() for row in self.rows]}

    def clone(self) -> "TableSection":
        return TableSection(name=self.name, rows=[row.clone() for row in self.rows], id=self.id)


@dataclass
class CellAuditEvent:
    type: str
    timestamp: str
    cell_path: str
    user_id: Optional[str]
    display: str
    amount: Optional[float]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CellAuditEvent":
        return cls(
            type=raw["type"],
            timestamp=raw.get("timestamp") or "",
            cell_path=raw.get("cellPath") or "",
            user_id=raw.get("userId"),
            display=raw.get("display") or "",
            amount=_to_amount(raw.get("amount")),
        )

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "cellPath": self.cell_path,
            "userId": self.user_id,
            "display": self.display,
            "amount": self.amount,
        }


@dataclass
class ComparisonTable:
    vendors: List[str]
    sections: List[TableSection] = field(default_factory=list)
    normalized_headcount: Optional[float] = None
    audit_log: List[CellAuditEvent] = field(default_factory=list)

    def find_section(self, name: str) -> Optional[TableSection]:
        return next((section for section in self.sections if section.name == name), None)

    def iter_cells(self) -> Iterable[Tuple[int, int, int, TableSection, TableRow, VendorValue]]:
        """Yield ``(section_index, row_index, vendor_index, section, row, value)``."""
        for si, section in enumerate(self.sections):
            for ri, row in enumerate(section.rows):
                for vi, value in enumerate(row.values):
                    yield si, ri, vi, section, row, value

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ComparisonTable":
        headcount = raw.get("normalizedHeadcount")
        return cls(
            vendors=[str(vendor) for vendor in raw.get("vendors") or []],
            sections=[TableSection.from_dict(item) for item in raw.get("sections") or []],
            normalized_headcount=float(headcount) if headcount else None,
            audit_log=[CellAuditEvent.from_dict(item) for item in raw.get("auditLog") or []],
        )

    def to_dict(self) -> dict:
        headcount = self.normalized_headcount
        if headcount is not None and float(headcount).is_integer():
            headcount = int(headcount)
        return {
            "vendors": list(self.vendors),
            "normalizedHeadcount": headcount,
            "sections": [section.to_dict() for section in self.sections],
            "auditLog": [event.to_dict() for event in self.audit_log],
        }

    def clone(self) -> "ComparisonTable":
        return ComparisonTable(
            vendors=list(self.vendors),
            sections=[section.clone() for section in self.sections],
            normalized_headcount=self.normalized_headcount,
            audit_log=list(self.audit_log),
        )


def check_structure(table: ComparisonTable) -> None:
    """Raise :class:`TableStructureError` when vendor/value alignment is broken."""

    if len(set(table.vendors)) != len(table.vendors):
        raise TableStructureError(f"Duplicate vendor names: {table.vendors}")
    vendor_count = len(table.vendors)
    seen: Set[str] = set()
    for section in table.sections:
        for row in section.rows:
            if len(row.values) != vendor_count:
                raise TableStructureError(
                    f"Row {row.id!r} in {section.name!r} has {len(row.values)} values for {vendor_count} vendors"
                )
            if row.id in seen:
                raise TableStructureError(f"Duplicate row id {row.id!r}")
            seen.add(row.id)


def normalize_hidden_rows(hidden: object | None) -> HiddenRows:
    """Accept a single row id, a set/list of row ids or the legacy ``{row_id: bool}`` mapping."""

    if hidden is None:
        return set()
    if isinstance(hidden, str):
        return {hidden} if hidden else set()
    if isinstance(hidden, Mapping):
        return {str(key) for key, value in hidden.items() if value}
    return {str(item) for item in hidden}  # type: ignore[union-attr]


def _to_amount(value: object | None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@dataclass
class ParsedModule:
    name: str
    description: str = ""
    fee_amount: Optional[float] = None
    fee_type: str = ""
    is_range: bool = False
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    raw_text: str = ""


@dataclass
class ParsedLineItem:
    name: str
    amount: Optional[float] = None
    fee_type: str = ""
    is_one_time: bool = False
    is_recurring: bool = False
    raw_text: str = ""
    is_range: bool = False
    range_min: Optional[float] = None
    range_max: Optional[float] = None


@dataclass
class ParsedDiscount:
    id: str
    name: str
    amount: Optional[float] = None
    type: str = "unknown"
    percentage_value: Optional[float] = None
    raw_text: str = ""
    applies_to_year: Optional[int] = None


@dataclass
class ParsedProposal:
    """Structured pricing extracted from one vendor's proposal document."""

    vendor_name: str
    document_id: str
    document_name: str
    headcount: Optional[float] = None
    contract_term_months: Optional[int] = None
    modules: List[ParsedModule] = field(default_factory=list)
    implementation_items: List[ParsedLineItem] = field(default_factory=list)
    service_items: List[ParsedLineItem] = field(default_factory=list)
    discounts: List[ParsedDiscount] = field(default_factory=list)
    notable_terms: List[str] = field(default_factory=list)
    unknowns: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ParsedProposal":
        def _items(key: str) -> List[ParsedLineItem]:
            return [
                ParsedLineItem(
                    name=item.get("name") or "",
                    amount=_to_amount(item.get("amount")),
                    fee_type=item.get("feeType") or "",
                    is_one_time=bool(item.get("isOneTime", False)),
                    is_recurring=bool(item.get("isRecurring", False)),
                    raw_text=item.get("rawText") or "",
                    is_range=bool(item.get("isRange", False)),
                    range_min=_to_amount(item.get("rangeMin")),
                    range_max=_to_amount(item.get("rangeMax")),
                )
                for item in raw.get(key) or []
            ]

        term = raw.get("contractTermMonths")
        return cls(
            vendor_name=raw.get("vendorName") or "",
            document_id=raw.get("documentId") or "",
            document_name=raw.get("documentName") or "",
            headcount=_to_amount(raw.get("headcount")),
            contract_term_months=int(term) if term is not None else None,
            modules=[
                ParsedModule(
                    name=item.get("name") or "",
                    description=item.get("description") or "",
                    fee_amount=_to_amount(item.get("feeAmount")),
                    fee_type=item.get("feeType") or "",
                    is_range=bool(item.get("isRange", False)),
                    range_min=_to_amount(item.get("rangeMin")),
                    range_max=_to_amount(item.get("rangeMax")),
                    raw_text=item.get("rawText") or "",
                )
                for item in raw.get("modules") or []
            ],
            implementation_items=_items("implementationItems"),
            service_items=_items("serviceItems"),
            discounts=[
                ParsedDiscount(
                    id=str(item.get("id") or ""),
                    name=item.get("name") or "",
                    amount=_to_amount(item.get("amount")),
                    type=item.get("type") or "unknown",
                    percentage_value=_to_amount(item.get("percentageValue")),
                    raw_text=item.get("rawText") or "",
                    applies_to_year=item.get("appliesToYear"),
                )
                for item in raw.get("discounts") or []
            ],
            notable_terms=list(raw.get("notableTerms") or []),
            unknowns=list(raw.get("unknowns") or []),
        )


__all__ = [
    "CellAudit",
    "CellAuditEvent",
    "CellStatus",
    "Citation",
    "ComparisonTable",
    "DiscountToggles",
    "HiddenRows",
    "OverrideMetadata",
    "ParsedDiscount",
    "ParsedLineItem",
    "ParsedModule",
    "ParsedProposal",
    "SourcePointer",
    "TableRow",
    "TableSection",
    "TableStructureError",
    "VendorValue",
    "check_structure",
    "normalize_hidden_rows",
    "section_slug",
    "SOFTWARE_SECTION",
    "IMPLEMENTATION_SECTION",
    "SERVICE_SECTION",
    "DISCOUNT_SECTION",
    "TOTALS_SECTION",
    "TOTALS_ROW_IDS",
]
