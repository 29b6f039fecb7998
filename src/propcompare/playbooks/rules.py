"""Playbook rules: learned correction patterns applied to comparison cells.

A rule pairs a condition on one cell attribute (row label, section name or
display text) with an action (force a status or attach a note).  Actions are
parsed once when the rule is built.  A malformed payload leaves the rule
without an action, and such a rule never changes a cell.

Manual overrides always win: a cell whose audit carries override metadata is
never touched by a rule.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from ..models import TOTALS_SECTION, CellStatus, ComparisonTable, VendorValue, check_structure
from ..values import display_for_status, parse_status

LOGGER = logging.getLogger(__name__)

GLOBAL_VENDOR = "*"
CONDITION_FIELDS = ("label", "section", "display")
CONDITION_TYPES = ("contains", "regex")
ACTION_TYPES = ("set_status", "add_note")
NOTE_SEPARATOR = "; "


@dataclass(frozen=True)
class SetStatus:
    status: CellStatus


@dataclass(frozen=True)
class AddNote:
    text: str


RuleAction = Union[SetStatus, AddNote]


def parse_action(action_type: str, action_value: str) -> Optional[RuleAction]:
    """Parse a JSON action payload into a :data:`RuleAction`.

    Returns ``None`` for invalid JSON, an unknown status or an unknown action type.
    """

    try:
        payload = json.loads(action_value)
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring %s action with invalid JSON payload %r", action_type, action_value)
        return None
    if action_type == "set_status":
        status = parse_status(payload)
        if status is None:
            LOGGER.debug("Ignoring set_status action with unknown status %r", payload)
            return None
        return SetStatus(status)
    if action_type == "add_note":
        if payload is None or isinstance(payload, (dict, list)):
            return None
        text = str(payload).strip()
        return AddNote(text) if text else None
    LOGGER.debug("Ignoring unknown action type %r", action_type)
    return None


def encode_action(action: RuleAction) -> Tuple[str, str]:
    """Return ``(action_type, action_value)`` for persisting ``action``."""

    if isinstance(action, SetStatus):
        return "set_status", json.dumps(action.status.value)
    return "add_note", json.dumps(action.text)


@dataclass
class PlaybookRule:
    id: str
    name: str
    condition_field: str
    condition_type: str
    condition_value: str
    action_type: str
    action_value: str
    vendor_name: str = GLOBAL_VENDOR
    confidence: str = "sure"
    enabled: bool = True
    version: int = 1
    priority: int = 0
    examples: List[dict] = field(default_factory=list)
    created_from_event_id: Optional[str] = None
    action: Optional[RuleAction] = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.action = parse_action(self.action_type, self.action_value)

    def applies_to_vendor(self, vendor_name: str) -> bool:
        return self.vendor_name == GLOBAL_VENDOR or self.vendor_name == vendor_name

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PlaybookRule":
        action_value = raw.get("actionValue", "")
        if not isinstance(action_value, str):
            action_value = json.dumps(action_value)
        examples = raw.get("examples") or []
        if isinstance(examples, str):
            try:
                examples = json.loads(examples)
            except ValueError:
                examples = []
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or "",
            condition_field=raw.get("conditionField") or "label",
            condition_type=raw.get("conditionType") or "contains",
            condition_value=raw.get("conditionValue") or "",
            action_type=raw.get("actionType") or "",
            action_value=action_value,
            vendor_name=raw.get("vendorName") or GLOBAL_VENDOR,
            confidence=raw.get("confidence") or "sure",
            enabled=bool(raw.get("enabled", True)),
            version=int(raw.get("version", 1)),
            priority=int(raw.get("priority", 0)),
            examples=list(examples) if isinstance(examples, list) else [],
            created_from_event_id=raw.get("createdFromEventId"),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "vendorName": self.vendor_name,
            "conditionField": self.condition_field,
            "conditionType": self.condition_type,
            "conditionValue": self.condition_value,
            "actionType": self.action_type,
            "actionValue": self.action_value,
            "confidence": self.confidence,
            "enabled": self.enabled,
            "version": self.version,
            "priority": self.priority,
        }
        if self.examples:
            data["examples"] = list(self.examples)
        if self.created_from_event_id:
            data["createdFromEventId"] = self.created_from_event_id
        return data


@dataclass(frozen=True)
class CellContext:
    label: str
    section_name: str
    display: str


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        LOGGER.debug("Invalid playbook regex %r", pattern)
        return None


def matches_condition(rule: PlaybookRule, context: Union[CellContext, Mapping[str, str]]) -> bool:
    """Test ``rule``'s condition against a cell's label, section name or display."""

    if isinstance(context, Mapping):
        context = CellContext(
            label=context.get("label", ""),
            section_name=context.get("sectionName", context.get("section_name", "")),
            display=context.get("display", ""),
        )
    if rule.condition_field == "label":
        value = context.label
    elif rule.condition_field == "section":
        value = context.section_name
    else:
        value = context.display
    value = value or ""

    if rule.condition_type == "contains":
        return rule.condition_value.lower() in value.lower()
    compiled = _compile(rule.condition_value)
    if compiled is None:
        return False
    return compiled.search(value) is not None


def _stamp(rule: PlaybookRule, cell: VendorValue) -> bool:
    audit = cell.ensure_audit()
    changed = audit.playbook_rule_id != rule.id or audit.playbook_rule_version != rule.version
    audit.playbook_rule_id = rule.id
    audit.playbook_rule_version = rule.version
    return changed


def apply_action(rule: PlaybookRule, cell: VendorValue) -> bool:
    """Apply ``rule``'s action to ``cell`` in place; True when the cell changed."""

    action = rule.action
    if isinstance(action, SetStatus):
        status = action.status
        display = display_for_status(status, cell.display)
        is_confirmed = status is not CellStatus.TBC
        changed = (
            cell.status is not status
            or cell.display != display
            or cell.amount is not None
            or cell.is_confirmed != is_confirmed
        )
        cell.status = status
        cell.display = display
        cell.amount = None
        cell.is_confirmed = is_confirmed
        return _stamp(rule, cell) or changed

    if isinstance(action, AddNote):
        existing = cell.note or ""
        changed = False
        if action.text not in existing:
            cell.note = f"{existing}{NOTE_SEPARATOR}{action.text}" if existing else action.text
            changed = True
        return _stamp(rule, cell) or changed

    return False


def order_rules(rules: Sequence[PlaybookRule]) -> List[PlaybookRule]:
    """Enabled rules by explicit priority, then by their position in ``rules``."""

    indexed = [(rule.priority, position, rule) for position, rule in enumerate(rules) if rule.enabled]
    return [rule for _priority, _position, rule in sorted(indexed, key=lambda item: item[:2])]


def apply_playbook_rules(
    table: ComparisonTable, rules: Sequence[PlaybookRule]
) -> Tuple[ComparisonTable, int]:
    """Apply enabled rules to a copy of ``table``; return it with the number of cells changed.

    The first rule that matches a cell and carries a valid action claims that
    cell; later rules are not consulted for it.  Subtotal rows, the Totals
    section and overridden cells are skipped.  Re-running on the result changes nothing.
    """

    check_structure(table)
    ordered = order_rules(rules)
    result = table.clone()
    if not ordered:
        return result, 0

    modified = 0
    for _si, _ri, vi, section, row, cell in result.iter_cells():
        if row.is_subtotal or section.name == TOTALS_SECTION or cell.is_overridden:
            continue
        vendor = result.vendors[vi]
        context = CellContext(label=row.label, section_name=section.name, display=cell.display)
        for rule in ordered:
            if rule.action is None or not rule.applies_to_vendor(vendor):
                continue
            if not matches_condition(rule, context):
                continue
            if apply_action(rule, cell):
                modified += 1
                LOGGER.debug("Rule %s (v%d) changed %s for %s", rule.id, rule.version, row.id, vendor)
            break

    if modified:
        LOGGER.info("Playbook rules modified %d cell(s)", modified)
    return result, modified


__all__ = [
    "ACTION_TYPES",
    "AddNote",
    "CONDITION_FIELDS",
    "CONDITION_TYPES",
    "CellContext",
    "GLOBAL_VENDOR",
    "PlaybookRule",
    "RuleAction",
    "SetStatus",
    "apply_action",
    "apply_playbook_rules",
    "encode_action",
    "matches_condition",
    "order_rules",
    "parse_action",
]
