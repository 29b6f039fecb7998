"""Turn repeated manual corrections into playbook rule candidates."""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..models import CellStatus, ComparisonTable
from .rules import GLOBAL_VENDOR, PlaybookRule

EDIT_TYPES = ("value_change", "status_change", "label_change")
SUGGESTABLE_EDIT_TYPES = ("status_change", "value_change")
MAX_EXAMPLE_EVENTS = 5
MAX_RULE_NAME = 100


@dataclass
class LearningEvent:
    vendor_name: str
    section_name: str
    row_id: str
    row_label: str
    edit_type: str
    old_display: str = ""
    new_display: str = ""
    old_amount: Optional[float] = None
    new_amount: Optional[float] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = ""
    promoted_to_rule_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.edit_type not in EDIT_TYPES:
            raise ValueError(f"Unknown edit type {self.edit_type!r}")


@dataclass
class RuleSuggestion:
    vendor_name: str
    edit_type: str
    row_label: str
    new_display: str
    new_status: Optional[str]
    section_name: str
    count: int
    latest_at: str
    example_event_ids: List[str] = field(default_factory=list)


def learning_event_from_override(
    before: ComparisonTable,
    after: ComparisonTable,
    section_index: int,
    row_index: int,
    vendor_index: int,
    created_at: str = "",
) -> LearningEvent:
    """Describe the manual edit of one cell between two versions of a table."""

    section = after.sections[section_index]
    row = section.rows[row_index]
    old_row = before.sections[section_index].rows[row_index]
    old = old_row.values[vendor_index]
    new = row.values[vendor_index]
    if old_row.label != row.label:
        edit_type = "label_change"
        old_display, new_display = old_row.label, row.label
    else:
        status_changed = old.status is not new.status and new.status is not CellStatus.CURRENCY
        edit_type = "status_change" if status_changed else "value_change"
        old_display, new_display = old.display, new.display
    return LearningEvent(
        vendor_name=after.vendors[vendor_index],
        section_name=section.name,
        row_id=row.id,
        row_label=row.label,
        edit_type=edit_type,
        old_display=old_display,
        new_display=new_display,
        old_amount=old.amount,
        new_amount=new.amount,
        old_status=old.status.value if old.status else None,
        new_status=new.status.value if new.status else None,
        created_at=created_at,
    )


def suggest_rules(
    events: Iterable[LearningEvent],
    min_count: int = 2,
    vendor_name: Optional[str] = None,
) -> List[RuleSuggestion]:
    """Group unpromoted corrections by vendor, edit type, row label and new display.

    Groups seen at least ``min_count`` times are returned, most frequent first.
    """

    min_count = max(int(min_count), 1)
    groups: Dict[tuple, RuleSuggestion] = {}
    for event in events:
        if event.promoted_to_rule_id or event.edit_type not in SUGGESTABLE_EDIT_TYPES:
            continue
        if vendor_name and event.vendor_name != vendor_name:
            continue
        key = (event.vendor_name, event.edit_type, event.row_label, event.new_display)
        existing = groups.get(key)
        if existing is None:
            groups[key] = RuleSuggestion(
                vendor_name=event.vendor_name,
                edit_type=event.edit_type,
                row_label=event.row_label,
                new_display=event.new_display,
                new_status=event.new_status,
                section_name=event.section_name,
                count=1,
                latest_at=event.created_at,
                example_event_ids=[event.event_id],
            )
            continue
        existing.count += 1
        if event.created_at > existing.latest_at:
            existing.latest_at = event.created_at
        if len(existing.example_event_ids) < MAX_EXAMPLE_EVENTS:
            existing.example_event_ids.append(event.event_id)

    suggestions = [group for group in groups.values() if group.count >= min_count]
    suggestions.sort(key=lambda group: group.count, reverse=True)
    return suggestions


def promote_to_rule(event: LearningEvent, rule_id: Optional[str] = None) -> PlaybookRule:
    """Build the playbook rule that would reproduce ``event`` on future tables.

    Status changes become ``set_status`` rules; any other edit becomes an
    ``add_note`` recording the previous display.  The event is marked promoted.
    """

    is_status_change = event.edit_type == "status_change"
    if is_status_change:
        action_type = "set_status"
        action_value = json.dumps(event.new_status or event.new_display)
        name = f'Set "{event.row_label}" to {event.new_display}'
    else:
        action_type = "add_note"
        action_value = json.dumps(f'Renamed from "{event.old_display}"')
        name = f'Note: "{event.old_display}" -> "{event.new_display}"'

    rule = PlaybookRule(
        id=rule_id or uuid.uuid4().hex,
        name=name[:MAX_RULE_NAME],
        vendor_name=event.vendor_name or GLOBAL_VENDOR,
        condition_field="label",
        condition_type="contains",
        condition_value=event.row_label,
        action_type=action_type,
        action_value=action_value,
        confidence="sure",
        examples=[
            {
                "section": event.section_name,
                "label": event.row_label,
                "old": event.old_display,
                "new": event.new_display,
            }
        ],
        created_from_event_id=event.event_id,
    )
    event.promoted_to_rule_id = rule.id
    return rule


__all__ = [
    "EDIT_TYPES",
    "LearningEvent",
    "RuleSuggestion",
    "learning_event_from_override",
    "promote_to_rule",
    "suggest_rules",
]
