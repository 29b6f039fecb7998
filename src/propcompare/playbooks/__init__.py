"""Learned correction rules for comparison tables."""

from .rules import (
    AddNote,
    CellContext,
    PlaybookRule,
    SetStatus,
    apply_action,
    apply_playbook_rules,
    matches_condition,
    parse_action,
)
from .store import RuleStore
from .suggestions import LearningEvent, RuleSuggestion, learning_event_from_override, promote_to_rule, suggest_rules

__all__ = [
    "AddNote",
    "CellContext",
    "LearningEvent",
    "PlaybookRule",
    "RuleStore",
    "RuleSuggestion",
    "SetStatus",
    "apply_action",
    "apply_playbook_rules",
    "learning_event_from_override",
    "matches_condition",
    "parse_action",
    "promote_to_rule",
    "suggest_rules",
]
