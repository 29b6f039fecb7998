"""Ordered playbook rule file (JSON or YAML)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .rules import GLOBAL_VENDOR, PlaybookRule, order_rules

LOGGER = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


@dataclass
class RuleStore:
    """Rules kept in their persisted order; ``priority`` breaks ties explicitly."""

    path: Path
    rules: List[PlaybookRule] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> "RuleStore":
        if not path.exists():
            LOGGER.debug("Rule file %s not found; starting with an empty playbook", path)
            return cls(path=path)
        with path.open("r", encoding="utf-8") as f:
            if path.suffix.lower() in _YAML_SUFFIXES:
                raw = yaml.safe_load(f)
            else:
                raw = json.load(f)
        entries = raw.get("rules", []) if isinstance(raw, dict) else (raw or [])
        rules = [PlaybookRule.from_dict(entry) for entry in entries]
        invalid = [rule.id for rule in rules if rule.action is None]
        if invalid:
            LOGGER.warning("Rules with unusable actions will never apply: %s", ", ".join(invalid))
        return cls(path=path, rules=rules)

    def save(self) -> None:
        payload = {"rules": [rule.to_dict() for rule in self.rules]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            if self.path.suffix.lower() in _YAML_SUFFIXES:
                yaml.safe_dump(payload, f, sort_keys=False)
            else:
                json.dump(payload, f, indent=2)
        LOGGER.info("Saved %d playbook rule(s) to %s", len(self.rules), self.path)

    def get(self, rule_id: str) -> Optional[PlaybookRule]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    def add(self, rule: PlaybookRule) -> None:
        if self.get(rule.id) is not None:
            raise ValueError(f"Rule {rule.id!r} already exists")
        self.rules.append(rule)

    def enabled_rules(self, vendor_name: Optional[str] = None) -> List[PlaybookRule]:
        """Enabled rules in application order, optionally limited to one vendor's scope."""

        ordered = order_rules(self.rules)
        if vendor_name is None:
            return ordered
        return [rule for rule in ordered if rule.vendor_name in (GLOBAL_VENDOR, vendor_name)]


__all__ = ["RuleStore"]
