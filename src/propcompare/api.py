from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .models import ComparisonTable, DiscountToggles
from .playbooks.rules import PlaybookRule, apply_playbook_rules
from .recalculate import recalculate
from .rescale import rescale


@dataclass
class RefreshOptions:
    discount_toggles: DiscountToggles = field(default_factory=dict)
    hidden_rows: object | None = None
    rules: Sequence[PlaybookRule] = ()
    headcount: Optional[float] = None


@dataclass
class RefreshResult:
    table: ComparisonTable
    rules_applied: int = 0
    rescaled: bool = False
    notes: List[str] = field(default_factory=list)


def refresh(table: ComparisonTable, options: Optional[RefreshOptions] = None) -> RefreshResult:
    """Programmatic interface: rescale, apply playbook rules, then recalculate.

    ``table`` is not modified.  Rescaling happens only when ``options.headcount``
    differs from the table's known normalized headcount.
    """

    options = options or RefreshOptions()
    notes: List[str] = []
    current = table
    rescaled = False
    if options.headcount is not None and options.headcount != table.normalized_headcount:
        if table.normalized_headcount:
            current = rescale(current, options.headcount)
            rescaled = True
        else:
            notes.append("Headcount change ignored: the table has no normalized headcount")

    applied = 0
    if options.rules:
        current, applied = apply_playbook_rules(current, options.rules)

    current = recalculate(current, options.discount_toggles, options.hidden_rows)
    return RefreshResult(table=current, rules_applied=applied, rescaled=rescaled, notes=notes)
