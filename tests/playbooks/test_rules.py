from __future__ import annotations

import pytest

from propcompare.audit import record_override
from propcompare.models import CellStatus
from propcompare.playbooks.rules import (
    AddNote,
    PlaybookRule,
    SetStatus,
    apply_playbook_rules,
    encode_action,
    matches_condition,
    order_rules,
    parse_action,
)
from propcompare.recalculate import recalculate


def make_rule(**overrides) -> PlaybookRule:
    values = dict(
        id="r1",
        name="Training bundled",
        condition_field="label",
        condition_type="contains",
        condition_value="training",
        action_type="set_status",
        action_value='"included_in_bundle"',
    )
    values.update(overrides)
    return PlaybookRule(**values)


@pytest.fixture
def training_table(table_factory, money):
    return table_factory(
        implementation={
            "impl_setup": [money(5000), money(4000)],
            "training_fee": [money(2000), money(1500)],
        }
    )


def test_set_status_rule_bundles_matching_cell(training_table, cell_of):
    rule = make_rule(vendor_name="Acme")
    result, modified = apply_playbook_rules(training_table, [rule])

    cell = cell_of(result, "training_fee", "Acme")
    assert modified == 1
    assert cell.status is CellStatus.INCLUDED_IN_BUNDLE
    assert cell.display == "Included in bundle"
    assert cell.amount is None
    assert cell.is_confirmed is True
    assert cell.audit.playbook_rule_id == "r1"
    assert cell.audit.playbook_rule_version == 1

    assert cell_of(result, "training_fee", "Zenith").amount == 1500
    assert cell_of(training_table, "training_fee", "Acme").amount == 2000


def test_rules_are_idempotent(training_table):
    rules = [make_rule(), make_rule(id="r2", condition_value="setup", action_type="add_note", action_value='"Check scope"')]
    once, first_count = apply_playbook_rules(training_table, rules)
    twice, second_count = apply_playbook_rules(once, rules)

    assert first_count == 4
    assert second_count == 0
    assert twice == once


def test_add_note_appends_without_duplicates(training_table, cell_of):
    cell_of(training_table, "impl_setup", "Zenith").note = "Quoted in appendix"
    rule = make_rule(condition_value="setup", action_type="add_note", action_value='"Confirm travel costs"')
    result, _ = apply_playbook_rules(training_table, [rule])

    assert cell_of(result, "impl_setup", "Acme").note == "Confirm travel costs"
    assert cell_of(result, "impl_setup", "Zenith").note == "Quoted in appendix; Confirm travel costs"
    assert cell_of(result, "impl_setup", "Acme").amount == 5000


def test_manual_overrides_win(training_table, cell_of):
    overridden, _ = record_override(training_table, 1, 1, 0, amount=2500, timestamp="2024-01-01T00:00:00+0000")
    result, modified = apply_playbook_rules(overridden, [make_rule()])

    assert modified == 1
    assert cell_of(result, "training_fee", "Acme").amount == 2500
    assert cell_of(result, "training_fee", "Acme").audit.playbook_rule_id is None
    assert cell_of(result, "training_fee", "Zenith").status is CellStatus.INCLUDED_IN_BUNDLE


def test_subtotal_rows_are_skipped(training_table, cell_of):
    rule = make_rule(condition_field="section", condition_value="implementation")
    result, modified = apply_playbook_rules(training_table, [rule])
    assert modified == 4
    assert cell_of(result, "impl_subtotal", "Acme").status is None


def test_invalid_regex_never_matches(training_table):
    rule = make_rule(condition_type="regex", condition_value="([unclosed")
    result, modified = apply_playbook_rules(training_table, [rule])
    assert modified == 0
    assert result == training_table


@pytest.mark.parametrize(
    "action_type, action_value",
    [
        ("set_status", "included_in_bundle"),
        ("set_status", '"bogus_status"'),
        ("add_note", '{"text": "x"}'),
        ("add_note", '"   "'),
        ("delete_row", '"x"'),
    ],
)
def test_invalid_actions_are_ignored(training_table, action_type, action_value):
    rule = make_rule(action_type=action_type, action_value=action_value)
    assert rule.action is None
    result, modified = apply_playbook_rules(training_table, [rule])
    assert modified == 0
    assert result == training_table


def test_invalid_rule_does_not_block_later_rules(training_table, cell_of):
    broken = make_rule(id="broken", action_value="not json")
    working = make_rule(id="working", action_value='"na"')
    result, modified = apply_playbook_rules(training_table, [broken, working])
    assert modified == 2
    assert cell_of(result, "training_fee", "Acme").display == "N/A"


def test_first_matching_rule_claims_the_cell(training_table, cell_of):
    first = make_rule(id="first", action_value='"included"')
    second = make_rule(id="second", action_type="add_note", action_value='"Ignored"')
    result, _ = apply_playbook_rules(training_table, [first, second])

    cell = cell_of(result, "training_fee", "Acme")
    assert cell.status is CellStatus.INCLUDED
    assert cell.note is None
    assert cell.audit.playbook_rule_id == "first"


def test_priority_orders_rules_before_position(training_table, cell_of):
    late = make_rule(id="late", action_value='"included"', priority=5)
    early = make_rule(id="early", action_value='"not_included"', priority=1)
    disabled = make_rule(id="off", action_value='"na"', priority=0, enabled=False)

    assert [rule.id for rule in order_rules([late, early, disabled])] == ["early", "late"]
    result, _ = apply_playbook_rules(training_table, [late, early, disabled])
    assert cell_of(result, "training_fee", "Zenith").status is CellStatus.NOT_INCLUDED


def test_vendor_scoped_rule_ignores_other_vendors(training_table, cell_of):
    result, modified = apply_playbook_rules(training_table, [make_rule(vendor_name="Zenith")])
    assert modified == 1
    assert cell_of(result, "training_fee", "Acme").status is CellStatus.CURRENCY


def test_version_bump_restamps_cells(training_table, cell_of):
    once, _ = apply_playbook_rules(training_table, [make_rule()])
    bumped, modified = apply_playbook_rules(once, [make_rule(version=2)])
    assert modified == 2
    assert cell_of(bumped, "training_fee", "Acme").audit.playbook_rule_version == 2


@pytest.mark.parametrize(
    "field_name, condition_type, condition_value, expected",
    [
        ("label", "contains", "TRAINING", True),
        ("label", "regex", r"^training\b", True),
        ("label", "regex", r"fee$", True),
        ("section", "contains", "one-time", True),
        ("display", "regex", r"^\$2,\d{3}$", True),
        ("display", "contains", "included", False),
    ],
)
def test_matches_condition(field_name, condition_type, condition_value, expected):
    rule = make_rule(condition_field=field_name, condition_type=condition_type, condition_value=condition_value)
    context = {"label": "Training Fee", "sectionName": "Implementation Fees (One-Time)", "display": "$2,000"}
    assert matches_condition(rule, context) is expected


def test_action_payloads_round_trip():
    assert parse_action("set_status", '"na"') == SetStatus(CellStatus.NA)
    assert parse_action("add_note", '"Verify"') == AddNote("Verify")
    assert encode_action(SetStatus(CellStatus.HIDDEN)) == ("set_status", '"hidden"')
    assert encode_action(AddNote("Verify")) == ("add_note", '"Verify"')


def test_rule_dict_round_trip():
    rule = make_rule(vendor_name="Acme", priority=3, examples=[{"label": "Training Fee"}])
    data = rule.to_dict()
    assert data["conditionField"] == "label"
    assert data["actionValue"] == '"included_in_bundle"'
    assert PlaybookRule.from_dict(data) == rule
    assert PlaybookRule.from_dict({**data, "actionValue": "included_in_bundle"}).action is None
    assert PlaybookRule.from_dict({**data, "actionValue": ["x"]}).action_value == '["x"]'


@pytest.mark.parametrize("canonical_totals", [True, False])
def test_totals_rows_are_never_rule_targets(table_factory, totals_of, cell_of, canonical_totals):
    table = table_factory(canonical_totals=canonical_totals)
    rule = make_rule(id="r9", condition_value="discount", action_value='"na"')
    result, modified = apply_playbook_rules(table, [rule])

    # only the Discounts data row matches for each vendor
    assert modified == 2
    for row_id in ("year1_discounts", "year1_before_discounts"):
        assert totals_of(result, row_id, "Acme") == totals_of(table, row_id, "Acme")

    recalculated = recalculate(result)
    year1_discounts = totals_of(recalculated, "year1_discounts", "Acme")
    assert year1_discounts.amount == 0
    assert year1_discounts.audit.playbook_rule_id is None
    assert cell_of(recalculated, "discount_vendorA_1", "Acme").audit.playbook_rule_id == "r9"
