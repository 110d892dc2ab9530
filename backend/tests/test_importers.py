from __future__ import annotations

import copy
from decimal import Decimal

import pytest

from backend.app.modules.tender_evaluation import engine
from backend.app.modules.tender_evaluation.errors import NotFoundError, ValidationError
from backend.app.modules.tender_evaluation.importers import (
    import_prices_from_submissions,
    import_structure_from_fee_schedule,
)


def _default_evaluation():
    return engine.create_default_evaluation("proj1", "arch", consultant_card_id="cons1", placeholder_count=0)


def test_fee_schedule_seeds_table_one_structure(directory):
    evaluation = _default_evaluation()
    adds = evaluation.tables[1]
    engine.add_line_item(evaluation, adds.id, engine.LineItem(description="Variation", prices=[engine.PriceEntry("firm-a", 500)]))

    table = import_structure_from_fee_schedule(evaluation, directory.fee_items, ["firm-a", "firm-b"])

    assert table is evaluation.tables[0]
    design, visits = table.root_items
    assert design.is_category and design.description == "Design Services"
    assert [child.description for child in design.children] == ["Concept Design", "Documentation"]
    assert [child.sort_order for child in design.children] == [0, 1]
    assert all(child.parent_id == design.id for child in design.children)
    assert visits.is_category is False
    assert [(p.firm_id, p.amount) for p in visits.prices] == [("firm-a", Decimal("0")), ("firm-b", Decimal("0"))]
    assert design.prices == []
    assert design.category_subtotal == Decimal("0")
    assert [item.description for item in adds.root_items] == ["Variation"]
    assert evaluation.grand_total == Decimal("500")


def test_fee_schedule_accepts_plain_dicts_and_infers_categories():
    evaluation = _default_evaluation()
    fee_items = [
        {"id": 7, "name": "Stage 1", "children": [{"description": "Brief", "type": "item"}]},
        {"description": "Stage 2", "type": "category"},
    ]

    table = import_structure_from_fee_schedule(evaluation, fee_items, ["firm-a"])

    stage_one, stage_two = table.root_items
    assert stage_one.is_category and stage_one.description == "Stage 1"
    assert stage_one.children[0].prices[0].firm_id == "firm-a"
    assert stage_two.is_category and stage_two.children == []


def test_fee_schedule_replaces_existing_structure(directory):
    evaluation = _default_evaluation()
    import_structure_from_fee_schedule(evaluation, directory.fee_items, ["firm-a"])

    table = import_structure_from_fee_schedule(evaluation, [{"description": "Only item"}], ["firm-a"])

    assert [item.description for item in table.root_items] == ["Only item"]


def test_fee_schedule_rejects_malformed_payload():
    evaluation = _default_evaluation()

    with pytest.raises(ValidationError):
        import_structure_from_fee_schedule(evaluation, [{"description": "Bad", "children": "nope"}], [])


def test_submissions_overwrite_matched_leaf_prices(directory):
    evaluation = _default_evaluation()
    table = import_structure_from_fee_schedule(evaluation, directory.fee_items, ["firm-a", "firm-b"])
    design, visits = table.root_items
    engine.set_firm_price(evaluation, table.id, visits.id, "firm-a", 800)

    report = import_prices_from_submissions(evaluation, directory.submissions)

    concept, documentation = design.children
    assert report.updated_item_ids == [concept.id, documentation.id]
    assert report.unmatched_refs == []
    assert [(p.firm_id, p.amount) for p in concept.prices] == [("firm-a", Decimal("25000")), ("firm-b", Decimal("30000"))]
    assert [(p.firm_id, p.amount) for p in documentation.prices] == [("firm-a", Decimal("15000"))]
    assert visits.prices[0].amount == Decimal("800")
    assert design.category_subtotal == Decimal("70000")
    assert evaluation.grand_total == Decimal("70800")


def test_submissions_match_by_item_id_and_report_misses(scenario):
    evaluation = scenario.evaluation
    rows = [
        {"itemRef": scenario.documentation.id, "firmId": "firm-b", "amount": "12000"},
        {"itemRef": "Design Services", "firmId": "firm-a", "amount": 1},
        {"itemRef": "Landscape", "firmId": "firm-a", "amount": 1},
    ]

    report = import_prices_from_submissions(evaluation, rows, table_id=scenario.original.id)

    assert report.updated_item_ids == [scenario.documentation.id]
    assert report.category_refs == ["Design Services"]
    assert report.unmatched_refs == ["Landscape"]
    assert [(p.firm_id, p.amount) for p in scenario.documentation.prices] == [("firm-b", Decimal("12000"))]
    assert evaluation.grand_total == Decimal("67000")


def test_submissions_with_negative_amount_change_nothing(scenario):
    evaluation = scenario.evaluation
    before = copy.deepcopy(evaluation)
    rows = [
        {"itemRef": "Concept Design", "firmId": "firm-a", "amount": 1},
        {"itemRef": "Documentation", "firmId": "firm-a", "amount": -5},
    ]

    with pytest.raises(ValidationError):
        import_prices_from_submissions(evaluation, rows, table_id=scenario.original.id)

    assert evaluation == before


def test_submissions_need_a_target_table():
    evaluation = engine.create_default_evaluation("proj1", "arch", consultant_card_id="cons1", table_names=())

    with pytest.raises(NotFoundError):
        import_prices_from_submissions(evaluation, [])


def test_submissions_with_oversized_amount_change_nothing(scenario):
    evaluation = scenario.evaluation
    before = copy.deepcopy(evaluation)

    with pytest.raises(ValidationError):
        import_prices_from_submissions(
            evaluation,
            [{"itemRef": "Concept Design", "firmId": "firm-a", "amount": "1e40"}],
            table_id=scenario.original.id,
        )

    assert evaluation == before
