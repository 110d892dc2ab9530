from __future__ import annotations

import copy
from decimal import Decimal

import pytest

from backend.app.modules.tender_evaluation import engine
from backend.app.modules.tender_evaluation.domain import Firm, LineItem, PriceEntry, TenderEvaluation
from backend.app.modules.tender_evaluation.errors import (
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


# ------------------------------------------------------------------ tables
def test_add_table_numbers_tables_sequentially():
    evaluation = TenderEvaluation(project_id="proj1", discipline_id="arch", consultant_card_id="cons1")

    first = engine.add_table(evaluation, "Original")
    second = engine.add_table(evaluation, "Adds and Subs")
    third = engine.add_table(evaluation)

    assert [t.table_number for t in evaluation.tables] == [1, 2, 3]
    assert [t.sort_order for t in evaluation.tables] == [0, 1, 2]
    assert third.table_name == "Additional Table 3"
    assert first.root_items == [] and second.sub_total == Decimal("0")


def test_remove_table_refreshes_grand_total(scenario):
    evaluation = scenario.evaluation
    adds = engine.add_table(evaluation, "Adds and Subs")
    extra = engine.add_line_item(evaluation, adds.id, LineItem(description="Extra"))
    engine.set_firm_price(evaluation, adds.id, extra.id, "firm-a", 5000)

    engine.remove_table(evaluation, adds.id)

    assert evaluation.grand_total == Decimal("70000")
    with pytest.raises(NotFoundError):
        engine.remove_table(evaluation, adds.id)


def test_rename_table_rejects_blank_name(scenario):
    with pytest.raises(ValidationError):
        engine.rename_table(scenario.evaluation, scenario.original.id, "   ")

    engine.rename_table(scenario.evaluation, scenario.original.id, " Base Scope ")
    assert scenario.original.table_name == "Base Scope"


def test_evaluation_requires_exactly_one_card():
    with pytest.raises(ValidationError):
        TenderEvaluation(project_id="proj1", discipline_id="arch")
    with pytest.raises(ValidationError):
        TenderEvaluation(project_id="proj1", discipline_id="arch", consultant_card_id="c", contractor_card_id="k")


def test_default_evaluation_seeds_two_tables():
    firms = [Firm(id="firm-a", name="Firm A"), Firm(id="firm-b", name="Firm B")]

    evaluation = engine.create_default_evaluation("proj1", "arch", consultant_card_id="cons1", firms=firms)

    assert evaluation.id is None
    assert [t.table_name for t in evaluation.tables] == ["Original", "Adds and Subs"]
    original, adds = evaluation.tables
    assert original.root_items == []
    assert [item.description for item in adds.root_items] == [
        "Additional Item 1",
        "Additional Item 2",
        "Additional Item 3",
    ]
    assert all([p.firm_id for p in item.prices] == ["firm-a", "firm-b"] for item in adds.root_items)
    assert evaluation.grand_total == Decimal("0")


# ------------------------------------------------------------------ line items
def test_add_item_appends_under_category_with_next_sort_order(scenario):
    assert [child.description for child in scenario.design.children] == ["Concept Design", "Documentation"]
    assert [child.sort_order for child in scenario.design.children] == [0, 1]
    assert scenario.concept.parent_id == scenario.design.id
    assert scenario.design.parent_id is None


def test_add_item_under_unknown_or_leaf_parent_is_not_found(scenario):
    evaluation = scenario.evaluation
    with pytest.raises(NotFoundError):
        engine.add_line_item(evaluation, scenario.original.id, LineItem(description="Orphan"), "missing")
    with pytest.raises(NotFoundError):
        engine.add_line_item(evaluation, scenario.original.id, LineItem(description="Under leaf"), scenario.concept.id)
    with pytest.raises(NotFoundError):
        engine.add_line_item(evaluation, "no-such-table", LineItem(description="Nowhere"))


def test_add_item_rejects_malformed_nodes(scenario):
    evaluation = scenario.evaluation
    table_id = scenario.original.id
    before = copy.deepcopy(evaluation)

    with pytest.raises(ValidationError):
        engine.add_line_item(
            evaluation, table_id, LineItem(description="Priced category", is_category=True, prices=[PriceEntry("firm-a")])
        )
    with pytest.raises(ValidationError):
        engine.add_line_item(
            evaluation, table_id, LineItem(description="Leaf", children=[LineItem(description="Child")])
        )
    with pytest.raises(ValidationError):
        engine.add_line_item(evaluation, table_id, LineItem(description="Clash", sort_order=0))
    with pytest.raises(ValidationError):
        engine.add_line_item(evaluation, table_id, LineItem(id=scenario.concept.id, description="Duplicate id"))
    with pytest.raises(ValidationError):
        engine.add_line_item(
            evaluation, table_id, LineItem(description="Negative", prices=[PriceEntry("firm-a", Decimal("-1"))])
        )

    assert evaluation == before


def test_add_item_keeps_siblings_in_sort_order(scenario):
    evaluation = scenario.evaluation
    engine.add_line_item(evaluation, scenario.original.id, LineItem(description="Late", sort_order=10))
    engine.add_line_item(evaluation, scenario.original.id, LineItem(description="Early", sort_order=5))

    assert [item.description for item in scenario.original.root_items] == ["Design Services", "Early", "Late"]


def test_add_nested_subtree_assigns_ids_and_parents(scenario):
    evaluation = scenario.evaluation
    subtree = LineItem(
        description="Services",
        is_category=True,
        children=[
            LineItem(description="Survey", prices=[PriceEntry("firm-a", 100)]),
            LineItem(description="Geotech", prices=[PriceEntry("firm-b", 200)]),
        ],
    )

    engine.add_line_item(evaluation, scenario.original.id, subtree)

    assert all(child.id and child.parent_id == subtree.id for child in subtree.children)
    assert [child.sort_order for child in subtree.children] == [0, 1]
    assert subtree.category_subtotal == Decimal("300")
    assert evaluation.grand_total == Decimal("70300")


def test_update_item_description_and_sort_order(scenario):
    evaluation = scenario.evaluation

    engine.update_line_item(
        evaluation, scenario.original.id, scenario.concept.id, description="Concept", sort_order=5
    )

    assert scenario.concept.description == "Concept"
    assert [child.description for child in scenario.design.children] == ["Documentation", "Concept"]


def test_update_rejects_sibling_sort_order_and_unknown_fields(scenario):
    evaluation = scenario.evaluation
    before = copy.deepcopy(evaluation)

    with pytest.raises(ValidationError):
        engine.update_line_item(evaluation, scenario.original.id, scenario.concept.id, sort_order=1)
    with pytest.raises(ValidationError):
        engine.update_line_item(evaluation, scenario.original.id, scenario.concept.id, prices=[])
    with pytest.raises(NotFoundError):
        engine.update_line_item(evaluation, scenario.original.id, "missing", description="x")

    assert evaluation == before


def test_demoting_category_with_children_is_invalid_state(scenario):
    evaluation = scenario.evaluation
    before = copy.deepcopy(evaluation)

    with pytest.raises(InvalidStateError):
        engine.update_line_item(evaluation, scenario.original.id, scenario.design.id, is_category=False)

    assert evaluation == before


def test_demoting_empty_category_and_promoting_leaf(scenario):
    evaluation = scenario.evaluation
    table_id = scenario.original.id
    empty = engine.add_line_item(evaluation, table_id, LineItem(description="Empty", is_category=True))

    engine.update_line_item(evaluation, table_id, empty.id, is_category=False)
    assert empty.is_category is False and empty.category_subtotal is None

    engine.update_line_item(evaluation, table_id, scenario.concept.id, is_category=True)
    assert scenario.concept.prices == []
    assert scenario.concept.category_subtotal == Decimal("0")
    assert scenario.design.category_subtotal == Decimal("15000")


def test_delete_category_removes_subtree(scenario):
    evaluation = scenario.evaluation
    table = scenario.original

    removed = engine.delete_line_item(evaluation, table.id, scenario.design.id)

    assert removed is scenario.design
    assert list(table.iter_items()) == []
    assert table.sub_total == Decimal("0")
    assert evaluation.grand_total == Decimal("0")
    with pytest.raises(NotFoundError):
        engine.find_path(evaluation, table.id, scenario.concept.id)


def test_find_path_returns_root_to_item_chain(scenario):
    path = engine.find_path(scenario.evaluation, scenario.original.id, scenario.documentation.id)

    assert [node.description for node in path] == ["Design Services", "Documentation"]


# ------------------------------------------------------------------ prices
def test_set_price_upserts_entry(scenario):
    evaluation = scenario.evaluation

    engine.set_firm_price(evaluation, scenario.original.id, scenario.concept.id, "firm-a", Decimal("26000"))
    engine.set_firm_price(evaluation, scenario.original.id, scenario.documentation.id, "firm-b", 17000)

    assert engine.get_prices(evaluation, scenario.original.id, scenario.concept.id) == [
        PriceEntry("firm-a", Decimal("26000")),
        PriceEntry("firm-b", Decimal("30000")),
    ]
    assert len(scenario.documentation.prices) == 2
    assert evaluation.grand_total == Decimal("88000")


def test_set_price_on_category_is_invalid_operation(scenario):
    with pytest.raises(InvalidOperationError):
        engine.set_firm_price(scenario.evaluation, scenario.original.id, scenario.design.id, "firm-a", 10)


@pytest.mark.parametrize("amount", [-1, "-0.01", "abc", float("nan"), None, "1e30", "10000000000000", "9999999999999.999"])
def test_set_price_rejects_invalid_amounts(scenario, amount):
    evaluation = scenario.evaluation
    before = copy.deepcopy(evaluation)

    with pytest.raises(ValidationError):
        engine.set_firm_price(evaluation, scenario.original.id, scenario.concept.id, "firm-a", amount)

    assert evaluation == before


def test_get_prices_is_sparse(scenario):
    prices = engine.get_prices(scenario.evaluation, scenario.original.id, scenario.documentation.id)

    assert [entry.firm_id for entry in prices] == ["firm-a"]


def test_set_price_accepts_largest_column_amount(scenario):
    evaluation = scenario.evaluation

    engine.set_firm_price(evaluation, scenario.original.id, scenario.documentation.id, "firm-b", "9999999999999.99")

    assert scenario.documentation.price_for("firm-b").amount == Decimal("9999999999999.99")


def test_negative_zero_price_is_stored_as_zero(scenario):
    engine.set_firm_price(scenario.evaluation, scenario.original.id, scenario.concept.id, "firm-a", "-0")

    amount = scenario.concept.price_for("firm-a").amount
    assert amount == Decimal("0") and not amount.is_signed()
    assert str(amount) == "0.00"
