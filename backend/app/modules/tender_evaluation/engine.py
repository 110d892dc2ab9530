"""Caller-facing operations on a ``TenderEvaluation``.

Every function takes the evaluation it works on and mutates it in place; there
is no module-level evaluation cache. Edits inside a table re-walk that table
and refresh the grand total before returning.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from . import aggregation, tree
from .domain import ZERO, EvaluationTable, Firm, LineItem, PriceEntry, TenderEvaluation, to_amount
from .errors import InvalidOperationError, ValidationError

logger = logging.getLogger(__name__)

ORIGINAL_TABLE_NUMBER = 1


# ------------------------------------------------------------------ tables
def add_table(evaluation: TenderEvaluation, name: Optional[str] = None) -> EvaluationTable:
    table_number = max((table.table_number for table in evaluation.tables), default=0) + 1
    sort_order = max((table.sort_order for table in evaluation.tables), default=-1) + 1
    table_name = name.strip() if name and name.strip() else f"Additional Table {table_number}"
    table = EvaluationTable(table_number=table_number, table_name=table_name, sort_order=sort_order)
    evaluation.tables.append(table)
    return table


def rename_table(evaluation: TenderEvaluation, table_id: str, name: str) -> EvaluationTable:
    if not name or not name.strip():
        raise ValidationError("Table name must not be blank")
    table = evaluation.get_table(table_id)
    table.table_name = name.strip()
    return table


def remove_table(evaluation: TenderEvaluation, table_id: str) -> EvaluationTable:
    table = evaluation.get_table(table_id)
    evaluation.tables.remove(table)
    aggregation.recalculate_grand_total(evaluation)
    return table


# ------------------------------------------------------------------ line items
def _check_ids_unused(evaluation: TenderEvaluation, table: EvaluationTable, item: LineItem) -> None:
    taken = {node.id for other in evaluation.tables if other is not table for node in other.iter_items()}
    for node in item.iter_subtree():
        if node.id is not None and node.id in taken:
            raise ValidationError(f"Line item id {node.id} is already used in another table")


def add_line_item(
    evaluation: TenderEvaluation,
    table_id: str,
    item: LineItem,
    parent_id: Optional[str] = None,
) -> LineItem:
    table = evaluation.get_table(table_id)
    _check_ids_unused(evaluation, table, item)
    tree.insert_item(table, item, parent_id)
    aggregation.refresh(evaluation, table)
    return item


def update_line_item(evaluation: TenderEvaluation, table_id: str, item_id: str, **fields: Any) -> LineItem:
    table = evaluation.get_table(table_id)
    item = tree.update_item(table, item_id, fields)
    aggregation.refresh(evaluation, table)
    return item


def delete_line_item(evaluation: TenderEvaluation, table_id: str, item_id: str) -> LineItem:
    table = evaluation.get_table(table_id)
    removed = tree.remove_item(table, item_id)
    aggregation.refresh(evaluation, table)
    return removed


def find_path(evaluation: TenderEvaluation, table_id: str, item_id: str) -> List[LineItem]:
    return tree.find_path(evaluation.get_table(table_id), item_id)


# ------------------------------------------------------------------ prices
def set_firm_price(
    evaluation: TenderEvaluation,
    table_id: str,
    item_id: str,
    firm_id: str,
    amount: Any,
) -> LineItem:
    table = evaluation.get_table(table_id)
    item = tree.find_item(table, item_id)
    if item.is_category:
        raise InvalidOperationError(f"Cannot price category '{item.description}'")
    if not firm_id:
        raise ValidationError("firm_id is required")
    value = to_amount(amount)

    entry = item.price_for(firm_id)
    if entry is None:
        item.prices.append(PriceEntry(firm_id=firm_id, amount=value))
    else:
        entry.amount = value
    aggregation.refresh(evaluation, table)
    return item


def get_prices(evaluation: TenderEvaluation, table_id: str, item_id: str) -> List[PriceEntry]:
    item = tree.find_item(evaluation.get_table(table_id), item_id)
    return list(item.prices)


def zero_prices(firm_ids: Iterable[str]) -> List[PriceEntry]:
    return [PriceEntry(firm_id=firm_id, amount=ZERO) for firm_id in firm_ids]


# ------------------------------------------------------------------ totals
def recalculate_all(evaluation: TenderEvaluation) -> TenderEvaluation:
    return aggregation.recalculate_all(evaluation)


def revalidate(evaluation: TenderEvaluation) -> TenderEvaluation:
    """Re-insert every table's tree through validation, then recompute all totals.

    Used for evaluations assembled outside the engine, e.g. from an API payload.
    """

    table_ids = [table.id for table in evaluation.tables]
    if len(table_ids) != len(set(table_ids)):
        raise ValidationError("Table ids must be unique within an evaluation")
    staged = []
    for table in evaluation.tables:
        scratch = EvaluationTable(table_number=table.table_number, table_name=table.table_name, id=table.id)
        for item in table.root_items:
            tree.insert_item(scratch, item)
        staged.append((table, scratch.root_items))
    seen = set()
    for _, root_items in staged:
        for root in root_items:
            for node in root.iter_subtree():
                if node.id in seen:
                    raise ValidationError(f"Line item id {node.id} is used in more than one table")
                seen.add(node.id)
    for table, root_items in staged:
        table.root_items = root_items
    return aggregation.recalculate_all(evaluation)


def firm_totals(evaluation: TenderEvaluation, table_id: Optional[str] = None) -> Dict[str, Decimal]:
    """Per-firm totals for one table, or across all tables when ``table_id`` is omitted."""

    if table_id is None:
        return aggregation.evaluation_firm_totals(evaluation)
    firm_ids = [firm.id for firm in evaluation.shortlisted_firms]
    return aggregation.firm_totals(evaluation.get_table(table_id), firm_ids)


# ------------------------------------------------------------------ defaults
def create_default_evaluation(
    project_id: str,
    discipline_id: str,
    *,
    consultant_card_id: Optional[str] = None,
    contractor_card_id: Optional[str] = None,
    firms: Iterable[Firm] = (),
    table_names: Iterable[str] = ("Original", "Adds and Subs"),
    placeholder_count: int = 3,
) -> TenderEvaluation:
    """Build the unsaved evaluation used the first time a card is opened.

    Table 2 is pre-filled with zero-priced placeholder rows, one price entry per
    shortlisted firm, so variations can be typed in straight away.
    """

    evaluation = TenderEvaluation(
        project_id=project_id,
        discipline_id=discipline_id,
        consultant_card_id=consultant_card_id,
        contractor_card_id=contractor_card_id,
        shortlisted_firms=list(firms),
    )
    firm_ids = [firm.id for firm in evaluation.shortlisted_firms]
    for name in table_names:
        table = add_table(evaluation, name)
        if table.table_number == 2:
            for index in range(1, placeholder_count + 1):
                tree.insert_item(
                    table,
                    LineItem(description=f"Additional Item {index}", prices=zero_prices(firm_ids)),
                )
    recalculate_all(evaluation)
    logger.debug(
        "Initialised default evaluation for project %s discipline %s",
        project_id,
        discipline_id,
    )
    return evaluation
