"""Flatten evaluations to relational rows and rebuild them on load."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .domain import ZERO, EvaluationTable, LineItem, PriceEntry, TenderEvaluation
from .models import (
    EvaluationFirmPriceRecord,
    EvaluationLineItemRecord,
    EvaluationTableRecord,
    TenderEvaluationRecord,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FlatEvaluation:
    evaluation_row: TenderEvaluationRecord
    table_rows: List[EvaluationTableRecord] = field(default_factory=list)
    item_rows: List[EvaluationLineItemRecord] = field(default_factory=list)
    price_rows: List[EvaluationFirmPriceRecord] = field(default_factory=list)


def _money(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else ZERO


def _flatten_items(
    items: Iterable[LineItem],
    table_id: str,
    parent_id: Optional[str],
    flat: FlatEvaluation,
) -> None:
    # Parents are emitted before their children so inserts satisfy the self-referencing key.
    for item in items:
        flat.item_rows.append(
            EvaluationLineItemRecord(
                id=item.id,
                table_id=table_id,
                parent_category_id=parent_id,
                description=item.description,
                is_category=item.is_category,
                category_sub_total=item.category_subtotal if item.is_category else None,
                sort_order=item.sort_order or 0,
            )
        )
        for position, entry in enumerate(item.prices):
            flat.price_rows.append(
                EvaluationFirmPriceRecord(
                    line_item_id=item.id,
                    firm_id=entry.firm_id,
                    amount=entry.amount,
                    sort_order=position,
                )
            )
        _flatten_items(item.children, table_id, item.id, flat)


def flatten_evaluation(evaluation: TenderEvaluation, evaluation_id: str) -> FlatEvaluation:
    """Map the aggregate onto unsaved row objects, one per table, item and price."""

    flat = FlatEvaluation(
        evaluation_row=TenderEvaluationRecord(
            id=evaluation_id,
            project_id=evaluation.project_id,
            discipline_id=evaluation.discipline_id,
            consultant_card_id=evaluation.consultant_card_id,
            contractor_card_id=evaluation.contractor_card_id,
            grand_total=evaluation.grand_total,
        )
    )
    for table in evaluation.tables:
        flat.table_rows.append(
            EvaluationTableRecord(
                id=table.id,
                evaluation_id=evaluation_id,
                table_number=table.table_number,
                table_name=table.table_name,
                sub_total=table.sub_total,
                sort_order=table.sort_order,
            )
        )
        _flatten_items(table.root_items, table.id, None, flat)
    return flat


def _build_items(
    table_id: str,
    item_rows: List[EvaluationLineItemRecord],
    prices_by_item: Dict[str, List[EvaluationFirmPriceRecord]],
) -> List[LineItem]:
    nodes: Dict[str, LineItem] = {}
    for row in item_rows:
        nodes[row.id] = LineItem(
            id=row.id,
            description=row.description,
            is_category=row.is_category,
            sort_order=row.sort_order,
            parent_id=row.parent_category_id,
            category_subtotal=_money(row.category_sub_total) if row.is_category else None,
        )
        if not row.is_category:
            nodes[row.id].prices = [
                PriceEntry(firm_id=price.firm_id, amount=_money(price.amount))
                for price in sorted(prices_by_item.get(row.id, []), key=lambda price: price.sort_order)
            ]
        elif prices_by_item.get(row.id):
            logger.warning("Ignoring %d price row(s) stored against category %s", len(prices_by_item[row.id]), row.id)

    roots: List[LineItem] = []
    dropped = set()
    for row in item_rows:
        node = nodes[row.id]
        if row.parent_category_id is None:
            roots.append(node)
            continue
        parent = nodes.get(row.parent_category_id)
        if parent is None or not parent.is_category:
            logger.warning(
                "Dropping line item %s in table %s: parent category %s is missing",
                row.id,
                table_id,
                row.parent_category_id,
            )
            dropped.add(row.id)
            continue
        parent.children.append(node)

    for node in nodes.values():
        node.children.sort(key=lambda child: child.sort_order)
    roots.sort(key=lambda item: item.sort_order)

    # Descendants of dropped rows and rows in parent cycles never reach a root.
    reachable = {node.id for root in roots for node in root.iter_subtree()}
    detached = [row.id for row in item_rows if row.id not in reachable and row.id not in dropped]
    if detached:
        logger.warning(
            "Dropping %d line item(s) in table %s not reachable from a root item: %s",
            len(detached),
            table_id,
            ", ".join(detached),
        )
    return roots


def rebuild_evaluation(
    evaluation_row: TenderEvaluationRecord,
    table_rows: Iterable[EvaluationTableRecord],
    item_rows: Iterable[EvaluationLineItemRecord],
    price_rows: Iterable[EvaluationFirmPriceRecord],
) -> TenderEvaluation:
    """Reassemble the nested aggregate from the flat row sets of one evaluation."""

    items_by_table: Dict[str, List[EvaluationLineItemRecord]] = {}
    for row in item_rows:
        items_by_table.setdefault(row.table_id, []).append(row)
    prices_by_item: Dict[str, List[EvaluationFirmPriceRecord]] = {}
    for price in price_rows:
        prices_by_item.setdefault(price.line_item_id, []).append(price)

    evaluation = TenderEvaluation(
        id=evaluation_row.id,
        project_id=evaluation_row.project_id,
        discipline_id=evaluation_row.discipline_id,
        consultant_card_id=evaluation_row.consultant_card_id,
        contractor_card_id=evaluation_row.contractor_card_id,
        grand_total=_money(evaluation_row.grand_total),
    )
    for row in sorted(table_rows, key=lambda table: (table.sort_order, table.table_number)):
        evaluation.tables.append(
            EvaluationTable(
                id=row.id,
                table_number=row.table_number,
                table_name=row.table_name,
                sort_order=row.sort_order,
                sub_total=_money(row.sub_total),
                root_items=_build_items(row.id, items_by_table.get(row.id, []), prices_by_item),
            )
        )
    return evaluation
