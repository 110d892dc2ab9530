"""Bottom-up subtotal computation for evaluation tables.

Stored totals blend every firm's price into one figure: a leaf contributes the
sum of all its price entries. ``firm_totals`` gives the per-firm breakdown used
for side-by-side comparison without feeding back into the stored totals.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable

from .domain import ZERO, EvaluationTable, LineItem, TenderEvaluation


def leaf_total(item: LineItem) -> Decimal:
    return sum((entry.amount for entry in item.prices), ZERO)


def contribution(item: LineItem) -> Decimal:
    """Amount an item adds to its parent (category subtotal or leaf price sum)."""

    if item.is_category:
        return item.category_subtotal if item.category_subtotal is not None else ZERO
    return leaf_total(item)


def _aggregate(item: LineItem) -> Decimal:
    if not item.is_category:
        return leaf_total(item)
    subtotal = sum((_aggregate(child) for child in item.children), ZERO)
    item.category_subtotal = subtotal
    return subtotal


def recalculate_table(table: EvaluationTable) -> Decimal:
    table.sub_total = sum((_aggregate(item) for item in table.root_items), ZERO)
    return table.sub_total


def recalculate_grand_total(evaluation: TenderEvaluation) -> Decimal:
    evaluation.grand_total = sum((table.sub_total for table in evaluation.tables), ZERO)
    return evaluation.grand_total


def recalculate_all(evaluation: TenderEvaluation) -> TenderEvaluation:
    for table in evaluation.tables:
        recalculate_table(table)
    recalculate_grand_total(evaluation)
    return evaluation


def refresh(evaluation: TenderEvaluation, table: EvaluationTable) -> None:
    """Recompute one table after an edit, then the grand total."""

    recalculate_table(table)
    recalculate_grand_total(evaluation)


def _add_firm_sums(items: Iterable[LineItem], totals: Dict[str, Decimal]) -> None:
    for item in items:
        if item.is_category:
            _add_firm_sums(item.children, totals)
            continue
        for entry in item.prices:
            totals[entry.firm_id] = totals.get(entry.firm_id, ZERO) + entry.amount


def firm_totals(table: EvaluationTable, firm_ids: Iterable[str] = ()) -> Dict[str, Decimal]:
    """Per-firm sum over a table's leaves; missing prices count as zero here."""

    totals: Dict[str, Decimal] = {firm_id: ZERO for firm_id in firm_ids}
    _add_firm_sums(table.root_items, totals)
    return totals


def evaluation_firm_totals(evaluation: TenderEvaluation) -> Dict[str, Decimal]:
    firm_ids = [firm.id for firm in evaluation.shortlisted_firms]
    totals: Dict[str, Decimal] = {firm_id: ZERO for firm_id in firm_ids}
    for table in evaluation.tables:
        for firm_id, amount in firm_totals(table).items():
            totals[firm_id] = totals.get(firm_id, ZERO) + amount
    return totals
