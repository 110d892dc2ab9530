"""Seed evaluation tables from the fee structure and refresh prices from tender submissions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from . import aggregation
from .domain import EvaluationTable, LineItem, PriceEntry, TenderEvaluation, new_id, to_amount
from .engine import ORIGINAL_TABLE_NUMBER, zero_prices
from .errors import ValidationError
from .schemas import FeeScheduleNode, SubmittedPrice

logger = logging.getLogger(__name__)

FeeInput = Union[FeeScheduleNode, Mapping[str, Any]]
SubmissionInput = Union[SubmittedPrice, Mapping[str, Any]]


@dataclass(slots=True)
class PriceImportReport:
    """Outcome of applying submitted prices to a table."""

    table_id: str
    updated_item_ids: List[str] = field(default_factory=list)
    unmatched_refs: List[str] = field(default_factory=list)
    category_refs: List[str] = field(default_factory=list)


def _target_table(evaluation: TenderEvaluation, table_id: Optional[str]) -> EvaluationTable:
    if table_id is not None:
        return evaluation.get_table(table_id)
    return evaluation.table_by_number(ORIGINAL_TABLE_NUMBER)


def _normalise_text(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip().casefold()


# ------------------------------------------------------------------ fee structure
def _parse_fee_nodes(items: Iterable[FeeInput]) -> List[FeeScheduleNode]:
    try:
        return [
            item if isinstance(item, FeeScheduleNode) else FeeScheduleNode.model_validate(item)
            for item in items
        ]
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed fee structure: {exc.error_count()} invalid field(s)") from exc


def _convert_fee_node(
    node: FeeScheduleNode,
    sort_order: int,
    parent_id: Optional[str],
    firm_ids: Sequence[str],
) -> LineItem:
    is_category = node.is_category or bool(node.children)
    item = LineItem(
        id=new_id(),
        description=node.description or "Item",
        is_category=is_category,
        sort_order=sort_order,
        parent_id=parent_id,
    )
    if is_category:
        item.children = [
            _convert_fee_node(child, index, item.id, firm_ids)
            for index, child in enumerate(node.children)
        ]
    else:
        item.prices = zero_prices(firm_ids)
    return item


def import_structure_from_fee_schedule(
    evaluation: TenderEvaluation,
    fee_schedule_items: Iterable[FeeInput],
    firm_ids: Iterable[str],
    table_id: Optional[str] = None,
) -> EvaluationTable:
    """Replace a table's tree with the fee structure, one zero price per firm on each leaf.

    The table defaults to table 1 ("Original"); no other table is touched.
    """

    table = _target_table(evaluation, table_id)
    nodes = _parse_fee_nodes(fee_schedule_items)
    firms = list(dict.fromkeys(firm_ids))

    table.root_items = [_convert_fee_node(node, index, None, firms) for index, node in enumerate(nodes)]
    aggregation.refresh(evaluation, table)
    logger.info(
        "Imported fee structure into table %s",
        table.table_name,
        extra={"evaluation_id": evaluation.id, "table_id": table.id, "root_items": len(nodes), "firms": len(firms)},
    )
    return table


# ------------------------------------------------------------------ tender submissions
def _parse_submissions(rows: Iterable[SubmissionInput]) -> List[SubmittedPrice]:
    try:
        return [
            row if isinstance(row, SubmittedPrice) else SubmittedPrice.model_validate(row)
            for row in rows
        ]
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed tender submission data: {exc.error_count()} invalid field(s)") from exc


def _index_items(table: EvaluationTable):
    by_id: Dict[str, LineItem] = {}
    by_description: Dict[str, List[LineItem]] = {}
    for item in table.iter_items():
        by_id[item.id] = item
        by_description.setdefault(_normalise_text(item.description), []).append(item)
    return by_id, by_description


def import_prices_from_submissions(
    evaluation: TenderEvaluation,
    tender_submission_data: Iterable[SubmissionInput],
    table_id: Optional[str] = None,
) -> PriceImportReport:
    """Overwrite matched leaves' price lists with submitted amounts.

    An ``itemRef`` matches a line item by id first, then by description
    ignoring case and whitespace. Leaves without submitted prices keep theirs.
    Every amount is validated before any leaf is changed.
    """

    table = _target_table(evaluation, table_id)
    rows = _parse_submissions(tender_submission_data)
    report = PriceImportReport(table_id=table.id)
    by_id, by_description = _index_items(table)

    submitted: Dict[int, Dict[str, Decimal]] = {}
    targets: Dict[int, LineItem] = {}
    for row in rows:
        amount = to_amount(row.amount)
        matches = [by_id[row.item_ref]] if row.item_ref in by_id else by_description.get(_normalise_text(row.item_ref), [])
        if not matches:
            if row.item_ref not in report.unmatched_refs:
                report.unmatched_refs.append(row.item_ref)
            continue
        for item in matches:
            if item.is_category:
                if row.item_ref not in report.category_refs:
                    report.category_refs.append(row.item_ref)
                continue
            targets[id(item)] = item
            submitted.setdefault(id(item), {})[row.firm_id] = amount

    for key, item in targets.items():
        item.prices = [PriceEntry(firm_id=firm_id, amount=amount) for firm_id, amount in submitted[key].items()]
        report.updated_item_ids.append(item.id)

    aggregation.refresh(evaluation, table)
    if report.unmatched_refs or report.category_refs:
        logger.warning(
            "Tender submission rows did not match priced items in table %s: unmatched=%s categories=%s",
            table.table_name,
            report.unmatched_refs,
            report.category_refs,
        )
    logger.info(
        "Applied tender submission prices to %d item(s)",
        len(report.updated_item_ids),
        extra={"evaluation_id": evaluation.id, "table_id": table.id},
    )
    return report
