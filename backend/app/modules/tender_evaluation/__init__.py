"""Tender price evaluation: multi-table, multi-firm cost comparison."""

from .domain import EvaluationTable, Firm, LineItem, PriceEntry, TenderEvaluation
from .engine import (
    add_line_item,
    add_table,
    delete_line_item,
    find_path,
    firm_totals,
    get_prices,
    recalculate_all,
    remove_table,
    rename_table,
    set_firm_price,
    update_line_item,
)
from .errors import (
    CollaboratorError,
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    TenderEvaluationError,
    ValidationError,
)
from .importers import import_prices_from_submissions, import_structure_from_fee_schedule
from .service import TenderEvaluationService

__all__ = [
    "EvaluationTable",
    "Firm",
    "LineItem",
    "PriceEntry",
    "TenderEvaluation",
    "TenderEvaluationService",
    "add_line_item",
    "add_table",
    "delete_line_item",
    "find_path",
    "firm_totals",
    "get_prices",
    "import_prices_from_submissions",
    "import_structure_from_fee_schedule",
    "recalculate_all",
    "remove_table",
    "rename_table",
    "set_firm_price",
    "update_line_item",
    "CollaboratorError",
    "InvalidOperationError",
    "InvalidStateError",
    "NotFoundError",
    "PersistenceError",
    "TenderEvaluationError",
    "ValidationError",
]
