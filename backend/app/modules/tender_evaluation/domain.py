"""In-memory aggregate for tender price evaluations."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional

from .errors import NotFoundError, ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
# Upper bound of the MONEY column: 13 integer digits.
MAX_AMOUNT = Decimal("1e13")


def new_id() -> str:
    return uuid.uuid4().hex


def to_amount(value: Any) -> Decimal:
    """Normalise a monetary input to a non-negative two-decimal ``Decimal``."""

    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValidationError(f"Amount must not be negative, got {amount}")
    if amount >= MAX_AMOUNT:
        raise ValidationError(f"Amount must be below {MAX_AMOUNT:,.0f}, got {amount}")
    amount = amount.quantize(CENT)
    if amount >= MAX_AMOUNT:
        raise ValidationError(f"Amount must be below {MAX_AMOUNT:,.0f}, got {amount}")
    return abs(amount)


@dataclass(slots=True)
class Firm:
    """Shortlisted firm reference owned by the project firm registry."""

    id: str
    name: str


@dataclass(slots=True)
class PriceEntry:
    firm_id: str
    amount: Decimal = ZERO


@dataclass(slots=True)
class LineItem:
    """Node of the evaluation tree: a category (children) or a priced item (prices)."""

    description: str
    is_category: bool = False
    id: Optional[str] = None
    sort_order: Optional[int] = None
    parent_id: Optional[str] = None
    prices: List[PriceEntry] = field(default_factory=list)
    children: List["LineItem"] = field(default_factory=list)
    category_subtotal: Optional[Decimal] = None

    def price_for(self, firm_id: str) -> Optional[PriceEntry]:
        for entry in self.prices:
            if entry.firm_id == firm_id:
                return entry
        return None

    def iter_subtree(self) -> Iterator["LineItem"]:
        """Yield this node and its descendants in pre-order."""

        yield self
        for child in self.children:
            yield from child.iter_subtree()


@dataclass(slots=True)
class EvaluationTable:
    """Named, ordered sub-ledger of an evaluation (e.g. "Original", "Adds and Subs")."""

    table_number: int
    table_name: str
    id: str = field(default_factory=new_id)
    sort_order: int = 0
    root_items: List[LineItem] = field(default_factory=list)
    sub_total: Decimal = ZERO

    def iter_items(self) -> Iterator[LineItem]:
        for item in self.root_items:
            yield from item.iter_subtree()


@dataclass(slots=True)
class TenderEvaluation:
    """Aggregate root keyed by project, discipline/trade and consultant or contractor card."""

    project_id: str
    discipline_id: str
    consultant_card_id: Optional[str] = None
    contractor_card_id: Optional[str] = None
    id: Optional[str] = None
    tables: List[EvaluationTable] = field(default_factory=list)
    grand_total: Decimal = ZERO
    shortlisted_firms: List[Firm] = field(default_factory=list, compare=False)

    def __post_init__(self) -> None:
        check_card_ids(self.consultant_card_id, self.contractor_card_id)

    def get_table(self, table_id: str) -> EvaluationTable:
        for table in self.tables:
            if table.id == table_id:
                return table
        raise NotFoundError(f"Table {table_id} not found")

    def table_by_number(self, table_number: int) -> EvaluationTable:
        for table in self.tables:
            if table.table_number == table_number:
                return table
        raise NotFoundError(f"Table number {table_number} not found")

    def firm_names(self) -> Dict[str, str]:
        return {firm.id: firm.name for firm in self.shortlisted_firms}


def check_card_ids(consultant_card_id: Optional[str], contractor_card_id: Optional[str]) -> None:
    if bool(consultant_card_id) == bool(contractor_card_id):
        raise ValidationError("Exactly one of consultant_card_id or contractor_card_id must be set")
