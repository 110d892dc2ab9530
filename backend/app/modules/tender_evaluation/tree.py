"""Structural operations on a table's line item tree.

Functions here validate fully before mutating and never recompute totals;
``engine`` wraps them with table lookup and recomputation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from .domain import EvaluationTable, LineItem, PriceEntry, new_id, to_amount
from .errors import InvalidStateError, NotFoundError, ValidationError

UPDATABLE_FIELDS = frozenset({"description", "is_category", "sort_order"})


def find_path(table: EvaluationTable, item_id: str) -> List[LineItem]:
    """Return the chain of nodes from a root item down to ``item_id``."""

    stack: List[Tuple[LineItem, List[LineItem]]] = [(item, [item]) for item in reversed(table.root_items)]
    while stack:
        node, path = stack.pop()
        if node.id == item_id:
            return path
        for child in reversed(node.children):
            stack.append((child, path + [child]))
    raise NotFoundError(f"Line item {item_id} not found in table {table.id}")


def find_item(table: EvaluationTable, item_id: str) -> LineItem:
    return find_path(table, item_id)[-1]


def _siblings(table: EvaluationTable, path: List[LineItem]) -> List[LineItem]:
    return path[-2].children if len(path) > 1 else table.root_items


def _resolve_parent(table: EvaluationTable, parent_id: Optional[str]) -> List[LineItem]:
    if parent_id is None:
        return table.root_items
    try:
        parent = find_item(table, parent_id)
    except NotFoundError:
        raise NotFoundError(f"Category {parent_id} not found in table {table.id}") from None
    if not parent.is_category:
        raise NotFoundError(f"Item {parent_id} in table {table.id} is not a category")
    return parent.children


def _next_sort_order(siblings: List[LineItem]) -> int:
    orders = [item.sort_order for item in siblings if item.sort_order is not None]
    return max(orders) + 1 if orders else 0


def _check_node(node: LineItem, seen_ids: Set[str]) -> List[PriceEntry]:
    if not isinstance(node.description, str):
        raise ValidationError("Line item description must be a string")
    if node.id is not None:
        if node.id in seen_ids:
            raise ValidationError(f"Duplicate line item id {node.id}")
        seen_ids.add(node.id)
    if node.is_category:
        if node.prices:
            raise ValidationError(f"Category '{node.description}' cannot carry prices")
        prices: List[PriceEntry] = []
    else:
        if node.children:
            raise ValidationError(f"Priced item '{node.description}' cannot have children")
        firms: Set[str] = set()
        prices = []
        for entry in node.prices:
            if entry.firm_id in firms:
                raise ValidationError(f"Duplicate price for firm {entry.firm_id} on '{node.description}'")
            firms.add(entry.firm_id)
            prices.append(PriceEntry(firm_id=entry.firm_id, amount=to_amount(entry.amount)))

    orders = [child.sort_order for child in node.children if child.sort_order is not None]
    if len(orders) != len(set(orders)):
        raise ValidationError(f"Children of '{node.description}' have duplicate sort orders")
    return prices


def _validate_subtree(item: LineItem, seen_ids: Set[str]) -> Dict[int, List[PriceEntry]]:
    normalised: Dict[int, List[PriceEntry]] = {}
    for node in item.iter_subtree():
        normalised[id(node)] = _check_node(node, seen_ids)
    return normalised


def _attach(node: LineItem, parent_id: Optional[str], normalised: Dict[int, List[PriceEntry]]) -> None:
    if node.id is None:
        node.id = new_id()
    node.parent_id = parent_id
    node.prices = normalised[id(node)]
    node.category_subtotal = None
    next_order = _next_sort_order(node.children)
    for child in node.children:
        if child.sort_order is None:
            child.sort_order = next_order
            next_order += 1
        _attach(child, node.id, normalised)
    node.children.sort(key=lambda child: child.sort_order)


def insert_item(table: EvaluationTable, item: LineItem, parent_id: Optional[str] = None) -> LineItem:
    """Insert ``item`` (with any children it carries) as a root or under a category."""

    siblings = _resolve_parent(table, parent_id)
    if item.sort_order is not None and (not isinstance(item.sort_order, int) or isinstance(item.sort_order, bool)):
        raise ValidationError("sort_order must be an integer")
    if item.sort_order is not None and any(s.sort_order == item.sort_order for s in siblings):
        raise ValidationError(f"Sort order {item.sort_order} is already used by a sibling")
    existing_ids = {node.id for node in table.iter_items() if node.id is not None}
    normalised = _validate_subtree(item, existing_ids)

    if item.sort_order is None:
        item.sort_order = _next_sort_order(siblings)
    _attach(item, parent_id, normalised)
    position = len(siblings)
    while position > 0 and siblings[position - 1].sort_order > item.sort_order:
        position -= 1
    siblings.insert(position, item)
    return item


def update_item(table: EvaluationTable, item_id: str, fields: Dict[str, Any]) -> LineItem:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update line item fields: {', '.join(sorted(unknown))}")

    path = find_path(table, item_id)
    item = path[-1]
    siblings = _siblings(table, path)

    description = fields.get("description", item.description)
    if not isinstance(description, str):
        raise ValidationError("Line item description must be a string")
    is_category = fields.get("is_category", item.is_category)
    if not isinstance(is_category, bool):
        raise ValidationError("is_category must be a boolean")
    sort_order = fields.get("sort_order", item.sort_order)
    if not isinstance(sort_order, int) or isinstance(sort_order, bool):
        raise ValidationError("sort_order must be an integer")
    if any(s is not item and s.sort_order == sort_order for s in siblings):
        raise ValidationError(f"Sort order {sort_order} is already used by a sibling")
    if item.is_category and not is_category and item.children:
        raise InvalidStateError(
            f"Category '{item.description}' has {len(item.children)} child item(s); remove them before converting it to a priced item"
        )

    item.description = description
    if is_category != item.is_category:
        item.is_category = is_category
        item.prices = []
        item.category_subtotal = None
    if sort_order != item.sort_order:
        item.sort_order = sort_order
        siblings.sort(key=lambda sibling: sibling.sort_order)
    return item


def remove_item(table: EvaluationTable, item_id: str) -> LineItem:
    """Detach ``item_id`` and its whole subtree from the table."""

    path = find_path(table, item_id)
    item = path[-1]
    siblings = _siblings(table, path)
    del siblings[next(index for index, sibling in enumerate(siblings) if sibling is item)]
    return item
