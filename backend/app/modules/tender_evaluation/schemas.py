"""Pydantic schemas for tender evaluation APIs and collaborator payloads."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import domain


class FirmSchema(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _accept_entity(cls, data: Any) -> Any:
        # The firm registry reports the firm's legal entity name under "entity".
        if isinstance(data, dict) and "name" not in data and "entity" in data:
            data = {**data, "name": data["entity"]}
        return data


# ------------------------------------------------------------------ collaborator payloads
class FeeScheduleNode(BaseModel):
    """Node of the fee structure tree returned by the Fee Structure service."""

    id: Optional[str] = None
    description: str = ""
    is_category: bool = Field(default=False, alias="isCategory")
    children: List["FeeScheduleNode"] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "type" in data and "isCategory" not in data and "is_category" not in data:
            data["isCategory"] = data.pop("type") == "category"
        if not data.get("description") and data.get("name"):
            data["description"] = data["name"]
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return data


class SubmittedPrice(BaseModel):
    """One firm's price for one item, parsed from a tender submission schedule."""

    item_ref: str = Field(alias="itemRef")
    firm_id: str = Field(alias="firmId")
    amount: Decimal

    model_config = ConfigDict(populate_by_name=True)


# ------------------------------------------------------------------ evaluation payloads
class PriceEntrySchema(BaseModel):
    firm_id: str
    amount: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


class LineItemSchema(BaseModel):
    id: Optional[str] = None
    description: str
    is_category: bool = False
    sort_order: Optional[int] = None
    parent_id: Optional[str] = None
    prices: List[PriceEntrySchema] = Field(default_factory=list)
    children: List["LineItemSchema"] = Field(default_factory=list)
    category_subtotal: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)

    def to_domain(self) -> domain.LineItem:
        return domain.LineItem(
            id=self.id,
            description=self.description,
            is_category=self.is_category,
            sort_order=self.sort_order,
            parent_id=self.parent_id,
            prices=[domain.PriceEntry(firm_id=p.firm_id, amount=p.amount) for p in self.prices],
            children=[child.to_domain() for child in self.children],
            category_subtotal=self.category_subtotal,
        )


class EvaluationTableSchema(BaseModel):
    id: Optional[str] = None
    table_number: int
    table_name: str
    sort_order: int = 0
    root_items: List[LineItemSchema] = Field(default_factory=list)
    sub_total: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


class TenderEvaluationSchema(BaseModel):
    id: Optional[str] = None
    project_id: str
    discipline_id: str
    consultant_card_id: Optional[str] = None
    contractor_card_id: Optional[str] = None
    tables: List[EvaluationTableSchema] = Field(default_factory=list)
    grand_total: Decimal = Decimal("0")
    shortlisted_firms: List[FirmSchema] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    def to_domain(self) -> domain.TenderEvaluation:
        evaluation = domain.TenderEvaluation(
            id=self.id,
            project_id=self.project_id,
            discipline_id=self.discipline_id,
            consultant_card_id=self.consultant_card_id,
            contractor_card_id=self.contractor_card_id,
            grand_total=self.grand_total,
            shortlisted_firms=[domain.Firm(id=f.id, name=f.name) for f in self.shortlisted_firms],
        )
        for table in self.tables:
            evaluation.tables.append(
                domain.EvaluationTable(
                    id=table.id or domain.new_id(),
                    table_number=table.table_number,
                    table_name=table.table_name,
                    sort_order=table.sort_order,
                    root_items=[item.to_domain() for item in table.root_items],
                    sub_total=table.sub_total,
                )
            )
        return evaluation


class EvaluationResponse(BaseModel):
    evaluation: TenderEvaluationSchema
    firm_totals: Dict[str, Decimal] = Field(default_factory=dict)


# ------------------------------------------------------------------ requests
class TableCreate(BaseModel):
    name: Optional[str] = None


class TableRename(BaseModel):
    name: str


class LineItemCreate(BaseModel):
    description: str
    is_category: bool = False
    sort_order: Optional[int] = None
    parent_id: Optional[str] = None
    prices: List[PriceEntrySchema] = Field(default_factory=list)


class LineItemUpdate(BaseModel):
    description: Optional[str] = None
    is_category: Optional[bool] = None
    sort_order: Optional[int] = None


class PriceUpdate(BaseModel):
    amount: Decimal


class PriceImportResponse(BaseModel):
    evaluation: TenderEvaluationSchema
    updated_item_ids: List[str]
    unmatched_refs: List[str]
    category_refs: List[str]


FeeScheduleNode.model_rebuild()
LineItemSchema.model_rebuild()
