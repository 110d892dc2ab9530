"""SQLAlchemy models for persisted tender evaluations.

The line item tree is stored flat: each row points at its parent category
through ``parent_category_id``. Subtotal columns are denormalised copies
refreshed on every save.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.common.models import MONEY, TimestampMixin
from backend.app.core.database import Base


class TenderEvaluationRecord(TimestampMixin, Base):
    __tablename__ = "tender_evaluations"
    __table_args__ = (
        Index("ix_tender_evaluations_lookup", "project_id", "discipline_id", "consultant_card_id", "contractor_card_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    discipline_id: Mapped[str] = mapped_column(String(64), nullable=False)
    consultant_card_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    contractor_card_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    grand_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<TenderEvaluationRecord(id={self.id}, project={self.project_id}, discipline={self.discipline_id})>"


class EvaluationTableRecord(TimestampMixin, Base):
    __tablename__ = "tender_evaluation_tables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    evaluation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tender_evaluations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sub_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class EvaluationLineItemRecord(TimestampMixin, Base):
    __tablename__ = "evaluation_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tender_evaluation_tables.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_category_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("evaluation_line_items.id", ondelete="CASCADE"), nullable=True, index=True
    )
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    is_category: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category_sub_total: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class EvaluationFirmPriceRecord(TimestampMixin, Base):
    __tablename__ = "evaluation_firm_prices"
    __table_args__ = (UniqueConstraint("line_item_id", "firm_id", name="uq_evaluation_firm_prices_item_firm"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    line_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("evaluation_line_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    firm_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    # Position of the entry in the item's sparse price list.
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
