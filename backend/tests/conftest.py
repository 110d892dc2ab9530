from __future__ import annotations

import os

os.environ.setdefault("SA_DATABASE_URL", "sqlite://")

from dataclasses import dataclass, field  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import List  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.app.core.database import init_db  # noqa: E402
from backend.app.modules.tender_evaluation import engine  # noqa: E402
from backend.app.modules.tender_evaluation.domain import Firm, LineItem, TenderEvaluation  # noqa: E402
from backend.app.modules.tender_evaluation.schemas import FeeScheduleNode, SubmittedPrice  # noqa: E402


@dataclass
class StaticProjectDirectory:
    """In-process stand-in for the firm registry, fee structure and submission services."""

    firms: List[Firm] = field(default_factory=list)
    fee_items: List[FeeScheduleNode] = field(default_factory=list)
    submissions: List[SubmittedPrice] = field(default_factory=list)

    def list_shortlisted_firms(self, project_id: str, discipline_id: str) -> List[Firm]:
        return list(self.firms)

    def get_fee_structure(self, project_id: str, discipline_id: str) -> List[FeeScheduleNode]:
        return list(self.fee_items)

    def get_submitted_prices(self, project_id: str, discipline_id: str) -> List[SubmittedPrice]:
        return list(self.submissions)


@pytest.fixture()
def db_engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def db(db_engine) -> Session:
    session = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def directory() -> StaticProjectDirectory:
    return StaticProjectDirectory(
        firms=[Firm(id="firm-a", name="Firm A"), Firm(id="firm-b", name="Firm B")],
        fee_items=[
            FeeScheduleNode.model_validate(
                {
                    "id": "stage-1",
                    "description": "Design Services",
                    "isCategory": True,
                    "children": [
                        {"id": "fee-1", "description": "Concept Design", "isCategory": False},
                        {"id": "fee-2", "description": "Documentation", "isCategory": False},
                    ],
                }
            ),
            FeeScheduleNode.model_validate({"id": "fee-3", "description": "Site Visits", "type": "item"}),
        ],
        submissions=[
            SubmittedPrice(item_ref="Concept Design", firm_id="firm-a", amount=25000),
            SubmittedPrice(item_ref="Concept Design", firm_id="firm-b", amount=30000),
            SubmittedPrice(item_ref="documentation", firm_id="firm-a", amount=15000),
        ],
    )


@pytest.fixture()
def scenario():
    """Table "Original": Design Services > Concept Design (A 25000, B 30000), Documentation (A 15000)."""

    evaluation = TenderEvaluation(project_id="proj1", discipline_id="arch", consultant_card_id="cons1")
    original = engine.add_table(evaluation, "Original")
    design = engine.add_line_item(evaluation, original.id, LineItem(description="Design Services", is_category=True))
    concept = engine.add_line_item(evaluation, original.id, LineItem(description="Concept Design"), design.id)
    documentation = engine.add_line_item(evaluation, original.id, LineItem(description="Documentation"), design.id)
    engine.set_firm_price(evaluation, original.id, concept.id, "firm-a", 25000)
    engine.set_firm_price(evaluation, original.id, concept.id, "firm-b", 30000)
    engine.set_firm_price(evaluation, original.id, documentation.id, "firm-a", 15000)
    return SimpleNamespace(
        evaluation=evaluation,
        original=original,
        design=design,
        concept=concept,
        documentation=documentation,
    )
