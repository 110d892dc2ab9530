"""Reusable FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import SessionLocal
from backend.app.modules.tender_evaluation.collaborators import HttpCollaboratorClient
from backend.app.modules.tender_evaluation.service import TenderEvaluationService


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_collaborator_client() -> Optional[HttpCollaboratorClient]:
    return HttpCollaboratorClient.from_settings(settings)


def get_evaluation_service(
    db: Session = Depends(get_db),
    client: Optional[HttpCollaboratorClient] = Depends(get_collaborator_client),
) -> TenderEvaluationService:
    return TenderEvaluationService(
        db,
        firm_registry=client,
        fee_structure=client,
        submissions=client,
    )


def get_actor(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """User id forwarded by the gateway that resolved the session."""

    return x_user_id
