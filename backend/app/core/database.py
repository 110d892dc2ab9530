"""Database configuration and session management."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings


engine = create_engine(settings.database_url, echo=settings.database_echo, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create database tables."""

    from backend.app.modules.tender_evaluation import models as evaluation_models  # noqa: F401  # Ensure models are imported

    Base.metadata.create_all(bind=bind or engine)

