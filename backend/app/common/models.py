"""Common SQLAlchemy mixins and utilities."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column


MONEY = Numeric(15, 2)
"""Column type for amounts in the project's base currency."""


class TimestampMixin:
    """Reusable columns for created/updated timestamps."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
