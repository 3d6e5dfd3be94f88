# revshare/models/split_model.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from revshare.core.enums import SplitCategory
from revshare.db.base import Base
from revshare.db.types import JSONType, StrEnumType, UTCDateTime, UUIDType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SplitModel(Base):
    """
    Persisted split model: one row per revenue category.

    `percentages` is an ordered JSON object {recipient_category: int percent}.
    Rows are only written through SqlSplitModelRegistry.set_model, which
    validates the sum before persisting.
    """

    __tablename__ = "split_models"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    category: Mapped[SplitCategory] = mapped_column(
        StrEnumType(SplitCategory), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    percentages: Mapped[dict[str, int]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
