# revshare/models/mou.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from revshare.core.enums import MouStatus, SplitCategory
from revshare.db.base import Base
from revshare.db.types import StrEnumType, UTCDateTime, UUIDType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Mou(Base):
    """
    Memorandum of understanding: a negotiated deal value paid in three
    installments (signing / deployment / acceptance). MoU-governed deals
    bypass partner list-price discounts.
    """

    __tablename__ = "mous"
    __table_args__ = (
        CheckConstraint(
            "signing_percent + deployment_percent + acceptance_percent = 100",
            name="ck_mous_terms_total_100",
        ),
        CheckConstraint(
            "(CASE WHEN phase_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN program_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN order_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_mous_exactly_one_unit",
        ),
        CheckConstraint("deal_value > 0", name="ck_mous_deal_value_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    mou_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True, index=True)

    client_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)

    phase_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)
    program_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)

    category: Mapped[SplitCategory] = mapped_column(StrEnumType(SplitCategory), nullable=False)

    deal_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amc_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    signing_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=40)
    deployment_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=40)
    acceptance_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=20)

    status: Mapped[MouStatus] = mapped_column(StrEnumType(MouStatus), nullable=False, default=MouStatus.DRAFT)

    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # read by the external reminder job
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payments_scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
