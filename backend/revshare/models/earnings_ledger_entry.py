# revshare/models/earnings_ledger_entry.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from revshare.core.enums import LedgerStatus, RecipientCategory
from revshare.db.base import Base
from revshare.db.types import StrEnumType, UTCDateTime, UUIDType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EarningsLedgerEntry(Base):
    """
    Immutable allocation record: one row per (payment, recipient category).

    amount / percentage are written once at insert. Only status, approved_at
    and paid_at change, and only forward: calculated -> approved -> paid.
    For one payment, amounts sum exactly to the payment's gross amount.
    """

    __tablename__ = "earnings_ledger"
    __table_args__ = (
        Index("ix_earnings_ledger_payment", "payment_id"),
        Index("ix_earnings_ledger_recipient_status", "recipient_category", "status"),
        Index("ix_earnings_ledger_department_created", "department_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    payment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
    )

    recipient_category: Mapped[RecipientCategory] = mapped_column(
        StrEnumType(RecipientCategory), nullable=False
    )
    recipient_name: Mapped[str] = mapped_column(String(80), nullable=False)

    # resolved party for department / referral_bonus entries
    department_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)

    status: Mapped[LedgerStatus] = mapped_column(
        StrEnumType(LedgerStatus), nullable=False, default=LedgerStatus.CALCULATED
    )
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
