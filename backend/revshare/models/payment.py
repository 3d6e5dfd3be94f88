# revshare/models/payment.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from revshare.core.enums import PaymentStatus, PaymentType, SplitCategory
from revshare.db.base import Base
from revshare.db.types import StrEnumType, UTCDateTime, UUIDType

# Legacy hold marker written into notes by the previous dashboard.
LEGACY_HOLD_MARKER = "[FLAGGED]"
AUTO_PROCESSED_MARKER = "[AUTO-PROCESSED]"
MANUAL_PROCESSED_MARKER = "[MANUAL-PROCESSED]"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    """
    One expected or received payment for exactly one revenue-generating unit
    (solution phase, training program or content order).

    Unit, client and department ids belong to collaborator services and are
    stored without foreign keys.
    """

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN phase_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN program_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN order_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_payments_exactly_one_unit",
        ),
        CheckConstraint("gross_amount > 0", name="ck_payments_gross_positive"),
        CheckConstraint(
            "department_discount_percent >= 0 AND department_discount_percent <= 100",
            name="ck_payments_discount_range",
        ),
        Index("ix_payments_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # exactly one of these is set
    phase_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)
    program_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)

    client_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)
    mou_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True, index=True)

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[SplitCategory] = mapped_column(StrEnumType(SplitCategory), nullable=False)
    payment_type: Mapped[PaymentType | None] = mapped_column(StrEnumType(PaymentType), nullable=True)

    payment_method: Mapped[str | None] = mapped_column(String(40), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(120), nullable=True)

    status: Mapped[PaymentStatus] = mapped_column(
        StrEnumType(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True
    )

    # adjustment inputs captured when the payment is scheduled
    department_discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    is_first_milestone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # explicit hold; replaces the "[FLAGGED]" notes marker
    held_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hold_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # guard: set in the same UPDATE that moves the row to received with splits
    splits_computed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def is_held(self) -> bool:
        return bool(self.held_for_review) or LEGACY_HOLD_MARKER in (self.notes or "")

    def append_note(self, line: str) -> str:
        self.notes = f"{self.notes or ''}\n{line}".strip()
        return self.notes
