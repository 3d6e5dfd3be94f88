# revshare/models/client.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from revshare.core.enums import PartnerStatus
from revshare.db.base import Base
from revshare.db.types import StrEnumType, UTCDateTime, UUIDType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """
    Partner pricing profile of a client.

    Client CRUD lives in the dashboard; this table only carries what pricing
    and referral detection need.
    """

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    partner_status: Mapped[PartnerStatus] = mapped_column(
        StrEnumType(PartnerStatus), nullable=False, default=PartnerStatus.STANDARD
    )
    partner_since: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    referral_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # standard rate implied by partner_status (0.00 or 0.50)
    partner_discount: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("0.00"))
    # negotiated rate; wins only when higher than partner_discount
    custom_discount: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class ClientReferral(Base):
    """A client brought in by one department and executed by another."""

    __tablename__ = "client_referrals"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referring_department_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    executing_department_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    referral_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    first_phase_id: Mapped[uuid.UUID | None] = mapped_column(UUIDType, nullable=True)

    bonus_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    bonus_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bonus_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_cross_department(self) -> bool:
        return self.referring_department_id != self.executing_department_id
