# revshare/schemas/payment.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from revshare.core.enums import PaymentStatus, PaymentType, SplitCategory


class PaymentCreate(BaseModel):
    # exactly one of phase_id / program_id / order_id
    phase_id: Optional[uuid.UUID] = None
    program_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None

    gross_amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: SplitCategory
    status: PaymentStatus = PaymentStatus.PENDING
    auto_split: bool = True

    client_id: Optional[uuid.UUID] = None
    department_id: Optional[uuid.UUID] = None
    payment_type: Optional[PaymentType] = None
    department_discount_percent: Decimal = Field(default=Decimal("0"), ge=0)
    is_first_milestone: bool = False

    due_date: Optional[date] = None
    payment_method: Optional[str] = Field(default=None, max_length=40)
    reference_number: Optional[str] = Field(default=None, max_length=120)
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: uuid.UUID

    phase_id: Optional[uuid.UUID] = None
    program_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    department_id: Optional[uuid.UUID] = None
    mou_id: Optional[uuid.UUID] = None

    gross_amount: Decimal
    category: SplitCategory
    payment_type: Optional[PaymentType] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    status: PaymentStatus

    department_discount_percent: Decimal
    is_first_milestone: bool
    held_for_review: bool
    hold_reason: Optional[str] = None
    splits_computed: bool
    notes: Optional[str] = None

    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentsPageOut(BaseModel):
    items: List[PaymentOut]
    limit: int
    offset: int
    total: int


class PaymentStatsOut(BaseModel):
    total_received: Decimal
    total_pending: Decimal
    by_status: Dict[str, Decimal]
    count_by_status: Dict[str, int]

    model_config = {"from_attributes": True}


class ConfirmPaymentRequest(BaseModel):
    auto_split: bool = True
    paid_at: Optional[datetime] = None
    note: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    auto_split: bool = True


class FlagPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentDeleteOut(BaseModel):
    payment_id: uuid.UUID
    ledger_entries_removed: int
