# revshare/schemas/earnings.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from revshare.core.enums import LedgerStatus, RecipientCategory


class LedgerEntryOut(BaseModel):
    id: uuid.UUID
    payment_id: uuid.UUID
    recipient_category: RecipientCategory
    recipient_name: str
    department_id: Optional[uuid.UUID] = None
    amount: Decimal
    percentage: Decimal
    status: LedgerStatus
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerPageOut(BaseModel):
    items: List[LedgerEntryOut]
    limit: int
    offset: int
    total: int


class RecipientSummaryOut(BaseModel):
    recipient_category: RecipientCategory
    recipient_name: str
    total_calculated: Decimal
    total_approved: Decimal
    total_paid: Decimal
    entry_count: int

    model_config = {"from_attributes": True}


class StatusTotalsOut(BaseModel):
    calculated: Decimal
    approved: Decimal
    paid: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class DepartmentEarningsOut(BaseModel):
    department_id: uuid.UUID
    totals: StatusTotalsOut
    entries: List[LedgerEntryOut]

    model_config = {"from_attributes": True}


class MonthlyReportOut(BaseModel):
    month: str
    year: int
    by_recipient_category: Dict[str, Decimal]
    total: Decimal
    entry_count: int

    model_config = {"from_attributes": True}


class LedgerIdsRequest(BaseModel):
    entry_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=500)


class MarkPaidRequest(LedgerIdsRequest):
    paid_at: Optional[datetime] = None


class LedgerEntryErrorOut(BaseModel):
    entry_id: uuid.UUID
    error: str
    message: str

    model_config = {"from_attributes": True}


class LedgerBatchOut(BaseModel):
    entries: List[LedgerEntryOut]
    errors: List[LedgerEntryErrorOut]

    model_config = {"from_attributes": True}
