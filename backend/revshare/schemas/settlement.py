# revshare/schemas/settlement.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class SettlementRunRequest(BaseModel):
    threshold_hours: Optional[int] = Field(default=None, gt=0, le=24 * 30)
    dry_run: bool = False


class SettlementItemOut(BaseModel):
    payment_id: uuid.UUID
    amount: Decimal
    status: str
    reason: Optional[str] = None
    error: Optional[str] = None
    splits_created: int = 0

    model_config = {"from_attributes": True}


class SettlementBatchOut(BaseModel):
    batch_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    threshold_hours: int
    total_payments: int
    processed_count: int
    flagged_count: int
    failed_count: int
    results: List[SettlementItemOut]

    model_config = {"from_attributes": True}


class BatchStatusOut(BaseModel):
    total_pending: int
    eligible_for_auto_process: int
    flagged_count: int
    total_amount: Decimal
    eligible_amount: Decimal
    oldest_payment_age_hours: Optional[int] = None

    model_config = {"from_attributes": True}


class SettlementRunOut(BaseModel):
    dry_run: bool
    status: Optional[BatchStatusOut] = None
    batch: Optional[SettlementBatchOut] = None
