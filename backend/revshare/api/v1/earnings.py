# revshare/api/v1/earnings.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core import earnings_ledger
from revshare.core.enums import LedgerStatus, RecipientCategory
from revshare.db.session import get_db
from revshare.schemas.earnings import (
    DepartmentEarningsOut,
    LedgerBatchOut,
    LedgerEntryOut,
    LedgerIdsRequest,
    LedgerPageOut,
    MarkPaidRequest,
    MonthlyReportOut,
    RecipientSummaryOut,
)

router = APIRouter(prefix="/earnings", tags=["earnings"])


@router.get("", response_model=LedgerPageOut)
async def list_earnings(
    db: AsyncSession = Depends(get_db),
    payment_id: Optional[uuid.UUID] = Query(None),
    recipient_category: Optional[RecipientCategory] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LedgerStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """
    Earnings ledger, newest first.
    Pagination:
      - limit (1..200)
      - offset (>=0)
    """
    rows, total = await earnings_ledger.list_entries(
        db,
        payment_id=payment_id,
        recipient_category=recipient_category,
        department_id=department_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return LedgerPageOut(
        items=[LedgerEntryOut.model_validate(e) for e in rows], limit=limit, offset=offset, total=total
    )


@router.get("/summary", response_model=List[RecipientSummaryOut])
async def earnings_summary(db: AsyncSession = Depends(get_db)):
    return [RecipientSummaryOut.model_validate(s) for s in await earnings_ledger.summarize_by_recipient(db)]


@router.get("/monthly", response_model=MonthlyReportOut)
async def monthly_report(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    return MonthlyReportOut.model_validate(await earnings_ledger.monthly_report(db, month, year))


@router.get("/departments/{department_id}", response_model=DepartmentEarningsOut)
async def department_earnings(
    department_id: uuid.UUID,
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if from_date and to_date and from_date > to_date:
        raise HTTPException(
            status_code=422,
            detail={"error": "INVALID_DATE_RANGE", "message": "from_date must not be after to_date"},
        )
    report = await earnings_ledger.department_earnings(db, department_id, from_date, to_date)
    return DepartmentEarningsOut.model_validate(report)


@router.post("/approve", response_model=LedgerBatchOut)
async def approve_earnings(payload: LedgerIdsRequest, db: AsyncSession = Depends(get_db)):
    """calculated -> approved. Each id succeeds or fails on its own."""
    return LedgerBatchOut.model_validate(await earnings_ledger.approve_entries(db, payload.entry_ids))


@router.post("/mark-paid", response_model=LedgerBatchOut)
async def mark_earnings_paid(payload: MarkPaidRequest, db: AsyncSession = Depends(get_db)):
    """approved -> paid. Each id succeeds or fails on its own."""
    outcome = await earnings_ledger.mark_entries_paid(db, payload.entry_ids, payload.paid_at)
    return LedgerBatchOut.model_validate(outcome)
