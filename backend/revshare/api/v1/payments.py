# revshare/api/v1/payments.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core import payment_workflow
from revshare.core.enums import PaymentStatus, SplitCategory
from revshare.core.payment_states import UnitRef
from revshare.db.session import get_db
from revshare.schemas.payment import (
    ConfirmPaymentRequest,
    FlagPaymentRequest,
    PaymentCreate,
    PaymentDeleteOut,
    PaymentOut,
    PaymentsPageOut,
    PaymentStatsOut,
    PaymentStatusUpdate,
)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def create_payment(payload: PaymentCreate, db: AsyncSession = Depends(get_db)):
    unit = UnitRef.from_ids(payload.phase_id, payload.program_id, payload.order_id)
    return await payment_workflow.create_payment(
        db,
        unit,
        payload.gross_amount,
        payload.category,
        payload.auto_split,
        status=payload.status,
        client_id=payload.client_id,
        department_id=payload.department_id,
        payment_type=payload.payment_type,
        department_discount_percent=payload.department_discount_percent,
        is_first_milestone=payload.is_first_milestone,
        due_date=payload.due_date,
        payment_method=payload.payment_method,
        reference_number=payload.reference_number,
        notes=payload.notes,
    )


@router.get("", response_model=PaymentsPageOut)
async def list_payments(
    db: AsyncSession = Depends(get_db),
    status_: Optional[PaymentStatus] = Query(None, alias="status"),
    category: Optional[SplitCategory] = Query(None),
    held_for_review: Optional[bool] = Query(None),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    rows, total = await payment_workflow.list_payments(
        db,
        status=status_,
        category=category,
        held_for_review=held_for_review,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )
    return PaymentsPageOut(
        items=[PaymentOut.model_validate(p) for p in rows], limit=limit, offset=offset, total=total
    )


@router.get("/stats", response_model=PaymentStatsOut)
async def get_payment_stats(db: AsyncSession = Depends(get_db)):
    return PaymentStatsOut.model_validate(await payment_workflow.payment_stats(db))


@router.get("/{payment_id}", response_model=PaymentOut)
async def get_payment(payment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await payment_workflow.get_payment(db, payment_id)


@router.post("/{payment_id}/confirm", response_model=PaymentOut)
async def confirm_payment(
    payment_id: uuid.UUID,
    payload: Optional[ConfirmPaymentRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Mark a payment received. With `auto_split` the split is calculated and
    ledger entries are recorded in the same transaction; confirming an already
    received payment never allocates twice.
    """
    payload = payload or ConfirmPaymentRequest()
    return await payment_workflow.confirm_payment_received(
        db, payment_id, payload.auto_split, paid_at=payload.paid_at, note=payload.note
    )


@router.post("/{payment_id}/flag", response_model=PaymentOut)
async def flag_payment(payment_id: uuid.UUID, payload: FlagPaymentRequest, db: AsyncSession = Depends(get_db)):
    return await payment_workflow.flag_payment(db, payment_id, payload.reason)


@router.post("/{payment_id}/unflag", response_model=PaymentOut)
async def unflag_payment(payment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await payment_workflow.unflag_payment(db, payment_id)


@router.patch("/{payment_id}/status", response_model=PaymentOut)
async def update_payment_status(
    payment_id: uuid.UUID,
    payload: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await payment_workflow.update_payment_status(
        db, payment_id, payload.status, auto_split=payload.auto_split
    )


@router.delete("/{payment_id}", response_model=PaymentDeleteOut)
async def delete_payment(
    payment_id: uuid.UUID,
    cascade: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    removed = await payment_workflow.delete_payment(db, payment_id, cascade=cascade)
    return PaymentDeleteOut(payment_id=payment_id, ledger_entries_removed=removed)
