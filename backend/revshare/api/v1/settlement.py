# revshare/api/v1/settlement.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.api.deps.cron import verify_cron_secret
from revshare.core import settlement
from revshare.db.session import get_db
from revshare.schemas.payment import PaymentOut
from revshare.schemas.settlement import (
    BatchStatusOut,
    SettlementBatchOut,
    SettlementRunOut,
    SettlementRunRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settlement", tags=["settlement"])


@router.post("/run", response_model=SettlementRunOut, dependencies=[Depends(verify_cron_secret)])
async def run_settlement(
    payload: Optional[SettlementRunRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Cron entry point for the settlement sweep.
    `dry_run` reports what would be processed without touching anything.
    """
    payload = payload or SettlementRunRequest()
    if payload.dry_run:
        status = await settlement.get_batch_status(db, payload.threshold_hours)
        return SettlementRunOut(dry_run=True, status=BatchStatusOut.model_validate(status))

    result = await settlement.run_settlement_batch(db, payload.threshold_hours)
    return SettlementRunOut(dry_run=False, batch=SettlementBatchOut.model_validate(result))


@router.get("/status", response_model=BatchStatusOut)
async def settlement_status(
    threshold_hours: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
):
    return BatchStatusOut.model_validate(await settlement.get_batch_status(db, threshold_hours))


@router.post("/payments/{payment_id}/process", response_model=PaymentOut)
async def process_payment_now(payment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Admin override: settle one pending payment regardless of age or hold."""
    payment = await settlement.process_payment_manually(db, payment_id)
    logger.info(f"Payment {payment_id} processed manually")
    return payment
