# revshare/api/v1/mous.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core import partner_pricing
from revshare.core.payment_states import UnitRef
from revshare.db.session import get_db
from revshare.schemas.payment import PaymentOut
from revshare.schemas.pricing import InstallmentOut, MouCreate, MouOut, MouTransitionRequest

router = APIRouter(prefix="/mous", tags=["mous"])


@router.post("", response_model=MouOut, status_code=status.HTTP_201_CREATED)
async def create_mou(payload: MouCreate, db: AsyncSession = Depends(get_db)):
    unit = UnitRef.from_ids(payload.phase_id, payload.program_id, payload.order_id)
    terms = partner_pricing.PaymentTerms(
        signing=payload.payment_terms.signing,
        deployment=payload.payment_terms.deployment,
        acceptance=payload.payment_terms.acceptance,
    )
    return await partner_pricing.create_mou(
        db,
        unit,
        payload.category,
        payload.deal_value,
        client_id=payload.client_id,
        department_id=payload.department_id,
        amc_value=payload.amc_value,
        terms=terms,
        expiry_date=payload.expiry_date,
    )


@router.get("/{mou_id}", response_model=MouOut)
async def get_mou(mou_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await partner_pricing.get_mou(db, mou_id)


@router.get("/{mou_id}/schedule", response_model=List[InstallmentOut])
async def preview_mou_schedule(mou_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    mou = await partner_pricing.get_mou(db, mou_id)
    installments = partner_pricing.mou_payment_schedule(mou.deal_value, partner_pricing.PaymentTerms.of(mou))
    return [InstallmentOut.model_validate(i) for i in installments]


@router.post("/{mou_id}/transition", response_model=MouOut)
async def transition_mou(mou_id: uuid.UUID, payload: MouTransitionRequest, db: AsyncSession = Depends(get_db)):
    return await partner_pricing.transition_mou(db, mou_id, payload.status, effective_date=payload.effective_date)


@router.post("/{mou_id}/schedule", response_model=List[PaymentOut], status_code=status.HTTP_201_CREATED)
async def schedule_mou_payments(mou_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Create the pending signing / deployment / acceptance payments of a signed MoU."""
    return await partner_pricing.schedule_mou_payments(db, mou_id)
