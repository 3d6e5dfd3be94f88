# revshare/api/v1/split_models.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.enums import SplitCategory
from revshare.core.split_calculator import SplitAdjustments, SplitTable
from revshare.core.split_models import SqlSplitModelRegistry, calculate_split_for_category
from revshare.db.session import get_db
from revshare.schemas.split_model import (
    SplitCalculateRequest,
    SplitModelOut,
    SplitModelUpdate,
    SplitResultOut,
)

router = APIRouter(prefix="/split-models", tags=["split-models"])


def _out(table: SplitTable) -> SplitModelOut:
    return SplitModelOut(category=table.category, name=table.name, percentages=table.as_json())


@router.get("", response_model=List[SplitModelOut])
async def list_split_models(db: AsyncSession = Depends(get_db)):
    tables = await SqlSplitModelRegistry(db).list_models()
    return [_out(t) for t in tables]


@router.get("/{category}", response_model=SplitModelOut)
async def get_split_model(category: str, db: AsyncSession = Depends(get_db)):
    return _out(await SqlSplitModelRegistry(db).get_model(category))


@router.put("/{category}", response_model=SplitModelOut)
async def set_split_model(category: str, payload: SplitModelUpdate, db: AsyncSession = Depends(get_db)):
    """
    Replace the percentage table of a category.
    An invalid table (sum != 100, negatives, unknown recipients) is rejected
    with 422 and the stored model is left untouched.
    """
    table = await SqlSplitModelRegistry(db).set_model(category, payload.percentages, payload.name)
    return _out(table)


@router.post("/calculate", response_model=SplitResultOut)
async def preview_split(payload: SplitCalculateRequest, db: AsyncSession = Depends(get_db)):
    """Preview a split without recording anything."""
    adjustments = SplitAdjustments(
        department_discount_percent=payload.department_discount_percent,
        is_first_milestone=payload.is_first_milestone,
        has_cross_department_referral=payload.has_cross_department_referral,
    )
    result = await calculate_split_for_category(
        SqlSplitModelRegistry(db), payload.gross_amount, SplitCategory(payload.category), adjustments
    )
    return SplitResultOut.model_validate(result)
