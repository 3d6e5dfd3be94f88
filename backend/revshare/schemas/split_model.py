# revshare/schemas/split_model.py
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from revshare.core.enums import RecipientCategory, SplitCategory


class SplitModelOut(BaseModel):
    category: SplitCategory
    name: str
    percentages: Dict[str, int]


class SplitModelUpdate(BaseModel):
    percentages: Dict[str, int] = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, max_length=120)


class SplitCalculateRequest(BaseModel):
    gross_amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: SplitCategory
    department_discount_percent: Decimal = Field(default=Decimal("0"), ge=0)
    is_first_milestone: bool = False
    has_cross_department_referral: bool = False


class AllocationOut(BaseModel):
    recipient_category: RecipientCategory
    recipient_name: str
    percentage: Decimal
    amount: Decimal

    model_config = {"from_attributes": True}


class SplitResultOut(BaseModel):
    allocations: List[AllocationOut]
    total_amount: Decimal
    discount_amount: Decimal
    referral_bonus_amount: Decimal

    model_config = {"from_attributes": True}
