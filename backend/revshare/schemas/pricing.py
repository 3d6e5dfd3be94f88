# revshare/schemas/pricing.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from revshare.core.enums import MouStatus, PartnerStatus, PaymentType, SplitCategory


class QuoteRequest(BaseModel):
    """Either `client_id` or an explicit `partner_status` prices the quote."""

    list_price: Decimal = Field(..., gt=0)
    client_id: Optional[uuid.UUID] = None
    partner_status: PartnerStatus = PartnerStatus.STANDARD
    custom_discount: Optional[Decimal] = Field(default=None, ge=0, le=1)


class PriceQuoteOut(BaseModel):
    list_price: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    final_price: Decimal
    source: str

    model_config = {"from_attributes": True}


class ClientPartnerOut(BaseModel):
    id: uuid.UUID
    name: str
    partner_status: PartnerStatus
    partner_since: Optional[datetime] = None
    referral_count: int
    partner_discount: Decimal
    custom_discount: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class PaymentTermsIn(BaseModel):
    signing: int = Field(default=40, ge=0, le=100)
    deployment: int = Field(default=40, ge=0, le=100)
    acceptance: int = Field(default=20, ge=0, le=100)


class MouCreate(BaseModel):
    phase_id: Optional[uuid.UUID] = None
    program_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None

    category: SplitCategory = SplitCategory.SOFTWARE
    deal_value: Decimal = Field(..., gt=0, decimal_places=2)
    amc_value: Optional[Decimal] = Field(default=None, ge=0)

    client_id: Optional[uuid.UUID] = None
    department_id: Optional[uuid.UUID] = None
    payment_terms: PaymentTermsIn = Field(default_factory=PaymentTermsIn)
    expiry_date: Optional[date] = None


class MouOut(BaseModel):
    id: uuid.UUID
    mou_number: str
    client_id: Optional[uuid.UUID] = None
    department_id: Optional[uuid.UUID] = None
    phase_id: Optional[uuid.UUID] = None
    program_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    category: SplitCategory

    deal_value: Decimal
    amc_value: Optional[Decimal] = None
    signing_percent: int
    deployment_percent: int
    acceptance_percent: int

    status: MouStatus
    sent_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    start_date: Optional[date] = None
    expiry_date: Optional[date] = None
    payments_scheduled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MouTransitionRequest(BaseModel):
    status: MouStatus
    effective_date: Optional[date] = None


class InstallmentOut(BaseModel):
    payment_type: PaymentType
    percent: int
    amount: Decimal

    model_config = {"from_attributes": True}
