# revshare/api/v1/partners.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core import partner_pricing
from revshare.db.session import get_db
from revshare.schemas.pricing import ClientPartnerOut, PriceQuoteOut, QuoteRequest

router = APIRouter(prefix="/partners", tags=["partners"])


@router.post("/quote", response_model=PriceQuoteOut)
async def quote_price(payload: QuoteRequest, db: AsyncSession = Depends(get_db)):
    """
    Partner price for a list price. With `client_id` the client's stored
    status and negotiated discount are used; otherwise the request's.
    """
    status, custom = payload.partner_status, payload.custom_discount
    if payload.client_id is not None:
        client = await partner_pricing.get_client(db, payload.client_id)
        status, custom = client.partner_status, client.custom_discount

    quote = partner_pricing.quote_partner_price(payload.list_price, status, custom)
    return PriceQuoteOut.model_validate(quote)


@router.post("/clients/{client_id}/referrals", response_model=ClientPartnerOut)
async def register_client_referral(client_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await partner_pricing.register_referral(db, client_id)
