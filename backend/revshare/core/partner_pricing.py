# revshare/core/partner_pricing.py
"""
Partner and MoU pricing.

Two mutually exclusive ways a client's deal gets its gross amount:

- partner discount: a list price reduced by the client's partner rate
  (or a higher negotiated rate; rates never stack)
- MoU: a negotiated deal value paid in three installments

Whatever comes out of here is the gross amount a Payment is created with;
the split calculator never sees discounts applied on this side.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.config import settings
from revshare.core.enums import MouStatus, PartnerStatus, PaymentStatus, PaymentType, SplitCategory
from revshare.core.errors import (
    ClientNotFound,
    InvalidAdjustment,
    InvalidAmount,
    InvalidPaymentTerms,
    InvalidTransition,
    MouNotFound,
    PricingConflict,
)
from revshare.core.payment_states import UnitRef, ensure_mou_transition
from revshare.core.payment_workflow import build_payment
from revshare.core.split_calculator import CENT
from revshare.models.client import Client
from revshare.models.mou import Mou
from revshare.models.payment import Payment

logger = logging.getLogger(__name__)

ZERO_RATE = Decimal("0.00")

SOURCE_NONE = "none"
SOURCE_PARTNER = "partner"
SOURCE_CUSTOM = "custom"

# MoU statuses in which installments may be scheduled
SCHEDULABLE_MOU_STATUSES = frozenset({MouStatus.SIGNED, MouStatus.ACTIVE})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------
# Partner discount
# ---------------------------------------------------------
def partner_discount_rate(status: PartnerStatus) -> Decimal:
    """Standard rate implied by a partner status: flat rate for any partner, zero otherwise."""
    if PartnerStatus(status) == PartnerStatus.STANDARD:
        return ZERO_RATE
    return Decimal(settings.PARTNER_DISCOUNT_RATE)


def _validate_rate(rate: Optional[Decimal]) -> Optional[Decimal]:
    if rate is None:
        return None
    rate = Decimal(rate)
    if rate < 0 or rate > 1:
        raise InvalidAdjustment("Custom discount must be within 0..1", {"custom_discount": str(rate)})
    return rate


def effective_discount_rate(status: PartnerStatus, custom_discount: Optional[Decimal] = None) -> Decimal:
    """Higher of the partner rate and the negotiated rate. Never the sum."""
    partner = partner_discount_rate(status)
    custom = _validate_rate(custom_discount)
    if custom is not None and custom > partner:
        return custom
    return partner


@dataclass(frozen=True)
class PriceQuote:
    list_price: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    final_price: Decimal
    source: str  # none | partner | custom


def quote_partner_price(
    list_price: Decimal,
    status: PartnerStatus,
    custom_discount: Optional[Decimal] = None,
) -> PriceQuote:
    price = Decimal(list_price)
    if price <= 0:
        raise InvalidAmount("List price must be positive", {"list_price": str(price)})

    partner = partner_discount_rate(status)
    custom = _validate_rate(custom_discount)

    if custom is not None and custom > partner:
        rate, source = custom, SOURCE_CUSTOM
    elif partner > 0:
        rate, source = partner, SOURCE_PARTNER
    else:
        rate, source = ZERO_RATE, SOURCE_NONE

    discount = (price * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return PriceQuote(
        list_price=price.quantize(CENT, rounding=ROUND_HALF_UP),
        discount_rate=rate,
        discount_amount=discount,
        final_price=(price - discount).quantize(CENT, rounding=ROUND_HALF_UP),
        source=source,
    )


async def get_client(db: AsyncSession, client_id: uuid.UUID) -> Client:
    client = await db.get(Client, client_id)
    if client is None:
        raise ClientNotFound(f"Client {client_id} not found", {"client_id": str(client_id)})
    return client


async def register_referral(db: AsyncSession, client_id: uuid.UUID) -> Client:
    """
    Count one more client referred by this client. Standard clients reaching
    the promotion threshold become referral partners; the promotion is never
    undone here.
    """
    client = await get_client(db, client_id)
    client.referral_count = (client.referral_count or 0) + 1

    promoted = (
        client.partner_status == PartnerStatus.STANDARD
        and client.referral_count >= settings.REFERRAL_PROMOTION_THRESHOLD
    )
    if promoted:
        client.partner_status = PartnerStatus.REFERRAL
        client.partner_discount = partner_discount_rate(PartnerStatus.REFERRAL)
        client.partner_since = _utcnow()

    await db.commit()
    await db.refresh(client)
    if promoted:
        logger.info(f"Client {client.id} promoted to referral partner after {client.referral_count} referrals")
    return client


async def set_partner_status(db: AsyncSession, client_id: uuid.UUID, status: PartnerStatus) -> Client:
    client = await get_client(db, client_id)
    status = PartnerStatus(status)

    if client.partner_status == PartnerStatus.STANDARD and status != PartnerStatus.STANDARD:
        client.partner_since = _utcnow()
    elif status == PartnerStatus.STANDARD:
        client.partner_since = None

    client.partner_status = status
    client.partner_discount = partner_discount_rate(status)
    await db.commit()
    await db.refresh(client)
    logger.info(f"Client {client.id} partner status set to {status.value}")
    return client


# ---------------------------------------------------------
# MoU payment terms
# ---------------------------------------------------------
@dataclass(frozen=True)
class PaymentTerms:
    signing: int = 40
    deployment: int = 40
    acceptance: int = 20

    def __post_init__(self):
        values = {"signing": self.signing, "deployment": self.deployment, "acceptance": self.acceptance}
        for key, value in values.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidPaymentTerms(f"{key} must be a non-negative whole percentage", values)
        if sum(values.values()) != 100:
            raise InvalidPaymentTerms("Payment terms must sum to 100", {**values, "total": sum(values.values())})

    @classmethod
    def of(cls, mou: Mou) -> "PaymentTerms":
        return cls(mou.signing_percent, mou.deployment_percent, mou.acceptance_percent)


@dataclass(frozen=True)
class ScheduledInstallment:
    payment_type: PaymentType
    percent: int
    amount: Decimal


def mou_payment_schedule(deal_value: Decimal, terms: Optional[PaymentTerms] = None) -> list[ScheduledInstallment]:
    """
    Split a deal value into signing / deployment / acceptance installments.
    Amounts are rounded down to the cent and the remainder goes to the
    largest share (first one on ties), so they add up to the deal value.
    """
    terms = terms or PaymentTerms()
    value = Decimal(deal_value)
    if value <= 0 or value != value.quantize(CENT):
        raise InvalidAmount("Deal value must be positive and in whole cents", {"deal_value": str(value)})

    shares = [
        (PaymentType.MOU_SIGNING, terms.signing),
        (PaymentType.DEPLOYMENT, terms.deployment),
        (PaymentType.ACCEPTANCE, terms.acceptance),
    ]
    amounts = [(value * pct / 100).quantize(CENT, rounding=ROUND_DOWN) for _, pct in shares]

    remainder = value - sum(amounts, Decimal("0.00"))
    if remainder:
        largest = max(range(len(shares)), key=lambda i: (shares[i][1], -i))
        amounts[largest] += remainder

    return [
        ScheduledInstallment(payment_type=ptype, percent=pct, amount=amount)
        for (ptype, pct), amount in zip(shares, amounts)
    ]


# ---------------------------------------------------------
# MoU lifecycle
# ---------------------------------------------------------
async def generate_mou_number(db: AsyncSession, year: Optional[int] = None) -> str:
    """Next `<PREFIX>-<YYYY>-<NNN>` number for the year."""
    year = year or _utcnow().year
    prefix = f"{settings.MOU_NUMBER_PREFIX}-{year}-"

    last = (
        await db.execute(
            select(Mou.mou_number)
            .where(Mou.mou_number.like(f"{prefix}%"))
            .order_by(Mou.mou_number.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    seq = 1
    if last:
        try:
            seq = int(last.rsplit("-", 1)[1]) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:03d}"


async def get_mou(db: AsyncSession, mou_id: uuid.UUID) -> Mou:
    mou = await db.get(Mou, mou_id)
    if mou is None:
        raise MouNotFound(f"MoU {mou_id} not found", {"mou_id": str(mou_id)})
    return mou


async def create_mou(
    db: AsyncSession,
    unit: UnitRef,
    category: SplitCategory,
    deal_value: Decimal,
    *,
    client_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    amc_value: Optional[Decimal] = None,
    terms: Optional[PaymentTerms] = None,
    expiry_date: Optional[date] = None,
) -> Mou:
    terms = terms or PaymentTerms()
    # validates the deal value the same way scheduling will
    mou_payment_schedule(deal_value, terms)
    if amc_value is not None and Decimal(amc_value) < 0:
        raise InvalidAmount("AMC value cannot be negative", {"amc_value": str(amc_value)})

    mou = Mou(
        **unit.as_columns(),
        mou_number=await generate_mou_number(db),
        category=SplitCategory(category),
        client_id=client_id,
        department_id=department_id,
        deal_value=Decimal(deal_value),
        amc_value=Decimal(amc_value) if amc_value is not None else None,
        signing_percent=terms.signing,
        deployment_percent=terms.deployment,
        acceptance_percent=terms.acceptance,
        status=MouStatus.DRAFT,
        expiry_date=expiry_date,
    )
    db.add(mou)
    await db.commit()
    await db.refresh(mou)
    logger.info(f"MoU {mou.mou_number} created for {mou.deal_value}")
    return mou


async def transition_mou(
    db: AsyncSession,
    mou_id: uuid.UUID,
    status: MouStatus,
    *,
    effective_date: Optional[date] = None,
) -> Mou:
    mou = await get_mou(db, mou_id)
    current, status = MouStatus(mou.status), MouStatus(status)
    ensure_mou_transition(current, status)

    now = _utcnow()
    if status == MouStatus.SENT:
        mou.sent_at = now
    elif status == MouStatus.SIGNED:
        mou.signed_at = now
    elif status == MouStatus.ACTIVE:
        mou.start_date = effective_date or now.date()

    mou.status = status
    await db.commit()
    await db.refresh(mou)
    logger.info(f"MoU {mou.mou_number}: {current.value} -> {status.value}")
    return mou


async def schedule_mou_payments(db: AsyncSession, mou_id: uuid.UUID) -> list[Payment]:
    """Create the pending installment payments of a signed or active MoU, once."""
    mou = await get_mou(db, mou_id)
    if mou.status not in SCHEDULABLE_MOU_STATUSES:
        raise InvalidTransition(
            f"Cannot schedule payments for a {mou.status.value} MoU",
            {"mou_id": str(mou.id), "status": mou.status.value},
        )

    unit = UnitRef.of(mou)
    payments = [
        build_payment(
            unit,
            item.amount,
            mou.category,
            status=PaymentStatus.PENDING,
            client_id=mou.client_id,
            department_id=mou.department_id,
            payment_type=item.payment_type,
            is_first_milestone=item.payment_type == PaymentType.MOU_SIGNING,
            mou_id=mou.id,
            notes=f"{mou.mou_number} {item.payment_type.value} ({item.percent}%)",
        )
        for item in mou_payment_schedule(mou.deal_value, PaymentTerms.of(mou))
        if item.amount > 0
    ]

    # the claim and the installments commit together
    claim = (
        update(Mou)
        .where(Mou.id == mou.id, Mou.payments_scheduled_at.is_(None))
        .values(payments_scheduled_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(claim)
    if res.rowcount != 1:
        await db.rollback()
        logger.warning(f"MoU {mou_id}: payments already scheduled")
        raise InvalidTransition("MoU payments are already scheduled", {"mou_id": str(mou_id)})

    db.add_all(payments)
    await db.commit()

    await db.refresh(mou)
    for payment in payments:
        await db.refresh(payment)
    logger.info(f"MoU {mou.mou_number}: scheduled {len(payments)} payment(s)")
    return payments


# ---------------------------------------------------------
# Deal quote
# ---------------------------------------------------------
@dataclass(frozen=True)
class DealQuote:
    path: str  # partner | mou
    total: Decimal
    price: Optional[PriceQuote] = None
    installments: Optional[list[ScheduledInstallment]] = None


def quote_deal(
    client: Client,
    list_price: Optional[Decimal] = None,
    mou: Optional[Mou] = None,
) -> DealQuote:
    """
    Price a deal through exactly one path. An MoU-governed deal is paid on
    its schedule with no partner discount; otherwise the partner rate applies.
    """
    if (list_price is None) == (mou is None):
        raise PricingConflict(
            "Price a deal through either a list price or an MoU, not both or neither",
            {"client_id": str(client.id) if client is not None else None},
        )

    if mou is not None:
        installments = mou_payment_schedule(mou.deal_value, PaymentTerms.of(mou))
        return DealQuote(path="mou", total=Decimal(mou.deal_value), installments=installments)

    price = quote_partner_price(list_price, client.partner_status, client.custom_discount)
    return DealQuote(path="partner", total=price.final_price, price=price)
