# revshare/core/payment_workflow.py
"""
Payment lifecycle orchestration.

The move to `received` is the only transition with side effects: it resolves
the category's split model, runs the split calculator and stages ledger
entries. It is written as one conditional UPDATE on (id, status,
splits_computed) so that when the settlement sweep and a manual confirmation
race on the same payment, exactly one of them allocates.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, true, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.config import settings
from revshare.core.earnings_ledger import record_allocations
from revshare.core.enums import PaymentStatus, PaymentType, SplitCategory
from revshare.core.errors import (
    HasLedgerEntries,
    InvalidAdjustment,
    InvalidAmount,
    InvalidTransition,
    LedgerError,
    NoSplitModel,
    PaymentNotFound,
    SplitModelNotFound,
)
from revshare.core.payment_states import UnitRef, ensure_transition, is_terminal
from revshare.core.split_calculator import CENT, SplitAdjustments, calculate_split
from revshare.core.split_models import SplitModelRegistry, SqlSplitModelRegistry
from revshare.models.client import ClientReferral
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry
from revshare.models.payment import LEGACY_HOLD_MARKER, Payment

logger = logging.getLogger(__name__)

INITIAL_STATUSES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.INVOICED, PaymentStatus.OVERDUE, PaymentStatus.RECEIVED}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------
# Lookups
# ---------------------------------------------------------
async def get_payment(db: AsyncSession, payment_id: uuid.UUID) -> Payment:
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {payment_id} not found", {"payment_id": str(payment_id)})
    return payment


async def find_cross_department_referral(db: AsyncSession, payment: Payment) -> Optional[ClientReferral]:
    """
    The referral that earns a bonus on this payment, if any: a pre-existing
    cross-department referral of the payment's client that has not already
    been claimed by a different first phase.
    """
    if payment.client_id is None:
        return None

    stmt = (
        select(ClientReferral)
        .where(ClientReferral.client_id == payment.client_id)
        .where(ClientReferral.referring_department_id != ClientReferral.executing_department_id)
        .where(ClientReferral.referral_date <= _utcnow())
        .order_by(ClientReferral.referral_date.asc())
    )
    if payment.department_id is not None:
        stmt = stmt.where(ClientReferral.executing_department_id == payment.department_id)

    for referral in (await db.execute(stmt)).scalars().all():
        if referral.first_phase_id is None or referral.first_phase_id == payment.phase_id:
            return referral
    return None


# ---------------------------------------------------------
# Create
# ---------------------------------------------------------
def _validate_discount(percent: Decimal) -> Decimal:
    d = Decimal(percent or 0)
    cap = Decimal(settings.MAX_DEPARTMENT_DISCOUNT_PERCENT)
    if d < 0 or d > cap:
        raise InvalidAdjustment(
            f"Department discount must be between 0 and {cap} percent",
            {"department_discount_percent": str(d)},
        )
    return d


def build_payment(
    unit: UnitRef,
    gross_amount: Decimal,
    category: SplitCategory,
    *,
    status: PaymentStatus = PaymentStatus.PENDING,
    client_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    payment_type: Optional[PaymentType] = None,
    department_discount_percent: Decimal = Decimal("0"),
    is_first_milestone: bool = False,
    due_date: Optional[date] = None,
    payment_method: Optional[str] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    mou_id: Optional[uuid.UUID] = None,
) -> Payment:
    """Validated, unsaved payment. A `received` request starts as pending."""
    status = PaymentStatus(status)
    if status not in INITIAL_STATUSES:
        raise InvalidTransition(f"Payments cannot be created as {status.value}", {"status": status.value})

    gross = Decimal(gross_amount)
    if gross <= 0 or gross != gross.quantize(CENT):
        raise InvalidAmount("Gross amount must be positive and in whole cents", {"gross_amount": str(gross)})

    return Payment(
        **unit.as_columns(),
        gross_amount=gross,
        category=SplitCategory(category),
        payment_type=PaymentType(payment_type) if payment_type else None,
        status=PaymentStatus.PENDING if status == PaymentStatus.RECEIVED else status,
        client_id=client_id,
        department_id=department_id,
        mou_id=mou_id,
        department_discount_percent=_validate_discount(department_discount_percent),
        is_first_milestone=is_first_milestone,
        due_date=due_date,
        payment_method=payment_method,
        reference_number=reference_number,
        notes=notes,
        held_for_review=False,
        splits_computed=False,
    )


async def create_payment(
    db: AsyncSession,
    unit: UnitRef,
    gross_amount: Decimal,
    category: SplitCategory,
    auto_split: bool = False,
    *,
    status: PaymentStatus = PaymentStatus.PENDING,
    registry: Optional[SplitModelRegistry] = None,
    **fields,
) -> Payment:
    """
    Record a payment against one revenue-generating unit.

    Creating it directly as `received` runs the received transition in the
    same transaction; if that is rejected (e.g. NoSplitModel) nothing is
    persisted.
    """
    status = PaymentStatus(status)
    payment = build_payment(unit, gross_amount, category, status=status, **fields)
    db.add(payment)

    if status == PaymentStatus.RECEIVED:
        await db.flush()
        try:
            return await _receive(db, payment, auto_split=auto_split, registry=registry)
        except LedgerError:
            await db.rollback()
            raise

    await db.commit()
    await db.refresh(payment)
    logger.info(f"Payment {payment.id} created ({payment.category.value}, {payment.gross_amount}, {payment.status.value})")
    return payment


# ---------------------------------------------------------
# Received transition
# ---------------------------------------------------------
async def _receive(
    db: AsyncSession,
    payment: Payment,
    *,
    auto_split: bool,
    registry: Optional[SplitModelRegistry] = None,
    paid_at: Optional[datetime] = None,
    note: Optional[str] = None,
    adjustments: Optional[SplitAdjustments] = None,
) -> Payment:
    source_status = PaymentStatus(payment.status)
    already_received = source_status == PaymentStatus.RECEIVED
    compute = auto_split and not payment.splits_computed

    if already_received:
        if not compute:
            return payment
    else:
        ensure_transition(source_status, PaymentStatus.RECEIVED)

    registry = registry or SqlSplitModelRegistry(db)
    try:
        table = await registry.get_model(payment.category)
    except SplitModelNotFound as e:
        logger.warning(f"Payment {payment.id}: no split model for {payment.category.value!r}")
        raise NoSplitModel(
            f"No split model configured for {payment.category.value!r}; payment stays {source_status.value}",
            {"payment_id": str(payment.id), "category": payment.category.value},
        ) from e

    result = None
    referral = None
    if compute:
        if adjustments is None:
            if payment.is_first_milestone:
                referral = await find_cross_department_referral(db, payment)
            adjustments = SplitAdjustments(
                department_discount_percent=Decimal(payment.department_discount_percent or 0),
                is_first_milestone=payment.is_first_milestone,
                has_cross_department_referral=referral is not None,
            )
        try:
            result = calculate_split(payment.gross_amount, table, adjustments)
        except LedgerError as e:
            logger.error(f"Payment {payment.id}: split rejected ({e.code}): {e.message}")
            raise

    now = _utcnow()
    values: dict = {"status": PaymentStatus.RECEIVED, "updated_at": now}
    if not already_received:
        values["paid_at"] = paid_at or now
    if note:
        values["notes"] = f"{payment.notes or ''}\n{note}".strip()
    if result is not None:
        values["splits_computed"] = True

    # single writer: only the caller that still sees the expected row state wins
    stmt = (
        update(Payment)
        .where(Payment.id == payment.id)
        .where(Payment.status == source_status)
        .where(Payment.splits_computed.is_(False) if result is not None else true())
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    if res.rowcount != 1:
        payment_id = payment.id
        await db.rollback()
        if not sa_inspect(payment).persistent:
            # created in this transaction: the rollback discarded it
            logger.warning(f"Payment {payment_id} changed before it was recorded; nothing persisted")
            raise InvalidTransition(
                "Payment changed before it could be recorded as received",
                {"payment_id": str(payment_id), "from": source_status.value},
            )
        logger.info(f"Payment {payment_id} was settled concurrently; skipping allocation")
        await db.refresh(payment)
        return payment

    if result is not None:
        record_allocations(
            db,
            payment,
            result,
            referring_department_id=referral.referring_department_id if referral else None,
        )
        if referral is not None and result.referral_bonus_amount > 0:
            referral.bonus_amount = result.referral_bonus_amount
            if referral.first_phase_id is None:
                referral.first_phase_id = payment.phase_id

    await db.commit()
    await db.refresh(payment)
    logger.info(
        f"Payment {payment.id} received"
        + (f"; {len(result.allocations)} ledger entries calculated" if result is not None else "")
    )
    return payment


async def confirm_payment_received(
    db: AsyncSession,
    payment_id: uuid.UUID,
    auto_split: bool = True,
    *,
    registry: Optional[SplitModelRegistry] = None,
    paid_at: Optional[datetime] = None,
    note: Optional[str] = None,
    adjustments: Optional[SplitAdjustments] = None,
) -> Payment:
    """
    Manual confirmation. Re-confirming an already received payment only
    computes splits if they were skipped before; it never allocates twice.

    `adjustments` overrides the ones derived from the stored payment fields
    (discount, first milestone, referral lookup).
    """
    payment = await get_payment(db, payment_id)
    return await _receive(
        db, payment, auto_split=auto_split, registry=registry, paid_at=paid_at, note=note, adjustments=adjustments
    )


async def update_payment_status(
    db: AsyncSession,
    payment_id: uuid.UUID,
    status: PaymentStatus,
    *,
    auto_split: bool = True,
    registry: Optional[SplitModelRegistry] = None,
) -> Payment:
    status = PaymentStatus(status)
    if status == PaymentStatus.RECEIVED:
        return await confirm_payment_received(db, payment_id, auto_split, registry=registry)

    payment = await get_payment(db, payment_id)
    current = PaymentStatus(payment.status)
    ensure_transition(current, status)

    res = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id)
        .where(Payment.status == current)
        .values(status=status, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise InvalidTransition(
            "Payment status changed concurrently; reload and retry",
            {"from": current.value, "to": status.value},
        )
    await db.commit()
    await db.refresh(payment)
    logger.info(f"Payment {payment.id}: {current.value} -> {status.value}")
    return payment


# ---------------------------------------------------------
# Hold for review
# ---------------------------------------------------------
async def flag_payment(db: AsyncSession, payment_id: uuid.UUID, reason: str) -> Payment:
    """Exclude a payment from automatic settlement until it is unflagged."""
    payment = await get_payment(db, payment_id)
    if is_terminal(payment.status):
        raise InvalidTransition(
            f"Cannot hold a {payment.status.value} payment",
            {"status": payment.status.value},
        )

    payment.held_for_review = True
    payment.hold_reason = reason.strip() or None
    payment.append_note(f"Held for review: {reason.strip()}")
    await db.commit()
    await db.refresh(payment)
    logger.info(f"Payment {payment.id} held for review")
    return payment


async def unflag_payment(db: AsyncSession, payment_id: uuid.UUID) -> Payment:
    payment = await get_payment(db, payment_id)

    payment.held_for_review = False
    payment.hold_reason = None
    if payment.notes and LEGACY_HOLD_MARKER in payment.notes:
        kept = [line for line in payment.notes.split("\n") if LEGACY_HOLD_MARKER not in line]
        payment.notes = "\n".join(kept).strip() or None

    await db.commit()
    await db.refresh(payment)
    logger.info(f"Payment {payment.id} released from review hold")
    return payment


# ---------------------------------------------------------
# Delete
# ---------------------------------------------------------
async def delete_payment(db: AsyncSession, payment_id: uuid.UUID, cascade: bool = True) -> int:
    """
    Delete a payment. Ledger entries go first when `cascade` is true;
    otherwise their presence raises HasLedgerEntries. Returns entries removed.
    """
    payment = await get_payment(db, payment_id)

    count = (
        await db.execute(
            select(func.count()).select_from(EarningsLedgerEntry).where(EarningsLedgerEntry.payment_id == payment.id)
        )
    ).scalar_one()
    if count and not cascade:
        raise HasLedgerEntries(
            f"Payment {payment.id} has {count} ledger entries",
            {"payment_id": str(payment.id), "entry_count": int(count)},
        )

    if count:
        await db.execute(delete(EarningsLedgerEntry).where(EarningsLedgerEntry.payment_id == payment.id))
    await db.delete(payment)
    await db.commit()
    logger.info(f"Payment {payment_id} deleted ({count} ledger entries removed)")
    return int(count)


# ---------------------------------------------------------
# Reads
# ---------------------------------------------------------
@dataclass
class PaymentStats:
    total_received: Decimal = Decimal("0.00")
    total_pending: Decimal = Decimal("0.00")
    by_status: dict[str, Decimal] = field(default_factory=lambda: {s.value: Decimal("0.00") for s in PaymentStatus})
    count_by_status: dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in PaymentStatus})


async def list_payments(
    db: AsyncSession,
    *,
    status: Optional[PaymentStatus] = None,
    category: Optional[SplitCategory] = None,
    held_for_review: Optional[bool] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Payment], int]:
    conditions = []
    if status is not None:
        conditions.append(Payment.status == status)
    if category is not None:
        conditions.append(Payment.category == category)
    if held_for_review is not None:
        conditions.append(Payment.held_for_review.is_(held_for_review))
    if from_date is not None:
        conditions.append(Payment.created_at >= from_date)
    if to_date is not None:
        conditions.append(Payment.created_at <= to_date)

    total = (await db.execute(select(func.count()).select_from(Payment).where(*conditions))).scalar_one()
    rows = (
        await db.execute(
            select(Payment).where(*conditions).order_by(Payment.created_at.desc()).limit(limit).offset(offset)
        )
    ).scalars().all()
    return list(rows), int(total)


async def payment_stats(db: AsyncSession) -> PaymentStats:
    stmt = select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.gross_amount), 0)).group_by(
        Payment.status
    )
    stats = PaymentStats()
    for status, count, amount in (await db.execute(stmt)).all():
        status = PaymentStatus(status)
        stats.by_status[status.value] = Decimal(amount)
        stats.count_by_status[status.value] = int(count)
        if status == PaymentStatus.RECEIVED:
            stats.total_received += Decimal(amount)
        elif status in (PaymentStatus.PENDING, PaymentStatus.INVOICED):
            stats.total_pending += Decimal(amount)
    return stats
