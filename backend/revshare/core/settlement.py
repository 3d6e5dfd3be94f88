# revshare/core/settlement.py
"""
Settlement sweep.

Pending payments older than the settlement window are confirmed as received
(with split calculation) unless held for review. Each run re-queries only
`pending` rows, and the received transition itself is guarded, so back-to-back
runs never process a payment twice. A failure on one payment is rolled back
and recorded; the sweep carries on with the rest.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.config import settings
from revshare.core.enums import PaymentStatus
from revshare.core.errors import InvalidTransition, LedgerError
from revshare.core.payment_workflow import confirm_payment_received, get_payment
from revshare.core.split_models import SplitModelRegistry
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry
from revshare.models.payment import AUTO_PROCESSED_MARKER, MANUAL_PROCESSED_MARKER, Payment

logger = logging.getLogger(__name__)

PROCESSED = "processed"
FLAGGED = "flagged"
FAILED = "failed"
SKIPPED = "skipped"

# error code of a failure raised by the database rather than the ledger
DATABASE_ERROR = "DATABASE_ERROR"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SettlementItem:
    payment_id: uuid.UUID
    amount: Decimal
    status: str  # processed | flagged | failed | skipped
    reason: Optional[str] = None
    error: Optional[str] = None
    splits_created: int = 0


@dataclass
class SettlementBatchResult:
    batch_id: str
    started_at: datetime
    threshold_hours: int
    completed_at: Optional[datetime] = None
    processed_count: int = 0
    flagged_count: int = 0
    failed_count: int = 0
    results: list[SettlementItem] = field(default_factory=list)

    @property
    def total_payments(self) -> int:
        return len(self.results)


@dataclass
class BatchStatus:
    total_pending: int
    eligible_for_auto_process: int
    flagged_count: int
    total_amount: Decimal
    eligible_amount: Decimal
    oldest_payment_age_hours: Optional[int]


def _cutoff(now: datetime, threshold_hours: int) -> datetime:
    if threshold_hours <= 0:
        raise ValueError("threshold_hours must be positive")
    return now - timedelta(hours=threshold_hours)


def _new_batch_id(now: datetime) -> str:
    return f"batch_{now.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:6]}"


async def _count_entries(db: AsyncSession, payment_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(EarningsLedgerEntry).where(EarningsLedgerEntry.payment_id == payment_id)
    return int((await db.execute(stmt)).scalar_one())


async def run_settlement_batch(
    db: AsyncSession,
    threshold_hours: Optional[int] = None,
    *,
    registry: Optional[SplitModelRegistry] = None,
    now: Optional[datetime] = None,
) -> SettlementBatchResult:
    threshold = threshold_hours or settings.SETTLEMENT_THRESHOLD_HOURS
    now = now or _utcnow()
    cutoff = _cutoff(now, threshold)

    result = SettlementBatchResult(batch_id=_new_batch_id(now), started_at=_utcnow(), threshold_hours=threshold)
    logger.info(f"[Settlement] Starting {result.batch_id}; cutoff {cutoff.isoformat()}")

    stmt = (
        select(Payment.id, Payment.gross_amount)
        .where(Payment.status == PaymentStatus.PENDING)
        .where(Payment.created_at <= cutoff)
        .order_by(Payment.created_at.asc())
    )
    candidates = (await db.execute(stmt)).all()
    logger.info(f"[Settlement] {len(candidates)} pending payment(s) past the {threshold}h window")

    for payment_id, amount in candidates:
        try:
            payment = await get_payment(db, payment_id)
            await db.refresh(payment)

            if payment.is_held:
                result.flagged_count += 1
                result.results.append(
                    SettlementItem(payment_id, amount, FLAGGED, reason=payment.hold_reason or "Held for review")
                )
                logger.info(f"[Settlement] Skipping held payment {payment_id}")
                continue

            note = f"{AUTO_PROCESSED_MARKER} Batch {result.batch_id} at {_utcnow().isoformat()}"
            settled = await confirm_payment_received(db, payment_id, True, registry=registry, paid_at=now, note=note)
        except LedgerError as e:
            await db.rollback()
            result.failed_count += 1
            result.results.append(SettlementItem(payment_id, amount, FAILED, reason=e.message, error=e.code))
            logger.error(f"[Settlement] Failed to settle payment {payment_id}: {e.code} {e.message}")
            continue
        except SQLAlchemyError as e:
            await db.rollback()
            result.failed_count += 1
            result.results.append(
                SettlementItem(payment_id, amount, FAILED, reason=str(e), error=DATABASE_ERROR)
            )
            logger.exception(f"[Settlement] Database error while settling payment {payment_id}")
            continue

        if settled.status != PaymentStatus.RECEIVED or not settled.splits_computed:
            # another writer moved it first
            result.results.append(
                SettlementItem(payment_id, amount, SKIPPED, reason=f"Concurrently moved to {settled.status.value}")
            )
            continue

        result.processed_count += 1
        result.results.append(
            SettlementItem(payment_id, amount, PROCESSED, splits_created=await _count_entries(db, payment_id))
        )

    result.completed_at = _utcnow()
    logger.info(
        f"[Settlement] Completed {result.batch_id}: {result.processed_count} processed, "
        f"{result.flagged_count} flagged, {result.failed_count} failed"
    )
    return result


async def get_batch_status(
    db: AsyncSession,
    threshold_hours: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> BatchStatus:
    """Read-only view of what the next sweep would do."""
    threshold = threshold_hours or settings.SETTLEMENT_THRESHOLD_HOURS
    now = now or _utcnow()
    cutoff = _cutoff(now, threshold)

    rows = (
        await db.execute(
            select(Payment).where(Payment.status == PaymentStatus.PENDING).order_by(Payment.created_at.asc())
        )
    ).scalars().all()

    eligible = flagged = 0
    total_amount = eligible_amount = Decimal("0.00")
    for p in rows:
        total_amount += p.gross_amount
        if p.is_held:
            flagged += 1
        elif p.created_at <= cutoff:
            eligible += 1
            eligible_amount += p.gross_amount

    oldest = None
    if rows:
        oldest = int((now - rows[0].created_at).total_seconds() // 3600)

    return BatchStatus(
        total_pending=len(rows),
        eligible_for_auto_process=eligible,
        flagged_count=flagged,
        total_amount=total_amount,
        eligible_amount=eligible_amount,
        oldest_payment_age_hours=oldest,
    )


async def process_payment_manually(
    db: AsyncSession,
    payment_id: uuid.UUID,
    *,
    registry: Optional[SplitModelRegistry] = None,
) -> Payment:
    """Admin override: settle one pending payment now, regardless of age or hold."""
    payment = await get_payment(db, payment_id)
    if payment.status != PaymentStatus.PENDING:
        raise InvalidTransition(
            "Payment is not in pending status",
            {"payment_id": str(payment_id), "status": payment.status.value},
        )
    note = f"{MANUAL_PROCESSED_MARKER} Admin override at {_utcnow().isoformat()}"
    return await confirm_payment_received(db, payment_id, True, registry=registry, note=note)
