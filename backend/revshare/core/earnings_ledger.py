# revshare/core/earnings_ledger.py
from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.enums import RECIPIENT_LABELS, LedgerStatus, RecipientCategory
from revshare.core.errors import InvalidTransition, LedgerEntryNotFound
from revshare.core.split_calculator import SplitResult
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry
from revshare.models.payment import Payment

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Entries that resolve to the executing department of the payment.
# The conceded discount is recorded without a department: it is not department income.
DEPARTMENT_BOUND = frozenset({RecipientCategory.DEPARTMENT})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LedgerEntryError:
    entry_id: uuid.UUID
    error: str
    message: str


@dataclass
class LedgerBatchOutcome:
    """Per-id result of a bulk status change; failures never block the other ids."""

    entries: list[EarningsLedgerEntry] = field(default_factory=list)
    errors: list[LedgerEntryError] = field(default_factory=list)


# ---------------------------------------------------------
# Write side
# ---------------------------------------------------------
def record_allocations(
    db: AsyncSession,
    payment: Payment,
    result: SplitResult,
    referring_department_id: Optional[uuid.UUID] = None,
) -> list[EarningsLedgerEntry]:
    """
    Stage one `calculated` entry per allocation. The caller owns the commit so
    entries land in the same transaction as the payment's move to received.
    """
    entries: list[EarningsLedgerEntry] = []
    for allocation in result.allocations:
        if allocation.recipient_category in DEPARTMENT_BOUND:
            department_id = payment.department_id
        elif allocation.recipient_category == RecipientCategory.REFERRAL_BONUS:
            department_id = referring_department_id
        else:
            department_id = None

        entry = EarningsLedgerEntry(
            payment_id=payment.id,
            recipient_category=allocation.recipient_category,
            recipient_name=allocation.recipient_name,
            department_id=department_id,
            amount=allocation.amount,
            percentage=allocation.percentage,
            status=LedgerStatus.CALCULATED,
        )
        db.add(entry)
        entries.append(entry)
    return entries


async def _advance_entries(
    db: AsyncSession,
    entry_ids: Iterable[uuid.UUID],
    source: LedgerStatus,
    target: LedgerStatus,
    values: dict,
) -> LedgerBatchOutcome:
    outcome = LedgerBatchOutcome()
    moved: list[uuid.UUID] = []

    for entry_id in dict.fromkeys(entry_ids):
        # conditional on the source state: concurrent callers cannot move an entry twice
        stmt = (
            update(EarningsLedgerEntry)
            .where(EarningsLedgerEntry.id == entry_id)
            .where(EarningsLedgerEntry.status == source)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        res = await db.execute(stmt)
        if res.rowcount == 1:
            moved.append(entry_id)
            continue

        current = (
            await db.execute(select(EarningsLedgerEntry.status).where(EarningsLedgerEntry.id == entry_id))
        ).scalar_one_or_none()
        if current is None:
            err = LedgerEntryNotFound(f"Ledger entry {entry_id} not found")
        else:
            err = InvalidTransition(
                f"Ledger entry {entry_id} is {LedgerStatus(current).value}, expected {source.value}",
                {"from": LedgerStatus(current).value, "to": target.value},
            )
        outcome.errors.append(LedgerEntryError(entry_id=entry_id, error=err.code, message=err.message))

    await db.commit()

    if moved:
        stmt = (
            select(EarningsLedgerEntry)
            .where(EarningsLedgerEntry.id.in_(moved))
            .execution_options(populate_existing=True)
        )
        rows = {e.id: e for e in (await db.execute(stmt)).scalars().all()}
        outcome.entries = [rows[i] for i in moved if i in rows]

    if outcome.errors:
        logger.warning(
            f"Ledger {source.value}->{target.value}: {len(moved)} moved, {len(outcome.errors)} rejected"
        )
    else:
        logger.info(f"Ledger {source.value}->{target.value}: {len(moved)} moved")
    return outcome


async def approve_entries(db: AsyncSession, entry_ids: Iterable[uuid.UUID]) -> LedgerBatchOutcome:
    """calculated -> approved, independently per id."""
    return await _advance_entries(
        db, entry_ids, LedgerStatus.CALCULATED, LedgerStatus.APPROVED, {"approved_at": _utcnow()}
    )


async def mark_entries_paid(
    db: AsyncSession,
    entry_ids: Iterable[uuid.UUID],
    paid_at: Optional[datetime] = None,
) -> LedgerBatchOutcome:
    """approved -> paid, independently per id. `paid_at` defaults to now."""
    return await _advance_entries(
        db, entry_ids, LedgerStatus.APPROVED, LedgerStatus.PAID, {"paid_at": paid_at or _utcnow()}
    )


async def approve_payment_entries(db: AsyncSession, payment_id: uuid.UUID) -> int:
    """Approve every still-calculated entry of one payment. Returns the number approved."""
    ids = (
        await db.execute(
            select(EarningsLedgerEntry.id)
            .where(EarningsLedgerEntry.payment_id == payment_id)
            .where(EarningsLedgerEntry.status == LedgerStatus.CALCULATED)
        )
    ).scalars().all()
    outcome = await approve_entries(db, ids)
    return len(outcome.entries)


# ---------------------------------------------------------
# Read side
# ---------------------------------------------------------
@dataclass
class RecipientSummary:
    recipient_category: RecipientCategory
    recipient_name: str
    total_calculated: Decimal = ZERO
    total_approved: Decimal = ZERO
    total_paid: Decimal = ZERO
    entry_count: int = 0


@dataclass
class StatusTotals:
    calculated: Decimal = ZERO
    approved: Decimal = ZERO
    paid: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.calculated + self.approved + self.paid

    def add(self, status: LedgerStatus, amount: Decimal) -> None:
        attr = LedgerStatus(status).value
        setattr(self, attr, getattr(self, attr) + Decimal(amount))


@dataclass
class DepartmentEarnings:
    department_id: uuid.UUID
    totals: StatusTotals
    entries: list[EarningsLedgerEntry]


@dataclass
class MonthlyEarningsReport:
    month: str
    year: int
    by_recipient_category: dict[str, Decimal]
    total: Decimal
    entry_count: int


async def list_entries(
    db: AsyncSession,
    *,
    payment_id: Optional[uuid.UUID] = None,
    recipient_category: Optional[RecipientCategory] = None,
    department_id: Optional[uuid.UUID] = None,
    status: Optional[LedgerStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[EarningsLedgerEntry], int]:
    conditions = []
    if payment_id is not None:
        conditions.append(EarningsLedgerEntry.payment_id == payment_id)
    if recipient_category is not None:
        conditions.append(EarningsLedgerEntry.recipient_category == recipient_category)
    if department_id is not None:
        conditions.append(EarningsLedgerEntry.department_id == department_id)
    if status is not None:
        conditions.append(EarningsLedgerEntry.status == status)

    total_stmt = select(func.count()).select_from(EarningsLedgerEntry).where(*conditions)
    total = (await db.execute(total_stmt)).scalar_one()

    stmt = (
        select(EarningsLedgerEntry)
        .where(*conditions)
        .order_by(EarningsLedgerEntry.created_at.desc(), EarningsLedgerEntry.id)
        .limit(limit)
        .offset(offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return list(rows), int(total)


async def summarize_by_recipient(db: AsyncSession) -> list[RecipientSummary]:
    stmt = select(
        EarningsLedgerEntry.recipient_category,
        EarningsLedgerEntry.status,
        func.count(EarningsLedgerEntry.id),
        func.coalesce(func.sum(EarningsLedgerEntry.amount), 0),
    ).group_by(EarningsLedgerEntry.recipient_category, EarningsLedgerEntry.status)

    summaries: dict[RecipientCategory, RecipientSummary] = {}
    for recipient, status, count, amount in (await db.execute(stmt)).all():
        recipient = RecipientCategory(recipient)
        summary = summaries.setdefault(
            recipient,
            RecipientSummary(recipient_category=recipient, recipient_name=RECIPIENT_LABELS[recipient]),
        )
        summary.entry_count += int(count)
        attr = f"total_{LedgerStatus(status).value}"
        setattr(summary, attr, getattr(summary, attr) + Decimal(amount))

    return [summaries[r] for r in RecipientCategory if r in summaries]


async def recipient_totals(
    db: AsyncSession,
    recipient_category: RecipientCategory,
    department_id: Optional[uuid.UUID] = None,
) -> StatusTotals:
    stmt = (
        select(EarningsLedgerEntry.status, func.coalesce(func.sum(EarningsLedgerEntry.amount), 0))
        .where(EarningsLedgerEntry.recipient_category == recipient_category)
        .group_by(EarningsLedgerEntry.status)
    )
    if department_id is not None:
        stmt = stmt.where(EarningsLedgerEntry.department_id == department_id)

    totals = StatusTotals()
    for status, amount in (await db.execute(stmt)).all():
        totals.add(status, amount)
    return totals


async def department_earnings(
    db: AsyncSession,
    department_id: uuid.UUID,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> DepartmentEarnings:
    stmt = (
        select(EarningsLedgerEntry)
        .where(EarningsLedgerEntry.department_id == department_id)
        .where(EarningsLedgerEntry.recipient_category != RecipientCategory.DEPARTMENT_DISCOUNT)
    )
    if from_date is not None:
        stmt = stmt.where(EarningsLedgerEntry.created_at >= from_date)
    if to_date is not None:
        stmt = stmt.where(EarningsLedgerEntry.created_at <= to_date)
    stmt = stmt.order_by(EarningsLedgerEntry.created_at.desc())

    entries = list((await db.execute(stmt)).scalars().all())
    totals = StatusTotals()
    for e in entries:
        totals.add(e.status, e.amount)
    return DepartmentEarnings(department_id=department_id, totals=totals, entries=entries)


async def monthly_report(db: AsyncSession, month: int, year: int) -> MonthlyEarningsReport:
    if not 1 <= month <= 12:
        raise ValueError("month must be within 1..12")

    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 else datetime(year, month + 1, 1, tzinfo=timezone.utc)

    stmt = (
        select(
            EarningsLedgerEntry.recipient_category,
            func.count(EarningsLedgerEntry.id),
            func.coalesce(func.sum(EarningsLedgerEntry.amount), 0),
        )
        .where(EarningsLedgerEntry.created_at >= start)
        .where(EarningsLedgerEntry.created_at < end)
        .group_by(EarningsLedgerEntry.recipient_category)
    )

    by_recipient: dict[str, Decimal] = {}
    count = 0
    for recipient, n, amount in (await db.execute(stmt)).all():
        by_recipient[RecipientCategory(recipient).value] = Decimal(amount)
        count += int(n)

    return MonthlyEarningsReport(
        month=calendar.month_name[month],
        year=year,
        by_recipient_category=by_recipient,
        total=sum(by_recipient.values(), ZERO),
        entry_count=count,
    )
