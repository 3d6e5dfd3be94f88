# tests/test_settlement_batch.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from revshare.core import settlement
from revshare.core.enums import LedgerStatus, PaymentStatus, SplitCategory
from revshare.core.errors import InvalidTransition, PaymentNotFound
from revshare.core.split_calculator import SplitTable
from revshare.core.split_models import InMemorySplitModelRegistry, default_tables
from revshare.jobs.scheduler import run_settlement_job
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry
from revshare.models.payment import Payment

from conftest import create_payment_row


async def entries_for(db, payment_id):
    stmt = select(EarningsLedgerEntry).where(EarningsLedgerEntry.payment_id == payment_id)
    return list((await db.execute(stmt)).scalars().all())


@pytest.mark.asyncio
async def test_payment_past_window_is_settled(db, registry):
    payment = await create_payment_row(db, age_hours=50)

    result = await settlement.run_settlement_batch(db, 48, registry=registry)

    assert result.processed_count == 1
    assert result.flagged_count == 0
    assert result.failed_count == 0
    assert result.results[0].status == settlement.PROCESSED
    assert result.results[0].splits_created == 3

    await db.refresh(payment)
    assert payment.status == PaymentStatus.RECEIVED
    assert "[AUTO-PROCESSED] Batch " in payment.notes
    assert result.batch_id in payment.notes

    entries = await entries_for(db, payment.id)
    assert len(entries) == 3
    assert {e.status for e in entries} == {LedgerStatus.CALCULATED}
    assert sum(e.amount for e in entries) == Decimal("1000000.00")


@pytest.mark.asyncio
async def test_recent_payment_is_left_alone(db, registry):
    payment = await create_payment_row(db, age_hours=47)

    result = await settlement.run_settlement_batch(db, 48, registry=registry)

    assert result.total_payments == 0
    await db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_second_run_processes_nothing(db, registry):
    await create_payment_row(db, age_hours=72)
    await create_payment_row(db, age_hours=60, category=SplitCategory.TRAINING_COMMUNITY)

    first = await settlement.run_settlement_batch(db, 48, registry=registry)
    second = await settlement.run_settlement_batch(db, 48, registry=registry)

    assert first.processed_count == 2
    assert second.processed_count == 0
    assert second.total_payments == 0

    count = len((await db.execute(select(EarningsLedgerEntry))).scalars().all())
    assert count == 6


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"held_for_review": True, "hold_reason": "Cheque bounced once"},
        {"notes": "[FLAGGED] waiting on client PO"},
    ],
)
async def test_held_payment_is_never_auto_settled(db, registry, fields):
    payment = await create_payment_row(db, age_hours=24 * 30, **fields)

    result = await settlement.run_settlement_batch(db, 48, registry=registry)

    assert result.processed_count == 0
    assert result.flagged_count == 1
    assert result.results[0].status == settlement.FLAGGED
    await db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING
    assert await entries_for(db, payment.id) == []


@pytest.mark.asyncio
async def test_failures_are_collected_and_sweep_continues(db):
    # content has no model configured: that payment fails, the software one settles
    name = "Software only"
    registry = InMemorySplitModelRegistry(
        [SplitTable(SplitCategory.SOFTWARE, {"jicate": 40, "department": 40, "institution": 20}, name)]
    )
    broken = await create_payment_row(db, age_hours=80, category=SplitCategory.CONTENT)
    fine = await create_payment_row(db, age_hours=70)

    result = await settlement.run_settlement_batch(db, 48, registry=registry)

    assert result.failed_count == 1
    assert result.processed_count == 1
    failed = next(r for r in result.results if r.status == settlement.FAILED)
    assert failed.payment_id == broken.id
    assert failed.error == "NO_SPLIT_MODEL"

    await db.refresh(broken)
    await db.refresh(fine)
    assert broken.status == PaymentStatus.PENDING
    assert fine.status == PaymentStatus.RECEIVED


@pytest.mark.asyncio
async def test_only_pending_payments_are_swept(db, registry):
    await create_payment_row(db, age_hours=100, status=PaymentStatus.INVOICED)
    await create_payment_row(db, age_hours=100, status=PaymentStatus.OVERDUE)

    result = await settlement.run_settlement_batch(db, 48, registry=registry)
    assert result.total_payments == 0


@pytest.mark.asyncio
async def test_batch_status_is_read_only(db):
    await create_payment_row(db, gross_amount="100.00", age_hours=50)
    await create_payment_row(db, gross_amount="200.00", age_hours=10)
    await create_payment_row(db, gross_amount="300.00", age_hours=90, held_for_review=True)

    status = await settlement.get_batch_status(db, 48)

    assert status.total_pending == 3
    assert status.eligible_for_auto_process == 1
    assert status.eligible_amount == Decimal("100.00")
    assert status.flagged_count == 1
    assert status.total_amount == Decimal("600.00")
    assert status.oldest_payment_age_hours == 90

    statuses = (await db.execute(select(Payment.status))).scalars().all()
    assert set(statuses) == {PaymentStatus.PENDING}


@pytest.mark.asyncio
async def test_manual_processing_overrides_hold(db, registry):
    payment = await create_payment_row(db, held_for_review=True)

    processed = await settlement.process_payment_manually(db, payment.id, registry=registry)

    assert processed.status == PaymentStatus.RECEIVED
    assert "[MANUAL-PROCESSED] Admin override at " in processed.notes
    assert len(await entries_for(db, payment.id)) == 3

    with pytest.raises(InvalidTransition):
        await settlement.process_payment_manually(db, payment.id, registry=registry)


@pytest.mark.asyncio
async def test_scheduled_job_uses_its_own_session(sessionmaker, seeded_db):
    payment = await create_payment_row(seeded_db, age_hours=49)

    result = await run_settlement_job(sessionmaker)

    assert result is not None
    assert result.processed_count == 1
    await seeded_db.refresh(payment)
    assert payment.status == PaymentStatus.RECEIVED


@pytest.mark.asyncio
async def test_unknown_payment_cannot_be_processed_manually(db, registry):
    with pytest.raises(PaymentNotFound):
        await settlement.process_payment_manually(db, uuid.uuid4(), registry=registry)


class FlakyRegistry(InMemorySplitModelRegistry):
    """Registry whose first lookup fails like a locked database."""

    def __init__(self):
        super().__init__(default_tables())
        self.calls = 0

    async def get_model(self, category):
        self.calls += 1
        if self.calls == 1:
            raise OperationalError("SELECT split_models", {}, Exception("database is locked"))
        return await super().get_model(category)


@pytest.mark.asyncio
async def test_database_error_on_one_payment_does_not_stop_sweep(db):
    first = await create_payment_row(db, age_hours=90)
    second = await create_payment_row(db, age_hours=60)

    result = await settlement.run_settlement_batch(db, 48, registry=FlakyRegistry())

    assert result.failed_count == 1
    assert result.processed_count == 1
    failed = next(r for r in result.results if r.status == settlement.FAILED)
    assert failed.payment_id == first.id
    assert failed.error == settlement.DATABASE_ERROR

    await db.refresh(first)
    await db.refresh(second)
    assert first.status == PaymentStatus.PENDING
    assert second.status == PaymentStatus.RECEIVED
    assert await entries_for(db, first.id) == []
    assert len(await entries_for(db, second.id)) == 3
