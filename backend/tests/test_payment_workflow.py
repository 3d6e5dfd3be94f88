# tests/test_payment_workflow.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from revshare.core import payment_workflow as wf
from revshare.core.enums import LedgerStatus, PaymentStatus, RecipientCategory, SplitCategory
from revshare.core.errors import (
    HasLedgerEntries,
    InvalidAdjustment,
    InvalidAmount,
    InvalidTransition,
    InvalidUnitRef,
    NoSplitModel,
    OverAdjusted,
    PaymentNotFound,
)
from revshare.core.payment_states import UnitRef, can_transition, is_terminal
from revshare.core.split_calculator import SplitAdjustments, SplitTable
from revshare.core.split_models import InMemorySplitModelRegistry
from revshare.models.client import ClientReferral
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry
from revshare.models.payment import Payment

from conftest import create_client, create_payment_row, create_referral


async def ledger_entries(db, payment_id: uuid.UUID) -> list[EarningsLedgerEntry]:
    stmt = (
        select(EarningsLedgerEntry)
        .where(EarningsLedgerEntry.payment_id == payment_id)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


async def count_payments(db) -> int:
    return (await db.execute(select(func.count()).select_from(Payment))).scalar_one()


def phase() -> UnitRef:
    return UnitRef.from_ids(phase_id=uuid.uuid4())


# ---------------------------------------------------------
# Transition table
# ---------------------------------------------------------
@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (PaymentStatus.PENDING, PaymentStatus.INVOICED, True),
        (PaymentStatus.PENDING, PaymentStatus.RECEIVED, True),
        (PaymentStatus.INVOICED, PaymentStatus.OVERDUE, True),
        (PaymentStatus.OVERDUE, PaymentStatus.INVOICED, True),
        (PaymentStatus.INVOICED, PaymentStatus.PENDING, False),
        (PaymentStatus.RECEIVED, PaymentStatus.FAILED, False),
        (PaymentStatus.FAILED, PaymentStatus.RECEIVED, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_terminal_states():
    assert is_terminal(PaymentStatus.RECEIVED)
    assert is_terminal(PaymentStatus.FAILED)
    assert not is_terminal(PaymentStatus.OVERDUE)


def test_unit_ref_requires_exactly_one_id():
    with pytest.raises(InvalidUnitRef):
        UnitRef.from_ids()
    with pytest.raises(InvalidUnitRef):
        UnitRef.from_ids(phase_id=uuid.uuid4(), order_id=uuid.uuid4())


# ---------------------------------------------------------
# Create
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_create_pending_payment(db):
    unit = phase()
    payment = await wf.create_payment(db, unit, Decimal("5000.00"), SplitCategory.SOFTWARE)

    assert payment.status == PaymentStatus.PENDING
    assert payment.phase_id == unit.id
    assert payment.program_id is None and payment.order_id is None
    assert payment.splits_computed is False
    assert payment.held_for_review is False
    assert await ledger_entries(db, payment.id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-10", "10.005"])
async def test_create_rejects_bad_amount(db, amount):
    with pytest.raises(InvalidAmount):
        await wf.create_payment(db, phase(), Decimal(amount), SplitCategory.SOFTWARE)
    assert await count_payments(db) == 0


@pytest.mark.asyncio
async def test_create_rejects_discount_over_cap(db):
    with pytest.raises(InvalidAdjustment):
        await wf.create_payment(
            db, phase(), Decimal("100.00"), SplitCategory.SOFTWARE, department_discount_percent=Decimal("12")
        )


@pytest.mark.asyncio
async def test_create_as_received_allocates_in_same_call(db, registry):
    payment = await wf.create_payment(
        db, phase(), Decimal("1000000.00"), SplitCategory.SOFTWARE, True,
        status=PaymentStatus.RECEIVED, registry=registry,
    )

    assert payment.status == PaymentStatus.RECEIVED
    assert payment.splits_computed is True
    assert payment.paid_at is not None
    entries = await ledger_entries(db, payment.id)
    assert sum(e.amount for e in entries) == Decimal("1000000.00")


@pytest.mark.asyncio
async def test_create_as_received_without_model_persists_nothing(db):
    empty = InMemorySplitModelRegistry([])
    with pytest.raises(NoSplitModel):
        await wf.create_payment(
            db, phase(), Decimal("100.00"), SplitCategory.CONTENT, True,
            status=PaymentStatus.RECEIVED, registry=empty,
        )
    assert await count_payments(db) == 0


@pytest.mark.asyncio
async def test_unsaved_payment_changed_underneath_is_not_recorded(db, registry):
    payment = wf.build_payment(phase(), Decimal("100.00"), SplitCategory.SOFTWARE)
    db.add(payment)
    await db.flush()
    payment_id = payment.id
    # another writer moves the flushed row before it is recorded as received
    await db.execute(
        update(Payment)
        .where(Payment.id == payment_id)
        .values(status=PaymentStatus.OVERDUE)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(InvalidTransition):
        await wf._receive(db, payment, auto_split=True, registry=registry)

    assert await count_payments(db) == 0
    assert await ledger_entries(db, payment_id) == []


# ---------------------------------------------------------
# Confirm (received transition)
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_confirm_records_calculated_entries(db, registry):
    department_id = uuid.uuid4()
    payment = await create_payment_row(db, department_id=department_id)

    confirmed = await wf.confirm_payment_received(db, payment.id, registry=registry)

    assert confirmed.status == PaymentStatus.RECEIVED
    assert confirmed.splits_computed is True
    entries = await ledger_entries(db, payment.id)
    by_recipient = {e.recipient_category: e for e in entries}
    assert set(by_recipient) == {RecipientCategory.JICATE, RecipientCategory.DEPARTMENT, RecipientCategory.INSTITUTION}
    assert all(e.status == LedgerStatus.CALCULATED for e in entries)
    assert by_recipient[RecipientCategory.DEPARTMENT].department_id == department_id
    assert by_recipient[RecipientCategory.DEPARTMENT].recipient_name == "Department"
    assert sum(e.amount for e in entries) == payment.gross_amount


@pytest.mark.asyncio
async def test_confirm_twice_never_allocates_twice(db, registry):
    payment = await create_payment_row(db)

    await wf.confirm_payment_received(db, payment.id, registry=registry)
    again = await wf.confirm_payment_received(db, payment.id, registry=registry)

    assert again.status == PaymentStatus.RECEIVED
    assert len(await ledger_entries(db, payment.id)) == 3


@pytest.mark.asyncio
async def test_confirm_without_split_then_with_split(db, registry):
    payment = await create_payment_row(db)

    first = await wf.confirm_payment_received(db, payment.id, False, registry=registry)
    assert first.status == PaymentStatus.RECEIVED
    assert first.splits_computed is False
    paid_at = first.paid_at
    assert await ledger_entries(db, payment.id) == []

    second = await wf.confirm_payment_received(db, payment.id, True, registry=registry)
    assert second.splits_computed is True
    assert second.paid_at == paid_at
    assert len(await ledger_entries(db, payment.id)) == 3


@pytest.mark.asyncio
async def test_confirm_without_model_leaves_payment_pending(db):
    payment = await create_payment_row(db, category=SplitCategory.CONTENT)
    empty = InMemorySplitModelRegistry([])

    with pytest.raises(NoSplitModel):
        await wf.confirm_payment_received(db, payment.id, registry=empty)

    await db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING
    assert await ledger_entries(db, payment.id) == []


@pytest.mark.asyncio
async def test_confirm_over_adjusted_writes_nothing(db):
    table = SplitTable(SplitCategory.SOFTWARE, {"jicate": 45, "department": 15, "institution": 40})
    registry = InMemorySplitModelRegistry([table])
    payment = await create_payment_row(db)

    adjustments = SplitAdjustments(
        department_discount_percent=Decimal("10"),
        is_first_milestone=True,
        has_cross_department_referral=True,
    )
    with pytest.raises(OverAdjusted):
        await wf.confirm_payment_received(db, payment.id, registry=registry, adjustments=adjustments)

    await db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING
    assert payment.splits_computed is False
    assert await ledger_entries(db, payment.id) == []


@pytest.mark.asyncio
async def test_confirm_applies_stored_discount(db, registry):
    payment = await create_payment_row(db, department_discount_percent=Decimal("10"))

    await wf.confirm_payment_received(db, payment.id, registry=registry)

    amounts = {e.recipient_category: e.amount for e in await ledger_entries(db, payment.id)}
    assert amounts[RecipientCategory.DEPARTMENT] == Decimal("300000.00")
    assert amounts[RecipientCategory.DEPARTMENT_DISCOUNT] == Decimal("100000.00")


@pytest.mark.asyncio
async def test_confirm_failed_payment_is_rejected(db, registry):
    payment = await create_payment_row(db, status=PaymentStatus.FAILED)
    with pytest.raises(InvalidTransition):
        await wf.confirm_payment_received(db, payment.id, registry=registry)


@pytest.mark.asyncio
async def test_confirm_unknown_payment(db, registry):
    with pytest.raises(PaymentNotFound):
        await wf.confirm_payment_received(db, uuid.uuid4(), registry=registry)


@pytest.mark.asyncio
async def test_concurrent_confirmation_allocates_once(sessionmaker, registry):
    async with sessionmaker() as setup:
        payment = await create_payment_row(setup)

    async with sessionmaker() as first, sessionmaker() as second:
        # `first` holds a stale pending copy while `second` settles the payment
        stale = await wf.get_payment(first, payment.id)
        assert stale.status == PaymentStatus.PENDING

        await wf.confirm_payment_received(second, payment.id, registry=registry)
        result = await wf.confirm_payment_received(first, payment.id, registry=registry)

        assert result.status == PaymentStatus.RECEIVED
        assert len(await ledger_entries(first, payment.id)) == 3


# ---------------------------------------------------------
# Referral bonus
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_first_milestone_with_cross_department_referral(db, registry):
    referring, executing = uuid.uuid4(), uuid.uuid4()
    client = await create_client(db)
    referral = await create_referral(db, client.id, referring, executing)
    payment = await create_payment_row(
        db, client_id=client.id, department_id=executing, is_first_milestone=True
    )

    await wf.confirm_payment_received(db, payment.id, registry=registry)

    entries = {e.recipient_category: e for e in await ledger_entries(db, payment.id)}
    bonus = entries[RecipientCategory.REFERRAL_BONUS]
    assert bonus.amount == Decimal("100000.00")
    assert bonus.department_id == referring
    assert entries[RecipientCategory.DEPARTMENT].amount == Decimal("300000.00")
    assert entries[RecipientCategory.DEPARTMENT].department_id == executing

    await db.refresh(referral)
    assert referral.bonus_amount == Decimal("100000.00")
    assert referral.first_phase_id == payment.phase_id


@pytest.mark.asyncio
async def test_same_department_referral_earns_no_bonus(db, registry):
    dept = uuid.uuid4()
    client = await create_client(db)
    await create_referral(db, client.id, dept, dept)
    payment = await create_payment_row(db, client_id=client.id, department_id=dept, is_first_milestone=True)

    await wf.confirm_payment_received(db, payment.id, registry=registry)

    recipients = {e.recipient_category for e in await ledger_entries(db, payment.id)}
    assert RecipientCategory.REFERRAL_BONUS not in recipients


@pytest.mark.asyncio
async def test_referral_bonus_not_paid_on_later_phase(db, registry):
    referring, executing = uuid.uuid4(), uuid.uuid4()
    client = await create_client(db)
    await create_referral(db, client.id, referring, executing)

    first = await create_payment_row(db, client_id=client.id, department_id=executing, is_first_milestone=True)
    await wf.confirm_payment_received(db, first.id, registry=registry)

    # another solution's first milestone: the referral is already claimed by the first phase
    other = await create_payment_row(db, client_id=client.id, department_id=executing, is_first_milestone=True)
    await wf.confirm_payment_received(db, other.id, registry=registry)

    recipients = {e.recipient_category for e in await ledger_entries(db, other.id)}
    assert RecipientCategory.REFERRAL_BONUS not in recipients

    referrals = (await db.execute(select(ClientReferral))).scalars().all()
    assert len(referrals) == 1


# ---------------------------------------------------------
# Other transitions
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_update_status_follows_table(db, registry):
    payment = await create_payment_row(db)

    p = await wf.update_payment_status(db, payment.id, PaymentStatus.INVOICED, registry=registry)
    assert p.status == PaymentStatus.INVOICED
    p = await wf.update_payment_status(db, payment.id, PaymentStatus.OVERDUE, registry=registry)
    assert p.status == PaymentStatus.OVERDUE

    with pytest.raises(InvalidTransition):
        await wf.update_payment_status(db, payment.id, PaymentStatus.PENDING, registry=registry)

    p = await wf.update_payment_status(db, payment.id, PaymentStatus.RECEIVED, registry=registry)
    assert p.status == PaymentStatus.RECEIVED
    assert len(await ledger_entries(db, payment.id)) == 3

    with pytest.raises(InvalidTransition):
        await wf.update_payment_status(db, payment.id, PaymentStatus.FAILED, registry=registry)


# ---------------------------------------------------------
# Hold for review
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_flag_and_unflag(db):
    payment = await create_payment_row(db, notes="[FLAGGED] old dashboard hold\nclient asked for GST invoice")

    flagged = await wf.flag_payment(db, payment.id, "Amount disputed")
    assert flagged.held_for_review is True
    assert flagged.hold_reason == "Amount disputed"
    assert "Held for review: Amount disputed" in flagged.notes

    released = await wf.unflag_payment(db, payment.id)
    assert released.held_for_review is False
    assert released.hold_reason is None
    assert released.is_held is False
    assert "[FLAGGED]" not in released.notes
    assert "client asked for GST invoice" in released.notes


@pytest.mark.asyncio
async def test_cannot_flag_received_payment(db):
    payment = await create_payment_row(db, status=PaymentStatus.RECEIVED)
    with pytest.raises(InvalidTransition):
        await wf.flag_payment(db, payment.id, "late")


# ---------------------------------------------------------
# Delete
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_delete_without_cascade_refuses_when_entries_exist(db, registry):
    payment = await create_payment_row(db)
    await wf.confirm_payment_received(db, payment.id, registry=registry)

    with pytest.raises(HasLedgerEntries):
        await wf.delete_payment(db, payment.id, cascade=False)
    assert len(await ledger_entries(db, payment.id)) == 3


@pytest.mark.asyncio
async def test_delete_cascade_removes_entries(db, registry):
    payment = await create_payment_row(db)
    await wf.confirm_payment_received(db, payment.id, registry=registry)

    removed = await wf.delete_payment(db, payment.id)

    assert removed == 3
    assert await ledger_entries(db, payment.id) == []
    assert await count_payments(db) == 0


@pytest.mark.asyncio
async def test_delete_pending_payment_without_entries(db):
    payment = await create_payment_row(db)
    assert await wf.delete_payment(db, payment.id, cascade=False) == 0


# ---------------------------------------------------------
# Reads
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_list_and_stats(db, registry):
    await create_payment_row(db, gross_amount="100.00")
    await create_payment_row(db, gross_amount="200.00", held_for_review=True)
    received = await create_payment_row(db, gross_amount="300.00")
    await wf.confirm_payment_received(db, received.id, registry=registry)

    rows, total = await wf.list_payments(db, status=PaymentStatus.PENDING)
    assert total == 2
    assert {r.gross_amount for r in rows} == {Decimal("100.00"), Decimal("200.00")}

    rows, total = await wf.list_payments(db, held_for_review=True)
    assert total == 1

    stats = await wf.payment_stats(db)
    assert stats.total_received == Decimal("300.00")
    assert stats.total_pending == Decimal("300.00")
    assert stats.count_by_status["pending"] == 2
