# tests/test_earnings_ledger.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from revshare.core import earnings_ledger as ledger
from revshare.core.enums import LedgerStatus, RecipientCategory, SplitCategory
from revshare.core.payment_workflow import confirm_payment_received

from conftest import create_payment_row


async def settled_payment(db, registry, **fields):
    payment = await create_payment_row(db, **fields)
    await confirm_payment_received(db, payment.id, registry=registry)
    rows, _ = await ledger.list_entries(db, payment_id=payment.id)
    return payment, {e.recipient_category: e for e in rows}


@pytest.mark.asyncio
async def test_approve_then_mark_paid(db, registry):
    _, entries = await settled_payment(db, registry)
    ids = [e.id for e in entries.values()]

    approved = await ledger.approve_entries(db, ids)
    assert approved.errors == []
    assert {e.status for e in approved.entries} == {LedgerStatus.APPROVED}
    assert all(e.approved_at is not None for e in approved.entries)

    paid_at = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)
    paid = await ledger.mark_entries_paid(db, ids, paid_at)
    assert paid.errors == []
    assert {e.status for e in paid.entries} == {LedgerStatus.PAID}
    assert all(e.paid_at == paid_at for e in paid.entries)


@pytest.mark.asyncio
async def test_mark_paid_requires_approval(db, registry):
    _, entries = await settled_payment(db, registry)
    entry = entries[RecipientCategory.JICATE]

    outcome = await ledger.mark_entries_paid(db, [entry.id])

    assert outcome.entries == []
    assert len(outcome.errors) == 1
    assert outcome.errors[0].entry_id == entry.id
    assert outcome.errors[0].error == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_bulk_approve_reports_failures_per_id(db, registry):
    _, entries = await settled_payment(db, registry)
    good = entries[RecipientCategory.JICATE].id
    already = entries[RecipientCategory.DEPARTMENT].id
    missing = uuid.uuid4()

    await ledger.approve_entries(db, [already])
    outcome = await ledger.approve_entries(db, [good, already, missing])

    assert [e.id for e in outcome.entries] == [good]
    errors = {e.entry_id: e.error for e in outcome.errors}
    assert errors == {already: "INVALID_TRANSITION", missing: "LEDGER_ENTRY_NOT_FOUND"}


@pytest.mark.asyncio
async def test_status_never_moves_backwards(db, registry):
    _, entries = await settled_payment(db, registry)
    entry_id = entries[RecipientCategory.INSTITUTION].id

    await ledger.approve_entries(db, [entry_id])
    await ledger.mark_entries_paid(db, [entry_id])
    outcome = await ledger.approve_entries(db, [entry_id])

    assert outcome.entries == []
    rows, _ = await ledger.list_entries(db, status=LedgerStatus.PAID)
    assert [r.id for r in rows] == [entry_id]


@pytest.mark.asyncio
async def test_approve_payment_entries(db, registry):
    payment, entries = await settled_payment(db, registry)
    await ledger.approve_entries(db, [entries[RecipientCategory.JICATE].id])

    assert await ledger.approve_payment_entries(db, payment.id) == 2
    assert await ledger.approve_payment_entries(db, payment.id) == 0


@pytest.mark.asyncio
async def test_amounts_are_immutable_through_lifecycle(db, registry):
    _, entries = await settled_payment(db, registry, gross_amount="999.99")
    before = {e.id: (e.amount, e.percentage) for e in entries.values()}

    await ledger.approve_entries(db, list(before))
    paid = await ledger.mark_entries_paid(db, list(before))

    assert {e.id: (e.amount, e.percentage) for e in paid.entries} == before
    assert sum(a for a, _ in before.values()) == Decimal("999.99")


# ---------------------------------------------------------
# Read side
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_summary_by_recipient(db, registry):
    _, first = await settled_payment(db, registry, gross_amount="1000.00")
    await settled_payment(db, registry, gross_amount="500.00")
    await ledger.approve_entries(db, [first[RecipientCategory.JICATE].id])

    summaries = {s.recipient_category: s for s in await ledger.summarize_by_recipient(db)}

    jicate = summaries[RecipientCategory.JICATE]
    assert jicate.recipient_name == "JICATE"
    assert jicate.entry_count == 2
    assert jicate.total_approved == Decimal("400.00")
    assert jicate.total_calculated == Decimal("200.00")
    assert summaries[RecipientCategory.INSTITUTION].total_calculated == Decimal("300.00")


@pytest.mark.asyncio
async def test_department_earnings_and_totals(db, registry):
    dept, other = uuid.uuid4(), uuid.uuid4()
    await settled_payment(db, registry, gross_amount="1000.00", department_id=dept)
    await settled_payment(db, registry, gross_amount="2000.00", department_id=dept, department_discount_percent=Decimal("5"))
    await settled_payment(db, registry, gross_amount="4000.00", department_id=other)

    report = await ledger.department_earnings(db, dept)
    # 400 + (800 - 100): the conceded discount is not department income
    assert report.totals.calculated == Decimal("1100.00")
    assert {e.recipient_category for e in report.entries} == {RecipientCategory.DEPARTMENT}

    totals = await ledger.recipient_totals(db, RecipientCategory.DEPARTMENT, department_id=dept)
    assert totals.calculated == Decimal("1100.00")
    assert totals.total == Decimal("1100.00")

    future = datetime.now(timezone.utc) + timedelta(days=1)
    empty = await ledger.department_earnings(db, dept, from_date=future)
    assert empty.entries == []
    assert empty.totals.total == 0


@pytest.mark.asyncio
async def test_department_is_paid_net_of_discount(db, registry):
    dept = uuid.uuid4()
    _, entries = await settled_payment(
        db, registry, department_id=dept, department_discount_percent=Decimal("10")
    )
    ids = [e.id for e in entries.values()]
    await ledger.approve_entries(db, ids)
    await ledger.mark_entries_paid(db, ids)

    report = await ledger.department_earnings(db, dept)
    assert report.totals.paid == Decimal("300000.00")
    assert [(e.recipient_category, e.amount) for e in report.entries] == [
        (RecipientCategory.DEPARTMENT, Decimal("300000.00"))
    ]

    conceded = entries[RecipientCategory.DEPARTMENT_DISCOUNT]
    assert conceded.amount == Decimal("100000.00")
    assert conceded.department_id is None


@pytest.mark.asyncio
async def test_monthly_report(db, registry):
    await settled_payment(db, registry, gross_amount="1000.00", category=SplitCategory.CONTENT)
    now = datetime.now(timezone.utc)

    report = await ledger.monthly_report(db, now.month, now.year)

    assert report.entry_count == 3
    assert report.total == Decimal("1000.00")
    assert report.by_recipient_category["learners"] == Decimal("600.00")

    with pytest.raises(ValueError):
        await ledger.monthly_report(db, 13, now.year)
