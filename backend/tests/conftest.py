from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from revshare.core.enums import PaymentStatus, SplitCategory
from revshare.core.split_models import InMemorySplitModelRegistry, seed_default_split_models
from revshare.db.session import get_db

# Ensure Base + models are registered before create_all
from revshare.db.base import Base  # noqa: F401
import revshare.models  # noqa: F401
from revshare.models.client import Client, ClientReferral
from revshare.models.payment import Payment


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------
# Engine + schema lifecycle (one SQLite file per test)
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'revshare_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------
# DB session for setup / assertions and core calls
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture()
async def seeded_db(db):
    """Session over a database holding the default split models."""
    await seed_default_split_models(db)
    return db


@pytest.fixture()
def registry():
    return InMemorySplitModelRegistry.with_defaults()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker):
    from revshare.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Row builders
# ---------------------------------------------------------
async def create_payment_row(
    db,
    gross_amount: str = "1000000.00",
    category: SplitCategory = SplitCategory.SOFTWARE,
    status: PaymentStatus = PaymentStatus.PENDING,
    age_hours: float = 0,
    **fields,
) -> Payment:
    """Insert a payment directly, bypassing the workflow (e.g. to backdate it)."""
    fields.setdefault("phase_id", uuid.uuid4())
    created = utcnow() - timedelta(hours=age_hours)
    payment = Payment(
        gross_amount=Decimal(gross_amount),
        category=category,
        status=status,
        created_at=created,
        updated_at=created,
        **fields,
    )
    db.add(payment)
    await db.commit()
    await db.refresh(payment)
    return payment


async def create_client(db, name: str = "Acme Textiles", **fields) -> Client:
    client = Client(name=name, **fields)
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def create_referral(
    db,
    client_id: uuid.UUID,
    referring_department_id: uuid.UUID,
    executing_department_id: uuid.UUID,
    days_ago: int = 1,
) -> ClientReferral:
    referral = ClientReferral(
        client_id=client_id,
        referring_department_id=referring_department_id,
        executing_department_id=executing_department_id,
        referral_date=utcnow() - timedelta(days=days_ago),
    )
    db.add(referral)
    await db.commit()
    await db.refresh(referral)
    return referral
