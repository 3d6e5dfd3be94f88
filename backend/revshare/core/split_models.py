# revshare/core/split_models.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.enums import SplitCategory
from revshare.core.errors import InvalidModel, SplitModelNotFound
from revshare.core.split_calculator import SplitAdjustments, SplitResult, SplitTable, calculate_split
from revshare.models.split_model import SplitModel

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_MODELS: dict[SplitCategory, tuple[str, dict[str, int]]] = {
    SplitCategory.SOFTWARE: (
        "Software solutions",
        {"jicate": 40, "department": 40, "institution": 20},
    ),
    SplitCategory.TRAINING_COMMUNITY: (
        "Training - community cohort track",
        {"cohort": 60, "council": 20, "infrastructure": 20},
    ),
    SplitCategory.TRAINING_CORPORATE: (
        "Training - corporate track",
        {"cohort": 30, "department": 20, "jicate": 30, "institution": 20},
    ),
    SplitCategory.CONTENT: (
        "Content production",
        {"learners": 60, "council": 20, "infrastructure": 20},
    ),
}


def default_tables() -> list[SplitTable]:
    return [
        SplitTable(category=category, percentages=percentages, name=name)
        for category, (name, percentages) in DEFAULT_SPLIT_MODELS.items()
    ]


def _coerce_category(category: SplitCategory | str) -> SplitCategory:
    try:
        return SplitCategory(category)
    except ValueError:
        raise SplitModelNotFound(f"Unknown split category {category!r}", {"category": str(category)})


def _category_for_write(category: SplitCategory | str) -> SplitCategory:
    try:
        return SplitCategory(category)
    except ValueError:
        raise InvalidModel(f"Unknown split category {category!r}", {"category": str(category)})


class SplitModelRegistry(Protocol):
    """Read-many / write-rare source of split tables."""

    async def get_model(self, category: SplitCategory | str) -> SplitTable: ...

    async def set_model(
        self,
        category: SplitCategory | str,
        percentages: Mapping[str, int],
        name: str | None = None,
    ) -> SplitTable: ...

    async def list_models(self) -> list[SplitTable]: ...


class InMemorySplitModelRegistry:
    """Dict-backed registry; tables are immutable so readers never see a partial write."""

    def __init__(self, tables: list[SplitTable] | None = None):
        self._tables: dict[SplitCategory, SplitTable] = {t.category: t for t in (tables or [])}

    @classmethod
    def with_defaults(cls) -> "InMemorySplitModelRegistry":
        return cls(default_tables())

    async def get_model(self, category: SplitCategory | str) -> SplitTable:
        cat = _coerce_category(category)
        table = self._tables.get(cat)
        if table is None:
            raise SplitModelNotFound(f"No split model configured for {cat.value!r}", {"category": cat.value})
        return table

    async def set_model(
        self,
        category: SplitCategory | str,
        percentages: Mapping[str, int],
        name: str | None = None,
    ) -> SplitTable:
        cat = _category_for_write(category)
        previous = self._tables.get(cat)
        # builds (and validates) the replacement before swapping it in
        table = SplitTable(
            category=cat,
            percentages=percentages,
            name=name or (previous.name if previous else ""),
        )
        self._tables[cat] = table
        return table

    async def list_models(self) -> list[SplitTable]:
        return [self._tables[c] for c in SplitCategory if c in self._tables]


class SqlSplitModelRegistry:
    """Registry over the `split_models` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_table(row: SplitModel) -> SplitTable:
        return SplitTable(category=row.category, percentages=row.percentages, name=row.name)

    async def _get_row(self, category: SplitCategory) -> SplitModel | None:
        stmt = select(SplitModel).where(SplitModel.category == category)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get_model(self, category: SplitCategory | str) -> SplitTable:
        cat = _coerce_category(category)
        row = await self._get_row(cat)
        if row is None:
            raise SplitModelNotFound(f"No split model configured for {cat.value!r}", {"category": cat.value})
        return self._to_table(row)

    async def set_model(
        self,
        category: SplitCategory | str,
        percentages: Mapping[str, int],
        name: str | None = None,
    ) -> SplitTable:
        """
        Validate then persist in one call. An invalid table raises InvalidModel
        before anything touches the session, so the stored row stays as it was.
        """
        cat = _category_for_write(category)
        row = await self._get_row(cat)

        table = SplitTable(
            category=cat,
            percentages=percentages,
            name=name or (row.name if row else ""),
        )

        if row is None:
            row = SplitModel(category=cat, name=table.name, percentages=table.as_json())
            self.db.add(row)
        else:
            row.name = table.name
            # reassign (not mutate) so the JSON column is flagged dirty
            row.percentages = table.as_json()

        await self.db.commit()
        logger.info(f"Split model {cat.value!r} set to {table.as_json()}")
        return table

    async def list_models(self) -> list[SplitTable]:
        rows = (await self.db.execute(select(SplitModel).order_by(SplitModel.category))).scalars().all()
        return [self._to_table(r) for r in rows]


async def seed_default_split_models(db: AsyncSession) -> int:
    """Insert default models for categories that have none. Returns how many were added."""
    existing = set((await db.execute(select(SplitModel.category))).scalars().all())
    added = 0
    for table in default_tables():
        if table.category in existing:
            continue
        db.add(SplitModel(category=table.category, name=table.name, percentages=table.as_json()))
        added += 1
    if added:
        await db.commit()
        logger.info(f"Seeded {added} default split model(s)")
    return added


async def calculate_split_for_category(
    registry: SplitModelRegistry,
    gross_amount: Decimal,
    category: SplitCategory | str,
    adjustments: SplitAdjustments | None = None,
) -> SplitResult:
    """Registry lookup followed by the pure calculation."""
    table = await registry.get_model(category)
    return calculate_split(gross_amount, table, adjustments)

