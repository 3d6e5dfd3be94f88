# revshare/core/split_calculator.py
"""
Revenue split calculation.

Pure arithmetic over Decimal; no I/O and no global state. A gross amount is
distributed over a SplitTable, then an ordered pipeline of adjustment steps
redistributes shares between recipients:

    base_allocations -> apply_department_discount -> apply_referral_bonus

The department discount and the referral bonus both draw from the
"department" bucket and each becomes its own synthetic allocation, so the
allocations of a payment always add up to its gross amount. A single check
after the pipeline rejects any negative share (OverAdjusted). Amounts are
computed exactly and only rounded to cents at the very end; the rounding
remainder goes to the recipient with the largest final percentage.

Example
-------
>>> table = SplitTable(SplitCategory.SOFTWARE, {"jicate": 40, "department": 40, "institution": 20})
>>> [a.amount for a in calculate_split(Decimal("1000000"), table).allocations]
[Decimal('400000.00'), Decimal('400000.00'), Decimal('200000.00')]
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Mapping, Sequence

from revshare.core.config import settings
from revshare.core.enums import RECIPIENT_LABELS, RecipientCategory, SplitCategory
from revshare.core.errors import InvalidAdjustment, InvalidAmount, InvalidModel, OverAdjusted

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

# Produced by adjustments only; never valid as split model keys.
SYNTHETIC_RECIPIENTS = frozenset(
    {RecipientCategory.REFERRAL_BONUS, RecipientCategory.DEPARTMENT_DISCOUNT}
)


# ---------------------------------------------------------
# Split tables
# ---------------------------------------------------------
def validate_percentages(percentages: Mapping[str, int]) -> dict[RecipientCategory, int]:
    """
    Normalize and validate a {recipient: percent} mapping.
    Raises InvalidModel unless it is non-empty, integer, non-negative and sums to 100.
    """
    if not percentages:
        raise InvalidModel("Split model must allocate to at least one recipient")

    normalized: dict[RecipientCategory, int] = {}
    for key, value in percentages.items():
        try:
            recipient = RecipientCategory(key)
        except ValueError:
            raise InvalidModel(f"Unknown recipient category {key!r}", {"recipient": str(key)})
        if recipient in SYNTHETIC_RECIPIENTS:
            raise InvalidModel(
                f"{recipient.value!r} is produced by adjustments and cannot be configured",
                {"recipient": recipient.value},
            )
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidModel(
                f"Percentage for {recipient.value!r} must be a whole number",
                {"recipient": recipient.value},
            )
        if value < 0:
            raise InvalidModel(
                f"Percentage for {recipient.value!r} must not be negative",
                {"recipient": recipient.value, "percentage": value},
            )
        normalized[recipient] = value

    total = sum(normalized.values())
    if total != 100:
        raise InvalidModel("Revenue split percentages must total 100%", {"total": total})
    return normalized


@dataclass(frozen=True)
class SplitTable:
    """Validated, ordered percentage table for one revenue category."""

    category: SplitCategory
    percentages: Mapping[RecipientCategory, int]
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", SplitCategory(self.category))
        object.__setattr__(self, "percentages", validate_percentages(self.percentages))
        if not self.name:
            object.__setattr__(self, "name", f"{self.category.value} split")

    def as_json(self) -> dict[str, int]:
        return {k.value: v for k, v in self.percentages.items()}


# ---------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------
@dataclass(frozen=True)
class SplitAdjustments:
    department_discount_percent: Decimal = ZERO
    is_first_milestone: bool = False
    has_cross_department_referral: bool = False


@dataclass(frozen=True)
class Allocation:
    recipient_category: RecipientCategory
    percentage: Decimal
    amount: Decimal

    @property
    def recipient_name(self) -> str:
        return RECIPIENT_LABELS.get(self.recipient_category, self.recipient_category.value.title())


@dataclass(frozen=True)
class SplitResult:
    allocations: tuple[Allocation, ...]
    total_amount: Decimal
    discount_amount: Decimal
    referral_bonus_amount: Decimal

    def amount_for(self, recipient: RecipientCategory) -> Decimal | None:
        for a in self.allocations:
            if a.recipient_category == recipient:
                return a.amount
        return None


# ---------------------------------------------------------
# Pipeline
# ---------------------------------------------------------
@dataclass(frozen=True)
class Share:
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class SplitContext:
    gross_amount: Decimal
    table: SplitTable
    adjustments: SplitAdjustments
    max_discount_percent: Decimal
    referral_bonus_percent: Decimal


@dataclass(frozen=True)
class SplitDraft:
    """Exact (unrounded) shares in allocation order."""

    shares: dict[RecipientCategory, Share] = field(default_factory=dict)


AdjustmentStep = Callable[[SplitDraft, SplitContext], SplitDraft]


def _portion(gross: Decimal, percent: Decimal) -> Decimal:
    return gross * percent / HUNDRED


def _move_from_department(
    draft: SplitDraft,
    ctx: SplitContext,
    target: RecipientCategory,
    percent: Decimal,
) -> dict[RecipientCategory, Share]:
    amount = _portion(ctx.gross_amount, percent)
    shares = dict(draft.shares)
    dept = shares.get(RecipientCategory.DEPARTMENT, Share(ZERO, ZERO))
    shares[RecipientCategory.DEPARTMENT] = Share(dept.percentage - percent, dept.amount - amount)
    existing = shares.get(target, Share(ZERO, ZERO))
    shares[target] = Share(existing.percentage + percent, existing.amount + amount)
    return shares


def base_allocations(ctx: SplitContext) -> SplitDraft:
    shares = {
        recipient: Share(Decimal(pct), _portion(ctx.gross_amount, Decimal(pct)))
        for recipient, pct in ctx.table.percentages.items()
    }
    return SplitDraft(shares=shares)


def apply_department_discount(draft: SplitDraft, ctx: SplitContext) -> SplitDraft:
    """Department concedes `d` points of the gross (0 <= d <= cap) when the model has a department share."""
    d = Decimal(ctx.adjustments.department_discount_percent or 0)
    if d < 0 or d > ctx.max_discount_percent:
        raise InvalidAdjustment(
            f"Department discount must be between 0 and {ctx.max_discount_percent} percent",
            {"department_discount_percent": str(d)},
        )
    if d == 0 or RecipientCategory.DEPARTMENT not in draft.shares:
        return draft

    shares = _move_from_department(draft, ctx, RecipientCategory.DEPARTMENT_DISCOUNT, d)
    return replace(draft, shares=shares)


def apply_referral_bonus(draft: SplitDraft, ctx: SplitContext) -> SplitDraft:
    """First software milestone of a cross-department referral pays a bonus out of the department share."""
    adj = ctx.adjustments
    if not (adj.is_first_milestone and adj.has_cross_department_referral):
        return draft
    if ctx.table.category != SplitCategory.SOFTWARE:
        return draft

    shares = _move_from_department(
        draft, ctx, RecipientCategory.REFERRAL_BONUS, ctx.referral_bonus_percent
    )
    return replace(draft, shares=shares)


ADJUSTMENT_PIPELINE: tuple[AdjustmentStep, ...] = (
    apply_department_discount,
    apply_referral_bonus,
)


def ensure_not_over_adjusted(draft: SplitDraft) -> None:
    for recipient, share in draft.shares.items():
        if share.amount < 0 or share.percentage < 0:
            raise OverAdjusted(
                f"Adjustments drive the {recipient.value} allocation negative",
                {
                    "recipient": recipient.value,
                    "percentage": str(share.percentage),
                    "amount": str(share.amount),
                },
            )


def finalize(draft: SplitDraft, ctx: SplitContext) -> SplitResult:
    """Round every share down to cents and hand the remainder to the largest-percentage recipient.

    Reported discount and bonus amounts are the finalized allocation amounts.
    """
    recipients = list(draft.shares)
    rounded = {r: draft.shares[r].amount.quantize(CENT, rounding=ROUND_DOWN) for r in recipients}

    remainder = ctx.gross_amount - sum(rounded.values(), ZERO)
    if remainder:
        # max() keeps the first of equal keys, i.e. allocation order breaks ties
        largest = max(recipients, key=lambda r: draft.shares[r].percentage)
        rounded[largest] += remainder

    allocations = tuple(
        Allocation(
            recipient_category=r,
            percentage=draft.shares[r].percentage.quantize(CENT),
            amount=rounded[r],
        )
        for r in recipients
    )
    return SplitResult(
        allocations=allocations,
        total_amount=ctx.gross_amount,
        discount_amount=rounded.get(RecipientCategory.DEPARTMENT_DISCOUNT, ZERO).quantize(CENT),
        referral_bonus_amount=rounded.get(RecipientCategory.REFERRAL_BONUS, ZERO).quantize(CENT),
    )


def calculate_split(
    gross_amount: Decimal,
    table: SplitTable,
    adjustments: SplitAdjustments | None = None,
    *,
    steps: Sequence[AdjustmentStep] = ADJUSTMENT_PIPELINE,
) -> SplitResult:
    """
    Split `gross_amount` over `table` after applying `adjustments`.

    Raises InvalidAmount (gross <= 0 or finer than cents), InvalidAdjustment
    (discount outside 0..cap) or OverAdjusted (a share would go negative).
    """
    gross = Decimal(gross_amount)
    if gross <= 0:
        raise InvalidAmount("Gross amount must be positive", {"gross_amount": str(gross)})
    if gross != gross.quantize(CENT):
        raise InvalidAmount("Gross amount must be expressed in whole cents", {"gross_amount": str(gross)})

    ctx = SplitContext(
        gross_amount=gross,
        table=table,
        adjustments=adjustments or SplitAdjustments(),
        max_discount_percent=Decimal(settings.MAX_DEPARTMENT_DISCOUNT_PERCENT),
        referral_bonus_percent=Decimal(settings.REFERRAL_BONUS_PERCENT),
    )

    draft = base_allocations(ctx)
    for step in steps:
        draft = step(draft, ctx)

    ensure_not_over_adjusted(draft)
    return finalize(draft, ctx)
