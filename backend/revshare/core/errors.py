# backend/revshare/core/errors.py
"""
Error kinds raised by the ledger core.

Every error carries a machine-readable `code` (used verbatim in API error
bodies) and a `details` dict. Calculation and validation errors are raised
synchronously to the caller; only the settlement sweep collects them.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for revenue ledger errors."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


# ---------------------------------------------------------
# Validation (HTTP 422)
# ---------------------------------------------------------
class InvalidModel(LedgerError):
    """Split percentages do not sum to 100, contain a negative, or use an unknown recipient."""

    code = "INVALID_SPLIT_MODEL"


class InvalidAdjustment(LedgerError):
    """Adjustment input outside its contract (e.g. department discount not in 0..10)."""

    code = "INVALID_ADJUSTMENT"


class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"


class InvalidUnitRef(LedgerError):
    """A payment or MoU must reference exactly one of phase / program / order."""

    code = "INVALID_UNIT_REF"


class InvalidPaymentTerms(LedgerError):
    code = "INVALID_PAYMENT_TERMS"


class OverAdjusted(LedgerError):
    """Discount and referral bonus together would drive the department allocation negative."""

    code = "OVER_ADJUSTED"


class PricingConflict(LedgerError):
    """A deal was priced through both (or neither) of the partner and MoU paths."""

    code = "PRICING_CONFLICT"


# ---------------------------------------------------------
# Lookups (HTTP 404)
# ---------------------------------------------------------
class NotFound(LedgerError):
    code = "NOT_FOUND"


class SplitModelNotFound(NotFound):
    code = "SPLIT_MODEL_NOT_FOUND"


class NoSplitModel(SplitModelNotFound):
    """Raised when a payment cannot move to received because its category has no split model."""

    code = "NO_SPLIT_MODEL"


class PaymentNotFound(NotFound):
    code = "PAYMENT_NOT_FOUND"


class LedgerEntryNotFound(NotFound):
    code = "LEDGER_ENTRY_NOT_FOUND"


class MouNotFound(NotFound):
    code = "MOU_NOT_FOUND"


class ClientNotFound(NotFound):
    code = "CLIENT_NOT_FOUND"


# ---------------------------------------------------------
# State conflicts (HTTP 409)
# ---------------------------------------------------------
class InvalidTransition(LedgerError):
    code = "INVALID_TRANSITION"


class HasLedgerEntries(LedgerError):
    code = "HAS_LEDGER_ENTRIES"
