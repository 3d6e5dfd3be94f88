# backend/revshare/core/enums.py

import enum


class SplitCategory(str, enum.Enum):
    """Revenue-generating categories; each selects exactly one split model."""

    SOFTWARE = "software"
    TRAINING_COMMUNITY = "training_community"  # cohort-delivered track
    TRAINING_CORPORATE = "training_corporate"  # department-delivered track
    CONTENT = "content"


class RecipientCategory(str, enum.Enum):
    JICATE = "jicate"
    DEPARTMENT = "department"
    INSTITUTION = "institution"
    COHORT = "cohort"
    COUNCIL = "council"
    INFRASTRUCTURE = "infrastructure"
    LEARNERS = "learners"
    # synthetic: only ever produced by adjustments
    REFERRAL_BONUS = "referral_bonus"
    DEPARTMENT_DISCOUNT = "department_discount"


RECIPIENT_LABELS: dict[RecipientCategory, str] = {
    RecipientCategory.JICATE: "JICATE",
    RecipientCategory.DEPARTMENT: "Department",
    RecipientCategory.INSTITUTION: "Institution",
    RecipientCategory.COHORT: "Cohort Members",
    RecipientCategory.COUNCIL: "Council",
    RecipientCategory.INFRASTRUCTURE: "Infrastructure",
    RecipientCategory.LEARNERS: "Production Learners",
    RecipientCategory.REFERRAL_BONUS: "Referral Bonus",
    RecipientCategory.DEPARTMENT_DISCOUNT: "Department Discount",
}


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    INVOICED = "invoiced"
    RECEIVED = "received"
    OVERDUE = "overdue"
    FAILED = "failed"


class PaymentType(str, enum.Enum):
    ADVANCE = "advance"
    MILESTONE = "milestone"
    COMPLETION = "completion"
    AMC = "amc"
    MOU_SIGNING = "mou_signing"
    DEPLOYMENT = "deployment"
    ACCEPTANCE = "acceptance"


class LedgerStatus(str, enum.Enum):
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


class UnitKind(str, enum.Enum):
    PHASE = "phase"
    PROGRAM = "program"
    ORDER = "order"


class PartnerStatus(str, enum.Enum):
    STANDARD = "standard"
    YI = "yi"
    ALUMNI = "alumni"
    MOU = "mou"
    REFERRAL = "referral"


class MouStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    ACTIVE = "active"
    EXPIRED = "expired"
    RENEWED = "renewed"
