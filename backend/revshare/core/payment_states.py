# revshare/core/payment_states.py
from __future__ import annotations

import uuid
from dataclasses import dataclass

from revshare.core.enums import MouStatus, PaymentStatus, UnitKind
from revshare.core.errors import InvalidTransition, InvalidUnitRef

# ---------------------------------------------------------
# Payment lifecycle
# ---------------------------------------------------------
# received and failed are terminal; refunds are not modelled.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.INVOICED, PaymentStatus.RECEIVED, PaymentStatus.OVERDUE, PaymentStatus.FAILED}
    ),
    PaymentStatus.INVOICED: frozenset({PaymentStatus.RECEIVED, PaymentStatus.OVERDUE, PaymentStatus.FAILED}),
    PaymentStatus.OVERDUE: frozenset({PaymentStatus.INVOICED, PaymentStatus.RECEIVED, PaymentStatus.FAILED}),
    PaymentStatus.RECEIVED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

# ---------------------------------------------------------
# MoU lifecycle
# ---------------------------------------------------------
MOU_TRANSITIONS: dict[MouStatus, frozenset[MouStatus]] = {
    MouStatus.DRAFT: frozenset({MouStatus.SENT}),
    MouStatus.SENT: frozenset({MouStatus.DRAFT, MouStatus.SIGNED}),
    MouStatus.SIGNED: frozenset({MouStatus.ACTIVE}),
    MouStatus.ACTIVE: frozenset({MouStatus.EXPIRED, MouStatus.RENEWED}),
    MouStatus.EXPIRED: frozenset({MouStatus.RENEWED}),
    MouStatus.RENEWED: frozenset(),
}


def is_terminal(status: PaymentStatus) -> bool:
    return not PAYMENT_TRANSITIONS[PaymentStatus(status)]


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def ensure_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    current, target = PaymentStatus(current), PaymentStatus(target)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Payment cannot move from {current.value} to {target.value}",
            {"from": current.value, "to": target.value},
        )


def ensure_mou_transition(current: MouStatus, target: MouStatus) -> None:
    current, target = MouStatus(current), MouStatus(target)
    if target not in MOU_TRANSITIONS[current]:
        raise InvalidTransition(
            f"MoU cannot move from {current.value} to {target.value}",
            {"from": current.value, "to": target.value},
        )


# ---------------------------------------------------------
# Revenue-generating unit reference
# ---------------------------------------------------------
@dataclass(frozen=True)
class UnitRef:
    """Exactly one solution phase, training program or content order."""

    kind: UnitKind
    id: uuid.UUID

    @classmethod
    def from_ids(
        cls,
        phase_id: uuid.UUID | None = None,
        program_id: uuid.UUID | None = None,
        order_id: uuid.UUID | None = None,
    ) -> "UnitRef":
        given = [
            (kind, value)
            for kind, value in (
                (UnitKind.PHASE, phase_id),
                (UnitKind.PROGRAM, program_id),
                (UnitKind.ORDER, order_id),
            )
            if value is not None
        ]
        if len(given) != 1:
            raise InvalidUnitRef(
                "Provide exactly one of phase_id, program_id or order_id.",
                {"given": [k.value for k, _ in given]},
            )
        kind, value = given[0]
        return cls(kind=kind, id=value)

    def as_columns(self) -> dict[str, uuid.UUID | None]:
        return {
            "phase_id": self.id if self.kind == UnitKind.PHASE else None,
            "program_id": self.id if self.kind == UnitKind.PROGRAM else None,
            "order_id": self.id if self.kind == UnitKind.ORDER else None,
        }

    @classmethod
    def of(cls, row) -> "UnitRef":
        return cls.from_ids(row.phase_id, row.program_id, row.order_id)
