"""backfill payment review hold from legacy notes marker

Revision ID: 7d4e0b5c2a61
Revises: 3f1c2a9d7b10
Create Date: 2026-10-18
"""

from alembic import op
from sqlalchemy import text

# revision identifiers, used by Alembic.
revision = "7d4e0b5c2a61"
down_revision = "3f1c2a9d7b10"
branch_labels = None
depends_on = None

LEGACY_HOLD_MARKER = "[FLAGGED]"


def upgrade() -> None:
    # rows imported from the old dashboard carry the hold only inside notes
    op.execute(
        text(
            "UPDATE payments SET held_for_review = TRUE "
            "WHERE held_for_review = FALSE AND status IN ('pending', 'invoiced', 'overdue') "
            "AND notes LIKE :marker"
        ).bindparams(marker=f"%{LEGACY_HOLD_MARKER}%")
    )


def downgrade() -> None:
    # the notes marker is left in place, so nothing is lost by keeping the flag
    pass
