# Import models here so Alembic can discover metadata.
from revshare.models.split_model import SplitModel  # noqa: F401
from revshare.models.payment import Payment  # noqa: F401
from revshare.models.earnings_ledger_entry import EarningsLedgerEntry  # noqa: F401

# Pricing: partner profiles, referrals, MoUs
from revshare.models.client import Client, ClientReferral  # noqa: F401
from revshare.models.mou import Mou  # noqa: F401
