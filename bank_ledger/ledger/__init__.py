"""
Money-movement core.

Everything that changes a balance or writes a ledger row goes through
TransactionPoster. compute_next_run / RuleScheduler stamp recurring rules.
"""

from bank_ledger.ledger.poster import (  # noqa: F401
    Approved,
    Denied,
    Duplicate,
    ExternalParty,
    PostingIntent,
    Resolved,
    RuleLink,
    TransactionPoster,
    TransferApproved,
    TransferIntent,
    Unresolved,
)
from bank_ledger.ledger.schedule import RuleScheduler, compute_next_run, is_valid_run  # noqa: F401
from bank_ledger.ledger.store import LedgerStore  # noqa: F401
