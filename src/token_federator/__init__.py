"""
Token bridge federator package.

Off-chain relay service that mirrors Cross events between two bridged
ledgers by submitting idempotent acceptTransfer calls.
"""

from .config import AppConfig, FederatorConfig
from .confirmation_policy import ConfirmationPolicy
from .federator import Federator
from .models import CrossEvent, CycleResult, FederatorState, ReceiptOutcome
from .scheduler import Scheduler
from .service import FederatorService
from .transaction_id import compute_transaction_id

__all__ = [
    "AppConfig",
    "ConfirmationPolicy",
    "CrossEvent",
    "CycleResult",
    "Federator",
    "FederatorConfig",
    "FederatorService",
    "FederatorState",
    "ReceiptOutcome",
    "Scheduler",
    "compute_transaction_id",
]
__version__ = "0.1.0"
