"""
DCA Module - the decision engine and its control loop.

- Buy schedule: tiered limit buys as the price falls below the start price
- Take-profit: sell down to a reserve once the gain passes a threshold
- Range filter: only buy while the price is low in its 52 week range
- DCABot: per-cycle sequencing, order submission and session recovery
"""

from .bot import DCABot, LoopState, log_report, run_cycle
from .buy_schedule import evaluate_buy_schedule, find_active_tier
from .ledger import InstrumentLedger
from .range_filter import evaluate_range_filter
from .session import (
    AutoReauthenticate,
    ConfirmBeforeReauthenticate,
    Reauthenticator,
    SessionManager,
    build_reauthenticator,
)
from .take_profit import evaluate_take_profit

__all__ = [
    'DCABot',
    'LoopState',
    'log_report',
    'run_cycle',
    'evaluate_buy_schedule',
    'find_active_tier',
    'InstrumentLedger',
    'evaluate_range_filter',
    'AutoReauthenticate',
    'ConfirmBeforeReauthenticate',
    'Reauthenticator',
    'SessionManager',
    'build_reauthenticator',
    'evaluate_take_profit',
]
