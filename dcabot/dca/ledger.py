"""
Instrument Ledger - per-symbol snapshot cache owned by the control loop.

Snapshots live for one cycle only. A symbol whose quote or position could not be
read is marked unavailable with the reason and is skipped until the next cycle.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from dcabot.api.client import BrokerageClient
from dcabot.errors import TransientDataError
from dcabot.models import InstrumentSnapshot

logger = logging.getLogger(__name__)


class InstrumentLedger:
    """Latest market/position snapshot per symbol for the current cycle."""

    def __init__(self, client: BrokerageClient):
        self.client = client
        self._snapshots: Dict[str, InstrumentSnapshot] = {}
        self._unavailable: Dict[str, str] = {}

    def begin_cycle(self):
        """Forget everything from the previous cycle."""
        self._snapshots.clear()
        self._unavailable.clear()

    def refresh(self, symbols: Iterable[str]) -> Dict[str, str]:
        """
        Fetch one snapshot per symbol.

        SessionExpiredError is not caught here; the control loop owns recovery.

        Returns:
            Dict of symbol -> reason for every symbol left unavailable
        """
        failed = {}
        for symbol in symbols:
            self._snapshots.pop(symbol, None)
            self._unavailable.pop(symbol, None)
            try:
                snapshot = self._fetch(symbol)
            except TransientDataError as e:
                logger.warning(f"{symbol} > Data unavailable this cycle: {e.reason}")
                self._unavailable[symbol] = e.reason
                failed[symbol] = e.reason
                continue
            self._snapshots[symbol] = snapshot
            logger.info(
                f"{symbol} > Price ${snapshot.last_price}, total gain/loss {snapshot.gain_percent:.2f}%, "
                f"held {snapshot.held_shares:g} share(s), value ${snapshot.market_value:,.2f}"
            )
        return failed

    def _fetch(self, symbol: str) -> InstrumentSnapshot:
        price = self.client.get_quote(symbol)
        position = self.client.get_position(symbol, price)
        return InstrumentSnapshot(
            symbol=symbol,
            last_price=price,
            gain_percent=position.gain_percent,
            low_52=position.low_52,
            high_52=position.high_52,
            held_shares=position.held_shares,
            market_value=position.market_value,
            refreshed_at=datetime.now(),
        )

    def get(self, symbol: str) -> InstrumentSnapshot:
        """Return this cycle's snapshot or raise TransientDataError if there is none."""
        if symbol in self._snapshots:
            return self._snapshots[symbol]
        reason = self._unavailable.get(symbol, "not refreshed this cycle")
        raise TransientDataError(symbol, reason)

    def unavailable_reason(self, symbol: str) -> Optional[str]:
        return self._unavailable.get(symbol)

    def snapshots(self) -> Dict[str, InstrumentSnapshot]:
        return dict(self._snapshots)
