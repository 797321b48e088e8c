"""
DCA Bot - the control loop.

Every cycle walks the configured bots in declaration order. For each symbol it
refreshes the snapshot, runs take-profit, then the range-filter-gated buy
schedule, and submits at most one sell and one buy. Per-symbol errors are
isolated; a lost session is recovered before moving on to the next symbol.
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from dcabot.api.client import BrokerageClient
from dcabot.errors import OrderRejectedError, SessionExpiredError, TransientDataError
from dcabot.models import (
    BotConfig,
    CycleReport,
    Decision,
    Duration,
    OrderAck,
    OrderRequest,
    SymbolOutcome,
)
from dcabot.web.event_bus import publish_cycle_complete, publish_order, publish_state
from .buy_schedule import DEFAULT_LIMIT_BUY_THRESHOLD, evaluate_buy_schedule
from .ledger import InstrumentLedger
from .range_filter import evaluate_bot_range_filter
from .session import SessionManager
from .take_profit import DEFAULT_MIN_NOTIONAL_SELL, evaluate_take_profit

logger = logging.getLogger(__name__)

DEFAULT_RUN_INTERVAL_SECONDS = 30
DEFAULT_SYMBOL_DELAY_SECONDS = 5
ERROR_RETRY_SECONDS = 60


class LoopState(str, Enum):
    IDLE = "idle"
    EVALUATING_SYMBOL = "evaluating_symbol"
    ORDERING = "ordering"
    SESSION_RECOVERING = "session_recovering"


class DCABot:
    """
    Runs the configured DCA bots against one brokerage client.

    The bot owns the session (through its SessionManager) and the ledger.
    Evaluators never talk to the client; only this class does.
    """

    def __init__(
        self,
        bots: Sequence[BotConfig],
        client: BrokerageClient,
        ledger: Optional[InstrumentLedger] = None,
        session: Optional[SessionManager] = None,
        limit_buy_threshold: float = DEFAULT_LIMIT_BUY_THRESHOLD,
        min_notional_sell: float = DEFAULT_MIN_NOTIONAL_SELL,
        order_duration: Duration = Duration.DAY_EXT,
        symbol_delay: float = DEFAULT_SYMBOL_DELAY_SECONDS,
        run_interval: float = DEFAULT_RUN_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the DCA bot.

        Args:
            bots: Bot configurations, evaluated in this order
            client: Brokerage client used for all data and orders
            ledger: Snapshot cache (created for the client if omitted)
            session: Session manager (auto re-authentication if omitted)
            limit_buy_threshold: Fraction of the scheduled price that triggers a buy
            min_notional_sell: Smallest dollar amount worth selling
            order_duration: Duration used for both limit buys and take-profit sells
            symbol_delay: Seconds to pause between symbols
            run_interval: Seconds between cycles
            sleep: Blocking sleep used for the inter-symbol pause
        """
        self.bots = list(bots)
        self.client = client
        self.ledger = ledger or InstrumentLedger(client)
        self.session = session or SessionManager(client)
        self.limit_buy_threshold = limit_buy_threshold
        self.min_notional_sell = min_notional_sell
        self.order_duration = order_duration
        self.symbol_delay = symbol_delay
        self.run_interval = run_interval
        self.sleep = sleep
        self.state = LoopState.IDLE
        self.last_report: Optional[CycleReport] = None

    def run(self, stop_event: Optional[threading.Event] = None):
        """Run cycles until stop_event is set."""
        stop_event = stop_event or threading.Event()
        logger.info(f"DCA bot starting with {len(self.bots)} bot(s): {', '.join(b.symbol for b in self.bots)}")

        while not stop_event.is_set():
            try:
                report = self.run_cycle(stop_event)
                log_report(report)
                interval = self.run_interval
            except Exception as e:
                interval = ERROR_RETRY_SECONDS
                logger.error(f"DCA cycle error: {e}")

            if stop_event.is_set():
                break
            logger.info(f"Waiting for {interval} seconds...")
            stop_event.wait(interval)

        self._set_state(LoopState.IDLE)
        logger.info("DCA bot stopped")

    def run_cycle(self, stop_event: Optional[threading.Event] = None) -> CycleReport:
        """
        Execute one pass over all bots.

        Returns:
            CycleReport with one outcome per evaluated symbol
        """
        report = CycleReport()
        self._set_state(LoopState.IDLE)

        if not self.session.ensure():
            for bot in self.bots:
                report.outcome(bot.symbol).skip("session unavailable")
            return self._finish(report)

        self.ledger.begin_cycle()

        for position, bot in enumerate(self.bots):
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested, ending cycle early")
                report.cancelled = True
                break

            outcome = report.outcome(bot.symbol)
            self._set_state(LoopState.EVALUATING_SYMBOL)
            try:
                self._evaluate_symbol(bot, outcome)
            except SessionExpiredError as e:
                outcome.fail("session_expired", str(e))
                self._set_state(LoopState.SESSION_RECOVERING)
                if not self.session.recover(str(e)):
                    for remaining in self.bots[position + 1:]:
                        report.outcome(remaining.symbol).skip("session unavailable")
                    break
                report.session_recoveries += 1
            except TransientDataError as e:
                outcome.skip(f"data unavailable: {e.reason}")
            except Exception as e:
                outcome.fail("unexpected", str(e))
                logger.error(f"{bot.symbol} > Unexpected error: {e}")

            self._set_state(LoopState.IDLE)
            # Politeness delay towards the brokerage
            self.sleep(self.symbol_delay)

        return self._finish(report)

    def _evaluate_symbol(self, bot: BotConfig, outcome: SymbolOutcome):
        symbol = bot.symbol
        self.ledger.refresh([symbol])
        snapshot = self.ledger.get(symbol)

        take_profit = evaluate_take_profit(
            bot, snapshot, min_notional_sell=self.min_notional_sell, duration=self.order_duration
        )
        if take_profit is not None:
            outcome.decisions.append(take_profit.decision)
            if take_profit.order is not None:
                outcome.sold = self._submit(take_profit.order, outcome)

        range_decision = evaluate_bot_range_filter(bot, snapshot)
        if range_decision is not None:
            outcome.decisions.append(range_decision)
            if not range_decision.met:
                outcome.skip("range filter: price too high in 52 week range")
                return

        if not bot.buys:
            return

        if self.client.has_pending_buy_limit_order(symbol):
            decision = Decision(
                check="pending_buy_guard",
                met=False,
                message=f"{symbol} > Already has a buy limit order pending",
                values={"pending_buy_limit": True},
            )
            logger.info(decision.message)
            outcome.decisions.append(decision)
            outcome.skip("pending buy limit order")
            return

        buy = evaluate_buy_schedule(
            bot, snapshot, limit_buy_threshold=self.limit_buy_threshold, duration=self.order_duration
        )
        outcome.decisions.append(buy.decision)
        if buy.order is not None:
            outcome.bought = self._submit(buy.order, outcome)

    def _submit(self, request: OrderRequest, outcome: SymbolOutcome) -> Optional[OrderAck]:
        self._set_state(LoopState.ORDERING)
        logger.info(f"{request.symbol} > Placing {request.describe()}")
        try:
            ack = self.client.place_order(request)
        except OrderRejectedError as e:
            outcome.fail("order_rejected", e.reason)
            logger.error(f"{request.symbol} > {request.side.value.upper()} order rejected: {e.reason}")
            return None
        finally:
            self._set_state(LoopState.EVALUATING_SYMBOL)

        demo = " (demo)" if ack.demo else ""
        logger.info(f"{request.symbol} > {request.side.value.upper()} order placed{demo}: {ack.order_id}")
        publish_order(ack.to_dict())
        return ack

    def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = datetime.now()
        self.last_report = report
        self._set_state(LoopState.IDLE)
        publish_cycle_complete(report.to_dict())
        return report

    def _set_state(self, state: LoopState):
        if state is self.state:
            return
        logger.debug(f"Loop state: {self.state.value} -> {state.value}")
        self.state = state
        publish_state(state.value)


def run_cycle(
    bots: Sequence[BotConfig],
    ledger: InstrumentLedger,
    client: BrokerageClient,
    session: Optional[SessionManager] = None,
    **options,
) -> CycleReport:
    """Run a single cycle for the host process."""
    return DCABot(bots, client, ledger=ledger, session=session, **options).run_cycle()


def _placed_note(outcome: SymbolOutcome) -> str:
    placed = [f"{ack.request.side.value} {ack.request.size}" for ack in outcome.placed()]
    return f"; placed {', '.join(placed)}" if placed else ""


def log_report(report: CycleReport) -> List[str]:
    """Log the cycle summary lines and return them."""
    sold = [f"{ack.request.symbol} ({ack.request.size})" for ack in report.sold()]
    bought = [f"{ack.request.symbol} ({ack.request.size})" for ack in report.bought()]
    errors = [f"{o.symbol} ({o.error_kind}: {o.error_detail}{_placed_note(o)})" for o in report.errors()]
    skipped = [f"{o.symbol} ({o.skip_reason})" for o in report.outcomes.values() if o.skip_reason]
    lines = [
        f"Sold: {'None' if not sold else ', '.join(sold)}",
        f"Bought: {'None' if not bought else ', '.join(bought)}",
        f"Skipped: {'None' if not skipped else ', '.join(skipped)}",
        f"Errors: {'None' if not errors else ', '.join(errors)}",
    ]
    for line in lines:
        logger.info(line)
    return lines
