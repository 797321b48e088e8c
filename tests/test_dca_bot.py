from __future__ import annotations

import threading
import unittest

from dcabot.dca.bot import DCABot, LoopState, log_report, run_cycle
from dcabot.dca.ledger import InstrumentLedger
from dcabot.dca.session import ConfirmBeforeReauthenticate, SessionManager
from dcabot.models import OutcomeStatus, Side
from tests.fake_broker import FakeBrokerageClient, make_bot


class DCABotCycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeBrokerageClient()
        self.sleeps: list[float] = []

    def _bot(self, bots, **kwargs) -> DCABot:
        return DCABot(bots, self.client, symbol_delay=0.5, sleep=self.sleeps.append, **kwargs)

    def test_buy_placed_when_price_below_trigger(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5)
        report = self._bot([make_bot("AAA")]).run_cycle()

        outcome = report.outcomes["AAA"]
        self.assertEqual(outcome.status, OutcomeStatus.BOUGHT)
        order = self.client.orders[0]
        self.assertEqual((order.side, order.size.amount, order.limit_price), (Side.BUY, 5, 89.0))
        self.assertEqual(outcome.bought.order_id, "order-1")
        self.assertIsNotNone(report.finished_at)

    def test_condition_not_met_is_no_action_with_compared_values(self) -> None:
        self.client.set_market("AAA", 95, held_shares=15)
        report = self._bot([make_bot("AAA")]).run_cycle()

        outcome = report.outcomes["AAA"]
        self.assertEqual(outcome.status, OutcomeStatus.NO_ACTION)
        buy_decision = outcome.decisions[-1]
        self.assertEqual(buy_decision.check, "buy_schedule")
        self.assertAlmostEqual(buy_decision.values["trigger_price"], 89.1)
        self.assertEqual(buy_decision.values["current_price"], 95)
        self.assertEqual(self.client.orders, [])

    def test_pending_buy_limit_prevents_second_buy(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5)
        dca_bot = self._bot([make_bot("AAA")])

        first = dca_bot.run_cycle()
        second = dca_bot.run_cycle()
        third = dca_bot.run_cycle()

        self.assertEqual(first.outcomes["AAA"].status, OutcomeStatus.BOUGHT)
        for report in (second, third):
            self.assertEqual(report.outcomes["AAA"].status, OutcomeStatus.SKIPPED)
            self.assertEqual(report.outcomes["AAA"].skip_reason, "pending buy limit order")
        self.assertEqual(len([o for o in self.client.orders if o.side is Side.BUY]), 1)

        # Once the order clears, buying resumes
        self.client.pending_buys.clear()
        fourth = dca_bot.run_cycle()
        self.assertEqual(fourth.outcomes["AAA"].status, OutcomeStatus.BOUGHT)

    def test_take_profit_and_buy_in_same_cycle(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5, gain_percent=12)
        report = self._bot([make_bot("AAA", percent_take_profit=10, hold_back=1)]).run_cycle()

        outcome = report.outcomes["AAA"]
        self.assertEqual(outcome.status, OutcomeStatus.BOUGHT_AND_SOLD)
        sides = [o.side for o in self.client.orders]
        self.assertEqual(sides, [Side.SELL, Side.BUY])
        self.assertEqual(self.client.orders[0].size.amount, 4)

    def test_range_filter_suppresses_buy_but_not_take_profit(self) -> None:
        self.client.set_market("AAA", 140, held_shares=20, gain_percent=12, low_52=50, high_52=150)
        bot = make_bot("AAA", start_price=200, percent_take_profit=10, hold_back=5, percent_52_week_below=60)
        report = self._bot([bot]).run_cycle()

        outcome = report.outcomes["AAA"]
        self.assertEqual(outcome.status, OutcomeStatus.SOLD)
        self.assertTrue(outcome.skip_reason.startswith("range filter"))
        self.assertEqual([o.side for o in self.client.orders], [Side.SELL])
        self.assertEqual(self.client.orders[0].size.amount, 15)
        self.assertNotIn(("has_pending_buy_limit_order", "AAA"), self.client.calls)

    def test_unavailable_symbol_does_not_block_others(self) -> None:
        self.client.set_market("BBB", 89, held_shares=5)
        report = self._bot([make_bot("AAA"), make_bot("BBB")]).run_cycle()

        self.assertEqual(report.outcomes["AAA"].status, OutcomeStatus.SKIPPED)
        self.assertIn("data unavailable", report.outcomes["AAA"].skip_reason)
        self.assertEqual(report.outcomes["BBB"].status, OutcomeStatus.BOUGHT)

    def test_rejected_order_is_recorded_and_cycle_continues(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5)
        self.client.set_market("BBB", 89, held_shares=5)
        self.client.rejections[("AAA", Side.BUY)] = "market closed"
        report = self._bot([make_bot("AAA"), make_bot("BBB")]).run_cycle()

        self.assertEqual(report.outcomes["AAA"].status, OutcomeStatus.ERROR)
        self.assertEqual(report.outcomes["AAA"].error_kind, "order_rejected")
        self.assertEqual(report.outcomes["AAA"].error_detail, "market closed")
        self.assertEqual(report.outcomes["BBB"].status, OutcomeStatus.BOUGHT)
        self.assertEqual([e.symbol for e in report.errors()], ["AAA"])

    def test_rejected_sell_still_evaluates_buy(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5, gain_percent=20)
        self.client.rejections[("AAA", Side.SELL)] = "day trade restriction"
        report = self._bot([make_bot("AAA", percent_take_profit=10)]).run_cycle()

        outcome = report.outcomes["AAA"]
        self.assertEqual(outcome.error_kind, "order_rejected")
        self.assertIsNotNone(outcome.bought)
        self.assertEqual([o.side for o in self.client.orders], [Side.BUY])
        self.assertEqual(outcome.status, OutcomeStatus.ERROR)
        self.assertEqual(outcome.to_dict()["orders_placed"], ["buy"])
        errors_line = log_report(report)[3]
        self.assertEqual(errors_line, "Errors: AAA (order_rejected: day trade restriction; placed buy 5 share(s))")

    def test_session_expiry_abandons_symbol_and_resumes_with_next(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5, gain_percent=20)
        self.client.set_market("BBB", 89, held_shares=5)
        self.client.expire_on.add(("has_pending_buy_limit_order", "AAA"))
        dca_bot = self._bot([make_bot("AAA", percent_take_profit=10), make_bot("BBB")])
        report = dca_bot.run_cycle()

        aaa = report.outcomes["AAA"]
        self.assertEqual(aaa.status, OutcomeStatus.ERROR)
        self.assertEqual(aaa.error_kind, "session_expired")
        # The sell placed before the expiry stands, the buy was abandoned
        self.assertIsNotNone(aaa.sold)
        self.assertIsNone(aaa.bought)
        self.assertEqual(self.client.login_count, 1)
        self.assertEqual(report.session_recoveries, 1)
        self.assertEqual(report.outcomes["BBB"].status, OutcomeStatus.BOUGHT)
        self.assertEqual(dca_bot.state, LoopState.IDLE)

    def test_failed_recovery_skips_remaining_symbols(self) -> None:
        for symbol in ("AAA", "BBB", "CCC"):
            self.client.set_market(symbol, 89, held_shares=5)
        self.client.expire_on.add(("get_quote", "AAA"))
        session = SessionManager(self.client, ConfirmBeforeReauthenticate(prompt=lambda _: "no"))
        report = self._bot([make_bot("AAA"), make_bot("BBB"), make_bot("CCC")], session=session).run_cycle()

        self.assertEqual(report.outcomes["AAA"].error_kind, "session_expired")
        self.assertEqual(report.outcomes["BBB"].skip_reason, "session unavailable")
        self.assertEqual(report.outcomes["CCC"].skip_reason, "session unavailable")
        self.assertEqual(self.client.orders, [])

    def test_invalid_session_at_cycle_start_logs_in_first(self) -> None:
        self.client.session_valid = False
        self.client.set_market("AAA", 89, held_shares=5)
        report = self._bot([make_bot("AAA")]).run_cycle()
        self.assertEqual(self.client.login_count, 1)
        self.assertEqual(report.outcomes["AAA"].status, OutcomeStatus.BOUGHT)

    def test_no_login_possible_skips_whole_cycle(self) -> None:
        self.client.session_valid = False
        self.client.auth_results = [False, False, False]
        report = self._bot([make_bot("AAA"), make_bot("BBB")]).run_cycle()
        self.assertEqual([o.skip_reason for o in report.outcomes.values()], ["session unavailable"] * 2)
        self.assertEqual(self.client.calls, [])

    def test_unexpected_error_is_isolated(self) -> None:
        self.client.set_market("BBB", 89, held_shares=5)

        def broken_quote(symbol: str) -> float:
            if symbol == "AAA":
                raise RuntimeError("boom")
            return 89.0

        self.client.get_quote = broken_quote
        self.client.positions["AAA"] = self.client.positions["BBB"]
        report = self._bot([make_bot("AAA"), make_bot("BBB")]).run_cycle()
        self.assertEqual(report.outcomes["AAA"].error_kind, "unexpected")
        self.assertEqual(report.outcomes["AAA"].error_detail, "boom")
        self.assertEqual(report.outcomes["BBB"].status, OutcomeStatus.BOUGHT)

    def test_bots_evaluated_in_declaration_order_with_delay_between(self) -> None:
        for symbol in ("CCC", "AAA", "BBB"):
            self.client.set_market(symbol, 95, held_shares=15)
        bots = [make_bot("CCC"), make_bot("AAA"), make_bot("BBB")]
        report = self._bot(bots).run_cycle()

        self.assertEqual(list(report.outcomes), ["CCC", "AAA", "BBB"])
        quoted = [symbol for method, symbol in self.client.calls if method == "get_quote"]
        self.assertEqual(quoted, ["CCC", "AAA", "BBB"])
        self.assertEqual(self.sleeps, [0.5, 0.5, 0.5])

    def test_stop_is_honored_between_symbols(self) -> None:
        for symbol in ("AAA", "BBB"):
            self.client.set_market(symbol, 95, held_shares=15)
        stop_event = threading.Event()
        dca_bot = DCABot(
            [make_bot("AAA"), make_bot("BBB")],
            self.client,
            symbol_delay=0,
            sleep=lambda _: stop_event.set(),
        )
        report = dca_bot.run_cycle(stop_event)

        self.assertTrue(report.cancelled)
        self.assertEqual(list(report.outcomes), ["AAA"])

    def test_run_stops_when_event_is_set(self) -> None:
        self.client.set_market("AAA", 95, held_shares=15)
        stop_event = threading.Event()
        cycles = []
        dca_bot = DCABot([make_bot("AAA")], self.client, symbol_delay=0, sleep=lambda _: None, run_interval=0)
        original = dca_bot.run_cycle

        def counting_cycle(event):
            report = original(event)
            cycles.append(report)
            if len(cycles) == 2:
                event.set()
            return report

        dca_bot.run_cycle = counting_cycle
        dca_bot.run(stop_event)
        self.assertEqual(len(cycles), 2)

    def test_run_cycle_function_uses_given_ledger(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5)
        ledger = InstrumentLedger(self.client)
        report = run_cycle([make_bot("AAA")], ledger, self.client, symbol_delay=0, sleep=lambda _: None)
        self.assertEqual(report.outcomes["AAA"].status, OutcomeStatus.BOUGHT)
        self.assertIn("AAA", ledger.snapshots())

    def test_log_report_summarises_cycle(self) -> None:
        self.client.set_market("AAA", 89, held_shares=5)
        report = self._bot([make_bot("AAA"), make_bot("ZZZ")]).run_cycle()
        lines = log_report(report)
        self.assertEqual(lines[0], "Sold: None")
        self.assertEqual(lines[1], "Bought: AAA (5 share(s))")
        self.assertTrue(lines[2].startswith("Skipped: ZZZ (data unavailable"))
        self.assertEqual(lines[3], "Errors: None")


if __name__ == "__main__":
    unittest.main()
