from __future__ import annotations

import unittest

from dcabot.dca.ledger import InstrumentLedger
from dcabot.errors import SessionExpiredError, TransientDataError
from tests.fake_broker import FakeBrokerageClient


class InstrumentLedgerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeBrokerageClient()
        self.ledger = InstrumentLedger(self.client)

    def test_refresh_builds_snapshot_from_quote_and_position(self) -> None:
        self.client.set_market("AAA", 25.0, held_shares=4, gain_percent=3.5, low_52=20, high_52=40)
        failed = self.ledger.refresh(["AAA"])

        self.assertEqual(failed, {})
        snapshot = self.ledger.get("AAA")
        self.assertEqual(snapshot.last_price, 25.0)
        self.assertEqual(snapshot.held_shares, 4)
        self.assertEqual(snapshot.market_value, 100.0)
        self.assertEqual(snapshot.gain_percent, 3.5)
        self.assertEqual((snapshot.low_52, snapshot.high_52), (20, 40))

    def test_refresh_quotes_each_symbol_once(self) -> None:
        self.client.set_market("AAA", 25.0, held_shares=4)
        self.ledger.refresh(["AAA"])

        quotes = [call for call in self.client.calls if call == ("get_quote", "AAA")]
        self.assertEqual(len(quotes), 1)
        self.assertEqual(self.client.position_prices, [("AAA", 25.0)])

    def test_missing_field_marks_symbol_unavailable(self) -> None:
        self.client.set_market("AAA", 25.0)
        self.client.quotes["BBB"] = 10.0  # quote but no position
        failed = self.ledger.refresh(["AAA", "BBB", "CCC"])

        self.assertEqual(set(failed), {"BBB", "CCC"})
        self.assertEqual(self.ledger.unavailable_reason("BBB"), "position fields missing")
        with self.assertRaises(TransientDataError) as ctx:
            self.ledger.get("BBB")
        self.assertEqual(ctx.exception.reason, "position fields missing")
        self.assertEqual(set(self.ledger.snapshots()), {"AAA"})

    def test_snapshots_do_not_survive_a_new_cycle(self) -> None:
        self.client.set_market("AAA", 25.0)
        self.ledger.refresh(["AAA"])
        self.ledger.begin_cycle()
        with self.assertRaises(TransientDataError) as ctx:
            self.ledger.get("AAA")
        self.assertEqual(ctx.exception.reason, "not refreshed this cycle")

    def test_failed_refresh_replaces_previous_snapshot(self) -> None:
        self.client.set_market("AAA", 25.0)
        self.ledger.refresh(["AAA"])
        del self.client.quotes["AAA"]
        self.ledger.refresh(["AAA"])
        with self.assertRaises(TransientDataError):
            self.ledger.get("AAA")

    def test_session_expiry_propagates(self) -> None:
        self.client.set_market("AAA", 25.0)
        self.client.expire_on.add(("get_position", "AAA"))
        with self.assertRaises(SessionExpiredError):
            self.ledger.refresh(["AAA"])


if __name__ == "__main__":
    unittest.main()
