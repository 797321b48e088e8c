from __future__ import annotations

import unittest

from dcabot.web import event_bus, server
from dcabot.web.event_bus import EventBus, get_event_bus, publish_cycle_complete, publish_order, publish_state
from tests.fake_broker import make_bot


class EventBusTests(unittest.TestCase):
    def test_history_is_bounded(self) -> None:
        bus = EventBus(max_events=3)
        for i in range(5):
            bus.publish("order", {"n": i})
        self.assertEqual([e["data"]["n"] for e in bus.get_history()], [2, 3, 4])
        self.assertEqual(len(bus.get_history(2)), 2)

    def test_subscriber_receives_events(self) -> None:
        bus = EventBus()
        sub_id, sub_queue = bus.subscribe()
        bus.publish("state", {"state": "ordering"})
        event = sub_queue.get_nowait()
        self.assertEqual(event["type"], "state")
        self.assertEqual(event["data"], {"state": "ordering"})
        bus.unsubscribe(sub_id)
        bus.publish("state", {"state": "idle"})
        self.assertTrue(sub_queue.empty())

    def test_stalled_subscriber_is_dropped(self) -> None:
        bus = EventBus()
        _, stalled = bus.subscribe()
        _, reader = bus.subscribe()
        for i in range(60):
            bus.publish("order", {"n": i})
            reader.get_nowait()
        self.assertEqual(stalled.qsize(), 50)
        self.assertEqual(stalled.get_nowait()["data"], {"n": 0})
        self.assertEqual(len(bus.get_history(100)), 60)


class DashboardTests(unittest.TestCase):
    def setUp(self) -> None:
        event_bus._event_bus = None
        server.set_trading_state(mode="demo", running=True, bots=[make_bot("SNAP")])
        self.client = server.create_app().test_client()

    def tearDown(self) -> None:
        event_bus._event_bus = None
        server.set_trading_state(mode="unknown", running=False, bots=[])

    def test_status_reports_loop_state(self) -> None:
        publish_state("evaluating_symbol")
        data = self.client.get("/api/status").get_json()
        self.assertEqual(data["mode"], "demo")
        self.assertTrue(data["running"])
        self.assertEqual(data["bot_count"], 1)
        self.assertEqual(data["state"], "evaluating_symbol")
        self.assertNotIn("last_report", data)

    def test_bots_are_listed(self) -> None:
        data = self.client.get("/api/bots").get_json()
        self.assertEqual(data["bots"][0]["symbol"], "SNAP")
        self.assertEqual(data["bots"][0]["sizing"], "shares")

    def test_cycle_report_available_after_cycle(self) -> None:
        self.assertEqual(self.client.get("/api/cycle").status_code, 404)

        report = {"started_at": "2026-01-02T10:00:00", "finished_at": "2026-01-02T10:00:05", "outcomes": []}
        publish_cycle_complete(report)
        response = self.client.get("/api/cycle")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["report"], report)
        self.assertEqual(get_event_bus().get_status()["last_cycle"], "2026-01-02T10:00:05")

    def test_history_endpoint_returns_recent_events(self) -> None:
        publish_order({"order_id": "demo", "symbol": "SNAP"})
        publish_order({"order_id": "demo", "symbol": "TSLA"})
        events = self.client.get("/api/history?count=1").get_json()["events"]
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["data"]["symbol"], "TSLA")


if __name__ == "__main__":
    unittest.main()
