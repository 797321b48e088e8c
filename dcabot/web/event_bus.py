"""
Event Bus - in-process fan-out of DCA bot events to the dashboard.

The control loop publishes three kinds of events: 'order' (an acknowledged
order), 'state' (a loop state change) and 'cycle_complete' (a finished cycle
report). Each SSE client gets its own bounded queue; a client that stops reading
is dropped instead of blocking the loop.
"""

import itertools
import json
import logging
import queue
import threading
from collections import deque
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Tuple

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 50
REPLAYED_EVENTS = 10

_event_bus: Optional['EventBus'] = None
_event_bus_lock = threading.Lock()


class EventBus:
    """Keeps recent events and the latest loop status for the dashboard."""

    def __init__(self, max_events: int = 100):
        self._lock = threading.Lock()
        self._history: deque = deque(maxlen=max_events)
        self._queues: Dict[int, queue.Queue] = {}
        self._ids = itertools.count()
        self._status: Dict[str, Any] = {
            'mode': 'unknown',
            'running': False,
            'state': 'idle',
            'last_cycle': None,
            'last_report': None,
        }

    def publish(self, event_type: str, data: Dict):
        event = {'type': event_type, 'data': data, 'timestamp': datetime.now().isoformat()}
        with self._lock:
            self._history.append(event)
            stalled = []
            for sub_id, sub_queue in self._queues.items():
                try:
                    sub_queue.put_nowait(event)
                except queue.Full:
                    stalled.append(sub_id)
            for sub_id in stalled:
                logger.debug(f"Dropping stalled subscriber {sub_id}")
                self._queues.pop(sub_id)

    def subscribe(self) -> Tuple[int, queue.Queue]:
        with self._lock:
            sub_id = next(self._ids)
            self._queues[sub_id] = queue.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
            return sub_id, self._queues[sub_id]

    def unsubscribe(self, subscriber_id: int):
        with self._lock:
            self._queues.pop(subscriber_id, None)

    def get_event_stream(self, timeout: float = 30.0) -> Generator[str, None, None]:
        """Yield SSE frames: a replay of recent events, then live ones with keepalives."""
        sub_id, sub_queue = self.subscribe()
        try:
            for event in self.get_history(REPLAYED_EVENTS):
                yield f"data: {json.dumps(event)}\n\n"
            while True:
                try:
                    yield f"data: {json.dumps(sub_queue.get(timeout=timeout))}\n\n"
                except queue.Empty:
                    yield ": keepalive\n\n"
        finally:
            self.unsubscribe(sub_id)

    def get_history(self, count: int = 20) -> List[Dict]:
        with self._lock:
            return list(self._history)[-count:] if count > 0 else []

    def update_status(self, **kwargs):
        with self._lock:
            self._status.update(kwargs)

    def get_status(self) -> Dict:
        with self._lock:
            return dict(self._status)


def get_event_bus() -> EventBus:
    global _event_bus

    with _event_bus_lock:
        if _event_bus is None:
            _event_bus = EventBus()
        return _event_bus


def publish_order(ack_data: Dict):
    get_event_bus().publish('order', ack_data)


def publish_state(state: str):
    bus = get_event_bus()
    bus.update_status(state=state)
    bus.publish('state', {'state': state})


def publish_cycle_complete(report: Dict):
    bus = get_event_bus()
    bus.update_status(last_cycle=report.get('finished_at'), last_report=report)
    bus.publish('cycle_complete', report)
