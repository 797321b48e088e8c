"""
Web Dashboard Module - read-only view of the DCA bot.

Features:
- Loop status and configured bots
- Last cycle report
- Live order and cycle events over SSE
"""

from .server import create_app, start_server_thread, set_trading_state
from .event_bus import EventBus, get_event_bus

__all__ = [
    'create_app',
    'start_server_thread',
    'set_trading_state',
    'EventBus',
    'get_event_bus',
]
