"""
Flask Web Server - read-only status dashboard for the DCA bot.

Provides:
- API endpoints for loop status, the configured bots and the last cycle report
- SSE endpoint for live order/cycle events
"""

import logging
import threading
from dataclasses import asdict
from typing import Dict

from flask import Flask, Response, jsonify, request

from .event_bus import get_event_bus

logger = logging.getLogger(__name__)

# Shared state set by the host process
_trading_state: Dict = {
    'mode': 'unknown',
    'running': False,
    'bots': [],
}
_state_lock = threading.Lock()


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    register_routes(app)
    return app


def register_routes(app: Flask):
    """Register all routes on the Flask app."""

    @app.route('/')
    @app.route('/api/status')
    def api_status():
        """Get current loop status."""
        with _state_lock:
            status = {
                'mode': _trading_state.get('mode', 'unknown'),
                'running': _trading_state.get('running', False),
                'bot_count': len(_trading_state.get('bots', [])),
            }

        event_status = get_event_bus().get_status()
        event_status.pop('last_report', None)
        status.update(event_status)
        return jsonify(status)

    @app.route('/api/bots')
    def api_bots():
        """Get the configured bots in evaluation order."""
        with _state_lock:
            bots = [asdict(bot) for bot in _trading_state.get('bots', [])]
        return jsonify({'bots': bots})

    @app.route('/api/cycle')
    def api_cycle():
        """Get the report of the last finished cycle."""
        report = get_event_bus().get_status().get('last_report')
        if report is None:
            return jsonify({'report': None}), 404
        return jsonify({'report': report})

    @app.route('/api/history')
    def api_history():
        """Get recent event history."""
        count = request.args.get('count', 20, type=int)
        events = get_event_bus().get_history(count)
        return jsonify({'events': events})

    @app.route('/api/stream')
    def api_stream():
        """SSE endpoint for live updates."""
        def generate():
            for event in get_event_bus().get_event_stream():
                yield event

        return Response(
            generate(),
            mimetype='text/event-stream',
            headers={
                'Cache-Control': 'no-cache',
                'Connection': 'keep-alive',
                'X-Accel-Buffering': 'no',
            }
        )


def set_trading_state(**kwargs):
    """Set trading state from the host process."""
    with _state_lock:
        _trading_state.update(kwargs)


def start_server_thread(
    host: str = '127.0.0.1',
    port: int = 5000,
) -> threading.Thread:
    """
    Start the server in a background thread.

    Args:
        host: Host to bind to
        port: Port to bind to

    Returns:
        The server thread
    """
    def run():
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        app = create_app()
        app.run(host=host, port=port, debug=False, threaded=True, use_reloader=False)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    logger.info(f"Web dashboard started at http://{host}:{port}")
    return thread
