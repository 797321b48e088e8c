import sys
import threading

from config import *
from dcabot.api.robinhood import RobinhoodClient
from dcabot.bot_config import load_bots
from dcabot.dca import DCABot, InstrumentLedger, SessionManager, build_reauthenticator
from dcabot.errors import FatalConfigError
from dcabot.models import Duration
from dcabot.utils import logger


# Build the DCA bot from configuration
def build_bot(bots, client):
    try:
        order_duration = Duration(ORDER_DURATION)
    except ValueError:
        raise FatalConfigError(f"Unknown ORDER_DURATION {ORDER_DURATION!r}")
    if not 0 < LIMIT_BUY_THRESHOLD <= 1:
        raise FatalConfigError(f"LIMIT_BUY_THRESHOLD must be in (0, 1], got {LIMIT_BUY_THRESHOLD}")

    session = SessionManager(client, build_reauthenticator(REAUTH_POLICY))
    return DCABot(
        bots,
        client,
        ledger=InstrumentLedger(client),
        session=session,
        limit_buy_threshold=LIMIT_BUY_THRESHOLD,
        min_notional_sell=MIN_NOTIONAL_SELL,
        order_duration=order_duration,
        symbol_delay=SYMBOL_DELAY_SECONDS,
        run_interval=RUN_INTERVAL_SECONDS,
    )


# Run the DCA bots until interrupted
def main():
    try:
        bots = load_bots(BOTS_FILE)
        client = RobinhoodClient()
        dca_bot = build_bot(bots, client)
    except FatalConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info("Login to Robinhood...")
    if not dca_bot.session.ensure():
        logger.error("Failed to login to Robinhood")
        return 1

    if WEB_ENABLED:
        from dcabot.web import set_trading_state, start_server_thread
        set_trading_state(mode=MODE, running=True, bots=bots)
        start_server_thread(host=WEB_HOST, port=WEB_PORT)

    stop_event = threading.Event()
    logger.info(f"Running DCA bot in {MODE} mode...")
    try:
        dca_bot.run(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        logger.warning("Interrupted, stopping the bot...")
    return 0


# Run the main function
if __name__ == '__main__':
    confirm = input(f"Are you sure you want to run the bot in {MODE} mode? (yes/no): ")
    if confirm.lower() != "yes":
        logger.warning("Exiting the bot...")
        sys.exit(0)
    sys.exit(main())
