import math
import time
from datetime import datetime

import pandas as pd
import pyotp
import robin_stocks.robinhood as rh
from pytz import timezone

from .client import BrokerageClient
from ..dca.pricing import floor_limit_price, floor_quantity, format_limit_price, round_money, round_quantity
from ..errors import OrderRejectedError, SessionExpiredError, TransientDataError
from ..models import Duration, OrderAck, OrderKind, OrderRequest, Position, Side, Unit
from ..utils import logger
from config import MODE, ROBINHOOD_USERNAME, ROBINHOOD_PASSWORD, ROBINHOOD_MFA_SECRET
from config import API_MAX_RETRIES, API_RETRY_DELAY_SECONDS

ET_TZ = timezone('US/Eastern')

# Refresh the token this many seconds before it expires
TOKEN_REFRESH_MARGIN_SECONDS = 300

# Open-order states that still count as pending
PENDING_ORDER_STATES = ("queued", "unconfirmed", "confirmed", "partially_filled")

# Response details that mean the token is gone
AUTH_FAILURE_DETAILS = (
    "Incorrect authentication credentials.",
    "Authentication credentials were not provided.",
    "Invalid token.",
)


# Run a Robinhood function with retries and delay between attempts (to handle rate limits)
def rh_run_with_retries(func, *args, max_retries=3, delay=60, **kwargs):
    for attempt in range(max_retries):
        result = func(*args, **kwargs)
        if result is not None:
            return result
        if attempt < max_retries - 1:  # Don't log on last attempt
            logger.warning(f"Robinhood API call {func.__name__} returned None, retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
            time.sleep(delay)
    return None


# Check if the market is open
def is_market_open():
    now = datetime.now(ET_TZ)
    if now.weekday() >= 5:
        return False
    market_open = now.replace(hour=9, minute=30, second=0, microsecond=0)
    market_close = now.replace(hour=16, minute=0, second=0, microsecond=0)
    return market_open <= now <= market_close


# Parse a numeric field, None if missing or not a number
def parse_float(value):
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


# Pick the trade price from a quote, preferring extended-hours trades outside regular hours
def extract_quote_price(quote):
    regular = parse_float(quote.get('last_trade_price'))
    if not is_market_open():
        extended = parse_float(quote.get('last_extended_hours_trade_price'))
        if extended:
            return extended
    return regular


# Compute the 52 week low/high from a year of daily bars
def range_from_historicals(historical_data):
    if not historical_data:
        return None, None
    history_df = pd.DataFrame(historical_data)
    if "low_price" not in history_df or "high_price" not in history_df:
        return None, None
    lows = pd.to_numeric(history_df["low_price"], errors="coerce").dropna()
    highs = pd.to_numeric(history_df["high_price"], errors="coerce").dropna()
    if lows.empty or highs.empty:
        return None, None
    return round_money(lows.min(), 4), round_money(highs.max(), 4)


# Map an order duration to robin_stocks timeInForce/extendedHours arguments
def order_time_in_force(duration):
    time_in_force = "gtc" if duration in (Duration.GTC, Duration.GTC_EXT) else "gfd"
    return time_in_force, duration.extended_hours


# Share quantity for an order request (notional sizes converted at the limit price)
def order_share_quantity(request):
    if request.size.unit is Unit.SHARES:
        return round_quantity(request.size.amount)
    shares = request.size.amount / request.limit_price
    if request.side is Side.SELL:
        return floor_quantity(shares)
    return round_quantity(shares)


class RobinhoodClient(BrokerageClient):
    """Brokerage client backed by the Robinhood API through robin_stocks."""

    def __init__(
        self,
        username=ROBINHOOD_USERNAME,
        password=ROBINHOOD_PASSWORD,
        mfa_secret=ROBINHOOD_MFA_SECRET,
        mode=MODE,
        max_retries=API_MAX_RETRIES,
        retry_delay=API_RETRY_DELAY_SECONDS,
        confirm=input,
    ):
        self.username = username
        self.password = password
        self.mfa_secret = mfa_secret
        self.mode = mode
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.confirm = confirm
        self.token_expiry = 0
        self._instrument_ids = {}

    # Main login function
    def authenticate(self):
        try:
            if self.mfa_secret:
                logger.debug("Attempting to login to Robinhood with MFA...")
                mfa_code = pyotp.TOTP(self.mfa_secret).now()
                login_resp = rh.login(self.username, self.password, mfa_code=mfa_code)
            else:
                logger.debug("Attempting to login to Robinhood without MFA...")
                login_resp = rh.login(self.username, self.password)

            if not login_resp:
                logger.error("Login failed - no response received")
                return False
            if 'access_token' in login_resp and 'expires_in' in login_resp:
                if 'detail' in login_resp:
                    logger.debug(f"Login info: {login_resp['detail']}")
                self.token_expiry = time.time() + login_resp['expires_in']
                logger.info(f"Successfully logged in. Token expires in {login_resp['expires_in']} seconds")
                return True
            if 'detail' in login_resp:
                logger.error(f"Login failed - {login_resp['detail']}")
                return False
            logger.error(f"Login failed - unexpected response: {login_resp}")
            return False

        except Exception as e:
            logger.error(f"An error occurred during Robinhood login: {e}")
            return False

    def is_session_valid(self):
        if not rh.helper.LOGGED_IN:
            return False
        return time.time() < self.token_expiry - TOKEN_REFRESH_MARGIN_SECONDS

    # Run a data call, translating missing responses into session or data errors
    def _call(self, symbol, what, func, *args, **kwargs):
        if not self.is_session_valid():
            raise SessionExpiredError(f"session not valid while getting {what} for {symbol}")
        try:
            resp = rh_run_with_retries(func, *args, max_retries=self.max_retries, delay=self.retry_delay, **kwargs)
        except Exception as e:
            if "logged in" in str(e):
                raise SessionExpiredError(str(e)) from e
            raise TransientDataError(symbol, f"error getting {what}: {e}") from e

        if isinstance(resp, dict) and resp.get('detail') in AUTH_FAILURE_DETAILS:
            self.token_expiry = 0
            raise SessionExpiredError(resp['detail'])
        if resp is None:
            self._check_session_alive()
            raise TransientDataError(symbol, f"error getting {what}: no response")
        return resp

    # A failed call may mean the token was revoked elsewhere
    def _check_session_alive(self):
        try:
            profile = rh.profiles.load_account_profile()
        except Exception as e:
            self.token_expiry = 0
            raise SessionExpiredError(str(e)) from e
        if profile is None or (isinstance(profile, dict) and profile.get('detail') in AUTH_FAILURE_DETAILS):
            self.token_expiry = 0
            raise SessionExpiredError("account profile unavailable, session was closed")

    # Get current quote price for a stock by symbol
    def get_quote(self, symbol):
        quote = self._call(symbol, "quote", rh.stocks.get_stock_quote_by_symbol, symbol)
        price = extract_quote_price(quote)
        if not price:
            raise TransientDataError(symbol, "quote has no trade price")
        return price

    # Get position, gain and 52 week range for a stock by symbol, valued at the given quote price
    def get_position(self, symbol, price):
        stock_id = self._instrument_id(symbol)
        positions = self._call(symbol, "positions", rh.account.get_open_stock_positions)
        quantity, average_buy_price = 0.0, None
        for position in positions:
            if not self._matches_instrument(position, symbol, stock_id):
                continue
            quantity = parse_float(position.get('quantity'))
            average_buy_price = parse_float(position.get('average_buy_price'))
            if quantity is None or average_buy_price is None:
                raise TransientDataError(symbol, "position fields missing")
            break

        if quantity and average_buy_price:
            gain_percent = round_money((price - average_buy_price) / average_buy_price * 100)
        else:
            gain_percent = 0.0

        low_52, high_52 = self._get_52_week_range(symbol)
        return Position(
            held_shares=round_quantity(quantity),
            gain_percent=gain_percent,
            low_52=low_52,
            high_52=high_52,
            market_value=round_money(quantity * price),
        )

    def _get_52_week_range(self, symbol):
        fundamentals = self._call(symbol, "fundamentals", rh.stocks.get_fundamentals, symbol, info=None)
        fundamentals = fundamentals[0] if fundamentals else None
        if fundamentals:
            low_52 = parse_float(fundamentals.get('low_52_weeks'))
            high_52 = parse_float(fundamentals.get('high_52_weeks'))
            if low_52 is not None and high_52 is not None:
                return low_52, high_52

        logger.debug(f"{symbol} > No 52 week range in fundamentals, using daily historicals")
        historical_data = self._call(
            symbol, "historical data", rh.stocks.get_stock_historicals, symbol, interval="day", span="year"
        )
        low_52, high_52 = range_from_historicals(historical_data)
        if low_52 is None or high_52 is None:
            raise TransientDataError(symbol, "52 week range unavailable")
        return low_52, high_52

    # Instrument ids never change, so they are cached for the process lifetime
    def _instrument_id(self, symbol):
        if symbol not in self._instrument_ids:
            self._instrument_ids[symbol] = self._call(symbol, "instrument id", rh.helper.id_for_stock, symbol)
        return self._instrument_ids[symbol]

    @staticmethod
    def _matches_instrument(record, symbol, stock_id):
        if record.get('symbol'):
            return record['symbol'].upper() == symbol.upper()
        if record.get('instrument_id'):
            return record['instrument_id'] == stock_id
        return str(record.get('instrument', '')).rstrip('/').endswith(stock_id)

    # Check for an open buy limit order on the symbol
    def has_pending_buy_limit_order(self, symbol):
        stock_id = self._instrument_id(symbol)
        orders = self._call(symbol, "open orders", rh.orders.get_all_open_stock_orders)
        for order in orders:
            if order.get('side') != 'buy' or order.get('type') != 'limit':
                continue
            if order.get('state') not in PENDING_ORDER_STATES:
                continue
            if self._matches_instrument(order, symbol, stock_id):
                return True
        return False

    # Submit an order, honoring demo and manual modes
    def place_order(self, request):
        symbol = request.symbol
        if self.mode == "demo":
            return OrderAck(order_id="demo", request=request, state="demo", demo=True)

        if self.mode == "manual":
            confirm = self.confirm(f"Confirm {request.describe()}? (yes/no): ")
            if confirm.lower() != "yes":
                raise OrderRejectedError(symbol, "cancelled by user")

        if not self.is_session_valid():
            raise SessionExpiredError(f"session not valid while placing order for {symbol}")

        time_in_force, extended_hours = order_time_in_force(request.duration)
        # No retries for orders: a lost response must not turn into a duplicate order
        if request.kind is OrderKind.LIMIT:
            quantity = order_share_quantity(request)
            if request.side is Side.BUY:
                limit_price = floor_limit_price(request.limit_price)
            else:
                limit_price = float(format_limit_price(request.limit_price))
            place = rh.orders.order_buy_limit if request.side is Side.BUY else rh.orders.order_sell_limit
            resp = place(symbol, quantity, limit_price, timeInForce=time_in_force, extendedHours=extended_hours)
        elif request.size.unit is Unit.NOTIONAL:
            place = rh.orders.order_buy_fractional_by_price if request.side is Side.BUY else rh.orders.order_sell_fractional_by_price
            resp = place(symbol, round_money(request.size.amount), timeInForce=time_in_force, extendedHours=extended_hours)
        else:
            place = rh.orders.order_buy_market if request.side is Side.BUY else rh.orders.order_sell_market
            resp = place(symbol, round_quantity(request.size.amount), timeInForce=time_in_force, extendedHours=extended_hours)

        if resp and 'id' in resp:
            return OrderAck(order_id=resp['id'], request=request, state=resp.get('state', 'queued'))
        if isinstance(resp, dict) and resp.get('detail') in AUTH_FAILURE_DETAILS:
            self.token_expiry = 0
            raise SessionExpiredError(resp['detail'])
        details = resp.get('detail', resp) if resp else "No response"
        raise OrderRejectedError(symbol, str(details))
