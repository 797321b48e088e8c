"""Application configuration, read from the environment (and an optional .env file)."""

import os

from dotenv import load_dotenv

load_dotenv()


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# Trading mode: "demo" (orders are logged only), "manual" (confirm each order) or "live"
MODE = os.getenv("MODE", "demo").strip().lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

ROBINHOOD_USERNAME = os.getenv("ROBINHOOD_USERNAME", "")
ROBINHOOD_PASSWORD = os.getenv("ROBINHOOD_PASSWORD", "")
# Base32 TOTP secret of the authenticator app; empty to log in without MFA
ROBINHOOD_MFA_SECRET = os.getenv("ROBINHOOD_MFA_SECRET", "")

BOTS_FILE = os.getenv("BOTS_FILE", "bots.json")

RUN_INTERVAL_SECONDS = _get_float("RUN_INTERVAL_SECONDS", 30)
SYMBOL_DELAY_SECONDS = _get_float("SYMBOL_DELAY_SECONDS", 5)
API_MAX_RETRIES = int(_get_float("API_MAX_RETRIES", 3))
API_RETRY_DELAY_SECONDS = _get_float("API_RETRY_DELAY_SECONDS", 10)

LIMIT_BUY_THRESHOLD = _get_float("LIMIT_BUY_THRESHOLD", 0.99)
MIN_NOTIONAL_SELL = _get_float("MIN_NOTIONAL_SELL", 1.0)
ORDER_DURATION = os.getenv("ORDER_DURATION", "day_ext").strip().lower()

# "auto" logs back in unattended, "confirm" waits for the operator
REAUTH_POLICY = os.getenv("REAUTH_POLICY", "auto").strip().lower()

WEB_ENABLED = _get_bool("WEB_ENABLED", False)
WEB_HOST = os.getenv("WEB_HOST", "127.0.0.1")
WEB_PORT = int(_get_float("WEB_PORT", 5000))
