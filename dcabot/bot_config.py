"""
Bot configuration loader.

Bots are declared in a JSON file, in the order they run:

    {
      "bots": [
        {
          "symbol": "SNAP",
          "start_price": 12.50,
          "sizing": "shares",
          "percent_take_profit": 10,
          "hold_back": 1,
          "percent_52_week_below": 60,
          "buys": [
            {"size": 10, "percent_drop": 0},
            {"size": 10, "percent_drop": 10}
          ]
        }
      ]
    }

The attribute names of the older XML bot files (startPrice, percentTakeProfit,
amountToHold, percent52WeekBelow, useStartPriceAmounts, buy amount/shares and
percentDrop) are accepted as aliases. Any problem raises FatalConfigError before
the loop starts.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import FatalConfigError
from .models import BotConfig, BuyTier, SizingMode

logger = logging.getLogger(__name__)

BOT_ALIASES = {
    "startPrice": "start_price",
    "percentTakeProfit": "percent_take_profit",
    "amountToHold": "hold_back",
    "percent52WeekBelow": "percent_52_week_below",
}
TIER_ALIASES = {
    "amount": "size",
    "shares": "size",
    "percentDrop": "percent_drop",
}


def _normalize(data: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    return {aliases.get(key, key): value for key, value in data.items()}


def _number(value: Any, field: str, where: str, required: bool = True) -> Optional[float]:
    if value is None or value == "":
        if required:
            raise FatalConfigError(f"{where}: missing required '{field}'")
        return None
    if isinstance(value, bool):
        raise FatalConfigError(f"{where}: '{field}' must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise FatalConfigError(f"{where}: '{field}' must be a number, got {value!r}")


def _sizing(raw: Dict[str, Any], where: str) -> SizingMode:
    if raw.get("useStartPriceAmounts") in (True, "true"):
        return SizingMode.NOTIONAL_AT_START_PRICE
    value = raw.get("sizing", SizingMode.SHARES.value)
    try:
        return SizingMode(value)
    except ValueError:
        choices = ", ".join(mode.value for mode in SizingMode)
        raise FatalConfigError(f"{where}: unknown sizing {value!r} (expected one of {choices})")


def parse_tier(raw: Dict[str, Any], where: str) -> BuyTier:
    if not isinstance(raw, dict):
        raise FatalConfigError(f"{where}: buy tier must be an object")
    data = _normalize(raw, TIER_ALIASES)
    size = _number(data.get("size"), "size", where)
    percent_drop = _number(data.get("percent_drop"), "percent_drop", where)
    if size < 0:
        raise FatalConfigError(f"{where}: size must not be negative")
    if percent_drop >= 100:
        raise FatalConfigError(f"{where}: percent_drop must be below 100")
    return BuyTier(size=size, percent_drop=percent_drop)


def parse_bot(raw: Dict[str, Any], index: int) -> BotConfig:
    """Validate one bot entry."""
    if not isinstance(raw, dict):
        raise FatalConfigError(f"bot #{index}: must be an object")
    data = _normalize(raw, BOT_ALIASES)

    symbol = str(data.get("symbol", "")).strip().upper()
    if not symbol:
        raise FatalConfigError(f"bot #{index}: missing required 'symbol'")
    where = f"bot {symbol}"

    start_price = _number(data.get("start_price"), "start_price", where)
    if start_price <= 0:
        raise FatalConfigError(f"{where}: start_price must be positive")

    percent_take_profit = _number(data.get("percent_take_profit"), "percent_take_profit", where, required=False)
    hold_back = _number(data.get("hold_back"), "hold_back", where, required=False) or 0.0
    if hold_back < 0:
        raise FatalConfigError(f"{where}: hold_back must not be negative")

    percent_52_week_below = _number(
        data.get("percent_52_week_below"), "percent_52_week_below", where, required=False
    )
    if percent_52_week_below is not None and not 0 <= percent_52_week_below <= 100:
        raise FatalConfigError(f"{where}: percent_52_week_below must be between 0 and 100")

    buys = data.get("buys", [])
    if not isinstance(buys, list):
        raise FatalConfigError(f"{where}: 'buys' must be a list")
    tiers = tuple(parse_tier(tier, f"{where} buy #{i}") for i, tier in enumerate(buys))

    if not tiers and percent_take_profit is None:
        logger.warning(f"{where} has neither buy tiers nor take-profit, it will never trade")

    return BotConfig(
        symbol=symbol,
        start_price=start_price,
        buys=tiers,
        sizing=_sizing(data, where),
        percent_take_profit=percent_take_profit,
        hold_back=hold_back,
        percent_52_week_below=percent_52_week_below,
    )


def parse_bots(data: Union[Dict[str, Any], List[Any]]) -> List[BotConfig]:
    """
    Validate a decoded bot file (an object with "bots" or a bare list).

    An object may also carry "defaults": attributes applied to every bot that
    does not set them itself (the symbol and buy tiers are never inherited).
    """
    defaults: Dict[str, Any] = {}
    if isinstance(data, dict):
        entries = data.get("bots")
        defaults = data.get("defaults") or {}
        if not isinstance(defaults, dict):
            raise FatalConfigError("'defaults' must be an object")
        defaults = {k: v for k, v in defaults.items() if k not in ("symbol", "buys")}
    else:
        entries = data
    if not isinstance(entries, list) or not entries:
        raise FatalConfigError("bot configuration must contain a non-empty 'bots' list")

    bots = [
        parse_bot({**defaults, **entry} if isinstance(entry, dict) else entry, i)
        for i, entry in enumerate(entries)
    ]
    seen = set()
    for bot in bots:
        if bot.symbol in seen:
            raise FatalConfigError(f"bot {bot.symbol} is declared more than once")
        seen.add(bot.symbol)
    return bots


def load_bots(path: Union[str, Path]) -> List[BotConfig]:
    """
    Load and validate the bot file.

    Raises:
        FatalConfigError: file missing, not JSON, or any bot invalid
    """
    path = Path(path)
    if not path.exists():
        raise FatalConfigError(f"bot configuration file not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise FatalConfigError(f"bot configuration file {path} is not valid JSON: {e}") from e

    bots = parse_bots(data)
    logger.info(f"Loaded {len(bots)} bot(s) from {path}: {', '.join(b.symbol for b in bots)}")
    return bots
