"""
Range Filter: skip buying while the price sits high in its 52-week window.

The position within the window runs from 0 (at the 52-week low) to 100 (at the
52-week high). Lower thresholds only allow buying closer to the low.
"""

import logging
from typing import Optional

from dcabot.models import BotConfig, Decision, InstrumentSnapshot

logger = logging.getLogger(__name__)


def range_position(price: float, low_52: float, high_52: float) -> Optional[float]:
    """Percentage position of price inside the 52-week range, None when the range is empty."""
    if high_52 == low_52:
        return None
    return 100 * (price - low_52) / (high_52 - low_52)


def evaluate_range_filter(
    symbol: str,
    threshold: float,
    price: float,
    low_52: float,
    high_52: float,
) -> Decision:
    """
    Check the oversold gate.

    The returned decision is ``met`` when buying is allowed. An empty 52-week
    range leaves the filter inactive.
    """
    values = {
        "current_price": price,
        "low_52": low_52,
        "high_52": high_52,
        "percent_52_week_below": threshold,
    }
    position = range_position(price, low_52, high_52)
    if position is None:
        decision = Decision(
            check="range_filter",
            met=True,
            message=f"{symbol} > 52 week range is empty (low=high={low_52}), range filter inactive",
            values=values,
        )
        logger.warning(decision.message)
        return decision

    values["percent_52_week"] = position
    if position > threshold:
        decision = Decision(
            check="range_filter",
            met=False,
            message=f"{symbol} > Skipping buy because percent52Week>percent52WeekBelow: {position:.1f}>{threshold:.2f}",
            values=values,
        )
        logger.info(decision.message)
        return decision

    decision = Decision(
        check="range_filter",
        met=True,
        message=f"{symbol} > 52 week percentage is {position:.1f}% (limit {threshold:.2f}%)",
        values=values,
    )
    logger.info(decision.message)
    return decision


def evaluate_bot_range_filter(bot: BotConfig, snapshot: InstrumentSnapshot) -> Optional[Decision]:
    """Range filter for a bot, None when the bot has no percent_52_week_below."""
    if not bot.range_filter_enabled:
        return None
    return evaluate_range_filter(
        bot.symbol,
        bot.percent_52_week_below,
        snapshot.last_price,
        snapshot.low_52,
        snapshot.high_52,
    )
