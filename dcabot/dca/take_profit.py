"""Take-Profit Evaluator: liquidate down to the hold-back reserve once gain passes a threshold."""

import logging
from dataclasses import dataclass
from typing import Optional

from dcabot.models import (
    BotConfig,
    Decision,
    Duration,
    InstrumentSnapshot,
    OrderKind,
    OrderRequest,
    Quantity,
    Side,
    Unit,
)
from .pricing import floor_quantity, format_limit_price, round_limit_price, round_money

logger = logging.getLogger(__name__)

# Smallest dollar amount worth selling for notional sizing
DEFAULT_MIN_NOTIONAL_SELL = 1.0


@dataclass(frozen=True)
class TakeProfitEvaluation:
    decision: Decision
    order: Optional[OrderRequest] = None


def evaluate_take_profit(
    bot: BotConfig,
    snapshot: InstrumentSnapshot,
    min_notional_sell: float = DEFAULT_MIN_NOTIONAL_SELL,
    duration: Duration = Duration.DAY_EXT,
) -> Optional[TakeProfitEvaluation]:
    """
    Decide whether to sell everything above the reserve.

    Returns None when take-profit is not configured for the bot. The sell is a
    limit order at the current market price with an extended duration so that it
    has the best chance to fill.
    """
    if not bot.take_profit_enabled:
        return None

    symbol = bot.symbol
    unit = bot.sizing.unit
    held = snapshot.held_shares if unit is Unit.SHARES else snapshot.market_value
    reserve = bot.hold_back or 0.0
    excess = held - reserve
    min_unit = 0.0 if unit is Unit.SHARES else min_notional_sell
    gain = snapshot.gain_percent
    threshold = bot.percent_take_profit

    values = {
        "gain_percent": gain,
        "percent_take_profit": threshold,
        "held": held,
        "reserve": reserve,
        "excess": excess,
        "min_sell_unit": min_unit,
        "current_price": snapshot.last_price,
    }

    if gain < threshold:
        decision = Decision(
            check="take_profit",
            met=False,
            message=f"{symbol} > Take-profit NOT met: gain<threshold: {gain:.2f}%<{threshold:.2f}%",
            values=values,
        )
        logger.debug(decision.message)
        return TakeProfitEvaluation(decision=decision)

    amount = floor_quantity(excess) if unit is Unit.SHARES else round_money(excess)
    if held <= reserve or excess <= min_unit or amount <= 0:
        decision = Decision(
            check="take_profit",
            met=False,
            message=(
                f"{symbol} > Take-profit reached ({gain:.2f}%>={threshold:.2f}%) but nothing to sell: "
                f"held {held:g}, reserve {reserve:g}"
            ),
            values=values,
        )
        logger.info(decision.message)
        return TakeProfitEvaluation(decision=decision)

    limit_price = round_limit_price(snapshot.last_price)
    order = OrderRequest(
        side=Side.SELL,
        symbol=symbol,
        size=Quantity(amount, unit),
        kind=OrderKind.LIMIT,
        limit_price=limit_price,
        duration=duration,
    )
    decision = Decision(
        check="take_profit",
        met=True,
        message=(
            f"{symbol} > Take-profit met: gain>=threshold: {gain:.2f}%>={threshold:.2f}%, "
            f"selling {order.size} at ${format_limit_price(limit_price)}"
        ),
        values=values,
    )
    logger.info(decision.message)
    return TakeProfitEvaluation(decision=decision, order=order)
