"""
Buy Schedule Evaluator.

A bot's buy tiers are consumed cumulatively against the size already held. The
first tier that is not fully covered is the active tier; its deficit is what is
still missing to complete it. A discounted limit buy for the deficit is placed
once the price falls far enough below the tier's scheduled price.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from dcabot.models import (
    BotConfig,
    BuyTier,
    Decision,
    Duration,
    InstrumentSnapshot,
    OrderKind,
    OrderRequest,
    Quantity,
    Side,
    SizingMode,
)
from .pricing import floor_limit_price, format_limit_price, round_money, round_quantity

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_BUY_THRESHOLD = 0.99


@dataclass(frozen=True)
class ActiveTier:
    index: int
    tier: BuyTier
    deficit: float


@dataclass(frozen=True)
class BuyEvaluation:
    decision: Decision
    order: Optional[OrderRequest] = None
    active: Optional[ActiveTier] = None


def find_active_tier(tiers: Sequence[BuyTier], held: float) -> Optional[ActiveTier]:
    """
    Locate the first tier whose cumulative size exceeds the held size.

    Returns None when the held size already covers the whole schedule.
    """
    running = round_quantity(held)
    for index, tier in enumerate(tiers):
        running = round_quantity(running - tier.size)
        if running < 0:
            return ActiveTier(index=index, tier=tier, deficit=-running)
    return None


def held_size(bot: BotConfig, snapshot: InstrumentSnapshot) -> float:
    """Held size expressed in the bot's tier unit."""
    if bot.sizing is SizingMode.SHARES:
        return snapshot.held_shares
    if bot.sizing is SizingMode.NOTIONAL_AT_START_PRICE:
        return snapshot.held_shares * bot.start_price
    return snapshot.market_value


def scheduled_price(start_price: float, percent_drop: float) -> float:
    return start_price * (1 - percent_drop / 100)


def _order_size(bot: BotConfig, deficit: float, limit_price: float) -> Quantity:
    if bot.sizing is SizingMode.SHARES:
        return Quantity(round_quantity(deficit), bot.sizing.unit)
    if bot.sizing is SizingMode.NOTIONAL_AT_START_PRICE:
        # Deficit is in start-price dollars; buy the same share count at today's price
        return Quantity(round_money(deficit / bot.start_price * limit_price), bot.sizing.unit)
    return Quantity(round_money(deficit), bot.sizing.unit)


def evaluate_buy_schedule(
    bot: BotConfig,
    snapshot: InstrumentSnapshot,
    limit_buy_threshold: float = DEFAULT_LIMIT_BUY_THRESHOLD,
    duration: Duration = Duration.DAY_EXT,
) -> BuyEvaluation:
    """
    Decide whether the active tier of the schedule should be bought now.

    Only the first active tier is evaluated. A fully funded schedule never buys.

    Args:
        bot: Bot configuration
        snapshot: Current market/position snapshot for the bot's symbol
        limit_buy_threshold: Fraction of the scheduled price the market must fall below
        duration: Order duration for the limit buy

    Returns:
        BuyEvaluation with the audit decision and the order to submit, if any
    """
    symbol = bot.symbol
    held = held_size(bot, snapshot)
    active = find_active_tier(bot.buys, held)

    if active is None:
        decision = Decision(
            check="buy_schedule",
            met=False,
            message=f"{symbol} > Schedule fully funded: held {held:g} >= total {bot.schedule_total:g}",
            values={"held": held, "schedule_total": bot.schedule_total},
        )
        logger.info(decision.message)
        return BuyEvaluation(decision=decision)

    price = snapshot.last_price
    scheduled = scheduled_price(bot.start_price, active.tier.percent_drop)
    trigger = limit_buy_threshold * scheduled
    limit_price = floor_limit_price(min(scheduled, price))
    values = {
        "tier_index": active.index,
        "held": held,
        "deficit": active.deficit,
        "current_price": price,
        "scheduled_price": scheduled,
        "trigger_price": trigger,
        "limit_price": limit_price,
    }
    logger.info(f"{symbol} > At buy index {active.index} (deficit {active.deficit:g})")

    if not price < trigger:
        decision = Decision(
            check="buy_schedule",
            met=False,
            message=(
                f"{symbol} > Purchase condition NOT met: price<trigger is false: "
                f"{price:.4f}<{trigger:.4f}"
            ),
            values=values,
        )
        logger.info(decision.message)
        return BuyEvaluation(decision=decision, active=active)

    order = OrderRequest(
        side=Side.BUY,
        symbol=symbol,
        size=_order_size(bot, active.deficit, limit_price),
        kind=OrderKind.LIMIT,
        limit_price=limit_price,
        duration=duration,
    )
    decision = Decision(
        check="buy_schedule",
        met=True,
        message=(
            f"{symbol} > Purchase condition met: price<trigger: {price:.4f}<{trigger:.4f}, "
            f"buying {order.size} at ${format_limit_price(limit_price)}"
        ),
        values=values,
    )
    logger.info(decision.message)
    return BuyEvaluation(decision=decision, order=order, active=active)
