"""Price and quantity rounding shared by the evaluators and the brokerage clients."""

import math


# Sub-dollar instruments trade in 0.0001 ticks, everything else in cents
def price_decimals(price):
    return 4 if price < 1 else 2


# Round a limit price to the instrument's tick convention
def round_limit_price(price):
    if price is None:
        return None
    return round(float(price), price_decimals(float(price)))


# Round a buy limit price down to the tick so it never exceeds the price it came from
def floor_limit_price(price):
    price = float(price)
    factor = 10 ** price_decimals(price)
    return math.floor(round(price * factor, 6)) / factor


# Render a limit price with the instrument's tick convention
def format_limit_price(price):
    price = float(price)
    return f"{price:.{price_decimals(price)}f}"


# Round money
def round_money(amount, decimals=2):
    if amount is None:
        return None
    return round(float(amount), decimals)


# Round quantity
def round_quantity(quantity, decimals=6):
    if quantity is None:
        return None
    return round(float(quantity), decimals)


# Round quantity down so a sell never exceeds what is held
def floor_quantity(quantity, decimals=6):
    factor = 10 ** decimals
    return math.floor(round(float(quantity) * factor, 3)) / factor
