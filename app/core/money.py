from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO_MONEY
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def line_value(quantity: int, unit_price: Decimal | int | float | str | None) -> Decimal:
    """Unrounded quantity x price; a missing price values the line at zero. Round totals with to_money."""
    if unit_price is None:
        return ZERO_MONEY
    return Decimal(quantity) * Decimal(str(unit_price))
