"""
Gift Calculator Module
Randomized gift amount from base value, variation, friend score and nice score
"""

import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Callable, Optional, Union

from .config import GiftConfig

RandomSource = Callable[[], float]

NEUTRAL_SCORE = 5.5
BIAS_PER_POINT = 0.1
# Nice scores below this get a flat fraction of the base value
REDUCED_NICE_LIMIT = 4

NAUGHTY_SUFFIX = " (on naughty list!)"


@dataclass(frozen=True)
class GiftResult:
    """A calculated gift amount and its display line"""

    amount: Decimal
    currency: str
    recipient_name: Optional[str]
    display: str
    on_naughty_list: bool = False


def round_half_up(value: Union[Decimal, float], decimals: int) -> Decimal:
    """Round to a number of decimal places, halves away from zero"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    with localcontext() as ctx:
        # precision must cover every integer digit plus the requested decimals
        ctx.prec = max(28, value.adjusted() + decimals + 2)
        return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def format_amount(amount: Union[Decimal, float]) -> str:
    """Render an amount without padding zeros: 120.00 -> '120', 12.50 -> '12.5'"""
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if amount == 0:
        return "0"
    if amount == amount.to_integral_value():
        return str(amount.to_integral_value())
    with localcontext() as ctx:
        ctx.prec = max(28, len(amount.as_tuple().digits))
        return format(amount.normalize(), "f")


def format_output(amount: Union[Decimal, float], currency: str, recipient_name: Optional[str] = None) -> str:
    """'<amount> <CURRENCY>' with an optional ' for <name>' suffix"""
    output = f"{format_amount(amount)} {currency}"
    if recipient_name:
        output += f" for {recipient_name}"
    return output


def friend_bias(friend_score: float) -> float:
    """Signed bias, -0.45 at score 1 and +0.45 at score 10"""
    return (friend_score - NEUTRAL_SCORE) * BIAS_PER_POINT


def nice_bias(nice_score: float) -> float:
    return (nice_score - NEUTRAL_SCORE) * BIAS_PER_POINT


def combined_bias(friend_score: float, nice_score: float) -> float:
    """Average of friend and nice bias so the two do not stack"""
    return (friend_bias(friend_score) + nice_bias(nice_score)) / 2


class GiftCalculator:
    """Calculates gift amounts using an injectable random source"""

    def __init__(self, random_source: Optional[RandomSource] = None):
        """
        Args:
            random_source: Callable returning floats in [0, 1). Defaults to a
                private random.Random instance so runs never share state with
                the module-level generator.
        """
        self.random_source = random_source or random.Random().random

    def variation_draw(self, config: GiftConfig) -> float:
        """
        Percentage adjustment applied to the base value

        Returns:
            A value in [-variation, +variation]
        """
        variation = config.variation
        if config.use_maximum:
            return variation
        if config.use_minimum:
            return -variation

        bias = combined_bias(config.friend_score, config.nice_score)
        random_percentage = self.random_source() * (variation * 2) - variation
        biased = random_percentage + bias * variation
        return max(-variation, min(variation, biased))

    def calculate_amount(self, config: GiftConfig) -> Decimal:
        """Final amount rounded half-up to config.decimals places"""
        nice_score = config.nice_score
        base = Decimal(str(config.base_value))

        if nice_score == 0:
            return round_half_up(Decimal(0), config.decimals)

        if nice_score < REDUCED_NICE_LIMIT:
            amount = base * Decimal(str(nice_score)) / Decimal(10)
            return round_half_up(amount, config.decimals)

        draw = Decimal(str(self.variation_draw(config)))
        amount = base * (Decimal(1) + draw / Decimal(100))
        return round_half_up(amount, config.decimals)

    def calculate(self, config: GiftConfig) -> GiftResult:
        amount = self.calculate_amount(config)
        return GiftResult(
            amount=amount,
            currency=config.currency,
            recipient_name=config.recipient_name,
            display=format_output(amount, config.currency, config.recipient_name),
        )

    def naughty_result(self, config: GiftConfig) -> GiftResult:
        """Zero-amount result for a recipient on the naughty list"""
        amount = round_half_up(Decimal(0), config.decimals)
        display = format_output(amount, config.currency, config.recipient_name) + NAUGHTY_SUFFIX
        return GiftResult(
            amount=amount,
            currency=config.currency,
            recipient_name=config.recipient_name,
            display=display,
            on_naughty_list=True,
        )

    def matched_result(
        self,
        amount: Decimal,
        currency: str,
        recipient_name: Optional[str],
        on_naughty_list: bool = False,
    ) -> GiftResult:
        """Reuse a previously logged gift; naughty recipients still get 0"""
        if on_naughty_list:
            amount = Decimal(0)
        display = format_output(amount, currency, recipient_name)
        if on_naughty_list:
            display += NAUGHTY_SUFFIX
        return GiftResult(
            amount=amount,
            currency=currency,
            recipient_name=recipient_name,
            display=display,
            on_naughty_list=on_naughty_list,
        )
