"""Number, time and collection helpers."""

import math
import random
from fractions import Fraction
from uuid import uuid4


def format_number(num: int | float) -> str:
    """Group thousands with commas: 15420 -> '15,420'."""
    if isinstance(num, float) and not num.is_integer():
        return f"{num:,}"
    return f"{int(num):,}"


def format_duration(seconds: int) -> str:
    """Readable duration: '1h 2m 3s', '2m 5s' or '45s'."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_timer(seconds: int) -> str:
    """Countdown display as MM:SS."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def round_half_up(value, decimals: int = 1) -> float:
    """Round halves upward: 6.25 -> 6.3, unlike the builtin round."""
    scale = 10 ** decimals
    return math.floor(Fraction(value) * scale + Fraction(1, 2)) / scale


def calculate_percentage(value: float, total: float, decimals: int = 1) -> float:
    if total == 0:
        return 0
    return round_half_up(Fraction(value) / Fraction(total) * 100, decimals)


def shuffle(items: list, rng: random.Random | None = None) -> list:
    """Return a shuffled copy; the input is left untouched."""
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled


def get_random_items(items: list, count: int, rng: random.Random | None = None) -> list:
    return shuffle(items, rng)[: min(count, len(items))]


def generate_uuid() -> str:
    return str(uuid4())
