"""
Small numeric helpers shared across the engine
"""

import math


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float, digits: int = 1) -> float:
    """Round halves toward +inf (2.25 -> 2.3, -2.25 -> -2.2)"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
