import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2).

    Python's round() uses banker's rounding, which would turn a 2.5 rupee
    component into 2.
    """
    return math.floor(value + 0.5)
