from __future__ import annotations

SECONDS_PER_YEAR = 365 * 86400


def reward(principal: int, elapsed_seconds: int, rate: int, rate_decimal: int) -> int:
    """
    Linear accrual:
    reward = principal * elapsed * rate / (SECONDS_PER_YEAR * 10^(rate_decimal + 2))
    - rate=3, decimal=0 => 3%/year; rate=350, decimal=2 => 3.50%/year.
    - Integer math end to end; truncates toward zero.
    """
    if principal <= 0 or elapsed_seconds <= 0 or rate <= 0:
        return 0
    if rate_decimal < 0:
        raise ValueError("rate_decimal must be >= 0")

    numerator = int(principal) * int(elapsed_seconds) * int(rate)
    denominator = SECONDS_PER_YEAR * 10 ** (int(rate_decimal) + 2)
    return numerator // denominator
