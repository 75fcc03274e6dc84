"""
Amount Plan Generator
Random per-wallet SOL amounts for a fresh buy run
"""

import random
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Optional

from bundler.core.models import LAMPORTS_PER_SOL, AmountPlan, lamports_to_sol


def generate_amounts(
    count: int,
    sol_min: Decimal,
    sol_max: Decimal,
    rng: Optional[random.Random] = None
) -> AmountPlan:
    """
    Sample one SOL amount per wallet, uniformly in [sol_min, sol_max]

    Sampling is done over whole lamports so every amount is already rounded
    to the smallest on-chain unit and never leaves the configured range.

    Args:
        count: Number of wallets in the run
        sol_min: Lower bound in SOL
        sol_max: Upper bound in SOL
        rng: Random source (defaults to the OS CSPRNG)

    Raises:
        ValueError: If count is not positive or the range is empty
    """
    if count <= 0:
        raise ValueError(f"count must be positive, got {count}")

    low = int((Decimal(sol_min) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_CEILING))
    high = int((Decimal(sol_max) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_FLOOR))
    if low > high:
        raise ValueError(f"empty amount range [{sol_min}, {sol_max}]")

    rng = rng or random.SystemRandom()
    return [lamports_to_sol(rng.randint(low, high)) for _ in range(count)]
