"""
Seeded Random Stream

Park-Miller linear congruential generator with derived distributions.
One instance is created per generation run and passed explicitly to every
consumer, so identical seeds always replay identical output.
"""

import math
from datetime import date
from typing import Sequence, TypeVar

T = TypeVar("T")

MODULUS: int = 2147483647
MULTIPLIER: int = 16807


def simple_hash(text: str) -> int:
    """
    32-bit rolling string hash (h = h * 31 + c, signed wraparound), absolute value.

    Args:
        text: String to hash

    Returns:
        Non-negative integer hash
    """
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def daily_seed(site_id: str, day: date) -> int:
    """Seed that is stable for one site within one UTC calendar day."""
    return simple_hash(f"{site_id},{day.isoformat()}")


class SeededRNG:
    """
    Deterministic pseudo-random stream.

    seed(n+1) = seed(n) * 16807 mod (2^31 - 1)
    """

    def __init__(self, seed: int):
        self.seed = seed % MODULUS
        if self.seed <= 0:
            self.seed += MODULUS - 1

    def next(self) -> float:
        """Next uniform sample in [0, 1)."""
        self.seed = (self.seed * MULTIPLIER) % MODULUS
        return (self.seed - 1) / (MODULUS - 1)

    def uniform(self, low: float, high: float) -> float:
        return low + self.next() * (high - low)

    def uniform_int(self, low: int, high: int) -> int:
        """Uniform integer in [low, high], both ends inclusive."""
        return int(math.floor(self.uniform(low, high + 1)))

    def normal(self, mean: float, std: float) -> float:
        """Gaussian sample via the Box-Muller transform."""
        u = 1.0 - self.next()  # (0, 1], keeps log() finite
        v = self.next()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return mean + z * std

    def choice(self, items: Sequence[T]) -> T:
        return items[self.uniform_int(0, len(items) - 1)]

    def poisson(self, lam: float) -> int:
        """Poisson sample using Knuth's multiplicative algorithm."""
        limit = math.exp(-lam)
        p = 1.0
        k = 0
        while True:
            k += 1
            p *= self.next()
            if p <= limit:
                break
        return k - 1
