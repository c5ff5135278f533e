"""
Deterministic random source.
Mulberry32 uniforms with polar Box-Muller normals and Poisson counts.
No external entropy: the output stream depends only on the seed and the
sequence of calls.
"""
import math
from typing import Optional, Union

_MASK32 = 0xFFFFFFFF
_DEFAULT_STATE = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, low word only"""
    return (a * b) & _MASK32


class RNG:
    """
    Seeded pseudo-random generator.

    - next(): uniform double in [0, 1)
    - normal(): standard normal, one cached spare per pair of draws
    - poisson(lam): non-negative integer count
    """

    def __init__(self, seed: Union[int, float, str]):
        self.state = RNG.hash_to_seed(seed)
        self._spare: Optional[float] = None

    @staticmethod
    def hash_to_seed(seed: Union[int, float, str]) -> int:
        """Fold a number or string into a non-zero 32-bit state"""
        if isinstance(seed, str):
            x = 0
            for ch in seed:
                x = (x ^ ord(ch)) & _MASK32
                x = (x + 0x9E3779B9 + ((x << 6) & _MASK32) + (x >> 2)) & _MASK32
        else:
            x = math.floor(seed) & _MASK32
        if x == 0:
            x = _DEFAULT_STATE
        return x

    # ========================================================================
    # SAMPLERS
    # ========================================================================

    def next(self) -> float:
        self.state = (self.state + _DEFAULT_STATE) & _MASK32
        t = _imul(self.state ^ (self.state >> 15), 1 | self.state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0

    def normal(self) -> float:
        if self._spare is not None:
            z = self._spare
            self._spare = None
            return z

        while True:
            u = self.next() * 2 - 1
            v = self.next() * 2 - 1
            s = u * u + v * v
            if 0 < s < 1:
                break

        m = math.sqrt(-2 * math.log(s) / s)
        self._spare = v * m
        return u * m

    def poisson(self, lam: float) -> int:
        if lam <= 0:
            return 0

        if lam < 30:
            # Knuth: multiply uniforms until the product drops below e^-lam
            limit = math.exp(-lam)
            p = 1.0
            k = 0
            while True:
                k += 1
                p *= self.next()
                if p <= limit:
                    return k - 1

        # Atkinson's logistic-envelope rejection for large means
        c = 0.767 - 3.36 / lam
        beta = math.pi / math.sqrt(3 * lam)
        alpha = beta * lam
        k_const = math.log(c) - lam - math.log(beta)
        log_lam = math.log(lam)

        while True:
            u = self.next()
            if u == 0.0:
                continue
            x = (alpha - math.log((1 - u) / u)) / beta
            n = math.floor(x + 0.5)
            if n < 0:
                continue
            v = self.next()
            if v == 0.0:
                continue
            y = alpha - beta * x
            lhs = y + math.log(v / (1 + math.exp(y)) ** 2)
            rhs = k_const + n * log_lam - RNG._log_factorial(n)
            if lhs <= rhs:
                return n

    @staticmethod
    def _log_factorial(n: int) -> float:
        # Stirling
        if n < 2:
            return 0.0
        return n * math.log(n) - n + 0.5 * math.log(2 * math.pi * n)
