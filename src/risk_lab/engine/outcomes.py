"""
Trade outcome draws.

Outcomes come from an injected uniform stream so a trial is a pure function
of its seed. Anything with a ``random()`` method returning a float in
[0, 1) works: ``numpy.random.Generator``, ``random.Random``, or a scripted
stream in tests.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np

from risk_lab.core.enums import Outcome


class UniformSource(Protocol):
    def random(self) -> float: ...


class OutcomeGenerator:
    """Maps one uniform draw onto [breakeven | win | loss] bands."""

    @staticmethod
    def next(win_rate: float, breakeven_rate: float, rng: UniformSource) -> Outcome:
        """Draw the next trade outcome.

        The roll ``u`` is uniform in [0, 100):
        ``[0, be)`` -> BREAKEVEN, ``[be, be + win)`` -> WIN, else LOSS.

        Args:
            win_rate: % of all trades that win (0-100)
            breakeven_rate: % of all trades that scratch (0-100)
            rng: Uniform source
        """
        roll = rng.random() * 100.0
        if roll < breakeven_rate:
            return Outcome.BREAKEVEN
        if roll < breakeven_rate + win_rate:
            return Outcome.WIN
        return Outcome.LOSS


class BufferedUniformStream:
    """Serves scalar draws from blocks pre-drawn off a numpy Generator.

    One ``Generator.random(n)`` call per block instead of per trade. The
    stream is fully determined by the generator's seed and the block size.
    """

    def __init__(self, generator: np.random.Generator, block_size: int = 1024) -> None:
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self._generator = generator
        self._block_size = block_size
        self._block: list[float] = []
        self._pos = 0

    @classmethod
    def from_seed(
        cls, seed: int | np.random.SeedSequence | None, block_size: int = 1024
    ) -> BufferedUniformStream:
        return cls(np.random.default_rng(seed), block_size)

    def random(self) -> float:
        if self._pos >= len(self._block):
            self._block = self._generator.random(self._block_size).tolist()
            self._pos = 0
        value = self._block[self._pos]
        self._pos += 1
        return value
