"""
Injectable Random Source

Every stochastic term of the physics model (engine roughness, sensor
jitter, vibration spikes...) draws from a NoiseSource handed to the
model, never from the module-level `random` state. A simulator can
therefore be run:

- with a fixed seed, for reproducible runs
- with noise disabled, for fully deterministic tests

When disabled, uniform() returns the midpoint of its range, so a
multiplicative factor such as uniform(0.98, 1.02) collapses to 1.0 and
an additive jitter such as uniform(-0.05, 0.05) collapses to 0.0.
"""

import random
from typing import Optional


class NoiseSource:
    """
    Seedable, disable-able random source.

    Example:
        noise = NoiseSource(seed=42)
        jitter = noise.uniform(-0.5, 0.5)

        quiet = NoiseSource(enabled=False)
        assert quiet.uniform(0.98, 1.02) == 1.0
    """

    def __init__(self, seed: Optional[int] = None, enabled: bool = True):
        self.seed = seed
        self.enabled = enabled
        self._rng = random.Random(seed)

    def uniform(self, low: float, high: float) -> float:
        """Draw from [low, high], or return the midpoint when disabled."""
        if not self.enabled:
            return (low + high) / 2.0
        return self._rng.uniform(low, high)

    def chance(self, probability: float) -> bool:
        """Return True with the given probability (never when disabled)."""
        if not self.enabled:
            return False
        return self._rng.random() < probability

    def reseed(self, seed: Optional[int] = None) -> None:
        """Restart the sequence, optionally with a new seed."""
        if seed is not None:
            self.seed = seed
        self._rng = random.Random(self.seed)
