"""Seedable source of randomness injected into every synthesis run."""
import numpy as np


class RandomSource:
    """Thin wrapper over `numpy.random.Generator` exposing what strategies need."""

    def __init__(self, seed=None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def random(self):
        return float(self.rng.random())

    def integer(self, low, high):
        """Uniform integer in [low, high], both inclusive."""
        if high < low:
            raise ValueError(f"Empty integer range [{low}, {high}]")
        return int(self.rng.integers(low, high, endpoint=True))

    def uniform(self, low, high):
        return float(self.rng.uniform(low, high))

    def choice(self, items):
        if not items:
            raise ValueError("Cannot choose from an empty sequence")
        return items[int(self.rng.integers(0, len(items)))]

    def weighted_order(self, weights):
        """Orders the keys of `weights` by weighted sampling without replacement."""
        names = [name for name, weight in weights.items() if weight > 0]
        if not names:
            return []
        probs = np.array([weights[name] for name in names], dtype=float)
        probs /= probs.sum()
        picked = self.rng.choice(len(names), size=len(names), replace=False, p=probs)
        return [names[i] for i in picked]

    def sample_seed(self):
        """Derives a seed for backends that can reproduce a sample."""
        return int(self.rng.integers(1, 2**31 - 1))
