"""
Explicit random generator helpers.

Every stochastic step (fold shuffling, initial designs, candidate pools,
surrogate restarts) receives its own ``numpy.random.Generator``; nothing in
the package touches global random state.
"""
import numpy as np
from typing import Optional, Union

SeedLike = Optional[Union[int, np.random.Generator]]

MAX_SEED = 2**31 - 1


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Return ``seed`` when it already is a Generator, else a new one seeded from it."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def derive_seed(rng: np.random.Generator) -> int:
    """Draw an integer seed for libraries that only accept ``random_state`` ints."""
    return int(rng.integers(0, MAX_SEED))
