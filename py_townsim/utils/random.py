"""
Random number generation utilities.

The research AI is the only consumer of randomness in the simulation. It takes
a ``numpy.random.Generator`` explicitly; this module provides the shared
default generator for callers that do not inject their own.
"""

from typing import Optional

import numpy as np

# Global generator instance
_rng: Optional[np.random.Generator] = None


def set_random_seed(seed: Optional[int]) -> None:
    """
    Reseed the shared generator.

    Args:
        seed: Integer seed, or None for OS entropy
    """
    global _rng

    _rng = np.random.default_rng(seed)


def get_rng() -> np.random.Generator:
    """
    Get the shared generator, creating an unseeded one on first use.

    Returns:
        numpy Generator instance
    """
    global _rng
    if _rng is None:
        _rng = np.random.default_rng()
    return _rng
