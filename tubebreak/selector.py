"""Uniform random choice over the item pool."""

from __future__ import annotations

import math
import random
from typing import Callable, Optional, Sequence, TypeVar

T = TypeVar("T")


def pick(pool: Sequence[T], rng: Callable[[], float] = random.random) -> Optional[T]:
    """Return a uniformly random element of ``pool``, or ``None`` when empty.

    ``rng`` must return floats in ``[0, 1)``.
    """

    if not pool:
        return None
    index = math.floor(rng() * len(pool))
    # Clamp for rng implementations that may return 1.0.
    return pool[min(index, len(pool) - 1)]
