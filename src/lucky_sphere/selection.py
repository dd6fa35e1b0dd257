from __future__ import annotations

import random
from typing import Sequence


def effective_count(requested: int, pool_size: int) -> int:
    return max(0, min(requested, pool_size))


def select_winners(pool: Sequence[str], count: int, rng: random.Random | None = None) -> tuple[str, ...]:
    """
    Draw `count` distinct names from `pool` uniformly at random.

    `Random.sample` is a partial Fisher-Yates draw without replacement, so every
    subset (and every ordering of it) is equally likely. `count` is clamped to
    the pool size; a non-positive count yields an empty result.
    """
    rng = rng or random.Random()
    k = effective_count(count, len(pool))
    if k == 0:
        return ()
    return tuple(rng.sample(list(pool), k))
