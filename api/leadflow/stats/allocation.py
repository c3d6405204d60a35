"""Traffic-weighted variant selection.

The walk order is whatever order the caller passes in; callers sort by
``(position, id)`` so the same split always maps a draw to the same arm.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TypeVar

import numpy as np


class HasTraffic(Protocol):
    traffic_percent: float


V = TypeVar("V", bound=HasTraffic)


def select_variant(variants: Sequence[V], draw: float) -> V:
    """Pick the first variant whose cumulative traffic reaches ``draw``.

    ``draw`` is expected in [0, 100).  If floating-point accumulation leaves
    the draw above every cumulative sum, the last variant with traffic
    takes it.  Zero-traffic variants are never selected.
    """
    if not variants:
        raise ValueError("Cannot select from an empty variant list")

    cumulative = 0.0
    last_open = variants[-1]
    for variant in variants:
        if variant.traffic_percent <= 0:
            continue
        last_open = variant
        cumulative += variant.traffic_percent
        if draw <= cumulative:
            return variant
    return last_open


def draw_percentage(rng: np.random.Generator) -> float:
    """One uniform draw in [0, 100)."""
    return float(rng.uniform(0.0, 100.0))
