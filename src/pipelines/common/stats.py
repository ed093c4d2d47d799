from __future__ import annotations

import statistics
from collections.abc import Iterable


def median(values: Iterable[float]) -> float | None:
    """Median of ``values``, or None when there are none.

    Even-length inputs average the two central values. The caller's sequence
    is left untouched.
    """
    items = list(values)
    if not items:
        return None
    return statistics.median(items)
