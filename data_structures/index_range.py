from __future__ import annotations

from dataclasses import dataclass
import math


def are_equal(val1: float, val2: float) -> bool:
    """Equality that treats two NaNs as equal."""
    return val1 == val2 or (math.isnan(val1) and math.isnan(val2))


@dataclass
class IndexRange:
    """Half-open range ``[start, start + extent)`` over observation or sample indices."""

    start: int = 0
    extent: int = 0

    def empty(self) -> bool:
        return self.extent == 0

    def adjust(self, margin: int, implicit: int) -> None:
        """Shrinks the range by the margin and implicit count removed by sparsification."""
        if margin > self.start or implicit > self.extent:
            raise ValueError("adjustment exceeds range bounds")
        self.start -= margin
        self.extent -= implicit

    def get_start(self) -> int:
        return self.start

    def get_extent(self) -> int:
        return self.extent

    def get_end(self) -> int:
        return self.start + self.extent

    def interpolate(self, scale: float) -> float:
        return self.start + scale * self.extent
