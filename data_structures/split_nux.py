from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .index_range import IndexRange


@dataclass
class ImplicitObs:
    """Aggregate of the observations a sparse predictor leaves unmaterialized."""

    rank: int
    sum: float = 0.0
    s_count: int = 0
    n_obs: int = 0
    ctg_sum: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))


@dataclass
class ObsCell:
    """Rank-ordered observations of one node under one predictor.

    Explicit observations occupy ``obs_range``; the implicit observations,
    if any, sit logically at ``cut_residual``, between the explicit ranks
    below and above their own rank.
    """

    ranks: np.ndarray
    y_sum: np.ndarray
    s_count: np.ndarray
    ctg: np.ndarray
    obs_range: IndexRange
    implicit: ImplicitObs | None = None

    def __post_init__(self) -> None:
        n = self.ranks.shape[0]
        if self.y_sum.shape[0] != n or self.s_count.shape[0] != n or self.ctg.shape[0] != n:
            raise ValueError("observation columns must have equal length")
        if self.obs_range.get_end() > n:
            raise ValueError("obs_range exceeds observation count")
        if self.implicit is not None and self.implicit.n_obs == 0:
            self.implicit = None

    @property
    def obs_start(self) -> int:
        return self.obs_range.get_start()

    @property
    def obs_end(self) -> int:
        return self.obs_range.get_end()

    @property
    def cut_residual(self) -> int:
        if self.implicit is None:
            return self.obs_end
        offset = np.searchsorted(self.ranks[self.obs_start:self.obs_end], self.implicit.rank)
        return self.obs_start + int(offset)

    def implicit_count(self) -> int:
        return 0 if self.implicit is None else self.implicit.n_obs

    def is_tied(self, idx: int) -> bool:
        """Whether observation ``idx`` shares its rank with its left neighbour."""
        return idx > self.obs_start and self.ranks[idx] == self.ranks[idx - 1]

    def is_singleton(self) -> bool:
        start, end = self.obs_start, self.obs_end
        n_explicit = end - start
        if self.implicit is None:
            return n_explicit == 0 or self.ranks[start] == self.ranks[end - 1]
        return n_explicit == 0


@dataclass
class SplitNux:
    """A (node, predictor) split candidate and the cut found for it."""

    pred_idx: int
    node_idx: int
    cell: ObsCell
    sum: float
    s_count: int
    ctg_sum: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    mono_mode: int = 0
    info: float = 0.0
    rank_low: int = -1
    rank_high: int = -1
    implicit_left: bool = False

    def get_implicit_count(self) -> int:
        return self.cell.implicit_count()

    def set_info(self, info: float) -> None:
        self.info = info

    def has_cut(self) -> bool:
        return self.rank_low >= 0 and self.info > 0.0
