from __future__ import annotations

from enum import Enum

import numpy as np

from data_structures import IndexSet, are_equal


class ScorerKind(Enum):
    ZERO = "zero"
    MEAN = "mean"
    PLURALITY = "plurality"
    LOG_ODDS = "logOdds"


class NodeScorer:
    """Converts a node's bagged samples into a leaf score.

    The strategy is fixed for the lifetime of a training session.  Plurality
    ties are broken by a per-category jitter redrawn by
    :meth:`frontier_preamble` from the generator the caller supplies, once
    per frontier level, so replaying a seed replays every tie-break.
    """

    def __init__(self, kind: ScorerKind, jitter_scale: float = 0.5) -> None:
        if not (0.0 < jitter_scale <= 0.5):
            raise ValueError("jitter_scale must be in (0, 0.5]")
        self.kind: ScorerKind | None = kind
        self.jitter_scale = jitter_scale
        self.ctg_jitter = np.zeros(0, dtype=np.float64)
        self.gamma = np.zeros(0, dtype=np.float64)

    @classmethod
    def from_name(cls, name: str, jitter_scale: float = 0.5) -> NodeScorer:
        try:
            kind = ScorerKind(name)
        except ValueError:
            valid = ", ".join(k.value for k in ScorerKind)
            raise ValueError(f"scorer must be one of: {valid}") from None
        return cls(kind, jitter_scale=jitter_scale)

    def de_init(self) -> None:
        self.kind = None
        self.ctg_jitter = np.zeros(0, dtype=np.float64)
        self.gamma = np.zeros(0, dtype=np.float64)

    def _require_kind(self) -> ScorerKind:
        if self.kind is None:
            raise RuntimeError("node scorer used outside a training session")
        return self.kind

    def frontier_preamble(self, n_ctg: int, rng: np.random.Generator) -> None:
        if self._require_kind() is ScorerKind.PLURALITY:
            self.ctg_jitter = rng.uniform(0.0, self.jitter_scale, size=n_ctg)

    def set_gamma(self, gamma: np.ndarray) -> None:
        self.gamma = np.asarray(gamma, dtype=np.float64)

    def score(self, sample_map, index_set: IndexSet) -> float:
        kind = self._require_kind()
        if kind is ScorerKind.MEAN:
            return self.score_mean(sample_map, index_set)
        if kind is ScorerKind.PLURALITY:
            return self.score_plurality(sample_map, index_set)
        if kind is ScorerKind.LOG_ODDS:
            return self.score_log_odds(sample_map, index_set)
        raise RuntimeError("zero scorer invoked in a live session")

    def score_mean(self, sample_map, index_set: IndexSet) -> float:
        if index_set.s_count == 0:
            return 0.0
        return index_set.sum / index_set.s_count

    def score_plurality(self, sample_map, index_set: IndexSet) -> float:
        """Returns the winning category plus its jitter, in ``[ctg, ctg + 0.5)``.

        Jitter only decides among categories tied at the largest sum.
        """
        if self.ctg_jitter.shape[0] != index_set.ctg_sum.shape[0]:
            raise RuntimeError("category jitter not drawn for this frontier")
        ctg_sum = index_set.ctg_sum
        top = float(ctg_sum.max())
        tied = [ctg for ctg in range(ctg_sum.shape[0]) if are_equal(float(ctg_sum[ctg]), top)]
        ctg = max(tied, key=lambda c: self.ctg_jitter[c])
        return ctg + float(self.ctg_jitter[ctg])

    def score_log_odds(self, sample_map, index_set: IndexSet) -> float:
        samples = sample_map.get_samples(index_set.node_idx)
        gamma_sum = float(self.gamma[samples].sum())
        if gamma_sum <= 0.0:
            return 0.0
        return index_set.sum / gamma_sum
