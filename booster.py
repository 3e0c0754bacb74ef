from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

import numpy as np

from data_structures import IndexSet, SampledObs, SampleNux

logger = logging.getLogger(__name__)


class LossKind(Enum):
    UNINITIALIZED = "uninitialized"
    ZERO = "zero"
    L2 = "L2"
    LOG_ODDS = "logOdds"


@dataclass(frozen=True)
class ScoreDesc:
    nu: float
    base_score: float


class Booster:
    """Per-session boosting controller.

    Holds the untouched bagged response and the cumulative per-sample
    estimate, and derives each tree's training residual from them.  Trees
    must be trained in index order: ``update_estimate`` of tree ``k`` has to
    complete before ``update_residual`` of tree ``k + 1``.
    """

    def __init__(self, kind: LossKind = LossKind.UNINITIALIZED, nu: float = 0.0) -> None:
        self.kind = kind
        self.nu = nu
        self.base_score = 0.0
        self.base_samples: list[SampleNux] | None = None
        self.estimate: np.ndarray | None = None

    @classmethod
    def make_zero(cls) -> Booster:
        return cls(LossKind.ZERO, 0.0)

    @classmethod
    def make_l2(cls, nu: float) -> Booster:
        cls._check_nu(nu)
        return cls(LossKind.L2, nu)

    @classmethod
    def make_log_odds(cls, nu: float) -> Booster:
        cls._check_nu(nu)
        return cls(LossKind.LOG_ODDS, nu)

    @classmethod
    def from_name(cls, loss: str, nu: float) -> Booster:
        if loss == "zero":
            return cls.make_zero()
        if loss == "L2":
            return cls.make_l2(nu)
        if loss == "logOdds":
            return cls.make_log_odds(nu)
        raise ValueError("loss must be one of: zero, L2, logOdds")

    @staticmethod
    def _check_nu(nu: float) -> None:
        if not (nu > 0.0):
            raise ValueError("nu must be positive")

    def _require_init(self) -> None:
        if self.kind is LossKind.UNINITIALIZED:
            raise RuntimeError("booster used outside a training session")

    def boosting(self) -> bool:
        self._require_init()
        return self.kind is not LossKind.ZERO

    def de_init(self) -> None:
        self.kind = LossKind.UNINITIALIZED
        self.nu = 0.0
        self.base_score = 0.0
        self.base_samples = None
        self.estimate = None

    def base_scorer(self, root: IndexSet) -> float:
        if self.kind is LossKind.L2:
            return root.get_sum() / root.get_s_count()
        if self.kind is LossKind.LOG_ODDS:
            count0 = root.get_category_count(0)
            count1 = root.get_category_count(1)
            if count0 == 0 or count1 == 0:
                raise ValueError("log-odds boosting requires both categories in the bag")
            return float(np.log(count1 / count0))
        return 0.0

    def set_estimate(self, sampled_obs: SampledObs) -> None:
        """Captures the bagged response and broadcasts the base score over it."""
        if not self.boosting():
            return
        root = IndexSet.from_samples(sampled_obs)
        if self.kind is LossKind.LOG_ODDS:
            if sampled_obs.n_ctg != 2:
                raise ValueError("log-odds boosting requires a two-category response")
            self.base_samples = sampled_obs.indicator_samples()
        else:
            self.base_samples = sampled_obs.get_samples()
        self.base_score = self.base_scorer(root)
        self.estimate = np.full(sampled_obs.bag_count, self.base_score, dtype=np.float64)
        logger.debug("base score %.6g over %d bagged samples", self.base_score, sampled_obs.bag_count)

    def _check_sizes(self, bag_count: int) -> None:
        if self.base_samples is None or self.estimate is None:
            raise RuntimeError("set_estimate must run before the first residual update")
        if not (len(self.base_samples) == self.estimate.shape[0] == bag_count):
            raise RuntimeError("estimate, base samples and bag sizes disagree")

    def update_residual(self, node_scorer, sampled_obs: SampledObs) -> float | None:
        """Installs the next tree's residual in ``sampled_obs``; returns the bag sum."""
        if not self.boosting():
            return None
        self._check_sizes(sampled_obs.bag_count)
        if self.kind is LossKind.L2:
            return self.update_l2(sampled_obs)
        return self.update_log_odds(node_scorer, sampled_obs)

    def update_l2(self, sampled_obs: SampledObs) -> float:
        bag_sum = 0.0
        residual = [SampleNux(nux.sum, nux.s_count, nux.ctg) for nux in self.base_samples]
        for s_idx, nux in enumerate(residual):
            bag_sum += nux.decrement_sum(float(self.estimate[s_idx]))
        sampled_obs.set_samples(residual)
        return bag_sum

    def update_log_odds(self, node_scorer, sampled_obs: SampledObs) -> float:
        bag_sum = 0.0
        residual = [SampleNux(nux.sum, nux.s_count, nux.ctg) for nux in self.base_samples]
        p = self.logistic(self.estimate)
        pq = self.scale_complement(p)
        for s_idx, nux in enumerate(residual):
            bag_sum += nux.decrement_sum(float(p[s_idx]))
            pq[s_idx] *= nux.s_count
        sampled_obs.set_samples(residual)
        node_scorer.set_gamma(pq)
        return bag_sum

    @staticmethod
    def logistic(log_odds: np.ndarray) -> np.ndarray:
        # Clipped so the probability stays strictly inside (0, 1).
        log_odds = np.clip(np.asarray(log_odds, dtype=np.float64), -30.0, 30.0)
        return 1.0 / (1.0 + np.exp(-log_odds))

    @staticmethod
    def scale_complement(p: np.ndarray) -> np.ndarray:
        return p * (1.0 - p)

    def update_estimate(self, pre_tree, terminal_map) -> None:
        """Adds the tree's scaled leaf scores to each bagged sample's estimate."""
        if not self.boosting():
            return
        if self.estimate is None:
            raise RuntimeError("set_estimate must run before the estimate is updated")
        terminal_map.scale_sample_scores(pre_tree, self.estimate, self.nu)

    def get_score_desc(self) -> ScoreDesc:
        if self.boosting() and self.estimate is None:
            raise RuntimeError("score descriptor requested before set_estimate")
        return ScoreDesc(nu=self.nu, base_score=self.base_score)
