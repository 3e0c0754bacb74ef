from __future__ import annotations

from typing import Sequence

import numpy as np


class CandSGB:
    """Predictor-candidate selection for the nodes of one frontier level.

    ``pred_fixed`` predictors are drawn uniformly without replacement; each
    remaining predictor then enters independently with probability
    ``pred_prob[pred]``.  All randomness comes from the generator passed to
    :meth:`precandidates`.
    """

    def __init__(
        self,
        n_pred: int,
        pred_fixed: int = 0,
        pred_prob: float | Sequence[float] | np.ndarray | None = None,
    ) -> None:
        if n_pred <= 0:
            raise ValueError("n_pred must be positive")
        if pred_fixed < 0:
            raise ValueError("pred_fixed must be non-negative")
        if pred_fixed > n_pred:
            raise ValueError("pred_fixed cannot exceed the predictor count")

        if pred_prob is None:
            prob = np.full(n_pred, 1.0 if pred_fixed == 0 else 0.0)
        elif np.ndim(pred_prob) == 0:
            prob = np.full(n_pred, float(pred_prob))
        else:
            prob = np.array(pred_prob, dtype=np.float64)
        if prob.shape != (n_pred,):
            raise ValueError("pred_prob must have one entry per predictor")
        if np.any(~np.isfinite(prob)) or np.any(prob < 0.0) or np.any(prob > 1.0):
            raise ValueError("pred_prob entries must lie in [0, 1]")

        self.n_pred = int(n_pred)
        self.pred_fixed = int(pred_fixed)
        self.pred_prob = prob

    def node_candidates(
        self,
        node_idx: int,
        inter_level,
        rng: np.random.Generator,
    ) -> np.ndarray:
        available = np.array(
            [pred for pred in range(self.n_pred) if not inter_level.is_singleton(node_idx, pred)],
            dtype=np.int64,
        )
        if available.size == 0:
            return available

        n_fixed = min(self.pred_fixed, available.size)
        if n_fixed > 0:
            fixed = rng.choice(available, size=n_fixed, replace=False)
        else:
            fixed = np.empty(0, dtype=np.int64)
        rest = np.setdiff1d(available, fixed, assume_unique=True)
        drawn = rest[rng.random(rest.size) < self.pred_prob[rest]]
        return np.sort(np.concatenate([fixed, drawn]).astype(np.int64))

    def precandidates(
        self,
        frontier,
        inter_level,
        rng: np.random.Generator,
    ) -> dict[int, np.ndarray]:
        """Maps each splittable node of the level to its candidate predictors."""
        return {
            node_idx: self.node_candidates(node_idx, inter_level, rng)
            for node_idx in frontier.level_nodes()
        }
