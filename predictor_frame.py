from __future__ import annotations

import numpy as np

from data_structures import ImplicitObs, IndexRange, ObsCell, SampledObs


def build_ranks(X: np.ndarray) -> tuple[np.ndarray, list[np.ndarray]]:
    """Dense per-predictor ranks plus the sorted distinct values they index."""
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ValueError("X must be a 2D array")
    if not np.all(np.isfinite(X)):
        raise ValueError("X must be finite; only the implicit value is sparse")

    n_obs, n_pred = X.shape
    ranks = np.empty((n_obs, n_pred), dtype=np.int64)
    values: list[np.ndarray] = []
    for pred in range(n_pred):
        uniq, inverse = np.unique(X[:, pred], return_inverse=True)
        values.append(uniq)
        ranks[:, pred] = inverse.reshape(-1)
    return ranks, values


def implicit_ranks(ranks: np.ndarray, auto_compress: float) -> np.ndarray:
    """Rank of the value each predictor leaves implicit, or -1 for dense predictors.

    A predictor is sparse when its most frequent value covers at least
    ``auto_compress`` of the rows.
    """
    n_obs, n_pred = ranks.shape
    implicit = np.full(n_pred, -1, dtype=np.int64)
    if n_obs == 0:
        return implicit
    for pred in range(n_pred):
        counts = np.bincount(ranks[:, pred])
        top = int(np.argmax(counts))
        if counts[top] >= auto_compress * n_obs:
            implicit[pred] = top
    return implicit


class PredictorFrame:
    """Rank-encoded numeric predictors with one implicit value per sparse predictor."""

    def __init__(self, X: np.ndarray, auto_compress: float = 0.25) -> None:
        if not (0.0 < auto_compress <= 1.0):
            raise ValueError("auto_compress must be in (0, 1]")
        self.ranks, self.values = build_ranks(X)
        self.auto_compress = auto_compress
        self.implicit_rank = implicit_ranks(self.ranks, auto_compress)

    @property
    def n_obs(self) -> int:
        return int(self.ranks.shape[0])

    @property
    def n_pred(self) -> int:
        return int(self.ranks.shape[1])

    def obs_cell(
        self,
        pred: int,
        sample_idx: np.ndarray,
        sampled_obs: SampledObs,
        n_ctg: int = 0,
    ) -> ObsCell:
        """Builds the rank-ordered cell of a node's samples under ``pred``."""
        sample_idx = np.asarray(sample_idx, dtype=np.int64)
        ranks = self.ranks[sampled_obs.sample_rows[sample_idx], pred]
        y_sum = sampled_obs.sums()[sample_idx]
        s_count = sampled_obs.s_counts()[sample_idx]
        ctg = sampled_obs.ctgs()[sample_idx]

        implicit = None
        explicit_mask = np.ones(sample_idx.size, dtype=bool)
        implicit_rank = int(self.implicit_rank[pred])
        if implicit_rank >= 0:
            implicit_mask = ranks == implicit_rank
            explicit_mask = ~implicit_mask
            if n_ctg > 0:
                ctg_sum = np.bincount(
                    ctg[implicit_mask], weights=y_sum[implicit_mask], minlength=n_ctg
                ).astype(np.float64)
            else:
                ctg_sum = np.zeros(0, dtype=np.float64)
            implicit = ImplicitObs(
                rank=implicit_rank,
                sum=float(y_sum[implicit_mask].sum()),
                s_count=int(s_count[implicit_mask].sum()),
                n_obs=int(implicit_mask.sum()),
                ctg_sum=ctg_sum,
            )

        order = np.argsort(ranks[explicit_mask], kind="stable")
        n_explicit = int(order.size)
        return ObsCell(
            ranks=ranks[explicit_mask][order],
            y_sum=y_sum[explicit_mask][order],
            s_count=s_count[explicit_mask][order],
            ctg=ctg[explicit_mask][order],
            obs_range=IndexRange(0, n_explicit),
            implicit=implicit,
        )

    def split_value(self, pred: int, rank_low: int, rank_high: int, quant: float = 0.5) -> float:
        """Threshold at fraction ``quant`` of the way between the values either side of a cut."""
        values = self.values[pred]
        rank_range = IndexRange(rank_low, rank_high - rank_low)
        frac = (rank_range.interpolate(quant) - rank_low) / rank_range.get_extent()
        return float(values[rank_low] + frac * (values[rank_high] - values[rank_low]))
