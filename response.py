from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

import numpy as np

from data_structures import SampledObs, SampleNux


class ResponseKind(Enum):
    REGRESSION = "regression"
    CATEGORICAL = "categorical"


@dataclass
class Response:
    """Training response, either numeric or zero-based categorical.

    Use :meth:`factory_reg` or :meth:`factory_ctg` rather than the
    constructor; they validate the response and fix the default prediction.
    """

    kind: ResponseKind
    y_num: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    y_ctg: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    n_ctg: int = 0
    class_weight: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    default_prediction: float = 0.0

    @classmethod
    def factory_reg(cls, y: Sequence[float] | np.ndarray) -> Response:
        y = np.array(y, dtype=np.float64)
        if y.ndim != 1:
            raise ValueError("y must be a 1D array")
        if not np.all(np.isfinite(y)):
            raise ValueError("y must be finite")
        default = float(y.mean()) if y.size > 0 else 0.0
        return cls(kind=ResponseKind.REGRESSION, y_num=y, default_prediction=default)

    @classmethod
    def factory_ctg(
        cls,
        y_ctg: Sequence[int] | np.ndarray,
        n_ctg: int,
        class_weight: Sequence[float] | np.ndarray | str | None = None,
    ) -> Response:
        y_ctg = np.array(y_ctg)
        if y_ctg.ndim != 1:
            raise ValueError("y must be a 1D array")
        if y_ctg.size > 0 and not np.issubdtype(y_ctg.dtype, np.integer):
            raise ValueError("categorical response must hold integer labels")
        y_ctg = y_ctg.astype(np.int64)
        if n_ctg <= 0:
            raise ValueError("n_ctg must be positive")
        if y_ctg.size > 0 and (y_ctg.min() < 0 or y_ctg.max() >= n_ctg):
            raise ValueError(f"category labels must lie in [0, {n_ctg})")

        counts = np.bincount(y_ctg, minlength=n_ctg).astype(np.float64)
        if class_weight is None:
            weight = np.ones(n_ctg, dtype=np.float64)
        elif isinstance(class_weight, str):
            if class_weight != "auto":
                raise ValueError("class_weight must be 'auto', a sequence or None")
            # Inverse frequency, normalized; absent categories get no weight.
            weight = np.divide(1.0, counts, out=np.zeros(n_ctg), where=counts > 0)
            if weight.sum() > 0.0:
                weight /= weight.sum()
        else:
            weight = np.array(class_weight, dtype=np.float64)
            if weight.shape != (n_ctg,):
                raise ValueError("class_weight must have one entry per category")
            if np.any(weight < 0.0) or not np.all(np.isfinite(weight)):
                raise ValueError("class_weight entries must be finite and non-negative")

        response = cls(
            kind=ResponseKind.CATEGORICAL,
            y_ctg=y_ctg,
            n_ctg=int(n_ctg),
            class_weight=weight,
        )
        response.default_prediction = float(np.argmax(response.default_prob()))
        return response

    @property
    def n_obs(self) -> int:
        if self.kind is ResponseKind.REGRESSION:
            return int(self.y_num.shape[0])
        return int(self.y_ctg.shape[0])

    def get_n_ctg(self) -> int:
        return self.n_ctg if self.kind is ResponseKind.CATEGORICAL else 0

    def get_default_prediction(self) -> float:
        return self.default_prediction

    def default_prob(self) -> np.ndarray:
        """Class-weighted training proportions."""
        if self.kind is not ResponseKind.CATEGORICAL:
            raise RuntimeError("default probabilities require a categorical response")
        weighted = np.bincount(self.y_ctg, minlength=self.n_ctg) * self.class_weight
        total = weighted.sum()
        if total <= 0.0:
            return np.full(self.n_ctg, 1.0 / self.n_ctg)
        return weighted / total

    def get_obs(self, sampler, tree_idx: int) -> SampledObs:
        """Bags the response for one tree."""
        counts = sampler.sample_counts(tree_idx)
        if counts.shape[0] != self.n_obs:
            raise ValueError("sampler and response disagree on observation count")
        rows = np.flatnonzero(counts)

        if self.kind is ResponseKind.REGRESSION:
            samples = [
                SampleNux(sum=float(self.y_num[row] * counts[row]), s_count=int(counts[row]))
                for row in rows
            ]
            return SampledObs(samples, rows)

        samples = []
        for row in rows:
            ctg = int(self.y_ctg[row])
            samples.append(
                SampleNux(
                    sum=float(self.class_weight[ctg] * counts[row]),
                    s_count=int(counts[row]),
                    ctg=ctg,
                )
            )
        return SampledObs(samples, rows, n_ctg=self.n_ctg)
