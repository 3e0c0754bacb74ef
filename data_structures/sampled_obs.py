from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np


@dataclass
class SampleNux:
    """One bagged observation's contribution to the current tree."""

    sum: float
    s_count: int
    ctg: int = 0

    def decrement_sum(self, adjustment: float) -> float:
        """Subtracts ``adjustment`` once per multiplicity and returns the new sum.

        The new sum, not the amount subtracted, so summing the returned values
        over a bag gives the total residual.
        """
        self.sum -= adjustment * self.s_count
        return self.sum


class SampledObs:
    """Bagged samples of one tree, in row order.

    ``n_ctg`` is nonzero only while the samples hold a raw categorical
    response; residuals installed by boosting are numeric.
    """

    def __init__(
        self,
        samples: list[SampleNux],
        sample_rows: np.ndarray,
        n_ctg: int = 0,
    ) -> None:
        self.sample_rows = np.asarray(sample_rows, dtype=np.int64)
        if self.sample_rows.shape[0] != len(samples):
            raise ValueError("sample_rows must have one entry per sample")
        self.samples = samples
        self.n_ctg = int(n_ctg)
        self._columns: tuple[np.ndarray, np.ndarray, np.ndarray] | None = None

    @property
    def bag_count(self) -> int:
        return len(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, s_idx: int) -> SampleNux:
        return self.samples[s_idx]

    def get_samples(self) -> list[SampleNux]:
        return [replace(nux) for nux in self.samples]

    def indicator_samples(self) -> list[SampleNux]:
        """Copies of the samples whose sum is the 0/1 category indicator."""
        return [
            SampleNux(sum=float(nux.ctg * nux.s_count), s_count=nux.s_count, ctg=nux.ctg)
            for nux in self.samples
        ]

    def set_samples(self, samples: list[SampleNux]) -> None:
        if len(samples) != len(self.samples):
            raise RuntimeError("replacement samples must match the bag count")
        self.samples = samples
        self.n_ctg = 0
        self._columns = None

    def columns(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Sums, counts and categories as arrays, cached until the samples are replaced."""
        if self._columns is None:
            n = len(self.samples)
            self._columns = (
                np.fromiter((nux.sum for nux in self.samples), dtype=np.float64, count=n),
                np.fromiter((nux.s_count for nux in self.samples), dtype=np.int64, count=n),
                np.fromiter((nux.ctg for nux in self.samples), dtype=np.int64, count=n),
            )
        return self._columns

    def sums(self) -> np.ndarray:
        return self.columns()[0]

    def s_counts(self) -> np.ndarray:
        return self.columns()[1]

    def ctgs(self) -> np.ndarray:
        return self.columns()[2]


@dataclass
class IndexSet:
    """Summary of one frontier node's samples."""

    node_idx: int
    sample_idx: np.ndarray
    sum: float
    s_count: int
    ctg_sum: np.ndarray
    ctg_count: np.ndarray

    @classmethod
    def from_samples(
        cls,
        sampled_obs: SampledObs,
        sample_idx: np.ndarray | None = None,
        node_idx: int = 0,
        n_ctg: int | None = None,
    ) -> IndexSet:
        if sample_idx is None:
            sample_idx = np.arange(sampled_obs.bag_count, dtype=np.int64)
        sample_idx = np.asarray(sample_idx, dtype=np.int64)
        n_ctg = sampled_obs.n_ctg if n_ctg is None else int(n_ctg)

        sums = sampled_obs.sums()[sample_idx]
        s_counts = sampled_obs.s_counts()[sample_idx]
        if n_ctg > 0:
            ctgs = sampled_obs.ctgs()[sample_idx]
            ctg_sum = np.bincount(ctgs, weights=sums, minlength=n_ctg).astype(np.float64)
            ctg_count = np.bincount(ctgs, weights=s_counts, minlength=n_ctg).astype(np.int64)
        else:
            ctg_sum = np.zeros(0, dtype=np.float64)
            ctg_count = np.zeros(0, dtype=np.int64)

        return cls(
            node_idx=node_idx,
            sample_idx=sample_idx,
            sum=float(sums.sum()),
            s_count=int(s_counts.sum()),
            ctg_sum=ctg_sum,
            ctg_count=ctg_count,
        )

    def get_sum(self) -> float:
        return self.sum

    def get_s_count(self) -> int:
        return self.s_count

    def get_category_count(self, ctg: int) -> int:
        return int(self.ctg_count[ctg])

    def get_ctg_sum(self, ctg: int) -> float:
        return float(self.ctg_sum[ctg])
