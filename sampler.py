from __future__ import annotations

import numpy as np


class Sampler:
    """Per-tree bag draws.

    Each tree draws from its own generator keyed by ``(seed, tree_idx)``, so
    a tree's bag does not depend on the order trees are trained in.
    """

    def __init__(
        self,
        n_obs: int,
        n_tree: int,
        n_samp: int | None = None,
        replace: bool = True,
        seed: int = 0,
    ) -> None:
        if n_obs <= 0:
            raise ValueError("n_obs must be positive")
        if n_tree <= 0:
            raise ValueError("n_tree must be positive")
        if seed < 0:
            raise ValueError("seed must be non-negative")
        n_samp = n_obs if n_samp is None else int(n_samp)
        if n_samp <= 0:
            raise ValueError("n_samp must be positive")
        if not replace and n_samp > n_obs:
            raise ValueError("n_samp cannot exceed n_obs when sampling without replacement")

        self.n_obs = int(n_obs)
        self.n_tree = int(n_tree)
        self.n_samp = n_samp
        self.replace = replace
        self.seed = int(seed)

    def sample_counts(self, tree_idx: int) -> np.ndarray:
        """Returns each observation's multiplicity in the bag of ``tree_idx``."""
        if not 0 <= tree_idx < self.n_tree:
            raise ValueError(f"tree index {tree_idx} outside [0, {self.n_tree})")
        rng = np.random.default_rng([self.seed, tree_idx])
        if self.replace:
            draws = rng.integers(0, self.n_obs, size=self.n_samp)
            return np.bincount(draws, minlength=self.n_obs).astype(np.int64)

        counts = np.zeros(self.n_obs, dtype=np.int64)
        counts[rng.choice(self.n_obs, size=self.n_samp, replace=False)] = 1
        return counts
