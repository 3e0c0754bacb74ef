"""
Data structures shared by split search, node scoring and boosting.

Index ranges, bagged samples and their per-node summaries, and the
observation cells a split candidate is scanned over.
"""
from .index_range import IndexRange, are_equal
from .sampled_obs import IndexSet, SampledObs, SampleNux
from .split_nux import ImplicitObs, ObsCell, SplitNux

__all__ = [
    "ImplicitObs",
    "IndexRange",
    "IndexSet",
    "ObsCell",
    "SampledObs",
    "SampleNux",
    "SplitNux",
    "are_equal",
]
