from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Sequence

import numpy as np

from cut_accum import CutAccumCtgCart, CutAccumRegCart
from data_structures import IndexRange, IndexSet, SampledObs, SplitNux, are_equal
from predictor_frame import PredictorFrame

logger = logging.getLogger(__name__)


@dataclass
class PreTreeNode:
    depth: int
    is_leaf: bool = True
    pred: int = -1
    rank_low: int = -1
    rank_high: int = -1
    threshold: float = 0.0
    implicit_left: bool = False
    info: float = 0.0
    score: float = 0.0
    left: int = -1
    right: int = -1


class PreTree:
    """A tree under construction, with value thresholds for routing new rows."""

    def __init__(self, n_pred: int) -> None:
        self.nodes: list[PreTreeNode] = []
        self.pred_info = np.zeros(n_pred, dtype=np.float64)

    def add_node(self, depth: int) -> int:
        self.nodes.append(PreTreeNode(depth=depth))
        return len(self.nodes) - 1

    def split_node(self, node_idx: int, cand: SplitNux, threshold: float) -> tuple[int, int]:
        node = self.nodes[node_idx]
        node.is_leaf = False
        node.pred = cand.pred_idx
        node.rank_low = cand.rank_low
        node.rank_high = cand.rank_high
        node.threshold = threshold
        node.implicit_left = cand.implicit_left
        node.info = cand.info
        self.pred_info[cand.pred_idx] += cand.info

        node.left = self.add_node(node.depth + 1)
        node.right = self.add_node(node.depth + 1)
        return node.left, node.right

    def set_score(self, node_idx: int, score: float) -> None:
        self.nodes[node_idx].score = score

    def get_score(self, node_idx: int) -> float:
        return self.nodes[node_idx].score

    @property
    def leaf_count(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf)

    def predict_row(self, row: np.ndarray) -> float:
        node = self.nodes[0]
        while not node.is_leaf:
            go_left = row[node.pred] <= node.threshold
            node = self.nodes[node.left if go_left else node.right]
        return node.score

    def predict(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=np.float64)
        preds = np.zeros(X.shape[0], dtype=np.float64)
        for i in range(X.shape[0]):
            preds[i] = self.predict_row(X[i])
        return preds


class SampleMap:
    """Sample indices per node, stored as ranges into one index vector."""

    def __init__(self) -> None:
        self.range: dict[int, IndexRange] = {}
        self.sample_index: list[int] = []

    def add_node(self, node_idx: int, sample_idx: np.ndarray) -> None:
        self.range[node_idx] = IndexRange(len(self.sample_index), int(len(sample_idx)))
        self.sample_index.extend(int(s_idx) for s_idx in sample_idx)

    def get_samples(self, node_idx: int) -> np.ndarray:
        node_range = self.range[node_idx]
        return np.asarray(
            self.sample_index[node_range.get_start():node_range.get_end()],
            dtype=np.int64,
        )

    def nodes(self) -> list[int]:
        return list(self.range)

    def scale_sample_scores(self, pre_tree: PreTree, estimate: np.ndarray, nu: float) -> None:
        """Adds ``nu`` times each terminal's score to the estimates of its samples."""
        for node_idx in self.range:
            estimate[self.get_samples(node_idx)] += nu * pre_tree.get_score(node_idx)


class InterLevel:
    """Predictors known to be constant within a node, inherited by its children."""

    def __init__(self, n_pred: int) -> None:
        self.n_pred = n_pred
        self.singletons: dict[int, set[int]] = {}

    def is_singleton(self, node_idx: int, pred: int) -> bool:
        return pred in self.singletons.get(node_idx, ())

    def mark_singleton(self, node_idx: int, pred: int) -> None:
        self.singletons.setdefault(node_idx, set()).add(pred)

    def inherit(self, parent_idx: int, child_idx: int) -> None:
        parent = self.singletons.get(parent_idx)
        if parent:
            self.singletons[child_idx] = set(parent)


@dataclass
class FrontierParams:
    max_depth: int = 12
    min_node: int = 2
    min_ratio: float = 1e-9
    leaf_max: int = 0  # 0: no cap on leaves per tree

    # One entry per predictor in [0, 1]; None places every threshold at the midpoint.
    split_quant: Sequence[float] | None = None

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        if self.min_node < 2:
            raise ValueError("min_node must be at least 2")
        if self.min_ratio < 0.0:
            raise ValueError("min_ratio must be non-negative")
        if self.leaf_max < 0:
            raise ValueError("leaf_max must be non-negative")
        if self.split_quant is not None:
            quant = np.asarray(self.split_quant, dtype=np.float64)
            if quant.ndim != 1 or np.any(~np.isfinite(quant)) or np.any(quant < 0.0) or np.any(quant > 1.0):
                raise ValueError("split_quant entries must lie in [0, 1]")


@dataclass
class _LevelView:
    nodes: list[int] = field(default_factory=list)

    def level_nodes(self) -> list[int]:
        return self.nodes


class Frontier:
    """Grows one tree level by level from a bagged (or residual) sample."""

    def __init__(self, frame: PredictorFrame, session, params: FrontierParams | None = None) -> None:
        self.frame = frame
        self.session = session
        self.params = params or FrontierParams()
        if self.params.split_quant is None:
            self.split_quant = np.full(frame.n_pred, 0.5)
        else:
            self.split_quant = np.asarray(self.params.split_quant, dtype=np.float64)
            if self.split_quant.shape != (frame.n_pred,):
                raise ValueError("split_quant must have one entry per predictor")

    def _is_splittable(self, depth: int, iset: IndexSet, sampled_obs: SampledObs) -> bool:
        if depth >= self.params.max_depth:
            return False
        if iset.s_count < self.params.min_node or iset.sample_idx.size < 2:
            return False
        if sampled_obs.n_ctg > 0:
            return int(np.count_nonzero(iset.ctg_count)) > 1
        # Constant response: no cut can change the node's statistic.
        means = sampled_obs.sums()[iset.sample_idx] / sampled_obs.s_counts()[iset.sample_idx]
        return not are_equal(float(means.min()), float(means.max()))

    def _baseline(self, cand: SplitNux, n_ctg: int) -> float:
        if n_ctg > 0:
            return float(np.dot(cand.ctg_sum, cand.ctg_sum)) / cand.sum if cand.sum > 0.0 else 0.0
        return cand.sum * cand.sum / cand.s_count if cand.s_count > 0 else 0.0

    def _best_split(
        self,
        iset: IndexSet,
        preds: np.ndarray,
        sampled_obs: SampledObs,
        inter_level: InterLevel,
    ) -> SplitNux | None:
        n_ctg = sampled_obs.n_ctg
        accum = CutAccumCtgCart if n_ctg > 0 else CutAccumRegCart
        best: SplitNux | None = None
        for pred in preds:
            pred = int(pred)
            cell = self.frame.obs_cell(pred, iset.sample_idx, sampled_obs, n_ctg)
            if cell.is_singleton():
                inter_level.mark_singleton(iset.node_idx, pred)
                continue
            cand = SplitNux(
                pred_idx=pred,
                node_idx=iset.node_idx,
                cell=cell,
                sum=iset.sum,
                s_count=iset.s_count,
                ctg_sum=iset.ctg_sum,
                mono_mode=0 if n_ctg > 0 else int(self.session.mono[pred]),
            )
            gain = accum.split(cand)
            if not cand.has_cut() or gain <= self.params.min_ratio * abs(self._baseline(cand, n_ctg)):
                continue
            if best is None or gain > best.info:
                best = cand
        return best

    def grow(self, sampled_obs: SampledObs, rng: np.random.Generator) -> tuple[PreTree, SampleMap]:
        """Returns the grown tree and the map from its terminals to their samples."""
        node_scorer = self.session.node_scorer
        n_ctg = sampled_obs.n_ctg
        pre_tree = PreTree(self.frame.n_pred)
        terminal_map = SampleMap()
        inter_level = InterLevel(self.frame.n_pred)

        root = pre_tree.add_node(0)
        level = [(root, np.arange(sampled_obs.bag_count, dtype=np.int64))]
        while level:
            node_scorer.frontier_preamble(n_ctg, rng)
            level_map = SampleMap()
            isets: list[IndexSet] = []
            for node_idx, sample_idx in level:
                level_map.add_node(node_idx, sample_idx)
                isets.append(IndexSet.from_samples(sampled_obs, sample_idx, node_idx, n_ctg))

            splittable = [
                iset.node_idx
                for iset in isets
                if self._is_splittable(pre_tree.nodes[iset.node_idx].depth, iset, sampled_obs)
            ]
            cands = self.session.cand.precandidates(_LevelView(splittable), inter_level, rng)

            next_level = []
            split_cands: list[tuple[IndexSet, SplitNux]] = []
            for iset in isets:
                best = None
                if iset.node_idx in cands:
                    best = self._best_split(iset, cands[iset.node_idx], sampled_obs, inter_level)
                if best is None:
                    pre_tree.set_score(iset.node_idx, node_scorer.score(level_map, iset))
                    terminal_map.add_node(iset.node_idx, iset.sample_idx)
                else:
                    split_cands.append((iset, best))

            # Under a leaf cap, the level's largest gains split first.
            split_cands.sort(key=lambda pair: pair[1].info, reverse=True)
            n_leaves = pre_tree.leaf_count
            for iset, best in split_cands:
                if self.params.leaf_max > 0 and n_leaves >= self.params.leaf_max:
                    pre_tree.set_score(iset.node_idx, node_scorer.score(level_map, iset))
                    terminal_map.add_node(iset.node_idx, iset.sample_idx)
                    continue

                rows = sampled_obs.sample_rows[iset.sample_idx]
                left_mask = self.frame.ranks[rows, best.pred_idx] <= best.rank_low
                threshold = self.frame.split_value(
                    best.pred_idx,
                    best.rank_low,
                    best.rank_high,
                    float(self.split_quant[best.pred_idx]),
                )
                left, right = pre_tree.split_node(iset.node_idx, best, threshold)
                n_leaves += 1
                inter_level.inherit(iset.node_idx, left)
                inter_level.inherit(iset.node_idx, right)
                next_level.append((left, iset.sample_idx[left_mask]))
                next_level.append((right, iset.sample_idx[~left_mask]))

            logger.debug(
                "level of %d nodes: %d split, %d terminal",
                len(level),
                len(next_level) // 2,
                len(level) - len(next_level) // 2,
            )
            level = next_level

        return pre_tree, terminal_map
