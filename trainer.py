from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Sequence

import numpy as np

from booster import Booster, LossKind, ScoreDesc
from cand_sgb import CandSGB
from frontier import Frontier, FrontierParams, PreTree
from node_scorer import NodeScorer, ScorerKind
from predictor_frame import PredictorFrame
from response import Response, ResponseKind
from sampler import Sampler

_LOSSES = {"zero", "L2", "logOdds"}
_SCORERS = {"mean", "plurality", "logOdds"}


@dataclass
class TrainParams:
    n_tree: int = 100
    loss: str = "zero"  # one of: zero, L2, logOdds
    scorer: str | None = None  # one of: mean, plurality, logOdds; None picks from loss/response
    nu: float = 0.1

    # Predictor subsampling.
    pred_fixed: int = 0
    pred_prob: float | Sequence[float] | None = None

    # One entry per predictor in {-1, 0, +1}; regression splits only.
    reg_mono: Sequence[float] | None = None

    n_samp: int | None = None
    with_replacement: bool = True
    auto_compress: float = 0.25
    class_weight: Sequence[float] | str | None = None
    jitter_scale: float = 0.5

    max_depth: int = 12
    min_node: int = 2
    min_ratio: float = 1e-9
    leaf_max: int = 0  # 0: no cap
    split_quant: Sequence[float] | None = None  # per predictor in [0, 1]; None: midpoints

    random_state: int = 0

    def __post_init__(self) -> None:
        if self.n_tree <= 0:
            raise ValueError("n_tree must be positive")
        if self.loss not in _LOSSES:
            raise ValueError("loss must be one of: zero, L2, logOdds")
        if self.scorer is not None and self.scorer not in _SCORERS:
            raise ValueError("scorer must be one of: mean, plurality, logOdds")
        if self.loss != "zero" and not (self.nu > 0.0):
            raise ValueError("nu must be positive when boosting")
        if self.random_state < 0:
            raise ValueError("random_state must be non-negative")


class TrainSession:
    """Session-wide training state: booster, node scorer, candidate policy, monotone modes.

    Each ``init_*`` entry point may run once per session, before any tree is
    trained; :meth:`de_init` ends the session.
    """

    def __init__(self, n_pred: int) -> None:
        self.n_pred = n_pred
        self.booster = Booster()
        self.node_scorer: NodeScorer | None = None
        self.cand: CandSGB | None = None
        self.mono = np.zeros(n_pred, dtype=np.int64)
        self._initialized: set[str] = set()
        self._logger = logging.getLogger(__name__)

    def _claim(self, entry: str) -> None:
        if entry in self._initialized:
            raise RuntimeError(f"{entry} already initialized for this session")
        self._initialized.add(entry)

    def init_prob(self, pred_fixed: int, pred_prob: float | Sequence[float] | None) -> None:
        cand = CandSGB(self.n_pred, pred_fixed, pred_prob)
        self._claim("prob")
        self.cand = cand

    def init_booster(self, loss: str, scorer: str, nu: float, jitter_scale: float = 0.5) -> None:
        booster = Booster.from_name(loss, nu)
        node_scorer = NodeScorer.from_name(scorer, jitter_scale=jitter_scale)
        if node_scorer.kind is ScorerKind.ZERO:
            raise ValueError("scorer must be one of: mean, plurality, logOdds")
        if (booster.kind is LossKind.LOG_ODDS) != (node_scorer.kind is ScorerKind.LOG_ODDS):
            raise ValueError("logOdds loss and logOdds scorer must be used together")
        self._claim("booster")
        self.booster = booster
        self.node_scorer = node_scorer
        self._logger.info("session loss=%s scorer=%s nu=%g", loss, scorer, booster.nu)

    def init_mono(self, reg_mono: Sequence[float] | None) -> None:
        if reg_mono is None:
            mono = np.zeros(self.n_pred, dtype=np.int64)
        else:
            mono = np.sign(np.asarray(reg_mono, dtype=np.float64)).astype(np.int64)
            if mono.shape != (self.n_pred,):
                raise ValueError("reg_mono must have one entry per predictor")
        self._claim("mono")
        self.mono = mono

    def check_ready(self) -> None:
        missing = {"prob", "booster", "mono"} - self._initialized
        if missing:
            raise RuntimeError(f"session not initialized: {', '.join(sorted(missing))}")

    def de_init(self) -> None:
        self.booster.de_init()
        if self.node_scorer is not None:
            self.node_scorer.de_init()
        self.cand = None
        self.mono = np.zeros(self.n_pred, dtype=np.int64)
        self._initialized.clear()


class ForestTrainer:
    """Trains a bagged forest or a boosted sequence of CART trees."""

    def __init__(self, params: TrainParams | None = None) -> None:
        self.params = params or TrainParams()
        self.trees: list[PreTree] = []
        self.response: Response | None = None
        self.score_desc_: ScoreDesc | None = None
        self.pred_info_: np.ndarray | None = None
        self.bag_sums_: list[float] = []
        self._logger = logging.getLogger(__name__)

    def _resolve_scorer(self, response: Response) -> str:
        if self.params.scorer is not None:
            return self.params.scorer
        if self.params.loss == "logOdds":
            return "logOdds"
        if self.params.loss == "zero" and response.kind is ResponseKind.CATEGORICAL:
            return "plurality"
        return "mean"

    def _make_response(self, y: np.ndarray, n_ctg: int | None) -> Response:
        if n_ctg is None:
            if self.params.loss == "logOdds":
                raise ValueError("logOdds loss requires a categorical response")
            return Response.factory_reg(y)
        if self.params.loss == "L2":
            raise ValueError("L2 loss requires a numeric response")
        if self.params.loss == "logOdds" and n_ctg != 2:
            raise ValueError("logOdds loss requires exactly two categories")
        return Response.factory_ctg(y, n_ctg, self.params.class_weight)

    def fit(self, X: np.ndarray, y: np.ndarray, n_ctg: int | None = None) -> "ForestTrainer":
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2:
            raise ValueError("X must be 2D")
        if np.ndim(y) != 1 or np.shape(y)[0] != X.shape[0]:
            raise ValueError("y must be a 1D array with the same number of rows as X")

        response = self._make_response(y, n_ctg)
        frame = PredictorFrame(X, auto_compress=self.params.auto_compress)
        scorer = self._resolve_scorer(response)
        if scorer == "plurality" and response.kind is not ResponseKind.CATEGORICAL:
            raise ValueError("plurality scorer requires a categorical response")
        if self.params.loss == "zero" and scorer == "mean" and response.kind is ResponseKind.CATEGORICAL:
            raise ValueError("mean scorer requires a numeric response when not boosting")

        session = TrainSession(frame.n_pred)
        session.init_prob(self.params.pred_fixed, self.params.pred_prob)
        session.init_booster(self.params.loss, scorer, self.params.nu, self.params.jitter_scale)
        session.init_mono(self.params.reg_mono)
        session.check_ready()

        sampler = Sampler(
            n_obs=response.n_obs,
            n_tree=self.params.n_tree,
            n_samp=self.params.n_samp,
            replace=self.params.with_replacement,
            seed=self.params.random_state,
        )
        frontier = Frontier(
            frame,
            session,
            FrontierParams(
                max_depth=self.params.max_depth,
                min_node=self.params.min_node,
                min_ratio=self.params.min_ratio,
                leaf_max=self.params.leaf_max,
                split_quant=self.params.split_quant,
            ),
        )

        self.response = response
        self.trees = []
        self.bag_sums_ = []
        pred_info = np.zeros(frame.n_pred, dtype=np.float64)
        booster = session.booster
        try:
            boosting = booster.boosting()
            sampled_obs = None
            for tree_idx in range(self.params.n_tree):
                rng = np.random.default_rng([self.params.random_state, tree_idx])
                bag_sum = None
                if boosting:
                    # One bag for the whole sequence; residuals replace its samples.
                    if sampled_obs is None:
                        sampled_obs = response.get_obs(sampler, 0)
                        booster.set_estimate(sampled_obs)
                    bag_sum = booster.update_residual(session.node_scorer, sampled_obs)
                    self.bag_sums_.append(bag_sum)
                else:
                    sampled_obs = response.get_obs(sampler, tree_idx)

                pre_tree, terminal_map = frontier.grow(sampled_obs, rng)
                booster.update_estimate(pre_tree, terminal_map)
                self.trees.append(pre_tree)
                pred_info += pre_tree.pred_info
                self._logger.debug(
                    "tree %d: %d leaves, bag count %d, bag sum %s",
                    tree_idx,
                    pre_tree.leaf_count,
                    sampled_obs.bag_count,
                    "n/a" if bag_sum is None else f"{bag_sum:.6g}",
                )

            self.score_desc_ = booster.get_score_desc()
        finally:
            session.de_init()

        self.pred_info_ = pred_info / self.params.n_tree
        self._logger.info(
            "trained %d trees (loss=%s, scorer=%s)", len(self.trees), self.params.loss, scorer
        )
        return self

    def _require_fitted(self) -> None:
        if self.response is None or self.score_desc_ is None:
            raise RuntimeError("Model must be fitted before prediction")

    def predict_raw(self, X: np.ndarray) -> np.ndarray:
        """Boosted score ``base_score + nu * sum(tree)``."""
        self._require_fitted()
        if self.params.loss == "zero":
            raise RuntimeError("raw scores are defined for boosted models only")
        X = np.asarray(X, dtype=np.float64)
        pred = np.full(X.shape[0], self.score_desc_.base_score, dtype=np.float64)
        for tree in self.trees:
            pred += self.score_desc_.nu * tree.predict(X)
        return pred

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        self._require_fitted()
        if self.response.kind is not ResponseKind.CATEGORICAL:
            raise RuntimeError("probabilities require a categorical response")
        if self.params.loss == "logOdds":
            p = Booster.logistic(self.predict_raw(X))
            return np.column_stack([1.0 - p, p])

        X = np.asarray(X, dtype=np.float64)
        votes = np.zeros((X.shape[0], self.response.n_ctg), dtype=np.float64)
        rows = np.arange(X.shape[0])
        for tree in self.trees:
            ctg = np.floor(tree.predict(X)).astype(np.int64)
            votes[rows, ctg] += 1.0
        return votes / len(self.trees)

    def predict(self, X: np.ndarray) -> np.ndarray:
        self._require_fitted()
        if self.response.kind is ResponseKind.CATEGORICAL:
            return np.argmax(self.predict_proba(X), axis=1)
        if self.params.loss == "L2":
            return self.predict_raw(X)

        X = np.asarray(X, dtype=np.float64)
        pred = np.zeros(X.shape[0], dtype=np.float64)
        for tree in self.trees:
            pred += tree.predict(X)
        return pred / len(self.trees)
