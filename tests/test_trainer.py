import numpy as np
import pytest

from booster import LossKind
from frontier import FrontierParams
from trainer import ForestTrainer, TrainParams, TrainSession


def _regression_data(n=200, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 3))
    y = 3.0 * (X[:, 0] > 0.0) + X[:, 1] + 0.1 * rng.normal(size=n)
    return X, y


def _binary_data(n=200, seed=1):
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 3))
    y = (X[:, 0] + 0.5 * X[:, 2] > 0.0).astype(np.int64)
    return X, y


def test_bagged_regression_beats_the_mean():
    X, y = _regression_data()
    model = ForestTrainer(TrainParams(n_tree=10, max_depth=6, random_state=0)).fit(X, y)

    mse = np.mean((model.predict(X) - y) ** 2)

    assert mse < 0.25 * np.var(y)
    assert len(model.trees) == 10
    assert model.pred_info_.shape == (3,)
    assert model.pred_info_[0] > model.pred_info_[2]


def test_bagged_classification_with_plurality():
    rng = np.random.default_rng(2)
    X = rng.normal(size=(240, 2))
    y = np.digitize(X[:, 0], [-0.5, 0.5]).astype(np.int64)

    model = ForestTrainer(TrainParams(n_tree=8, max_depth=5, random_state=3)).fit(X, y, n_ctg=3)
    proba = model.predict_proba(X)

    assert np.mean(model.predict(X) == y) > 0.9
    assert proba.shape == (240, 3)
    assert np.allclose(proba.sum(axis=1), 1.0)


def test_l2_boosting_starts_from_mean_and_improves():
    X, y = _regression_data(seed=4)
    params = dict(loss="L2", nu=0.1, max_depth=3, with_replacement=False, random_state=5)

    short = ForestTrainer(TrainParams(n_tree=2, **params)).fit(X, y)
    long = ForestTrainer(TrainParams(n_tree=30, **params)).fit(X, y)

    assert np.isclose(long.score_desc_.base_score, np.mean(y))
    assert long.score_desc_.nu == 0.1
    assert abs(long.bag_sums_[0]) < 1e-8
    assert len(long.bag_sums_) == 30
    short_mse = np.mean((short.predict(X) - y) ** 2)
    long_mse = np.mean((long.predict(X) - y) ** 2)
    assert long_mse < short_mse


def test_log_odds_boosting_probabilities():
    X, y = _binary_data()
    model = ForestTrainer(
        TrainParams(n_tree=15, loss="logOdds", nu=0.3, max_depth=3, random_state=6)
    ).fit(X, y, n_ctg=2)

    proba = model.predict_proba(X)

    assert np.all(proba > 0.0)
    assert np.all(proba < 1.0)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert np.mean(model.predict(X) == y) > 0.8


def test_increasing_constraint_blocks_decreasing_response():
    X = np.arange(40, dtype=np.float64).reshape(-1, 1)
    y = -X[:, 0]

    constrained = ForestTrainer(TrainParams(n_tree=3, reg_mono=[1], random_state=0)).fit(X, y)
    opposite = ForestTrainer(TrainParams(n_tree=3, reg_mono=[-1], random_state=0)).fit(X, y)

    pred = constrained.predict(X)
    assert np.allclose(pred, pred[0])
    assert np.all(constrained.pred_info_ == 0.0)
    assert np.ptp(opposite.predict(X)) > 10.0


def test_sparse_predictor_is_split_on_its_implicit_value():
    rng = np.random.default_rng(7)
    n = 200
    x0 = np.where(rng.random(n) < 0.7, 0.0, rng.uniform(1.0, 2.0, size=n))
    X = np.column_stack([x0, rng.normal(size=n)])
    y = 5.0 * (x0 != 0.0) + 0.05 * rng.normal(size=n)

    model = ForestTrainer(TrainParams(n_tree=5, max_depth=4, random_state=8)).fit(X, y)

    assert np.mean((model.predict(X) - y) ** 2) < 0.1 * np.var(y)
    assert model.pred_info_[0] > model.pred_info_[1]


def test_training_replays_with_same_seed():
    X, y = _regression_data(n=120, seed=9)
    params = TrainParams(n_tree=4, max_depth=4, pred_fixed=1, pred_prob=0.5, random_state=11)

    first = ForestTrainer(params).fit(X, y).predict(X)
    second = ForestTrainer(params).fit(X, y).predict(X)

    assert np.array_equal(first, second)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_tree": 0},
        {"loss": "huber"},
        {"scorer": "median"},
        {"loss": "L2", "nu": 0.0},
        {"random_state": -1},
    ],
)
def test_bad_train_params_raise(kwargs):
    with pytest.raises(ValueError):
        TrainParams(**kwargs)


def test_loss_and_response_mismatch_raises():
    X, y = _binary_data(n=40)

    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(loss="L2")).fit(X, y, n_ctg=2)
    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(loss="logOdds")).fit(X, y.astype(np.float64))
    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(loss="logOdds")).fit(X, y, n_ctg=3)
    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(loss="logOdds", scorer="mean")).fit(X, y, n_ctg=2)
    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(scorer="plurality")).fit(X, y.astype(np.float64))


def test_bad_monotone_length_raises():
    X, y = _regression_data(n=30)

    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(n_tree=1, reg_mono=[1, 0])).fit(X, y)


def test_predict_before_fit_raises():
    with pytest.raises(RuntimeError):
        ForestTrainer().predict(np.zeros((2, 1)))


def test_raw_scores_need_boosting():
    X, y = _regression_data(n=40)
    model = ForestTrainer(TrainParams(n_tree=2, max_depth=2)).fit(X, y)

    with pytest.raises(RuntimeError):
        model.predict_raw(X)


def test_session_entry_points_run_once():
    session = TrainSession(2)
    session.init_prob(0, None)

    with pytest.raises(RuntimeError):
        session.init_prob(1, None)
    with pytest.raises(RuntimeError):
        session.check_ready()

    session.init_booster("L2", "mean", 0.1)
    session.init_mono([1, -1])
    session.check_ready()
    assert session.booster.boosting()
    assert np.array_equal(session.mono, [1, -1])

    session.de_init()
    assert session.booster.kind is LossKind.UNINITIALIZED
    assert session.cand is None
    with pytest.raises(RuntimeError):
        session.check_ready()


def _grouped_data(n_per_cell=10):
    cells = [(0.0, 0.0, 0.0), (0.0, 1.0, 100.0), (1.0, 0.0, 1000.0), (1.0, 1.0, 1001.0)]
    rows = [cell for cell in cells for _ in range(n_per_cell)]
    X = np.array([[x0, x1] for x0, x1, _ in rows])
    y = np.array([target for _, _, target in rows])
    return X, y


def test_leaf_cap_spends_splits_on_largest_gains():
    X, y = _grouped_data()
    params = dict(n_tree=1, with_replacement=False, random_state=0)

    capped = ForestTrainer(TrainParams(leaf_max=3, **params)).fit(X, y)
    uncapped = ForestTrainer(TrainParams(**params)).fit(X, y)

    assert capped.trees[0].leaf_count == 3
    assert uncapped.trees[0].leaf_count == 4
    pred = capped.predict(np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]))
    assert np.allclose(pred, [0.0, 100.0, 1000.5, 1000.5])


def test_single_leaf_cap_keeps_root_only():
    X, y = _grouped_data()
    model = ForestTrainer(TrainParams(n_tree=2, leaf_max=1, random_state=0)).fit(X, y)

    assert all(tree.leaf_count == 1 for tree in model.trees)
    assert np.all(model.pred_info_ == 0.0)


def test_split_quantile_places_threshold():
    X = np.repeat([0.0, 10.0], 10).reshape(-1, 1)
    y = np.repeat([0.0, 5.0], 10)
    params = dict(n_tree=1, max_depth=1, with_replacement=False, random_state=0)

    low = ForestTrainer(TrainParams(split_quant=[0.2], **params)).fit(X, y)
    mid = ForestTrainer(TrainParams(**params)).fit(X, y)

    query = np.array([[1.9], [2.1], [4.9], [5.1]])
    assert np.allclose(low.predict(query), [0.0, 5.0, 5.0, 5.0])
    assert np.allclose(mid.predict(query), [0.0, 0.0, 0.0, 5.0])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"leaf_max": -1},
        {"split_quant": [1.5]},
        {"split_quant": [np.nan]},
        {"min_node": 1},
    ],
)
def test_bad_frontier_params_raise(kwargs):
    with pytest.raises(ValueError):
        FrontierParams(**kwargs)


def test_split_quant_length_must_match_predictors():
    X, y = _regression_data(n=30)

    with pytest.raises(ValueError):
        ForestTrainer(TrainParams(n_tree=1, split_quant=[0.5])).fit(X, y)
