import numpy as np
import pytest

from data_structures import IndexSet, SampledObs, SampleNux
from frontier import SampleMap
from node_scorer import NodeScorer, ScorerKind
from response import Response
from sampler import Sampler


def _node(samples, sample_idx=None, node_idx=0, n_ctg=0):
    sampled_obs = SampledObs(samples, np.arange(len(samples)), n_ctg=n_ctg)
    if sample_idx is None:
        sample_idx = np.arange(len(samples))
    sample_map = SampleMap()
    sample_map.add_node(node_idx, np.asarray(sample_idx))
    return sample_map, IndexSet.from_samples(sampled_obs, sample_idx, node_idx, n_ctg)


def test_mean_scorer_weights_by_multiplicity():
    sample_map, iset = _node([SampleNux(2.0, 1), SampleNux(9.0, 3)])
    scorer = NodeScorer.from_name("mean")

    assert np.isclose(scorer.score(sample_map, iset), 11.0 / 4.0)


def test_mean_scorer_empty_node_scores_zero():
    sample_map, iset = _node([SampleNux(2.0, 1)], sample_idx=np.zeros(0, dtype=np.int64))

    assert NodeScorer.from_name("mean").score(sample_map, iset) == 0.0


def test_plurality_picks_majority_category():
    samples = [SampleNux(1.0, 1, 0), SampleNux(3.0, 3, 1), SampleNux(2.0, 2, 2)]
    sample_map, iset = _node(samples, n_ctg=3)
    scorer = NodeScorer.from_name("plurality")
    scorer.frontier_preamble(3, np.random.default_rng(0))

    score = scorer.score(sample_map, iset)

    assert int(np.floor(score)) == 1
    assert 1.0 <= score < 1.5


def test_plurality_tie_follows_jitter():
    samples = [SampleNux(2.0, 2, 0), SampleNux(2.0, 2, 1)]
    sample_map, iset = _node(samples, n_ctg=2)
    scorer = NodeScorer(ScorerKind.PLURALITY)
    scorer.ctg_jitter = np.array([0.1, 0.3])

    assert np.isclose(scorer.score(sample_map, iset), 1.3)

    scorer.ctg_jitter = np.array([0.4, 0.2])
    assert np.isclose(scorer.score(sample_map, iset), 0.4)


def test_plurality_keeps_fractional_weighted_majority():
    response = Response.factory_ctg([0, 0, 1, 1, 2, 2], 3, class_weight="auto")
    sampled_obs = response.get_obs(Sampler(n_obs=6, n_tree=1, replace=False), 0)
    sample_idx = np.array([0, 1, 2])
    sample_map = SampleMap()
    sample_map.add_node(0, sample_idx)
    iset = IndexSet.from_samples(sampled_obs, sample_idx, 0, 3)
    scorer = NodeScorer(ScorerKind.PLURALITY)
    scorer.ctg_jitter = np.array([0.0, 0.45, 0.0])

    score = scorer.score(sample_map, iset)

    assert np.allclose(iset.ctg_sum, [2.0 / 3.0, 1.0 / 3.0, 0.0])
    assert int(np.floor(score)) == 0
    assert score == 0.0


def test_plurality_tie_among_three_uses_largest_jitter():
    samples = [SampleNux(1.0, 1, 0), SampleNux(1.0, 1, 1), SampleNux(1.0, 1, 2)]
    sample_map, iset = _node(samples, n_ctg=3)
    scorer = NodeScorer(ScorerKind.PLURALITY)
    scorer.ctg_jitter = np.array([0.2, 0.05, 0.35])

    assert np.isclose(scorer.score(sample_map, iset), 2.35)


def test_plurality_jitter_replays_with_seed():
    first = NodeScorer.from_name("plurality", jitter_scale=0.25)
    second = NodeScorer.from_name("plurality", jitter_scale=0.25)
    first.frontier_preamble(4, np.random.default_rng([3, 1]))
    second.frontier_preamble(4, np.random.default_rng([3, 1]))

    assert np.array_equal(first.ctg_jitter, second.ctg_jitter)
    assert np.all(first.ctg_jitter >= 0.0)
    assert np.all(first.ctg_jitter < 0.25)


def test_plurality_without_preamble_raises():
    sample_map, iset = _node([SampleNux(1.0, 1, 1)], n_ctg=2)

    with pytest.raises(RuntimeError):
        NodeScorer.from_name("plurality").score(sample_map, iset)


def test_log_odds_divides_by_node_gamma():
    samples = [SampleNux(0.5, 1), SampleNux(-0.25, 1), SampleNux(0.75, 2)]
    sample_map, iset = _node(samples, sample_idx=np.array([0, 2]))
    scorer = NodeScorer.from_name("logOdds")
    scorer.set_gamma(np.array([0.25, 0.1, 0.5]))

    assert np.isclose(scorer.score(sample_map, iset), 1.25 / 0.75)


def test_log_odds_zero_gamma_scores_zero():
    sample_map, iset = _node([SampleNux(0.5, 1), SampleNux(0.5, 1)])
    scorer = NodeScorer.from_name("logOdds")
    scorer.set_gamma(np.zeros(2))

    assert scorer.score(sample_map, iset) == 0.0


def test_zero_scorer_refuses_to_score():
    sample_map, iset = _node([SampleNux(1.0, 1)])

    with pytest.raises(RuntimeError):
        NodeScorer.from_name("zero").score(sample_map, iset)


def test_unknown_scorer_name_raises():
    with pytest.raises(ValueError):
        NodeScorer.from_name("median")


def test_jitter_scale_must_stay_below_half():
    with pytest.raises(ValueError):
        NodeScorer(ScorerKind.PLURALITY, jitter_scale=0.75)


def test_de_init_ends_scoring():
    sample_map, iset = _node([SampleNux(1.0, 1)])
    scorer = NodeScorer.from_name("mean")
    scorer.de_init()

    with pytest.raises(RuntimeError):
        scorer.score(sample_map, iset)
    with pytest.raises(RuntimeError):
        scorer.frontier_preamble(2, np.random.default_rng(0))
