import numpy as np
import pytest

from data_structures import IndexRange, IndexSet, SampledObs, SampleNux, are_equal


def test_are_equal_treats_nans_as_equal():
    assert are_equal(1.5, 1.5)
    assert are_equal(float("nan"), float("nan"))
    assert not are_equal(float("nan"), 1.0)


def test_index_range_adjust_and_interpolate():
    index_range = IndexRange(4, 10)
    index_range.adjust(2, 3)

    assert (index_range.get_start(), index_range.get_extent(), index_range.get_end()) == (2, 7, 9)
    assert index_range.interpolate(0.5) == 5.5
    assert not index_range.empty()
    with pytest.raises(ValueError):
        index_range.adjust(3, 0)


def test_decrement_sum_returns_new_sum():
    nux = SampleNux(sum=6.0, s_count=3)

    assert nux.decrement_sum(1.5) == 1.5
    assert nux.sum == 1.5


def test_set_samples_requires_same_bag_size():
    sampled_obs = SampledObs([SampleNux(1.0, 1, 1)], np.array([0]), n_ctg=2)

    with pytest.raises(RuntimeError):
        sampled_obs.set_samples([])

    sampled_obs.set_samples([SampleNux(-0.5, 1)])
    assert sampled_obs.n_ctg == 0
    assert np.allclose(sampled_obs.sums(), [-0.5])


def test_get_samples_copies():
    sampled_obs = SampledObs([SampleNux(2.0, 2)], np.array([3]))
    copies = sampled_obs.get_samples()
    copies[0].decrement_sum(1.0)

    assert sampled_obs[0].sum == 2.0


def test_index_set_category_summaries():
    samples = [SampleNux(2.0, 2, 0), SampleNux(1.0, 1, 1), SampleNux(3.0, 3, 1)]
    sampled_obs = SampledObs(samples, np.arange(3), n_ctg=2)

    iset = IndexSet.from_samples(sampled_obs, np.array([1, 2]), node_idx=5)

    assert iset.node_idx == 5
    assert iset.get_sum() == 4.0
    assert iset.get_s_count() == 4
    assert iset.get_category_count(0) == 0
    assert iset.get_category_count(1) == 4
    assert iset.get_ctg_sum(1) == 4.0
