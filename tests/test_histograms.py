"""Histogram tests: binning, overflow and merging."""

import numpy as np
import pytest

from MCRingDosimetry.core.histograms import Histogram1D, standard_histograms


class TestFilling:

    def test_bins(self):
        h = Histogram1D('h', 'test', 4, 0.0, 4.0)
        h.fill_many([0.0, 0.5, 1.0, 3.99])
        assert h.counts.tolist() == [2.0, 1.0, 0.0, 1.0]
        assert h.entries == 4

    def test_under_and_overflow(self):
        h = Histogram1D('h', 'test', 4, 0.0, 4.0)
        h.fill(-1.0)
        h.fill(4.0)
        h.fill(10.0, weight=2.0)
        assert h.underflow == 1.0
        assert h.overflow == 3.0
        assert h.counts.sum() == 0.0

    def test_weighted_batch(self):
        """A weighted batch fill matches the same values filled one at a time."""
        values = [-2.0, 0.25, 1.5, 1.75, 3.0, 4.0, 7.5]
        weights = [1.0, 2.0, 0.5, 0.5, 3.0, 1.5, 2.5]
        batch = Histogram1D('h', 'test', 4, 0.0, 4.0)
        batch.fill_many(values, weights)

        single = Histogram1D('h', 'test', 4, 0.0, 4.0)
        for value, weight in zip(values, weights):
            single.fill(value, weight)

        assert batch.counts.tolist() == [2.0, 1.0, 0.0, 3.0]
        assert batch.underflow == 1.0
        assert batch.overflow == 4.0
        assert batch.entries == 7
        assert np.array_equal(batch.counts, single.counts)
        assert batch.mean() == pytest.approx(single.mean())

    def test_large_batch(self):
        values = np.random.default_rng(0).uniform(-10.0, 110.0, size=100_000)
        h = Histogram1D('h', 'test', 100, 0.0, 100.0)
        h.fill_many(values)
        assert h.entries == values.size
        assert h.underflow == np.count_nonzero(values < 0.0)
        assert h.overflow == np.count_nonzero(values >= 100.0)
        assert h.counts.sum() + h.underflow + h.overflow == values.size

    def test_weight_length_mismatch(self):
        with pytest.raises(ValueError):
            Histogram1D('h', 'test', 4, 0.0, 4.0).fill_many([1.0, 2.0], [1.0])

    def test_integer_multiplicity_binning(self):
        """Bins of the multiplicity histogram are centred on integers."""
        h = standard_histograms({0: 'r=0-5 mm'})['n_primaries_per_event']
        h.fill(0)
        h.fill(2)
        assert h.counts[0] == 1.0
        assert h.counts[2] == 1.0

    def test_mean(self):
        h = Histogram1D('h', 'test', 10, 0.0, 100.0)
        assert h.mean() == 0.0
        h.fill_many([10.0, 30.0])
        assert h.mean() == pytest.approx(20.0)

    def test_invalid_binning(self):
        with pytest.raises(ValueError):
            Histogram1D('h', 'test', 0, 0.0, 1.0)
        with pytest.raises(ValueError):
            Histogram1D('h', 'test', 10, 1.0, 1.0)


class TestMerge:

    def test_merge_adds(self):
        a = Histogram1D('h', 'test', 2, 0.0, 2.0)
        b = Histogram1D('h', 'test', 2, 0.0, 2.0)
        a.fill(0.5)
        b.fill(1.5)
        b.fill(5.0)
        a.merge(b)
        assert np.array_equal(a.counts, [1.0, 1.0])
        assert a.overflow == 1.0
        assert a.entries == 3

    def test_binning_mismatch(self):
        with pytest.raises(ValueError):
            Histogram1D('h', 'test', 2, 0.0, 2.0).merge(Histogram1D('h', 'test', 3, 0.0, 2.0))


class TestStandardSet:

    def test_names(self):
        histograms = standard_histograms({0: 'a', 1: 'b'})
        assert set(histograms) == {
            'n_primaries_per_event', 'energy_spectrum', 'total_energy_per_event',
            'ring_deposit_0', 'ring_deposit_1', 'total_water_deposit',
        }
        assert histograms['energy_spectrum'].n_bins == 1500
        assert 'b' in histograms['ring_deposit_1'].title
