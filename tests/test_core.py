#!/usr/bin/env python3
"""
Unit tests for the binning accumulators.

Tests the level accumulator and the binning engines in errorprop.core.
"""

import pytest
import numpy as np
import torch

from errorprop.core import (
    BinningLevel,
    ErrorPropagator,
    LogBinner,
    kahan_add,
    outer,
)


class TestBinningLevel:
    """Test cases for BinningLevel class."""

    def test_initial_state(self):
        level = BinningLevel(2)

        assert level.count == 0
        assert level.sum1.shape == (2,)
        assert level.sum2.shape == (2, 2)
        assert np.all(level.sum1 == 0)

    def test_observe(self):
        """Sums of values and pairwise products."""
        level = BinningLevel(2)
        level.observe(np.array([1.0, 2.0]))
        level.observe(np.array([3.0, -1.0]))

        assert level.count == 2
        assert np.array_equal(level.sum1, [4.0, 1.0])
        assert np.array_equal(level.sum2, [[10.0, -1.0], [-1.0, 5.0]])

    def test_array_shape(self):
        level = BinningLevel(2, shape=(3,))
        level.observe(np.ones((2, 3)))

        assert level.sum1.shape == (2, 3)
        assert level.sum2.shape == (2, 2, 3)

    def test_reset(self):
        level = BinningLevel(1, compensated=True)
        level.observe(np.array([5.0]))
        level.reset()

        assert level.count == 0
        assert level.sum1[0] == 0.0
        assert level.sum2[0, 0] == 0.0


class TestHelpers:
    """Test cases for the numeric helpers."""

    def test_kahan_add(self):
        new_sum, new_comp = kahan_add(1.0, 2.0, 0.0)

        assert new_sum == 3.0
        assert new_comp == 0.0

    def test_kahan_add_arrays(self):
        total = np.zeros(3, dtype=np.float32)
        c = np.zeros(3, dtype=np.float32)
        for _ in range(10):
            total, c = kahan_add(total, np.full(3, 0.1, dtype=np.float32), c)

        assert total.dtype == np.float32
        assert np.allclose(total, 1.0, rtol=1e-6)

    def test_outer_complex(self):
        """Real and imaginary parts are multiplied separately."""
        x = np.array([1 + 2j, 3 - 1j])
        result = outer(x)

        assert result[0, 1] == 3 + (-2j)
        assert result[1, 1] == 9 + 1j


class TestLogBinner:
    """Test cases for the single-series engine."""

    def test_integers_one_to_eight(self, simple_data):
        """Level means of 1..8 are all 4.5."""
        B = LogBinner(capacity=15)
        B.extend(simple_data)

        assert B.nlevels == 4
        assert B.count == [8, 4, 2, 1]
        for lvl in range(1, 5):
            assert B.mean(lvl) == 4.5

        assert B.level(2).sum1[0] == 18.0
        assert B.level(2).sum2[0, 0] == 1.5 ** 2 + 3.5 ** 2 + 5.5 ** 2 + 7.5 ** 2
        assert B.level(3).sum2[0, 0] == 2.5 ** 2 + 6.5 ** 2

    def test_default_capacity(self):
        B = LogBinner()

        assert B.capacity == 2 ** 32 - 1
        assert B.nlevels == 32
        assert B.is_empty()

    def test_nlevels_from_capacity(self):
        assert LogBinner(capacity=1).nlevels == 1
        assert LogBinner(capacity=3).nlevels == 2
        assert LogBinner(capacity=4).nlevels == 3
        assert LogBinner(capacity=1000).nlevels == 10

    def test_count_invariant(self):
        """count[lvl + 1] == count[lvl] // 2 after every append."""
        np.random.seed(42)
        B = LogBinner(capacity=2 ** 10)
        for value in np.random.randn(300):
            B.append(value)
            counts = B.count
            for lower, upper in zip(counts[:-1], counts[1:]):
                assert upper == lower // 2

    def test_mean_equals_arithmetic_mean(self, iid_normal_data):
        B = LogBinner()
        B.extend(iid_normal_data)

        assert len(B) == len(iid_normal_data)
        assert abs(B.mean() - np.mean(iid_normal_data)) < 1e-12

    def test_append_vs_extend(self, state_checker):
        """One-by-one appends and extend give identical state."""
        np.random.seed(3)
        data = np.random.randn(777)

        a = LogBinner()
        for value in data:
            a.append(value)
        b = LogBinner()
        b.extend(data)

        state_checker.same_state(a, b)

    def test_extend_empty(self):
        B = LogBinner()
        B.extend([])

        assert B.is_empty()
        assert B.count == [0] * B.nlevels

    def test_capacity_truncation(self, simple_data):
        """Values beyond the last level are absorbed, not carried."""
        B = LogBinner(capacity=3)
        B.extend(simple_data)

        assert B.count == [8, 4]
        assert B.mean(2) == 4.5
        assert B.level(2).sum1[0] == 18.0

    def test_single_level(self):
        B = LogBinner(capacity=1)
        B.extend([1.0, 2.0, 3.0])

        assert B.count == [3]
        assert B.mean() == 2.0

    def test_torch_input(self):
        B = LogBinner()
        B.extend(torch.arange(1.0, 9.0))
        B.append(torch.tensor(4.5))

        assert B.sample_count == 9
        assert B.mean() == 4.5

    def test_array_values(self):
        np.random.seed(1)
        data = np.random.randn(200, 3)
        B = LogBinner(shape=(3,))
        B.extend(data)

        assert B.mean().shape == (3,)
        assert np.allclose(B.mean(), data.mean(axis=0))
        assert np.allclose(B.var(1), data.var(axis=0, ddof=1))
        assert B.std_error().shape == (3,)

    def test_complex_values(self):
        np.random.seed(2)
        z = np.random.randn(100) + 1j * np.random.randn(100)
        B = LogBinner(dtype=np.complex128)
        B.extend(z)

        expected = np.var(z.real, ddof=1) + np.var(z.imag, ddof=1)
        assert np.isclose(B.mean(), z.mean())
        assert np.isclose(B.var(1), expected)
        assert np.isrealobj(B.var(1))

    def test_compensated_summation(self):
        """Compensated sums stay closer to the float64 result in float32."""
        data = np.full(20000, 1e4 + 0.1, dtype=np.float32)
        reference = float(data[0])

        plain = LogBinner(dtype=np.float32)
        plain.extend(data)
        compensated = LogBinner(dtype=np.float32, compensated=True)
        compensated.extend(data)

        plain_error = abs(float(plain.mean()) - reference)
        compensated_error = abs(float(compensated.mean()) - reference)
        assert plain_error > 0.01
        assert compensated_error < plain_error
        assert compensated_error < 1e-2

    def test_reset(self, simple_data, state_checker):
        B = LogBinner()
        B.extend(simple_data)
        B.reset()

        assert B.is_empty()
        assert B.count == [0] * B.nlevels

        fresh = LogBinner()
        fresh.extend(simple_data)
        B.extend(simple_data)
        state_checker.same_state(B, fresh)

    def test_dtype(self, dtype):
        B = LogBinner(dtype=dtype)
        B.extend([1.0, 2.0, 3.0])

        assert B.level(1).sum1.dtype == dtype
        assert abs(float(B.mean()) - 2.0) < 1e-6


class TestErrorPropagator:
    """Test cases for the multivariate engine."""

    def test_lock_step_levels(self):
        """Every series shares one carry schedule."""
        ep = ErrorPropagator(2, capacity=15)
        for k in range(1, 9):
            ep.append((float(k), 10.0 * k))

        assert ep.count == [8, 4, 2, 1]
        assert ep.means(2) == [4.5, 45.0]
        assert np.array_equal(ep.level(3).sum1, [9.0, 90.0])
        assert ep.level(3).sum2[0, 1] == 10 * (2.5 ** 2 + 6.5 ** 2)

    def test_extend_matrix(self, state_checker):
        np.random.seed(4)
        data = np.random.randn(500, 3)
        a = ErrorPropagator(3)
        a.extend(data)
        b = ErrorPropagator(3)
        for row in data:
            b.append(tuple(row))

        state_checker.same_state(a, b)

    def test_torch_rows(self):
        ep = ErrorPropagator(2)
        ep.extend(torch.tensor([[1.0, 2.0], [3.0, 4.0]]))

        assert ep.means() == [2.0, 3.0]

    def test_wrong_arity(self):
        ep = ErrorPropagator(2)

        with pytest.raises(ValueError):
            ep.append((1.0,))
        with pytest.raises(ValueError):
            ep.append((1.0, 2.0, 3.0))
        assert ep.is_empty()

    def test_scalar_instead_of_tuple(self):
        ep = ErrorPropagator(1)

        with pytest.raises(ValueError):
            ep.append(3.0)

    def test_wrong_shape(self):
        ep = ErrorPropagator(2, shape=(3,))

        with pytest.raises(ValueError):
            ep.append((np.ones(3), np.ones(2)))
        assert ep.is_empty()

        B = LogBinner(shape=(2,))
        with pytest.raises(ValueError):
            B.append(1.0)

    def test_complex_into_real(self):
        B = LogBinner()

        with pytest.raises(TypeError):
            B.append(1.0 + 2.0j)
        assert B.is_empty()

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            ErrorPropagator(0)
        with pytest.raises(ValueError):
            ErrorPropagator(1, capacity=0)
        with pytest.raises(ValueError):
            ErrorPropagator(1, min_blocks=0)
        with pytest.raises(ValueError):
            ErrorPropagator(1, dtype=np.int64)

    def test_level_out_of_range(self):
        ep = ErrorPropagator(1, capacity=7)

        with pytest.raises(IndexError):
            ep.level(0)
        with pytest.raises(IndexError):
            ep.level(4)

    def test_repr(self):
        ep = ErrorPropagator(2)
        ep.append((1.0, 2.0))

        assert "num_arguments=2" in repr(ep)
        assert "samples=1" in repr(ep)
