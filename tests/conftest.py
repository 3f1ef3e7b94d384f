#!/usr/bin/env python3
"""
Pytest configuration and fixtures for error propagation tests.

This file contains shared test fixtures, configuration, and utilities
used across the test suite.
"""

import pytest
import numpy as np
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def simple_data():
    """Simple test data for basic functionality tests."""
    return [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]


@pytest.fixture
def iid_normal_data():
    """Uncorrelated normal samples."""
    np.random.seed(42)
    return np.random.normal(0, 1, 2 ** 14)


def make_ar1(n, phi, seed=42):
    """AR(1) series x[t] = phi * x[t-1] + noise with tau = phi / (1 - phi)."""
    np.random.seed(seed)
    noise = np.random.normal(0, 1, n)
    x = np.empty(n)
    x[0] = noise[0] / np.sqrt(1 - phi ** 2)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + noise[t]
    return x


@pytest.fixture
def correlated_data():
    """AR(1) series with phi = 0.5, i.e. autocorrelation time 1."""
    return make_ar1(2 ** 16, 0.5)


@pytest.fixture
def correlated_pair():
    """Two correlated series sharing an AR(1) component."""
    x = make_ar1(2 ** 12, 0.5, seed=7)
    np.random.seed(8)
    y = 0.5 * x + np.random.normal(0, 1, len(x))
    return x, y


@pytest.fixture(params=[np.float32, np.float64])
def dtype(request):
    """Parameterized fixture for different data types."""
    return request.param


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def pytest_collection_modifyitems(config, items):
    """Mark tests that stream the long AR(1) series as slow."""
    for item in items:
        if "correlated_data" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.slow)


class StateChecker:
    """Utility class for comparing binning engines."""

    @staticmethod
    def same_state(a, b):
        """Assert that two engines hold bit-identical level sums."""
        assert a.count == b.count, f"Level counts differ: {a.count} vs {b.count}"
        for lvl, (la, lb) in enumerate(zip(a.levels, b.levels), start=1):
            assert np.array_equal(la.sum1, lb.sum1), f"sum1 differs at level {lvl}"
            assert np.array_equal(la.sum2, lb.sum2), f"sum2 differs at level {lvl}"


@pytest.fixture
def state_checker():
    """Fixture providing engine comparison utilities."""
    return StateChecker()
