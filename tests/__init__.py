"""
Test suite for the Error Propagation Library.

Test Structure:
- test_core.py: Tests for the level accumulator and binning engines
- test_statistics.py: Tests for the statistics derived from the sums
- test_algorithms.py: Tests for the full-history estimators and jackknife
- conftest.py: Shared fixtures and configuration

Usage:
    # Run all tests
    pytest

    # Run tests with coverage
    pytest --cov=errorprop

    # Run only fast tests
    pytest -m "not slow"
"""

__version__ = "1.0.0"
