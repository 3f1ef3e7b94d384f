"""
Error Propagation Library

Error estimates and autocorrelation times for correlated time series, such as
Monte Carlo measurements, using logarithmic binning in O(log N) memory.

This library provides:
- LogBinner: binning analysis of a single series
- ErrorPropagator: joint binning of several series with covariance matrix
  and first-order error propagation
- FullBinner: full-history reference estimator
- Jackknife resampling over materialized data
"""

from .core import ErrorPropagator, LogBinner, BinningLevel
from .statistics import reliable_level
from .algorithms import (
    FullBinner,
    jackknife,
    jackknife_replicas,
    compensated_mean,
    compensated_variance,
)

__version__ = "1.0.0"
__author__ = "Error Propagation Contributors"

__all__ = [
    "ErrorPropagator",
    "LogBinner",
    "BinningLevel",
    "reliable_level",
    "FullBinner",
    "jackknife",
    "jackknife_replicas",
    "compensated_mean",
    "compensated_variance",
]
