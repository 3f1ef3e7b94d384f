"""
Full-history estimators.

This module provides the collaborators that work on fully materialized data:
compensated mean and variance, the FullBinner list wrapper and jackknife
resampling. None of them touch the binning accumulators.
"""

import logging
from typing import Callable, List, Optional, Union

import numpy as np
import torch

from .core import kahan_add, to_numpy

log = logging.getLogger(__name__)


def kahan_sum(values: Union[List[float], torch.Tensor, np.ndarray]):
    """
    Compute a sum along the first axis using Kahan compensated summation.

    Args:
        values: Sequence of numbers or of equally shaped arrays

    Returns:
        Compensated sum (a numpy scalar or array of the element shape)
    """
    values = to_numpy(values)
    if values.dtype.kind not in "fc":
        values = values.astype(np.float64)

    total = np.zeros(values.shape[1:], dtype=values.dtype)
    c = np.zeros_like(total)
    for value in values:
        total, c = kahan_add(total, value, c)
    return total[()]


def compensated_mean(values: Union[List[float], torch.Tensor, np.ndarray]):
    """
    Compute the mean using compensated summation.

    Returns NaN for empty input.
    """
    values = to_numpy(values)
    n = len(values)
    if n == 0:
        return np.nan
    return kahan_sum(values) / n


def compensated_variance(values: Union[List[float], torch.Tensor, np.ndarray],
                         ddof: int = 1):
    """
    Compute the variance using compensated summation.

    Complex values contribute the variance of their real and imaginary parts.

    Args:
        values: Sequence of values
        ddof: Delta degrees of freedom (1 for sample variance, 0 for population)

    Returns:
        Compensated variance, NaN if there are not more than `ddof` values
    """
    values = to_numpy(values)
    n = len(values)
    if n <= ddof:
        return np.full(values.shape[1:], np.nan)[()]

    # Two-pass algorithm with compensated summation
    mean = compensated_mean(values)
    squared_deviations = np.abs(values - mean) ** 2
    return kahan_sum(squared_deviations) / (n - ddof)


class FullBinner:
    """
    Keeps every sample and computes statistics directly.

    Useful as a reference for the binning accumulators and as input to
    jackknife resampling. The estimates assume uncorrelated samples.
    """

    def __init__(self, values=None):
        self._values: list = []
        if values is not None:
            self.extend(values)

    def append(self, value):
        if isinstance(value, torch.Tensor):
            value = to_numpy(value)
        self._values.append(value)

    def extend(self, values):
        if isinstance(values, torch.Tensor):
            values = to_numpy(values)
        for value in values:
            self.append(value)

    @property
    def values(self) -> np.ndarray:
        return np.asarray(self._values)

    def __len__(self):
        return len(self._values)

    def __iter__(self):
        return iter(self._values)

    def __getitem__(self, index):
        return self._values[index]

    def is_empty(self) -> bool:
        return len(self._values) == 0

    def mean(self):
        return compensated_mean(self.values)

    def var(self):
        return compensated_variance(self.values)

    def varN(self):
        n = len(self._values)
        if n < 2:
            return self.var()
        return self.var() / n

    def std_error(self):
        return np.sqrt(self.varN())

    def __repr__(self):
        return f"FullBinner(samples={len(self)})"


def _split(samples, num_blocks: Optional[int]):
    arrays = [to_numpy(s) for s in samples]
    if not arrays:
        raise ValueError("jackknife needs at least one sample sequence")
    n = len(arrays[0])
    if any(len(a) != n for a in arrays):
        raise ValueError(
            f"Sample sequences must have equal length, got {[len(a) for a in arrays]}"
        )
    if num_blocks is None:
        num_blocks = n
    elif num_blocks < 2:
        raise ValueError(f"num_blocks must be >= 2, got {num_blocks}")
    elif num_blocks > n:
        raise ValueError(f"num_blocks={num_blocks} exceeds the {n} available samples")
    if n < 2:
        return arrays, n, None

    # Trailing samples that do not fill a block are dropped.
    block_size = n // num_blocks
    used = block_size * num_blocks
    if used != n:
        log.debug("Dropping %d trailing samples to form %d blocks of %d",
                  n - used, num_blocks, block_size)
    arrays = [a[:used] for a in arrays]
    return arrays, num_blocks, block_size


def jackknife_replicas(reducer: Callable, *samples,
                       num_blocks: Optional[int] = None) -> np.ndarray:
    """
    Evaluate `reducer` on every leave-one-out subset.

    Args:
        reducer: Function called as ``reducer(*subsets)`` with one array per
            sample sequence
        samples: One or more aligned sequences of equal length
        num_blocks: Leave out contiguous blocks instead of single samples

    Returns:
        Array with one reducer value per left-out sample (or block)
    """
    arrays, m, block_size = _split(samples, num_blocks)
    if block_size is None:
        return np.asarray([])
    idx = np.arange(len(arrays[0]))
    replicas = []
    for b in range(m):
        keep = (idx < b * block_size) | (idx >= (b + 1) * block_size)
        replicas.append(reducer(*(a[keep] for a in arrays)))
    return np.asarray(replicas)


def jackknife(reducer: Callable, *samples, num_blocks: Optional[int] = None):
    """
    Jackknife estimate of the standard error of ``reducer(*samples)``.

    For the mean of a single sequence this reproduces the classical
    ``std(x, ddof=1) / sqrt(n)``.

    Example:
        >>> err = jackknife(lambda x, y: np.mean(x) / np.mean(y), xs, ys)

    Args:
        reducer: Function of one array per sample sequence
        samples: One or more aligned sequences
        num_blocks: Number of blocks for the delete-a-block jackknife;
            leave-one-out over single samples if not given

    Returns:
        Standard error estimate (elementwise for array-valued reducers),
        NaN with fewer than two samples
    """
    theta = jackknife_replicas(reducer, *samples, num_blocks=num_blocks)
    m = len(theta)
    if m < 2:
        return np.nan
    deviations = np.abs(theta - np.mean(theta, axis=0)) ** 2
    return np.sqrt((m - 1) / m * np.sum(deviations, axis=0))
