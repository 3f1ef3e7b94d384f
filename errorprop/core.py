"""
Core binning accumulators.

This module contains the per-level accumulator and the logarithmic binning
engines built on top of it: the multivariate ErrorPropagator and the
single-series LogBinner.
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np
import torch

from . import statistics

log = logging.getLogger(__name__)

DEFAULT_CAPACITY = 2 ** 32 - 1
DEFAULT_MIN_BLOCKS = 32


def kahan_add(a, b, c=0.0):
    """
    Single-step Kahan addition.

    Works elementwise on numpy arrays as well as on plain numbers.

    Args:
        a: Running sum
        b: Value to add
        c: Current compensation term

    Returns:
        Tuple of (new_sum, new_compensation)
    """
    y = b - c
    t = a + y
    new_c = (t - a) - y
    return t, new_c


def to_numpy(value) -> np.ndarray:
    """Convert a number, sequence or tensor to a numpy array."""
    if isinstance(value, torch.Tensor):
        return value.detach().cpu().numpy()
    return np.asarray(value)


def outer(x: np.ndarray) -> np.ndarray:
    """
    Pairwise products of the K entries of `x` along the first axis.

    For complex values the real and imaginary parts are multiplied separately
    and stored as ``re*re + 1j*im*im`` so that they can be collapsed into a
    sum of two real variances later on.
    """
    if np.iscomplexobj(x):
        re = x.real[:, np.newaxis] * x.real[np.newaxis, :]
        im = x.imag[:, np.newaxis] * x.imag[np.newaxis, :]
        return re + 1j * im
    return x[:, np.newaxis] * x[np.newaxis, :]


class BinningLevel:
    """
    Accumulator for one binning level.

    Tracks how many values reached this level together with the running sums
    of the values and of their pairwise products.

    Attributes:
        count: Number of values observed at this level
        sum1: Running sum, shape ``(K,) + shape``
        sum2: Running sum of products, shape ``(K, K) + shape``
    """

    def __init__(self, num_arguments: int, shape=(), dtype=np.float64,
                 compensated: bool = False):
        self.count = 0
        self.sum1 = np.zeros((num_arguments,) + tuple(shape), dtype=dtype)
        self.sum2 = np.zeros((num_arguments, num_arguments) + tuple(shape), dtype=dtype)
        self.compensated = compensated
        if compensated:
            self._c1 = np.zeros_like(self.sum1)
            self._c2 = np.zeros_like(self.sum2)

    def observe(self, x: np.ndarray):
        """Add one K-vector of values to the running sums."""
        if self.compensated:
            self.sum1, self._c1 = kahan_add(self.sum1, x, self._c1)
            self.sum2, self._c2 = kahan_add(self.sum2, outer(x), self._c2)
        else:
            self.sum1 += x
            self.sum2 += outer(x)
        self.count += 1

    def reset(self):
        self.count = 0
        self.sum1[...] = 0
        self.sum2[...] = 0
        if self.compensated:
            self._c1[...] = 0
            self._c2[...] = 0

    def __repr__(self):
        return f"BinningLevel(count={self.count})"


class _BinningEngine:
    """
    Logarithmic binning over K lock-step series.

    Level 1 sees every sample. Each pair of consecutive values at a level is
    averaged and handed to the next level, so level ``lvl`` sees averages of
    ``2**(lvl-1)`` consecutive samples. The last level absorbs values without
    carrying them further.
    """

    def __init__(self, num_arguments: int = 1, capacity: int = DEFAULT_CAPACITY,
                 shape=(), dtype=np.float64, compensated: bool = False,
                 min_blocks: int = DEFAULT_MIN_BLOCKS):
        """
        Initialize an empty binning engine.

        Args:
            num_arguments: Number of series observed together (K)
            capacity: Maximum number of samples the level hierarchy resolves;
                the number of levels is ``ceil(log2(capacity + 1))``
            shape: Shape of a single sample element, ``()`` for scalars
            dtype: Floating point or complex dtype used for the sums
            compensated: Use Kahan compensated summation for the sums
            min_blocks: Minimum count for a level to be picked as reliable
        """
        if int(num_arguments) < 1:
            raise ValueError(f"num_arguments must be >= 1, got {num_arguments}")
        if int(capacity) < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if int(min_blocks) < 1:
            raise ValueError(f"min_blocks must be >= 1, got {min_blocks}")
        dtype = np.dtype(dtype)
        if dtype.kind not in "fc":
            raise ValueError(f"dtype must be a floating point or complex type, got {dtype}")

        self.num_arguments = int(num_arguments)
        self.capacity = int(capacity)
        self.nlevels = self.capacity.bit_length()
        self.shape = tuple(shape)
        self.dtype = dtype
        self.compensated = bool(compensated)
        self.min_blocks = int(min_blocks)

        self.levels = [
            BinningLevel(self.num_arguments, self.shape, self.dtype, self.compensated)
            for _ in range(self.nlevels)
        ]
        # One slot per level below the top; the whole K-vector waits together.
        self._pending: List[Optional[np.ndarray]] = [None] * (self.nlevels - 1)
        self._truncated = False

        log.debug("Created %s with K=%d, %d levels, shape=%s, dtype=%s",
                  type(self).__name__, self.num_arguments, self.nlevels,
                  self.shape, self.dtype)

    def _coerce(self, values) -> np.ndarray:
        """Validate a K-sequence of sample elements and stack it."""
        if isinstance(values, torch.Tensor):
            values = to_numpy(values)
        if not isinstance(values, (list, tuple)) and np.ndim(values) == 0:
            raise ValueError(
                f"Expected a sequence of {self.num_arguments} values, got {values!r}"
            )
        if len(values) != self.num_arguments:
            raise ValueError(
                f"Expected {self.num_arguments} values, got {len(values)}"
            )
        x = np.empty((self.num_arguments,) + self.shape, dtype=self.dtype)
        for i, value in enumerate(values):
            a = to_numpy(value)
            if a.shape != self.shape:
                raise ValueError(
                    f"Value {i} has shape {a.shape}, expected {self.shape}"
                )
            if np.iscomplexobj(a) and self.dtype.kind != "c":
                raise TypeError(
                    f"Complex value {i} cannot be added to a {self.dtype} accumulator"
                )
            x[i] = a
        return x

    def _push(self, x: np.ndarray):
        lvl = 0
        while True:
            self.levels[lvl].observe(x)
            if lvl == self.nlevels - 1:
                if not self._truncated and self.levels[lvl].count > 1:
                    log.debug("Capacity of %d samples reached; level %d no longer carries",
                              self.capacity, self.nlevels)
                    self._truncated = True
                return
            pending = self._pending[lvl]
            if pending is None:
                self._pending[lvl] = x
                return
            x = 0.5 * (pending + x)
            self._pending[lvl] = None
            lvl += 1

    def _append(self, values):
        self._push(self._coerce(values))

    def reset(self):
        """Drop all accumulated data."""
        for level in self.levels:
            level.reset()
        self._pending = [None] * (self.nlevels - 1)
        self._truncated = False
        log.debug("Reset %s", type(self).__name__)

    def level(self, lvl: int) -> BinningLevel:
        """Return the accumulator of binning level `lvl` (1-based)."""
        if not 1 <= lvl <= self.nlevels:
            raise IndexError(f"Level {lvl} out of range 1..{self.nlevels}")
        return self.levels[lvl - 1]

    @property
    def count(self) -> List[int]:
        """Number of values per level, level 1 first."""
        return [level.count for level in self.levels]

    @property
    def sample_count(self) -> int:
        return self.levels[0].count

    def __len__(self):
        return self.sample_count

    def is_empty(self) -> bool:
        return self.sample_count == 0

    def reliable_level(self) -> int:
        return statistics.reliable_level(self)

    def __repr__(self):
        return (f"{type(self).__name__}(num_arguments={self.num_arguments}, "
                f"nlevels={self.nlevels}, samples={self.sample_count})")


class ErrorPropagator(_BinningEngine):
    """
    Logarithmic binning of K correlated series observed in lock-step.

    Besides per-series errors and autocorrelation times, keeps the cross
    moments needed for the covariance matrix and for first-order error
    propagation through a function of the K means.

    Example:
        >>> ep = ErrorPropagator(2)
        >>> for x in data:
        ...     ep.append((x, x ** 2))
        >>> f = lambda a, b: b - a ** 2
        >>> mu = ep.means()
        >>> ep.propagated_var([-2 * mu[0], 1.0])
    """

    def append(self, values: Sequence):
        """
        Add one sample of all K series.

        Args:
            values: Sequence (or tensor) of K sample elements
        """
        self._append(values)

    def extend(self, samples):
        """Append a sequence of K-value samples in order."""
        if isinstance(samples, torch.Tensor):
            samples = to_numpy(samples)
        for values in samples:
            self._append(values)

    def mean(self, i: int, lvl: int = 1):
        return statistics.mean(self, i, lvl)

    def var(self, i: int, lvl: Optional[int] = None):
        return statistics.var(self, i, lvl)

    def varN(self, i: int, lvl: Optional[int] = None):
        return statistics.varN(self, i, lvl)

    def tau(self, i: int, lvl: Optional[int] = None):
        return statistics.tau(self, i, lvl)

    def std_error(self, i: int, lvl: Optional[int] = None):
        return statistics.std_error(self, i, lvl)

    def effective_sample_size(self, i: int, lvl: Optional[int] = None):
        return statistics.effective_sample_size(self, i, lvl)

    def means(self, lvl: int = 1) -> list:
        return statistics.means(self, lvl)

    def vars(self, lvl: Optional[int] = None) -> list:
        return statistics.vars(self, lvl)

    def varNs(self, lvl: Optional[int] = None) -> list:
        return statistics.varNs(self, lvl)

    def taus(self, lvl: Optional[int] = None) -> list:
        return statistics.taus(self, lvl)

    def std_errors(self, lvl: Optional[int] = None) -> list:
        return statistics.std_errors(self, lvl)

    def all_means(self) -> list:
        return statistics.all_means(self)

    def all_vars(self) -> list:
        return statistics.all_vars(self)

    def all_varNs(self) -> list:
        return statistics.all_varNs(self)

    def all_taus(self) -> list:
        return statistics.all_taus(self)

    def all_std_errors(self) -> list:
        return statistics.all_std_errors(self)

    def covmat(self, lvl: Optional[int] = None) -> np.ndarray:
        return statistics.covmat(self, lvl)

    def propagated_var(self, gradient, lvl: Optional[int] = None):
        return statistics.propagated_var(self, gradient, lvl)


class LogBinner(_BinningEngine):
    """
    Logarithmic binning of a single series.

    Same accumulation as an ErrorPropagator with one argument, with the
    statistics exposed without an argument index.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, shape=(),
                 dtype=np.float64, compensated: bool = False,
                 min_blocks: int = DEFAULT_MIN_BLOCKS):
        super().__init__(1, capacity=capacity, shape=shape, dtype=dtype,
                         compensated=compensated, min_blocks=min_blocks)

    def append(self, value: Union[float, complex, np.ndarray, torch.Tensor]):
        self._append((value,))

    def extend(self, values):
        """Append values in order."""
        if isinstance(values, torch.Tensor):
            values = to_numpy(values)
        for value in values:
            self._append((value,))

    def mean(self, lvl: int = 1):
        return statistics.mean(self, 0, lvl)

    def var(self, lvl: Optional[int] = None):
        return statistics.var(self, 0, lvl)

    def varN(self, lvl: Optional[int] = None):
        return statistics.varN(self, 0, lvl)

    def tau(self, lvl: Optional[int] = None):
        return statistics.tau(self, 0, lvl)

    def std_error(self, lvl: Optional[int] = None):
        return statistics.std_error(self, 0, lvl)

    def effective_sample_size(self, lvl: Optional[int] = None):
        return statistics.effective_sample_size(self, 0, lvl)

    def all_means(self) -> list:
        return [m[0] for m in statistics.all_means(self)]

    def all_vars(self) -> list:
        return [v[0] for v in statistics.all_vars(self)]

    def all_varNs(self) -> list:
        return [v[0] for v in statistics.all_varNs(self)]

    def all_taus(self) -> list:
        return [t[0] for t in statistics.all_taus(self)]

    def all_std_errors(self) -> list:
        return [s[0] for s in statistics.all_std_errors(self)]

    def summary(self, lvl: Optional[int] = None) -> dict:
        """
        Collect the main estimates into a dict.

        Returns:
            Dict with keys mean, std_error, tau, ess, level, n.
        """
        if lvl is None:
            lvl = self.reliable_level()
        return {
            "mean": self.mean(),
            "std_error": self.std_error(lvl),
            "tau": self.tau(lvl),
            "ess": self.effective_sample_size(lvl),
            "level": lvl,
            "n": self.sample_count,
        }
