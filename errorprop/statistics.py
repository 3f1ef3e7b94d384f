"""
Statistics derived from binning accumulators.

All functions read the accumulated sums of an engine and never modify it.
Levels are 1-based (level 1 holds the raw samples), argument indices are
0-based. Quantities that are undefined for the number of values at the
requested level (mean with n < 1, variances with n < 2) come back as NaN.
"""

from typing import Optional

import numpy as np


def _nan(ep):
    return np.full(ep.shape, np.nan)[()]


def _check_index(ep, i: int):
    if not 0 <= i < ep.num_arguments:
        raise IndexError(f"Argument index {i} out of range 0..{ep.num_arguments - 1}")


def _resolve(ep, lvl: Optional[int]) -> int:
    return reliable_level(ep) if lvl is None else lvl


def _cross(a, b):
    # complex values count as two independent real components
    if np.iscomplexobj(a) or np.iscomplexobj(b):
        return a.real * b.real + a.imag * b.imag
    return a * b


def _collapse(z):
    if np.iscomplexobj(z):
        return z.real + z.imag
    return z


def _centered(level, i, j):
    """sum2[i, j] - sum1[i] * sum1[j] / n for one level."""
    X = level.sum1
    return _collapse(level.sum2[i, j]) - _cross(X[i], X[j]) / level.count


def _centered_matrix(level):
    """
    Matrix of centered second moments for one level.

    The one-pass difference can come out slightly negative for (nearly)
    constant data, so the diagonal is clamped at zero and each off-diagonal
    entry to ``|C[i, j]| <= sqrt(C[i, i] * C[j, j])``.
    """
    X = level.sum1
    C = _collapse(level.sum2) - _cross(X[:, np.newaxis], X[np.newaxis, :]) / level.count
    idx = np.arange(len(X))
    d = np.maximum(C[idx, idx], 0)
    C[idx, idx] = d
    bound = np.sqrt(d[:, np.newaxis] * d[np.newaxis, :])
    return np.clip(C, -bound, bound)


def reliable_level(ep) -> int:
    """
    Pick the binning level whose error estimate is trusted.

    Scans from the highest level down and returns the first one with at least
    ``ep.min_blocks`` values. Lower levels still carry autocorrelation bias,
    higher ones have too few blocks. Falls back to level 1, which also covers
    the empty accumulator.
    """
    if ep.is_empty():
        return 1
    for lvl in range(ep.nlevels, 0, -1):
        if ep.level(lvl).count >= ep.min_blocks:
            return lvl
    return 1


def mean(ep, i: int, lvl: int = 1):
    """Mean of argument `i` at a binning level (level 1 unless given)."""
    _check_index(ep, i)
    level = ep.level(lvl)
    if level.count < 1:
        return _nan(ep)
    return level.sum1[i] / level.count


def var(ep, i: int, lvl: Optional[int] = None):
    """
    Unbiased variance of argument `i` at a binning level.

    For complex samples this is the variance of the real part plus the
    variance of the imaginary part.
    """
    _check_index(ep, i)
    level = ep.level(_resolve(ep, lvl))
    n = level.count
    if n < 2:
        return _nan(ep)
    return np.maximum(_centered(level, i, i), 0) / (n - 1)


def varN(ep, i: int, lvl: Optional[int] = None):
    """Variance of the mean (variance / n) of argument `i`."""
    lvl = _resolve(ep, lvl)
    n = ep.level(lvl).count
    if n < 2:
        _check_index(ep, i)
        return _nan(ep)
    return var(ep, i, lvl) / n


def tau(ep, i: int, lvl: Optional[int] = None):
    """
    Integrated autocorrelation time of argument `i`.

    Compares the variance of the mean at `lvl` with the naive one at level 1:
    ``tau = 0.5 * (varN(lvl) / varN(1) - 1)``.
    """
    lvl = _resolve(ep, lvl)
    with np.errstate(divide="ignore", invalid="ignore"):
        return 0.5 * (varN(ep, i, lvl) / varN(ep, i, 1) - 1)


def std_error(ep, i: int, lvl: Optional[int] = None):
    """Standard error of the mean of argument `i`."""
    return np.sqrt(varN(ep, i, lvl))


def effective_sample_size(ep, i: int, lvl: Optional[int] = None):
    """Number of independent samples the correlated series is worth."""
    lvl = _resolve(ep, lvl)
    n = ep.level(1).count
    with np.errstate(divide="ignore", invalid="ignore"):
        return n / (1 + 2 * tau(ep, i, lvl))


def means(ep, lvl: int = 1) -> list:
    return [mean(ep, i, lvl) for i in range(ep.num_arguments)]


def vars(ep, lvl: Optional[int] = None) -> list:
    lvl = _resolve(ep, lvl)
    return [var(ep, i, lvl) for i in range(ep.num_arguments)]


def varNs(ep, lvl: Optional[int] = None) -> list:
    lvl = _resolve(ep, lvl)
    return [varN(ep, i, lvl) for i in range(ep.num_arguments)]


def taus(ep, lvl: Optional[int] = None) -> list:
    lvl = _resolve(ep, lvl)
    return [tau(ep, i, lvl) for i in range(ep.num_arguments)]


def std_errors(ep, lvl: Optional[int] = None) -> list:
    lvl = _resolve(ep, lvl)
    return [std_error(ep, i, lvl) for i in range(ep.num_arguments)]


def _populated_levels(ep):
    return [lvl for lvl in range(1, ep.nlevels + 1) if ep.level(lvl).count > 1]


def all_means(ep) -> list:
    """Per-level means, indexed as ``all_means(ep)[level_index][arg]``."""
    return [means(ep, lvl) for lvl in _populated_levels(ep)]


def all_vars(ep) -> list:
    return [vars(ep, lvl) for lvl in _populated_levels(ep)]


def all_varNs(ep) -> list:
    return [varNs(ep, lvl) for lvl in _populated_levels(ep)]


def all_taus(ep) -> list:
    return [taus(ep, lvl) for lvl in _populated_levels(ep)]


def all_std_errors(ep) -> list:
    return [std_errors(ep, lvl) for lvl in _populated_levels(ep)]


def covmat(ep, lvl: Optional[int] = None) -> np.ndarray:
    """
    Covariance matrix of the K arguments at a binning level.

    Returns:
        Array of shape ``(K, K) + shape`` with entries
        ``(sum2[i, j] - sum1[i] * sum1[j] / n) / (n - 1)``.
    """
    level = ep.level(_resolve(ep, lvl))
    n = level.count
    K = ep.num_arguments
    if n < 2:
        return np.full((K, K) + ep.shape, np.nan)
    return _centered_matrix(level) / (n - 1)


def propagated_var(ep, gradient, lvl: Optional[int] = None):
    """
    First-order variance estimate of a function of the K means.

    For a function ``f`` of the means, pass ``gradient = grad f(*means(ep))``.
    The mean of ``f`` itself can be estimated as ``f(*means(ep))``.

    Args:
        ep: Error propagator
        gradient: Sequence of K partial derivatives; for array samples each
            entry may also be an array broadcastable to the sample shape
        lvl: Binning level (reliable level if not given)

    Returns:
        Variance of the mean of ``f``
    """
    g = np.asarray(gradient, dtype=np.float64)
    K = ep.num_arguments
    if g.ndim == 0 or g.shape[0] != K:
        raise ValueError(f"Gradient must have {K} entries, got shape {g.shape}")
    if g.ndim == 1:
        g = g.reshape((K,) + (1,) * len(ep.shape))

    level = ep.level(_resolve(ep, lvl))
    n = level.count
    if n < 2:
        return _nan(ep)
    C = _centered_matrix(level)
    result = np.sum(g[:, np.newaxis] * g[np.newaxis, :] * C, axis=(0, 1))
    return np.maximum(result, 0) / (n * (n - 1))
