#!/usr/bin/env python3
"""
Basic usage examples for the Error Propagation Library.

This script demonstrates binning analysis of correlated data, error
propagation through a function of several means and the jackknife.
"""

import numpy as np

# Import the error propagation library
import sys
sys.path.append('..')

from errorprop import (
    ErrorPropagator,
    LogBinner,
    FullBinner,
    jackknife,
)


def ar1_series(n: int, phi: float, seed: int = 42) -> np.ndarray:
    """Generate an AR(1) series with autocorrelation time phi / (1 - phi)."""
    np.random.seed(seed)
    noise = np.random.normal(0, 1, n)
    x = np.empty(n)
    x[0] = noise[0]
    for t in range(1, n):
        x[t] = phi * x[t - 1] + noise[t]
    return x


def demonstrate_binning():
    """Show how naive errors underestimate the error of correlated data."""
    print("=" * 60)
    print("DEMONSTRATION: Binning Analysis of Correlated Data")
    print("=" * 60)

    phi = 0.8
    data = ar1_series(2 ** 16, phi)

    binner = LogBinner()
    binner.extend(data)
    full = FullBinner(data)

    print(f"Samples:              {len(binner)}")
    print(f"Mean:                 {binner.mean():.6f}")
    print(f"Naive error:          {full.std_error():.6f}")
    print(f"Binned error:         {binner.std_error():.6f}")
    print(f"Reliable level:       {binner.reliable_level()}")
    print(f"Estimated tau:        {binner.tau():.3f}")
    print(f"Exact tau:            {phi / (1 - phi):.3f}")
    print()

    print("Standard error per binning level:")
    for lvl, err in enumerate(binner.all_std_errors(), start=1):
        print(f"  level {lvl:2d} (block {2 ** (lvl - 1):6d}): {err:.6f}")
    print()


def demonstrate_error_propagation():
    """Propagate errors through the ratio of two correlated means."""
    print("=" * 60)
    print("DEMONSTRATION: Error Propagation")
    print("=" * 60)

    x = ar1_series(2 ** 14, 0.5, seed=1) + 3.0
    y = 0.5 * x + ar1_series(2 ** 14, 0.5, seed=2) + 5.0

    ep = ErrorPropagator(2)
    for a, b in zip(x, y):
        ep.append((a, b))

    mx, my = ep.means()
    ratio = mx / my
    gradient = [1.0 / my, -mx / my ** 2]
    error = np.sqrt(ep.propagated_var(gradient))

    print(f"Covariance matrix (level {ep.reliable_level()}):")
    print(ep.covmat())
    print(f"<x> / <y> = {ratio:.6f} +- {error:.6f}")

    # The jackknife ignores autocorrelations unless blocks are used.
    jk_naive = jackknife(lambda a, b: np.mean(a) / np.mean(b), x, y)
    jk_blocked = jackknife(lambda a, b: np.mean(a) / np.mean(b), x, y, num_blocks=64)
    print(f"Jackknife error (single samples): {jk_naive:.6f}")
    print(f"Jackknife error (64 blocks):      {jk_blocked:.6f}")
    print()


def main():
    """Run all demonstrations."""
    demonstrate_binning()
    demonstrate_error_propagation()


if __name__ == "__main__":
    main()
