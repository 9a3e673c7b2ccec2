"""
Minimal-sample drawing strategies.

- UniformSampler: every iteration draws m distinct indices uniformly from all N data
  (RANSAC / LMedS / MSAC).
- ProgressiveSampler: PROSAC sampling. Data are ranked by descending quality and
  iteration t draws from the top n(t) ranked data only; n(t) grows following the
  PROSAC growth function until the whole set is used. It also owns the PROSAC
  non-randomized termination test (non-randomness + maximality).

Chum, O. and Matas, J., "Matching with PROSAC - progressive sample consensus", CVPR 2005.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np
from scipy.stats import binom

from .types import FloatArray, IntArray, Mask


# Probability that a random (incorrect) model gets supported by an outlier.
PROSAC_BETA = 0.01

# Maximum probability that an inlier set judged non-random is actually random.
PROSAC_PSI = 0.05

# Large enough to behave like "never" when an inlier ratio is zero.
_UNBOUNDED_ITERATIONS = int(1e9)


def required_iterations(*, confidence: float, inlier_ratio: float, sample_size: int) -> int:
    """
    Compute the number of iterations needed so that the probability of having
    drawn at least ONE all-inlier minimal sample is >= confidence.

    inlier ratio w = (# inliers) / N, minimal sample s,
    - P(all-inliers) = w^s
    - P(not-all-inliers-for-k-times) = (1 - w^s)^k
    - P(at-least-once-all-inliers) = 1 - (1 - w^s)^k >= p

    Formula:
       k >= log(1 - p) / log(1 - w^s)

    Edge cases:
     - w == 0  -> impossible, return "infinite-ish" (capped by the caller)
     - w == 1  -> 1 iteration is enough
    """
    # Clamp inputs to avoid log(0)
    p = float(np.clip(confidence, 1e-12, 1.0 - 1e-12))
    w = float(np.clip(inlier_ratio, 0.0, 1.0))
    s = int(sample_size)

    if s <= 0:
        raise ValueError("sample_size must be >= 1")

    if w >= 1.0:
        return 1
    if w <= 0.0:
        return _UNBOUNDED_ITERATIONS

    # If w^s is extremely tiny, log(1 - w^s) is close to 0
    w_to_s = float(np.clip(w ** s, 1e-12, 1.0 - 1e-12))

    k = math.ceil(math.log(1.0 - p) / math.log(1.0 - w_to_s))
    return int(min(max(1, k), _UNBOUNDED_ITERATIONS))


class UniformSampler:
    """Uniform random minimal samples (unique indices, no replacement)."""

    def __init__(self, total_samples: int, sample_size: int, rng: np.random.Generator) -> None:
        if sample_size > total_samples:
            raise ValueError(f"cannot draw {sample_size} samples out of {total_samples}")
        self.total_samples = total_samples
        self.sample_size = sample_size
        self._rng = rng

    def sample(self) -> IntArray:
        return self._rng.choice(self.total_samples, size=self.sample_size, replace=False)


class ProgressiveSampler:
    """
    PROSAC sampler.

    Growth function (T_N = max_iterations, m = sample size):

                          n - i
        T_n = T_N * prod ------- , i = 0 .. m-1
                          N - i

        T_(n+1) = T_n * (n + 1) / (n + 1 - m)
        T'_(n+1) = T'_n + ceil(T_(n+1) - T_n),   T'_m = 1

    At iteration t, once t > T'_n the subset grows (n = n + 1). While
    T'_n >= t the sample is the n-th ranked datum plus m-1 data drawn from the
    top n-1; afterwards it is m data drawn uniformly from the top n.
    """

    def __init__(
            self,
            quality_scores: FloatArray,
            sample_size: int,
            max_iterations: int,
            rng: np.random.Generator,
    ) -> None:
        scores = np.asarray(quality_scores, dtype=np.float64)
        n_total = scores.shape[0]
        if sample_size > n_total:
            raise ValueError(f"cannot draw {sample_size} samples out of {n_total}")

        self.total_samples = n_total
        self.sample_size = sample_size
        self._rng = rng

        # Rank data by descending quality. Stable sort keeps the caller's order on ties.
        self.order: IntArray = np.argsort(-scores, kind="stable")

        m = sample_size
        t_n = float(max_iterations)
        for i in range(m):
            t_n *= (m - i) / (n_total - i)

        self._t_n = t_n             # T_n (average number of samples drawn from U_n only)
        self._t_n_prime = 1         # T'_n (integer version of the growth function)
        self._n = m                 # current subset size
        self._n_star = n_total      # termination length, lowered by the maximality test
        self._t = 0                 # samples drawn so far

        # Minimum inlier count I_min(n) for the support of U_n to be non-random:
        # number of outliers supporting a random model X ~ Binomial(n - m, beta),
        # I_min(n) = m + min{j : P(X >= j) <= psi}.
        # binom.isf returns the smallest k with P(X > k) <= psi, i.e. P(X >= k + 1) <= psi,
        # hence the + 1. For n == m, I_min(m) = m + 1 can never be reached.
        ns = np.arange(m, n_total + 1)
        quantiles = np.nan_to_num(binom.isf(PROSAC_PSI, ns - m, PROSAC_BETA), nan=0.0)
        self._i_min: FloatArray = m + np.maximum(quantiles, 0.0) + 1.0

    @property
    def subset_size(self) -> int:
        return self._n

    @property
    def termination_length(self) -> int:
        return self._n_star

    @property
    def minimum_inliers(self) -> FloatArray:
        """I_min(n) for n = m .. N (index 0 is n = m)."""
        return self._i_min

    def sample(self) -> IntArray:
        self._t += 1
        m = self.sample_size

        # Grow the sampling pool if needed.
        if self._t > self._t_n_prime and self._n < self._n_star:
            t_n_next = self._t_n * (self._n + 1) / (self._n + 1 - m)
            self._t_n_prime += int(math.ceil(t_n_next - self._t_n))
            self._t_n = t_n_next
            self._n += 1

        if self._t_n_prime < self._t:
            # Behaves like RANSAC restricted to the top n data.
            ranks = self._rng.choice(self._n, size=m, replace=False)
        else:
            # The n-th datum is always part of the sample.
            ranks = np.append(
                self._rng.choice(self._n - 1, size=m - 1, replace=False),
                self._n - 1,
            )
        return self.order[ranks]

    def update_termination(self, inliers: Mask, confidence: float) -> Optional[int]:
        """
        Apply the PROSAC termination test to the support of a new best model.

        For every n in [m, N] the inliers among the top n ranked data I_n must be
        non-random (I_n >= I_min(n)). Among those n, the one needing the fewest
        samples k_n to reach the requested confidence (maximality) becomes the new
        termination length n*.

        Returns:
          k_(n*), or None if no n passes the non-randomness test.
        """
        m = self.sample_size
        ranked = np.asarray(inliers, dtype=bool)[self.order]
        counts = np.cumsum(ranked)

        ns = np.arange(m, self.total_samples + 1)
        i_n = counts[ns - 1]
        non_random = i_n >= self._i_min
        if not non_random.any():
            return None

        best_k = None
        best_n = self._n_star
        for n, inl in zip(ns[non_random], i_n[non_random]):
            k = required_iterations(confidence=confidence, inlier_ratio=inl / n, sample_size=m)
            if best_k is None or k < best_k:
                best_k = k
                best_n = int(n)

        self._n_star = best_n
        return best_k
