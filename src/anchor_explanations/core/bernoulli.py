"""KL-divergence based confidence bounds for Bernoulli means.

The bounds are found by bisection on the Bernoulli KL divergence and are
considerably tighter than Hoeffding bounds for small sample counts and for
means close to 0 or 1. All functions accept scalars or numpy arrays.
"""

from __future__ import annotations

from typing import Union

import numpy as np
import numpy.typing as npt

_EPS = 1e-7

ArrayLike = Union[float, npt.NDArray[np.floating]]


def kl_bernoulli(p: ArrayLike, q: ArrayLike) -> ArrayLike:
    """Return KL(Bernoulli(p) || Bernoulli(q)).

    Both arguments are clipped to ``[1e-7, 1 - 1e-7]`` so the divergence is
    finite at the boundary.
    """
    p = np.clip(p, _EPS, 1 - _EPS)
    q = np.clip(q, _EPS, 1 - _EPS)
    return p * np.log(p / q) + (1 - p) * np.log((1 - p) / (1 - q))


def dup_bernoulli(p: ArrayLike, level: ArrayLike, n_iter: int = 17) -> ArrayLike:
    """Upper confidence bound: the largest ``q >= p`` with ``kl(p, q) <= level``.

    Parameters
    ----------
    p
        Empirical precision(s).
    level
        ``beta / n_samples`` for each precision.
    n_iter
        Number of bisection steps.
    """
    scalar = np.ndim(p) == 0 and np.ndim(level) == 0
    p_arr, level_arr = np.broadcast_arrays(
        np.asarray(p, dtype=float), np.asarray(level, dtype=float)
    )
    lm = p_arr.copy()
    um = np.minimum(p_arr + np.sqrt(level_arr / 2.0), 1.0)
    for _ in range(1, n_iter):
        qm = (um + lm) / 2.0
        above = kl_bernoulli(p_arr, qm) > level_arr
        um = np.where(above, qm, um)
        lm = np.where(above, lm, qm)
    um = np.clip(um, 0.0, 1.0)
    return float(um) if scalar else um


def dlow_bernoulli(p: ArrayLike, level: ArrayLike, n_iter: int = 17) -> ArrayLike:
    """Lower confidence bound: the smallest ``q <= p`` with ``kl(p, q) <= level``."""
    scalar = np.ndim(p) == 0 and np.ndim(level) == 0
    p_arr, level_arr = np.broadcast_arrays(
        np.asarray(p, dtype=float), np.asarray(level, dtype=float)
    )
    um = p_arr.copy()
    lm = np.maximum(p_arr - np.sqrt(level_arr / 2.0), 0.0)
    for _ in range(1, n_iter):
        qm = (um + lm) / 2.0
        above = kl_bernoulli(p_arr, qm) > level_arr
        lm = np.where(above, qm, lm)
        um = np.where(above, um, qm)
    lm = np.clip(lm, 0.0, 1.0)
    return float(lm) if scalar else lm


__all__ = ["kl_bernoulli", "dup_bernoulli", "dlow_bernoulli"]
