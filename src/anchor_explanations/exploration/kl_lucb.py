"""KL-LUCB best-arm identification (Kaufmann and Kalyanakrishnan, 2013).

Repeatedly samples the two "critical" candidates, the weakest of the current
top-n and the strongest of the rest, until their KL confidence bounds are
separated by at most ``epsilon``.
"""

from __future__ import annotations

import logging
from collections import namedtuple
from typing import TYPE_CHECKING, List

import numpy as np

from ..core.bernoulli import dlow_bernoulli, dup_bernoulli
from ..core.candidate import AnchorCandidate
from ..core.validation import validate_percentage, validate_unsigned
from ..utils.exceptions import ValidationError

if TYPE_CHECKING:  # pragma: no cover - import-time only
    from ..parallel.sampling import SamplingService

logger = logging.getLogger(__name__)

CriticalArms = namedtuple("CriticalArms", ["ut", "lt"])


def compute_beta(n_candidates: int, t: int, delta: float) -> float:
    """Exploration rate for round ``t`` over ``n_candidates`` arms.

    ``delta`` must be positive.
    """
    alpha = 1.1
    k = 405.5
    temp = np.log(k * n_candidates * (t**alpha) / delta)
    return float(temp + np.log(temp))


class KLLUCB:
    """Best-arm identification strategy driving sampling through sessions.

    Parameters
    ----------
    epsilon : float
        Tolerance on the gap between the critical arms' bounds.
    batch_size : int
        Samples drawn per critical arm and iteration.
    max_rounds : int
        Upper bound on the number of sampling iterations.
    """

    def __init__(self, epsilon: float = 0.1, batch_size: int = 100, max_rounds: int = 10000) -> None:
        validate_percentage(epsilon, "Epsilon")
        validate_unsigned(batch_size, "Batch size")
        validate_unsigned(max_rounds, "Max rounds")
        if batch_size < 1:
            raise ValidationError("Batch size must be positive.", details={"param": "batch_size"})
        self.epsilon = epsilon
        self.batch_size = batch_size
        self.max_rounds = max_rounds

    def identify(
        self,
        candidates: List[AnchorCandidate],
        sampling_service: "SamplingService",
        delta: float,
        top_n: int,
    ) -> List[AnchorCandidate]:
        """Return the ``top_n`` candidates by precision, best first."""
        if top_n < 1 or not candidates:
            return []

        session = sampling_service.create_session()
        for candidate in candidates:
            if candidate.sampled_size == 0:
                session.register_candidate_evaluation(candidate, 1)
        session.run()

        if len(candidates) <= top_n:
            return self._top(candidates, len(candidates))

        if delta <= 0:
            # no finite confidence bound at this level; rank by the current means
            logger.debug("KL-LUCB skipped: delta of %s gives unbounded confidence intervals", delta)
            return self._top(candidates, top_n)

        ub = np.zeros(len(candidates))
        lb = np.zeros(len(candidates))
        t = 1
        crit = self._select_critical_arms(candidates, ub, lb, delta, top_n, t)
        gap = ub[crit.ut] - lb[crit.lt]
        while gap > self.epsilon and t < self.max_rounds:
            sampling_service.create_session().register_candidate_evaluation(
                candidates[crit.ut], self.batch_size
            ).register_candidate_evaluation(candidates[crit.lt], self.batch_size).run()
            t += 1
            crit = self._select_critical_arms(candidates, ub, lb, delta, top_n, t)
            gap = ub[crit.ut] - lb[crit.lt]

        if gap > self.epsilon:
            logger.warning("KL-LUCB stopped after %d rounds with a bound gap of %.4f", t, gap)
        else:
            logger.debug("KL-LUCB converged after %d rounds (gap %.4f)", t, gap)
        return self._top(candidates, top_n)

    @staticmethod
    def _top(candidates: List[AnchorCandidate], top_n: int) -> List[AnchorCandidate]:
        means = np.array([c.precision for c in candidates])
        order = np.argsort(-means, kind="stable")[:top_n]
        return [candidates[i] for i in order]

    @staticmethod
    def _select_critical_arms(
        candidates: List[AnchorCandidate],
        ub: np.ndarray,
        lb: np.ndarray,
        delta: float,
        top_n: int,
        t: int,
    ) -> CriticalArms:
        means = np.array([c.precision for c in candidates])
        n_samples = np.array([max(c.sampled_size, 1) for c in candidates], dtype=float)
        beta = compute_beta(len(candidates), t, delta)

        sorted_means = np.argsort(means, kind="stable")
        top = sorted_means[-top_n:]
        rest = sorted_means[:-top_n]

        ub[rest] = dup_bernoulli(means[rest], beta / n_samples[rest])
        lb[top] = dlow_bernoulli(means[top], beta / n_samples[top])

        return CriticalArms(ut=int(rest[np.argmax(ub[rest])]), lt=int(top[np.argmin(lb[top])]))


__all__ = ["KLLUCB", "compute_beta"]
