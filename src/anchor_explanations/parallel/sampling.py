"""Batched evaluation of anchor candidates.

A :class:`SamplingSession` collects ``(candidate, extra samples)`` requests and
evaluates them in one go on the worker pool of a :class:`ParallelExecutor`.
Workers only compute ``(sample_count, positive_count)`` pairs; merging them
into the candidates' counters happens on the calling thread once every
request has finished, so :meth:`SamplingSession.run` is a full barrier and
each candidate has a single writer.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Tuple

from ..core.candidate import AnchorCandidate
from ..utils.exceptions import AnchorError
from .parallel import ParallelConfig, ParallelExecutor

logger = logging.getLogger(__name__)


class SampleOutcome(NamedTuple):
    """Result of evaluating one batch of perturbations."""

    sample_count: int
    positive_count: int

    @property
    def precision(self) -> float:
        if self.sample_count == 0:
            return 0.0
        return self.positive_count / self.sample_count


SampleFunction = Callable[[AnchorCandidate, int], SampleOutcome]


@dataclass
class SamplingMetrics:
    sessions: int = 0
    requests: int = 0
    samples: int = 0


class SamplingSession:
    """One batch of sampling requests. A session can only be run once."""

    def __init__(self, service: "SamplingService") -> None:
        self._service = service
        self._requests: Dict[int, Tuple[AnchorCandidate, int]] = {}
        self._has_run = False

    def register_candidate_evaluation(self, candidate: AnchorCandidate, count: int) -> "SamplingSession":
        """Request ``count`` more samples for ``candidate``.

        Requests for the same candidate are summed; non-positive counts are
        ignored.
        """
        if self._has_run:
            raise AnchorError("Cannot register requests on a session that has already run.")
        if count < 1:
            return self
        key = id(candidate)
        if key in self._requests:
            count += self._requests[key][1]
        self._requests[key] = (candidate, int(count))
        return self

    def __len__(self) -> int:
        return len(self._requests)

    def run(self) -> List[float]:
        """Evaluate every request and block until all counters are updated.

        Returns the batch precision of each request in registration order.
        """
        if self._has_run:
            raise AnchorError("A sampling session may only be run once.")
        self._has_run = True
        requests = list(self._requests.values())
        if not requests:
            return []
        return self._service._execute(requests)


class SamplingService:
    """Executes sampling sessions on top of a :class:`ParallelExecutor`."""

    def __init__(self, sample_function: SampleFunction, executor: ParallelExecutor | None = None) -> None:
        self._sample_function = sample_function
        self.executor = executor if executor is not None else ParallelExecutor(ParallelConfig())
        self.metrics = SamplingMetrics()
        self._in_flight: set[int] = set()
        self._lock = threading.Lock()

    def create_session(self) -> SamplingSession:
        return SamplingSession(self)

    def evaluate(self, candidate: AnchorCandidate, count: int) -> float:
        """Take ``count`` more samples of ``candidate`` and return their precision."""
        if count < 1:
            return 0.0
        return self.create_session().register_candidate_evaluation(candidate, count).run()[0]

    def _execute(self, requests: List[Tuple[AnchorCandidate, int]]) -> List[float]:
        keys = {id(candidate) for candidate, _ in requests}
        with self._lock:
            busy = keys & self._in_flight
            if busy:
                raise AnchorError(
                    "A candidate is already being sampled by another session.",
                    details={"candidates": len(busy)},
                )
            self._in_flight |= keys
        try:
            outcomes = self.executor.map(self._evaluate_request, requests)
        finally:
            with self._lock:
                self._in_flight -= keys

        for (candidate, _), outcome in zip(requests, outcomes):
            candidate.register_samples(outcome.sample_count, outcome.positive_count)
        self.metrics.sessions += 1
        self.metrics.requests += len(requests)
        self.metrics.samples += sum(outcome.sample_count for outcome in outcomes)
        return [outcome.precision for outcome in outcomes]

    def _evaluate_request(self, request: Tuple[AnchorCandidate, int]) -> SampleOutcome:
        candidate, count = request
        outcome = self._sample_function(candidate, count)
        if outcome.sample_count != count:
            raise AnchorError(
                "Sample function evaluated a different number of samples than requested.",
                details={"requested": count, "evaluated": outcome.sample_count},
            )
        return outcome


__all__ = ["SampleOutcome", "SampleFunction", "SamplingMetrics", "SamplingSession", "SamplingService"]
