"""Beam search construction of anchors.

An anchor is a conjunction of features that, when held fixed while the rest
of an instance is perturbed, keeps the classifier's prediction stable with
high probability. The search follows Ribeiro et al.::

    function BeamSearch(f, x, D, tau)
        A* <- null, A_0 <- {}
        loop
            A_t <- GenerateCands(A_t-1, cov(A*))
            A_t <- B-BestCand(A_t, D, B, delta, tau)
            if A_t = {} then break loop
            for all A in A_t s.t. prec_lb(A, delta) > tau do
                if cov(A) > cov(A*) then A* <- A
        return A*

Candidates are shortlisted by a best-arm identification strategy, and each
shortlisted candidate is then verified with KL confidence bounds since the
strategy alone does not guarantee the user's precision constraints.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..logging import ensure_logging_context_filter, logging_context, trace_sampling_enabled
from ..parallel.parallel import ParallelConfig, ParallelExecutor
from ..parallel.sampling import SampleOutcome, SamplingService
from ..utils.exceptions import NoAnchorFoundError, NoCandidateFoundError, ValidationError
from .bernoulli import dlow_bernoulli, dup_bernoulli
from .candidate import AnchorCandidate, AnchorResult
from .protocols import (
    BestAnchorIdentification,
    PerturbationResult,
    as_classification_function,
    as_coverage_identification,
    as_perturbation_function,
    count_matching_labels,
)
from .validation import (
    validate_callable_member,
    validate_not_none,
    validate_percentage,
    validate_unsigned,
)

logger = logging.getLogger(__name__)
ensure_logging_context_filter(__name__)


# ----------------------------------------------------------------------
# Confidence bound bracketing
# ----------------------------------------------------------------------
def compute_validation_beta(delta: float, beam_size: int, feature_count: int) -> float:
    """Significance level of the validity check.

    At most ``beam_size - 1`` candidates are chosen per round and there are at
    most ``feature_count`` rounds, so ``delta`` is split accordingly.
    """
    hypotheses = 1 + max(beam_size - 1, 0) * feature_count
    if delta <= 0:
        return math.inf
    return math.log(1 / (delta / hypotheses))


def confidence_bounds(mean: float, sampled_size: int, beta: float) -> Tuple[float, float]:
    """Return ``(lower, upper)`` KL confidence bounds of a Bernoulli mean."""
    if sampled_size <= 0 or math.isinf(beta):
        return 0.0, 1.0
    level = beta / sampled_size
    return dlow_bernoulli(mean, level), dup_bernoulli(mean, level)


def needs_more_samples(mean: float, lb: float, ub: float, tau: float, tau_discrepancy: float) -> bool:
    """Whether the bounds still straddle ``tau`` beyond the tolerated discrepancy."""
    return (mean >= tau and lb < tau - tau_discrepancy) or (mean < tau and ub >= tau + tau_discrepancy)


def is_confirmed_anchor(mean: float, lb: float, tau: float, tau_discrepancy: float) -> bool:
    return mean >= tau and lb > tau - tau_discrepancy


def is_valid_precision(
    mean: float, sampled_size: int, beta: float, tau: float, tau_discrepancy: float
) -> bool:
    """Terminal validity decision for fixed sample statistics."""
    lb, _ = confidence_bounds(mean, sampled_size, beta)
    return is_confirmed_anchor(mean, lb, tau, tau_discrepancy)


def infer_feature_count(instance: Any) -> int:
    """Number of features of ``instance``: a ``feature_count`` attribute or its last dimension."""
    count = getattr(instance, "feature_count", None)
    if count is not None:
        return int(count() if callable(count) else count)
    shape = np.shape(instance)
    if not shape:
        raise ValidationError(
            "Cannot infer the feature count of a scalar explained instance.",
            details={"param": "explained_instance"},
        )
    return int(shape[-1])


class AnchorConstruction:
    """Constructs the anchor of one explained instance.

    Parameters
    ----------
    classification_function
        Object with ``predict(instances)`` (or a callable) returning labels.
    perturbation_function
        Object with ``perturb(features, count)`` (or a callable) producing
        perturbations of the explained instance that keep ``features`` fixed.
    best_anchor_identification
        Best-arm identification strategy, see
        :class:`~anchor_explanations.core.protocols.BestAnchorIdentification`.
    coverage_identification
        Object with ``calculate_coverage(features)`` (or a callable).
    explained_instance
        The instance being explained.
    explained_instance_label
        Its predicted label.
    max_anchor_size
        Maximum number of features in the resulting anchor.
    beam_size
        Number of candidates kept per round.
    delta
        Significance level of the best-arm identification and validity check.
    tau
        Precision an anchor needs to achieve.
    tau_discrepancy
        Tolerated gap between ``tau`` and the confidence bounds. Sampling
        until the bounds fall strictly on one side of ``tau`` is usually
        infeasible.
    init_sample_count
        Samples taken for each candidate before best-arm identification, and
        batch size of each resampling step of the validity check.
    thread_count
        Number of sampling workers; ``0`` or ``1`` samples sequentially.
    lazy_coverage_evaluation
        Only compute a candidate's coverage when it is needed.
    max_validation_resamples
        Maximum number of resampling steps of the validity check. A candidate
        whose bounds have not separated by then is considered invalid.
    feature_count
        Number of features; inferred from the instance's shape when omitted.
    parallel_config
        Base configuration of the sampling worker pool.
    """

    def __init__(
        self,
        classification_function: Any,
        perturbation_function: Any,
        best_anchor_identification: BestAnchorIdentification,
        coverage_identification: Any,
        explained_instance: Any,
        explained_instance_label: int,
        max_anchor_size: int,
        beam_size: int,
        delta: float,
        tau: float,
        tau_discrepancy: float,
        init_sample_count: int,
        thread_count: int = 1,
        lazy_coverage_evaluation: bool = False,
        max_validation_resamples: int = 1000,
        feature_count: Optional[int] = None,
        parallel_config: Optional[ParallelConfig] = None,
    ) -> None:
        validate_callable_member(classification_function, "predict", "Classification function")
        validate_callable_member(perturbation_function, "perturb", "Perturbation function")
        validate_callable_member(
            best_anchor_identification, "identify", "Best anchor identification", allow_callable=False
        )
        validate_callable_member(coverage_identification, "calculate_coverage", "Coverage identification")
        validate_not_none(explained_instance, "Explained instance")
        validate_unsigned(explained_instance_label, "Explained instance label")
        validate_unsigned(max_anchor_size, "Max anchor size")
        validate_unsigned(beam_size, "Beam size")
        validate_percentage(delta, "Delta value")
        validate_percentage(tau, "Tau value")
        validate_percentage(tau_discrepancy, "Tau discrepancy value")
        validate_unsigned(init_sample_count, "Initialization sample count")
        validate_unsigned(thread_count, "Thread count")
        validate_unsigned(max_validation_resamples, "Max validation resamples")
        if feature_count is None:
            feature_count = infer_feature_count(explained_instance)
        validate_unsigned(feature_count, "Feature count")

        self.classification_function = as_classification_function(classification_function)
        self.perturbation_function = as_perturbation_function(perturbation_function)
        self.best_anchor_identification = best_anchor_identification
        self.coverage_identification = as_coverage_identification(coverage_identification)
        self.explained_instance = explained_instance
        self.explained_instance_label = int(explained_instance_label)
        self.max_anchor_size = max_anchor_size
        self.beam_size = beam_size
        self.delta = delta
        self.tau = tau
        self.tau_discrepancy = tau_discrepancy
        self.init_sample_count = init_sample_count
        self.thread_count = thread_count
        self.lazy_coverage_evaluation = lazy_coverage_evaluation
        self.max_validation_resamples = max_validation_resamples
        self.feature_count = feature_count

        self._trace_sampling = trace_sampling_enabled()
        self.executor = ParallelExecutor(ParallelConfig.for_thread_count(thread_count, parallel_config))
        self.sampling_service = SamplingService(self._do_sample, self.executor)
        self.best_anchor_history: List[AnchorCandidate] = []

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------
    def generate_candidate_set(
        self,
        previous_best: Optional[List[AnchorCandidate]],
        feature_count: int,
        min_coverage: float,
    ) -> List[AnchorCandidate]:
        """Extend the previous round's best candidates by one feature each.

        According to Ribeiro::

            function GenerateCands(A, c)
                A_r <- {}
                for all A in A; a_i in x, a_i not in A do
                    if cov(A and a_i) > c then
                        A_r <- A_r + (A and a_i)
                return A_r

        Coverage can only decrease as features are added, so candidates
        covering less than ``min_coverage`` (the best anchor's coverage) can
        never improve on it and are dropped.
        """
        generated: Dict[frozenset, AnchorCandidate] = {}
        if not previous_best:
            for feature in range(feature_count):
                candidate = AnchorCandidate((feature,))
                generated.setdefault(candidate.canonical_features, candidate)
        else:
            for parent in previous_best:
                for feature in range(feature_count):
                    if feature in parent.canonical_features:
                        continue
                    key = parent.canonical_features | {feature}
                    if key not in generated:
                        generated[key] = parent.extend(feature)

        result = []
        for candidate in generated.values():
            if not self.lazy_coverage_evaluation or min_coverage > 0:
                self.calculate_candidate_coverage(candidate)
            if min_coverage > 0 and candidate.coverage < min_coverage:
                continue
            result.append(candidate)
        return result

    def calculate_candidate_coverage(self, candidate: AnchorCandidate) -> None:
        """Calculate a candidate's coverage unless already known."""
        if not candidate.is_coverage_undefined:
            return
        candidate.coverage = self.coverage_identification.calculate_coverage(candidate.canonical_features)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------
    def _do_sample(self, candidate: AnchorCandidate, samples_to_evaluate: int) -> SampleOutcome:
        """Perturb with the candidate's features fixed and count matching predictions.

        Runs on the sampling workers; counters are merged by the session.
        """
        if samples_to_evaluate < 1:
            return SampleOutcome(0, 0)

        perturbation = self.perturbation_function.perturb(candidate.canonical_features, samples_to_evaluate)
        raw = perturbation.raw_result if isinstance(perturbation, PerturbationResult) else perturbation
        if len(raw) != samples_to_evaluate:
            raise ValidationError(
                "Perturbation function returned an unexpected number of instances.",
                details={"requested": samples_to_evaluate, "returned": len(raw)},
            )
        predictions = np.asarray(self.classification_function.predict(raw)).ravel()
        if len(predictions) != samples_to_evaluate:
            raise ValidationError(
                "Classification function returned an unexpected number of labels.",
                details={"requested": samples_to_evaluate, "returned": len(predictions)},
            )
        matching = count_matching_labels(predictions, self.explained_instance_label)
        if self._trace_sampling:
            logger.debug(
                "Sampling %d perturbations of %s resulted in %d correct predictions (precision %.4f)",
                samples_to_evaluate,
                sorted(candidate.canonical_features),
                matching,
                matching / samples_to_evaluate,
            )
        return SampleOutcome(samples_to_evaluate, matching)

    def best_candidates(self, candidates: List[AnchorCandidate], top_n: int) -> List[AnchorCandidate]:
        """Select the ``top_n`` best candidates using the best-arm strategy.

        Every candidate is first sampled up to ``init_sample_count``.
        """
        session = self.sampling_service.create_session()
        for candidate in candidates:
            if candidate.sampled_size < self.init_sample_count:
                session.register_candidate_evaluation(
                    candidate, self.init_sample_count - candidate.sampled_size
                )
        session.run()

        if len(candidates) <= top_n:
            logger.debug("Number of arms searched for is at least the number of candidates; returning all.")
            return list(candidates)

        logger.debug(
            "Calling %s to identify top %d candidates with a significance level of %s",
            type(self.best_anchor_identification).__name__,
            top_n,
            self.delta,
        )
        return list(
            self.best_anchor_identification.identify(candidates, self.sampling_service, self.delta, top_n)
        )

    # ------------------------------------------------------------------
    # Validity check
    # ------------------------------------------------------------------
    def is_valid_candidate(self, candidate: AnchorCandidate) -> bool:
        """Sample until the candidate is confidently an anchor or confidently not one.

        Best-arm identification does not by itself respect the user's
        confidence constraints, hence this separate check.
        """
        beta = compute_validation_beta(self.delta, self.beam_size, self.feature_count)
        batch = max(self.init_sample_count, 1)
        mean = candidate.precision
        lb, ub = confidence_bounds(mean, candidate.sampled_size, beta)

        resamples = 0
        while needs_more_samples(mean, lb, ub, self.tau, self.tau_discrepancy):
            if resamples >= self.max_validation_resamples:
                logger.warning(
                    "Could not confirm or reject %s as an anchor after %d resamples; treating it as invalid.",
                    sorted(candidate.canonical_features),
                    resamples,
                )
                return False
            logger.debug(
                "Cannot confirm or reject %s is an anchor. Taking more samples.",
                sorted(candidate.canonical_features),
            )
            self.sampling_service.create_session().register_candidate_evaluation(candidate, batch).run()
            resamples += 1
            mean = candidate.precision
            lb, ub = confidence_bounds(mean, candidate.sampled_size, beta)

        return is_confirmed_anchor(mean, lb, self.tau, self.tau_discrepancy)

    # ------------------------------------------------------------------
    # Beam search
    # ------------------------------------------------------------------
    def beam_search(self) -> AnchorCandidate:
        """Run the beam search and return the best anchor.

        Raises
        ------
        NoCandidateFoundError
            If not a single candidate with a precision > 0 could be found.
        NoAnchorFoundError
            If no candidate satisfies the precision constraints. The best
            candidate found is attached to the exception.
        """
        logger.info(
            "Starting beam search with beam width %d and a max anchor size of %d",
            self.beam_size,
            self.max_anchor_size,
        )
        start_time = time.perf_counter()

        best_of_size: Dict[int, List[AnchorCandidate]] = {}
        best_candidate: Optional[AnchorCandidate] = None
        self.best_anchor_history = []

        current_size = 1
        stop_loop = False
        while current_size <= self.max_anchor_size and not stop_loop:
            with logging_context(anchor_size=current_size):
                logger.info("Adding feature %d of %d", current_size, self.max_anchor_size)
                min_coverage = best_candidate.coverage if best_candidate is not None else 0.0
                candidates = self.generate_candidate_set(
                    best_of_size.get(current_size - 1), self.feature_count, min_coverage
                )
                if not candidates:
                    logger.info("No candidates left to extend, stopping search.")
                    break

                top_n = min(len(candidates), self.beam_size)
                shortlisted = [c for c in self.best_candidates(candidates, top_n) if c.precision > 0]
                if not shortlisted:
                    logger.warning(
                        "No best candidates with a precision > 0 returned by best arm identification, "
                        "stopping search."
                    )
                    break
                best_of_size[current_size] = shortlisted

                for candidate in shortlisted:
                    with logging_context(candidate=sorted(candidate.canonical_features)):
                        is_valid = self.is_valid_candidate(candidate)
                        logger.info(
                            "Top candidate %s is%s a valid anchor with precision %.4f",
                            sorted(candidate.canonical_features),
                            "" if is_valid else " not",
                            candidate.precision,
                        )
                        if not is_valid:
                            continue
                        self.calculate_candidate_coverage(candidate)
                        if best_candidate is None or candidate.coverage > best_candidate.coverage:
                            logger.info(
                                "Found a new best anchor (%s) with a coverage of %s",
                                sorted(candidate.canonical_features),
                                candidate.coverage,
                            )
                            best_candidate = candidate
                            self.best_anchor_history.append(candidate)
                            if candidate.coverage >= 1.0:
                                logger.info("Found an anchor with a coverage of 1. Stopping search prematurely.")
                                stop_loop = True
            current_size += 1

        if best_candidate is None:
            logger.warning("Could not identify an anchor satisfying the parameters. Searching for best candidate.")
            all_candidates = [c for round_best in best_of_size.values() for c in round_best]
            fallback = self.best_candidates(all_candidates, 1)
            if not fallback:
                logger.warning("Could not find an anchor or any candidate with a precision > 0.")
                raise NoCandidateFoundError(details={"rounds": len(best_of_size)})
            best_effort = fallback[0]
            self.calculate_candidate_coverage(best_effort)
            logger.warning("Returning best found candidate %r without anchor guarantees", best_effort)
            raise NoAnchorFoundError(
                AnchorResult(best_effort, self.explained_instance, self.explained_instance_label, is_anchor=False)
            )

        logger.info("Found result %r in %.1fms", best_candidate, (time.perf_counter() - start_time) * 1000)
        return best_candidate

    def construct_anchor(self) -> AnchorResult:
        """Construct the anchor given the configured algorithms and parameters.

        A search failing to find anchors usually points to a low quality
        perturbation function, a borderline prediction or a beam that is too
        narrow.

        Raises
        ------
        NoCandidateFoundError
            If not a single candidate with a precision > 0 could be found.
        NoAnchorFoundError
            If no candidate satisfies the precision constraints.
        """
        with logging_context(explainer_id=f"anchor-{id(self):x}"), self.executor:
            candidate = self.beam_search()
        return AnchorResult(candidate, self.explained_instance, self.explained_instance_label)


__all__ = [
    "AnchorConstruction",
    "compute_validation_beta",
    "confidence_bounds",
    "needs_more_samples",
    "is_confirmed_anchor",
    "is_valid_precision",
    "infer_feature_count",
]
