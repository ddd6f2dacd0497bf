"""Parallel execution entry points: the worker pool and sampling sessions."""

from __future__ import annotations

from .parallel import ParallelConfig, ParallelExecutor, ParallelMetrics
from .sampling import SampleOutcome, SamplingService, SamplingSession

__all__ = (
    "ParallelConfig",
    "ParallelExecutor",
    "ParallelMetrics",
    "SampleOutcome",
    "SamplingService",
    "SamplingSession",
)
