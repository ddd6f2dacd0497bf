"""Worker pool used to evaluate sampling requests concurrently."""

from __future__ import annotations

import logging
import os
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterable, List, Literal, Mapping, Sequence, TypeVar

from ..core.config_helpers import parse_number_token, split_csv
from ..utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

TelemetryCallback = Callable[[str, Mapping[str, Any]], None]
StrategyLiteral = Literal["auto", "threads", "sequential"]


@dataclass
class ParallelMetrics:
    """Telemetry counters collected by :class:`ParallelExecutor`."""

    submitted: int = 0
    completed: int = 0
    fallbacks: int = 0
    failures: int = 0
    total_duration: float = 0.0
    max_workers: int = 0

    def snapshot(self) -> Mapping[str, int | float]:
        """Return the metrics as a serialisable mapping."""
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "fallbacks": self.fallbacks,
            "failures": self.failures,
            "total_duration": self.total_duration,
            "max_workers": self.max_workers,
        }


@dataclass
class ParallelConfig:
    """Configuration options for the parallel executor."""

    enabled: bool = False
    strategy: StrategyLiteral = "auto"
    max_workers: int | None = None
    min_batch_size: int = 2
    force_serial_on_failure: bool = False
    telemetry: TelemetryCallback | None = None

    @classmethod
    def for_thread_count(cls, thread_count: int, base: "ParallelConfig | None" = None) -> "ParallelConfig":
        """Derive a configuration from the anchor ``thread_count`` knob.

        A thread count of 0 or 1 means sequential evaluation.
        """
        cfg = ParallelConfig(**(base.__dict__ if base is not None else {}))
        if thread_count > 1:
            cfg.enabled = True
            cfg.max_workers = thread_count
            if cfg.strategy == "auto":
                cfg.strategy = "threads"
        else:
            cfg.enabled = False
            cfg.max_workers = 1
        return cfg

    @classmethod
    def from_env(cls, base: "ParallelConfig | None" = None) -> "ParallelConfig":
        """Merge ``AE_PARALLEL`` overrides with an optional ``base`` configuration."""
        cfg = ParallelConfig(**(base.__dict__ if base is not None else {}))
        tokens = split_csv(os.getenv("AE_PARALLEL"))
        if not tokens:
            return cfg
        if len(tokens) == 1 and tokens[0].lower() in {"1", "true", "on"}:
            cfg.enabled = True
            return cfg
        for token in tokens:
            lowered = token.lower()
            if lowered in {"0", "off", "false"}:
                cfg.enabled = False
            elif lowered in {"threads", "sequential", "auto"}:
                cfg.strategy = lowered  # type: ignore[assignment]
            elif lowered == "enable":
                cfg.enabled = True
            elif lowered.startswith("workers="):
                cfg.max_workers = max(1, parse_number_token("workers", token.split("=", 1)[1], int))
            elif lowered.startswith("min_batch="):
                cfg.min_batch_size = max(1, parse_number_token("min_batch", token.split("=", 1)[1], int))
            elif lowered.startswith("force_serial="):
                cfg.force_serial_on_failure = token.split("=", 1)[1].lower() in {"1", "true", "on"}
            else:
                raise ConfigurationError(
                    f"Unknown AE_PARALLEL token {token!r}.",
                    details={"variable": "AE_PARALLEL", "token": token},
                )
        return cfg


class ParallelExecutor:
    """Facade that selects a strategy and provides graceful fallbacks.

    Use as a context manager to keep one worker pool alive across many
    :meth:`map` calls; outside a ``with`` block every call creates its own
    short-lived pool.
    """

    def __init__(self, config: ParallelConfig) -> None:
        """Store configuration and telemetry state for later map calls."""
        self.config = config
        self.metrics = ParallelMetrics()
        self._pool: ThreadPoolExecutor | None = None
        self._active_strategy_name: str | None = None

    def __enter__(self) -> "ParallelExecutor":
        """Initialize the execution pool if parallelism is enabled."""
        if not self.config.enabled:
            return self

        strategy_name = self.config.strategy
        if strategy_name == "auto":
            strategy_name = self._auto_strategy()
        self._active_strategy_name = strategy_name

        if strategy_name == "threads":
            try:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers(), thread_name_prefix="anchor-sampling"
                )
            except (RuntimeError, ValueError) as exc:
                logger.warning("Failed to initialize parallel pool: %s. Falling back to serial.", exc)
                warnings.warn(
                    f"Failed to initialize parallel pool ({exc!r}); falling back to sequential execution.",
                    UserWarning,
                    stacklevel=2,
                )
                self._pool = None
                self._active_strategy_name = "sequential"
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Shutdown the execution pool."""
        if self._pool is not None:
            # Pending work is dropped when leaving on an error.
            self._pool.shutdown(wait=True, cancel_futures=exc_type is not None)
            self._pool = None
        self._active_strategy_name = None

    def _max_workers(self, workers: int | None = None) -> int:
        return workers or self.config.max_workers or min(32, (os.cpu_count() or 1) + 4)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def map(
        self,
        fn: Callable[[T], R],
        items: Sequence[T] | Iterable[T],
        *,
        workers: int | None = None,
    ) -> List[R]:
        """Execute *fn* across *items*, returning results in input order."""
        items_list = list(items)
        if not self.config.enabled or len(items_list) == 0:
            return [fn(item) for item in items_list]
        if len(items_list) < max(1, self.config.min_batch_size):
            self._emit(
                "parallel_decision",
                {
                    "decision": "sequential",
                    "reason": "below_min_batch_size",
                    "work_items": len(items_list),
                    "min_batch_size": self.config.min_batch_size,
                },
            )
            return [fn(item) for item in items_list]

        self.metrics.submitted += len(items_list)
        start_time = time.perf_counter()
        try:
            strategy = self._resolve_strategy()
            results = strategy(fn, items_list, workers=workers)
        except Exception as exc:
            self.metrics.failures += 1
            self._emit("parallel_failure", {"error": repr(exc)})
            if not self.config.force_serial_on_failure:
                raise
            self.metrics.fallbacks += 1
            warnings.warn(
                f"Parallel execution failed ({exc!r}); falling back to sequential execution.",
                UserWarning,
                stacklevel=2,
            )
            logger.info("Parallel failure; forced serial fallback engaged")
            results = [fn(item) for item in items_list]
        else:
            duration = time.perf_counter() - start_time
            self.metrics.completed += len(results)
            self.metrics.total_duration += duration
            current_workers = self._max_workers(workers)
            self.metrics.max_workers = max(self.metrics.max_workers, current_workers)
            self._emit(
                "parallel_execution",
                {
                    "strategy": self._active_strategy_name or self.config.strategy,
                    "items": len(items_list),
                    "duration": duration,
                    "workers": current_workers,
                },
            )
        return results

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------
    def _resolve_strategy(self) -> Callable[..., List[Any]]:
        """Return a concrete execution strategy based on configuration."""
        strategy = self._active_strategy_name or self.config.strategy
        if strategy == "auto":
            strategy = self._auto_strategy()
        if strategy == "threads":
            return partial(self._thread_strategy)
        return partial(self._serial_strategy)

    def _auto_strategy(self) -> str:
        """Choose a sensible default backend for the current platform."""
        if (os.cpu_count() or 1) <= 1 and not self.config.max_workers:
            self._emit("parallel_decision", {"decision": "sequential", "reason": "single_cpu"})
            return "sequential"
        # Sampling is dominated by model inference which usually releases the GIL.
        self._emit("parallel_decision", {"decision": "threads", "reason": "default"})
        return "threads"

    # ------------------------------------------------------------------
    # Individual strategies
    # ------------------------------------------------------------------
    def _serial_strategy(
        self,
        fn: Callable[[T], R],
        items: Sequence[T],
        *,
        workers: int | None = None,
    ) -> List[R]:
        """Fallback strategy executing sequentially in the current thread."""
        return [fn(item) for item in items]

    def _thread_strategy(
        self,
        fn: Callable[[T], R],
        items: Sequence[T],
        *,
        workers: int | None = None,
    ) -> List[R]:
        """Execute work items using a thread pool."""
        if self._pool is not None:
            return list(self._pool.map(fn, items))
        with ThreadPoolExecutor(max_workers=self._max_workers(workers)) as pool:
            return list(pool.map(fn, items))

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def _emit(self, event: str, payload: Mapping[str, Any]) -> None:
        """Emit telemetry payloads guarding against user callback failures."""
        if self.config.telemetry is None:
            return
        try:  # pragma: no cover - telemetry best effort
            self.config.telemetry(event, payload)
        except Exception as exc:
            logger.debug("Parallel telemetry callback failed for %s: %s", event, exc)


__all__ = ["ParallelConfig", "ParallelExecutor", "ParallelMetrics", "TelemetryCallback"]
