"""
Simulation runner: N independent trials, serial or on a worker pool.

Every trial draws from its own stream seeded by
``SeedSequence(entropy=master, spawn_key=(trial_index,))``, so a trial's
outcomes depend only on the master entropy and its index. Batch size and
worker count change how fast a run finishes, never what it produces.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import (
    Executor,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from dataclasses import dataclass, field

import numpy as np

from risk_lab.core.contracts import SimulationConfig
from risk_lab.core.enums import RunStatus
from risk_lab.core.logging import get_engine_logger
from risk_lab.engine.outcomes import BufferedUniformStream
from risk_lab.engine.trial import TrialEngine, TrialResult

logger = get_engine_logger("runner")
trial_logger = get_engine_logger("trial")

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class SeedPolicy:
    """Master seed for a run. ``None`` draws fresh OS entropy once per run."""

    master_seed: int | None = None

    def resolve(self) -> int:
        if self.master_seed is not None:
            return self.master_seed
        return int(np.random.SeedSequence().entropy)

    @staticmethod
    def trial_seed(master_entropy: int, trial_index: int) -> np.random.SeedSequence:
        return np.random.SeedSequence(entropy=master_entropy, spawn_key=(trial_index,))


class CancellationToken:
    """Cooperative cancel flag, checked by the runner between batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunnerResult:
    status: RunStatus
    master_entropy: int
    requested_count: int
    results: list[TrialResult] = field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return len(self.results)

    @property
    def cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED


def simulate_batch(
    config: SimulationConfig,
    trading_days: int,
    trading_days_per_month: int,
    master_entropy: int,
    start: int,
    stop: int,
    block_size: int = 1024,
    trace_index: int | None = None,
) -> list[TrialResult]:
    """Run trials ``[start, stop)``. Module-level so process pools can pickle it."""
    engine = TrialEngine(config, trading_days, trading_days_per_month)
    traced = None
    if trace_index is not None and start <= trace_index < stop:
        traced = TrialEngine(config, trading_days, trading_days_per_month, trace=True)

    results: list[TrialResult] = []
    for trial_index in range(start, stop):
        stream = BufferedUniformStream.from_seed(
            SeedPolicy.trial_seed(master_entropy, trial_index), block_size
        )
        runner = traced if trial_index == trace_index else engine
        results.append(runner.run_trial(stream, trial_index, seed_entropy=master_entropy))
    return results


class SimulationRunner:
    """Partitions a trial count into batches and runs them."""

    def __init__(
        self,
        batch_size: int = 1000,
        max_workers: int = 1,
        use_processes: bool = True,
        block_size: int = 1024,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.use_processes = use_processes
        self.block_size = block_size

    def run(
        self,
        config: SimulationConfig,
        simulation_count: int,
        months_to_trade: int = 1,
        trading_days_per_month: int | None = None,
        seed_policy: SeedPolicy | None = None,
        cancel_token: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> RunnerResult:
        """
        Run ``simulation_count`` trials of ``months_to_trade`` months each.

        Args:
            config: Compiled simulation config (read-only, shared by all trials)
            simulation_count: Number of independent trials
            months_to_trade: Months per trial
            trading_days_per_month: Defaults to ``config.trading_days_per_month``
            seed_policy: Master seed; fresh entropy when omitted
            cancel_token: Checked between batches
            progress_callback: Called as ``(completed, total)`` after each batch

        Returns:
            RunnerResult with trials sorted by index. A cancelled run keeps
            every trial of the batches that finished.
        """
        if simulation_count < 0:
            raise ValueError("simulation_count must be >= 0")
        if months_to_trade <= 0:
            raise ValueError("months_to_trade must be positive")

        per_month = trading_days_per_month or config.trading_days_per_month
        trading_days = months_to_trade * per_month
        master_entropy = (seed_policy or SeedPolicy()).resolve()
        batches = [
            (start, min(start + self.batch_size, simulation_count))
            for start in range(0, simulation_count, self.batch_size)
        ]

        logger.info(
            "Running %d trials of %d days for %r (%d batches, %d workers, entropy=%d)",
            simulation_count,
            trading_days,
            config.name,
            len(batches),
            self.max_workers,
            master_entropy,
        )
        t0 = time.time()

        args = (config, trading_days, per_month, master_entropy)
        if self.max_workers <= 1 or len(batches) <= 1:
            trace_index = 0 if trial_logger.isEnabledFor(logging.DEBUG) else None
            results, cancelled = self._run_serial(
                args, batches, trace_index, simulation_count, cancel_token, progress_callback
            )
        else:
            results, cancelled = self._run_pooled(
                args, batches, simulation_count, cancel_token, progress_callback
            )

        results.sort(key=lambda r: r.trial_index)
        status = RunStatus.CANCELLED if cancelled else RunStatus.COMPLETED
        elapsed = time.time() - t0
        if cancelled:
            logger.info(
                "Run cancelled after %d/%d trials (%.2fs)",
                len(results),
                simulation_count,
                elapsed,
            )
        else:
            logger.info("Run complete: %d trials in %.2fs", len(results), elapsed)

        return RunnerResult(
            status=status,
            master_entropy=master_entropy,
            requested_count=simulation_count,
            results=results,
        )

    def _run_serial(
        self,
        args: tuple,
        batches: list[tuple[int, int]],
        trace_index: int | None,
        total: int,
        cancel_token: CancellationToken | None,
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[TrialResult], bool]:
        results: list[TrialResult] = []
        for start, stop in batches:
            if cancel_token is not None and cancel_token.cancelled:
                return results, True
            results.extend(
                simulate_batch(*args, start, stop, self.block_size, trace_index)
            )
            logger.debug("Batch [%d, %d) done (%d/%d)", start, stop, len(results), total)
            if progress_callback is not None:
                progress_callback(len(results), total)
        return results, False

    def _run_pooled(
        self,
        args: tuple,
        batches: list[tuple[int, int]],
        total: int,
        cancel_token: CancellationToken | None,
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[TrialResult], bool]:
        results: list[TrialResult] = []
        if cancel_token is not None and cancel_token.cancelled:
            return results, True

        executor_cls: type[Executor] = (
            ProcessPoolExecutor if self.use_processes else ThreadPoolExecutor
        )
        cancelled = False
        with executor_cls(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(simulate_batch, *args, start, stop, self.block_size): (
                    start,
                    stop,
                )
                for start, stop in batches
            }
            for future in as_completed(futures):
                start, stop = futures[future]
                results.extend(future.result())
                logger.debug(
                    "Batch [%d, %d) done (%d/%d)", start, stop, len(results), total
                )
                if progress_callback is not None:
                    progress_callback(len(results), total)
                if (
                    cancel_token is not None
                    and cancel_token.cancelled
                    and len(results) < total
                ):
                    cancelled = True
                    executor.shutdown(wait=True, cancel_futures=True)
                    break
        return results, cancelled
