"""
Concurrent runner for carving the units of one ingest job.

This module provides a ThreadPoolExecutor-based runner that:
- Spawns N configurable worker threads
- Gives each worker its own task executor (start_up / process / shut_down)
- Feeds units to workers from a shared queue
- Turns SIGINT/SIGTERM into job cancellation
- Aggregates per-worker and per-run metrics
"""

import logging
import queue
import signal
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from ..core.context import JobContext
from ..core.exceptions import CarvingError
from ..core.logging import CorrelationContext
from ..core.models import ProcessResult, TaskState, Unit
from .carving_task import CarvingTaskExecutor


logger = logging.getLogger(__name__)


@dataclass
class RunnerConfig:
    """
    Configuration for the concurrent runner.

    Attributes:
        max_workers: Number of worker threads, one task executor each
        install_signal_handlers: Cancel the job on SIGINT/SIGTERM (main thread only)
        poll_interval: Seconds between checks while waiting for workers
    """
    max_workers: int = 4
    install_signal_handlers: bool = True
    poll_interval: float = 0.2


@dataclass
class RunMetrics:
    """Aggregate metrics for a run."""
    run_id: str
    job_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    items_processed: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    items_cancelled: int = 0
    status: str = "running"
    start_up_errors: List[str] = field(default_factory=list)

    # Per-worker metrics
    worker_metrics: Dict[str, dict] = field(default_factory=dict)


class ConcurrentRunner:
    """
    Multi-worker runner that drives carving task executors.

    Features:
    - Configurable number of worker threads
    - One executor per worker, shut down in the worker's finally block
    - A start-up failure in any worker cancels the whole job
    - Graceful shutdown: in-flight units observe cancellation and abort
    """

    def __init__(
        self,
        executor_factory: Callable[[], CarvingTaskExecutor],
        config: Optional[RunnerConfig] = None,
    ):
        """
        Initialize the concurrent runner.

        Args:
            executor_factory: Builds a fresh task executor for each worker
            config: Runner configuration (uses defaults if not provided)
        """
        self.executor_factory = executor_factory
        self.config = config or RunnerConfig()

        # Runtime state
        self._executor: Optional[ThreadPoolExecutor] = None
        self._workers: Dict[str, Future] = {}
        self._units: "queue.Queue[Unit]" = queue.Queue()
        self._context: Optional[JobContext] = None

        # Metrics
        self._metrics_lock = threading.Lock()
        self._run_metrics: Optional[RunMetrics] = None

    def run(self, units: Iterable[Unit], context: JobContext,
            run_id: Optional[str] = None) -> RunMetrics:
        """
        Carve every unit of a job.

        Returns when the queue is drained, or when the job is cancelled and
        every worker has finished its current unit.

        Args:
            units: Units to carve
            context: Job context shared by every executor
            run_id: Optional run identifier (auto-generated if not provided)

        Returns:
            RunMetrics with aggregate statistics
        """
        if run_id is None:
            run_id = str(uuid.uuid4())

        self._context = context
        self._units = queue.Queue()
        for unit in units:
            self._units.put(unit)

        logger.info(f"Starting carving run {run_id} for job {context.job_id}")
        logger.info(f"Configuration: max_workers={self.config.max_workers}, "
                    f"units={self._units.qsize()}")

        self._run_metrics = RunMetrics(
            run_id=run_id,
            job_id=context.job_id,
            started_at=datetime.now(timezone.utc),
        )

        restore_signals = self._install_signal_handlers()
        try:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="carving-worker"
            )

            for i in range(self.config.max_workers):
                worker_id = f"{context.job_id}-{i}"
                self._workers[worker_id] = self._executor.submit(self._worker_loop, worker_id)
                logger.debug(f"Started worker: {worker_id}")

            # Poll rather than block so Ctrl+C is delivered
            while not all(f.done() for f in self._workers.values()):
                time.sleep(self.config.poll_interval)

            for worker_id, future in self._workers.items():
                if future.exception() is not None:
                    logger.error(f"Worker {worker_id} failed with error: {future.exception()}")
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, cancelling job...")
            self.shutdown()
        finally:
            restore_signals()
            self._cleanup()

        metrics = self._run_metrics
        metrics.ended_at = datetime.now(timezone.utc)
        if metrics.start_up_errors:
            metrics.status = "failed"
        elif context.is_cancelled():
            metrics.status = "cancelled"
        else:
            metrics.status = "completed"

        logger.info(f"Run complete: {run_id} ({metrics.status})")
        logger.info(f"Metrics: processed={metrics.items_processed}, "
                    f"succeeded={metrics.items_succeeded}, "
                    f"failed={metrics.items_failed}, "
                    f"cancelled={metrics.items_cancelled}")
        return metrics

    def _install_signal_handlers(self) -> Callable[[], None]:
        if (not self.config.install_signal_handlers
                or threading.current_thread() is not threading.main_thread()):
            return lambda: None

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handle_shutdown_signal(signum, frame):
            logger.info(f"Received signal {signum}, cancelling job...")
            self.shutdown()

        signal.signal(signal.SIGINT, _handle_shutdown_signal)
        signal.signal(signal.SIGTERM, _handle_shutdown_signal)

        def restore():
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
        return restore

    def _worker_loop(self, worker_id: str) -> None:
        """
        Main worker loop.

        Starts an executor, then takes units from the queue until it is
        empty or the job is cancelled.
        """
        context = self._context
        worker_metrics = {
            "items_processed": 0,
            "items_succeeded": 0,
            "items_failed": 0,
            "items_cancelled": 0,
        }

        with CorrelationContext(job_id=context.job_id, worker_id=worker_id):
            executor = self.executor_factory()
            try:
                try:
                    executor.start_up(context)
                except CarvingError as e:
                    logger.error(f"Worker {worker_id} failed to start: {e}")
                    with self._metrics_lock:
                        self._run_metrics.start_up_errors.append(str(e))
                    context.cancel()
                    return

                while not context.is_cancelled():
                    try:
                        unit = self._units.get_nowait()
                    except queue.Empty:
                        break
                    self._process_unit(executor, unit, worker_id, worker_metrics)
            finally:
                executor.shut_down()
                with self._metrics_lock:
                    self._run_metrics.worker_metrics[worker_id] = worker_metrics
                logger.debug(
                    f"Worker {worker_id} stopped. Processed: {worker_metrics['items_processed']}"
                )

    def _process_unit(self, executor: CarvingTaskExecutor, unit: Unit,
                      worker_id: str, worker_metrics: dict) -> None:
        try:
            outcome = executor.execute(unit)
            if outcome.state == TaskState.ABORTED:
                key = "items_cancelled"
            elif outcome.result == ProcessResult.OK:
                key = "items_succeeded"
            else:
                key = "items_failed"
        except Exception as e:
            logger.exception(f"Worker {worker_id} crashed on unit {unit.name}: {e}")
            key = "items_failed"

        worker_metrics[key] += 1
        worker_metrics["items_processed"] += 1
        with self._metrics_lock:
            setattr(self._run_metrics, key, getattr(self._run_metrics, key) + 1)
            self._run_metrics.items_processed += 1

    def _cleanup(self) -> None:
        """Clean up resources."""
        if self._executor:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
        self._workers.clear()

    # =========================================================================
    # Control Methods
    # =========================================================================

    def shutdown(self) -> None:
        """
        Cancel the running job.

        Workers stop taking new units; in-flight units abort at their next
        cancellation check.
        """
        if self._context is not None:
            self._context.cancel()

    def get_status(self) -> Dict:
        """
        Get current runner status.

        Returns:
            Dictionary with queue depth, run metrics and cancellation state
        """
        metrics = self._run_metrics
        return {
            "pending_units": self._units.qsize(),
            "workers": sorted(self._workers.keys()),
            "run_metrics": {
                "run_id": metrics.run_id,
                "job_id": metrics.job_id,
                "items_processed": metrics.items_processed,
                "items_succeeded": metrics.items_succeeded,
                "items_failed": metrics.items_failed,
                "items_cancelled": metrics.items_cancelled,
                "status": metrics.status,
            } if metrics else None,
            "cancelled": self._context.is_cancelled() if self._context else False,
        }
