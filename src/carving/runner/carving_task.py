"""
Carving task executor.

One executor instance serves one worker thread of an ingest job. The host
calls ``start_up`` once, ``process`` for every unit the worker receives, and
``shut_down`` once. Each unit moves through

    PREFLIGHT -> WRITING -> CARVING -> PARSING -> RECONCILING -> DONE

and ends in ABORTED on cancellation or FAILED on error. Whatever the
outcome, the unit's temp file is removed before ``process`` returns.
"""

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from ..config.settings import CarverSettings, EngineConfig
from ..core.context import JobContext
from ..core.events import MODULE_NAME, ModuleContentEvent, Notifier
from ..core.exceptions import (
    CarvingError,
    CaseStorageError,
    EngineExecutionError,
    InsufficientDiskSpaceError,
    UnallocatedSpaceDisabledError,
)
from ..core.hierarchy import collect_virtual_directory_parents
from ..core.logging import CorrelationContext
from ..core.models import (
    ContentKind, ContentNode, ProcessResult, TaskOutcome, TaskState, Unit, Workspace
)
from ..core.storage import CaseStorage
from ..engine.executable import locate_executable
from ..engine.options import (
    COMPAT_ENV, LOG_FILE, REPORT_NAME, RESULTS_EXTENDED,
    build_command, build_options_string,
)
from ..engine.process_runner import ProcessRunner, TerminationPolicy
from ..engine.report_parser import ReportParser
from ..jobs.accounting import JobTotals
from ..jobs.lifecycle import JobLifecycle
from ..workspace.paths import DISK_FREE_SPACE_UNKNOWN, get_free_disk_space
from .content_writer import write_unit_to_file


logger = logging.getLogger(__name__)


def _millis_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@dataclass
class _UnitRun:
    """Working state of one unit's pass through the pipeline."""
    unit: Unit
    state: TaskState = TaskState.PREFLIGHT
    temp_file: Optional[Path] = None
    output_dir: Optional[Path] = None

    def transition(self, state: TaskState) -> None:
        logger.debug(f"{self.unit.name}: {self.state.value} -> {state.value}")
        self.state = state


class CarvingTaskExecutor:
    """
    Runs the carving engine over unallocated space units.

    Features:
    - Start-up validation of settings, executable and workspace
    - Free-space preflight with a configurable safety margin
    - Cooperative cancellation between every stage and during the engine run
    - Artifact cleanup on failure and cancellation
    - Content events for carved files and newly created virtual directories
    """

    def __init__(
        self,
        settings: CarverSettings,
        engine: EngineConfig,
        lifecycle: JobLifecycle,
        storage: CaseStorage,
        notifier: Notifier,
        runner: Optional[ProcessRunner] = None,
        parser: Optional[ReportParser] = None,
        free_space_probe: Callable[[Path], int] = get_free_disk_space,
    ):
        """
        Initialize the executor.

        Args:
            settings: Carver job settings
            engine: Engine lookup and supervision settings
            lifecycle: Job start/end handling shared by the ingest run
            storage: Case storage receiving carved files
            notifier: Destination for content events and user notifications
            runner: Process runner (a default one if not provided)
            parser: Report parser (a default one if not provided)
            free_space_probe: Returns free bytes for a path, or -1 if unknown
        """
        self.settings = settings
        self.engine = engine
        self.lifecycle = lifecycle
        self.storage = storage
        self.notifier = notifier
        self.runner = runner or ProcessRunner()
        self.parser = parser or ReportParser()
        self.free_space_probe = free_space_probe

        self.context: Optional[JobContext] = None
        self.options_string: Optional[str] = None
        self.executable: Optional[Path] = None
        self.workspace: Optional[Workspace] = None
        self.totals: Optional[JobTotals] = None
        self._attached = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_up(self, context: JobContext) -> None:
        """
        Prepare to process units of a job.

        Raises:
            SettingsError, UnallocatedSpaceDisabledError,
            ExecutableNotFoundError, ExecutableNotRunnableError,
            WorkspaceInitError, PathAccessError
        """
        self.settings.validate()
        self.options_string = build_options_string(self.settings)
        self.context = context

        if not context.processing_unallocated_space:
            raise UnallocatedSpaceDisabledError(
                "The selected ingest filter ignores unallocated space. "
                "Choose a filter that includes it or disable this module."
            )

        self.executable = locate_executable(
            explicit=self.engine.executable,
            bundled_dir=self.engine.bundled_dir,
        )

        self.workspace = self.lifecycle.start_job(context.job_id, context.data_source.content_id)
        self._attached = True
        self.totals = self.lifecycle.totals(context.job_id)

    def shut_down(self) -> None:
        """Detach from the job; the last executor out tears it down."""
        if self._attached and self.context is not None:
            self._attached = False
            self.lifecycle.end_job(self.context.job_id)

    # =========================================================================
    # Processing
    # =========================================================================

    def process(self, unit: Unit) -> ProcessResult:
        """Carve one unit and report OK or ERROR to the scheduler."""
        return self.execute(unit).result

    def execute(self, unit: Unit) -> TaskOutcome:
        """Carve one unit and return the detailed outcome."""
        if unit.kind != ContentKind.UNALLOC_BLOCKS:
            return TaskOutcome(ProcessResult.OK, TaskState.DONE)

        job_id = self.context.job_id if self.context else None
        run = _UnitRun(unit)
        with CorrelationContext(job_id=job_id, unit=unit.name):
            try:
                return self._run_pipeline(run)
            except Exception:
                logger.exception(f"Unexpected error carving {unit.name} (id={unit.unit_id})")
                if self.totals is not None:
                    self.totals.add_error()
                raise
            finally:
                self._remove_temp_file(run.temp_file)

    def _run_pipeline(self, run: _UnitRun) -> TaskOutcome:
        unit = run.unit

        # PREFLIGHT
        if self.executable is None or self.workspace is None or self.context is None:
            logger.error("Carver called after failed start up")
            return self._fail(run, CarvingError("Carver called after failed start up"))

        free_space = self.free_space_probe(self.workspace.temp_dir)
        required = unit.size * self.settings.disk_space_margin
        if free_space != DISK_FREE_SPACE_UNKNOWN and required > free_space:
            return self._fail(run, InsufficientDiskSpaceError(
                f"Not enough space on primary disk to save {unit.name}",
                required=int(required),
                available=free_space,
            ))

        if self.context.is_cancelled():
            return self._abort(run)

        # WRITING
        run.transition(TaskState.WRITING)
        write_start = time.monotonic()
        run.temp_file = self.workspace.temp_dir / unit.work_name
        try:
            write_unit_to_file(unit, run.temp_file, self.context.is_cancelled)
        except (CarvingError, OSError) as e:
            return self._fail(run, e)

        if self.context.is_cancelled():
            return self._abort(run)

        # CARVING
        run.transition(TaskState.CARVING)
        output_dir = self.workspace.output_dir / unit.work_name
        try:
            output_dir.mkdir()
            run.output_dir = output_dir
            outcome = self.runner.run(
                build_command(self.executable, run.output_dir, run.temp_file, self.options_string),
                policy=self._termination_policy(),
                env=COMPAT_ENV,
                log_path=run.output_dir / LOG_FILE,
            )
        except (CarvingError, OSError) as e:
            self._cleanup(run)
            return self._fail(run, e)

        if self.context.is_cancelled() or outcome.cancelled:
            return self._abort(run)
        if outcome.timed_out:
            self._cleanup(run)
            return self._fail(run, EngineExecutionError(
                f"Carving engine timed out processing {unit.name}",
                timed_out=True,
            ))
        if outcome.exit_code != 0:
            self._cleanup(run)
            return self._fail(run, EngineExecutionError(
                f"Carving engine returned error exit value = {outcome.exit_code} "
                f"when scanning {unit.name}",
                exit_code=outcome.exit_code,
            ))

        # PARSING
        run.transition(TaskState.PARSING)
        try:
            report = self._relocate_report(run.output_dir)
            if self.context.is_cancelled():
                return self._abort(run)
            self._remove_result_directories(run.output_dir)
            self.totals.add_write_time(_millis_since(write_start))

            parse_start = time.monotonic()
            items = self.parser.parse(report, unit, self.context)
            self.totals.add_parse_time(_millis_since(parse_start))
        except (CarvingError, OSError) as e:
            return self._fail(run, e)

        if self.context.is_cancelled():
            return self._abort(run)

        # RECONCILING
        run.transition(TaskState.RECONCILING)
        persisted: List[ContentNode] = []
        if items:
            try:
                persisted = self.storage.add_carved_files(items, unit)
            except CaseStorageError as e:
                return self._fail(run, e)
            self.totals.add_recovered(len(persisted))
            self.context.add_files_to_job(persisted)
            self._fire_content_events(persisted)

        run.transition(TaskState.DONE)
        logger.info(f"Carved {len(persisted)} files from {unit.name}")
        return TaskOutcome(ProcessResult.OK, TaskState.DONE, items=persisted)

    def _termination_policy(self) -> TerminationPolicy:
        timeout = self.context.process_timeout_seconds
        if timeout is None:
            timeout = self.engine.timeout_seconds
        return TerminationPolicy(
            is_cancelled=self.context.is_cancelled,
            timeout_seconds=timeout,
            poll_interval=self.engine.poll_interval,
            kill_grace_seconds=self.engine.kill_grace_seconds,
        )

    def _relocate_report(self, output_dir: Path) -> Path:
        """Move the report out of ``results.1`` into the unit's output dir."""
        source = output_dir / RESULTS_EXTENDED / REPORT_NAME
        target = output_dir / REPORT_NAME
        if source.exists():
            os.replace(source, target)
        return target

    def _remove_result_directories(self, output_dir: Path) -> None:
        for entry in output_dir.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry)

    def _fire_content_events(self, persisted: List[ContentNode]) -> None:
        try:
            parents = collect_virtual_directory_parents(persisted, self.storage, set())
        except CaseStorageError as e:
            logger.warning(f"Error collecting carved file parent directories: {e}")
            parents = []

        for directory in parents:
            self.notifier.fire_content_event(ModuleContentEvent(MODULE_NAME, directory))
        self.notifier.fire_content_event(ModuleContentEvent(MODULE_NAME, persisted[0]))

    # =========================================================================
    # Outcomes and cleanup
    # =========================================================================

    def _fail(self, run: _UnitRun, error: Exception) -> TaskOutcome:
        run.transition(TaskState.FAILED)
        logger.error(f"Error carving {run.unit.name} (id={run.unit.unit_id}): {error}")
        if self.totals is not None:
            self.totals.add_error()
        self.notifier.notify_error(f"Unable to carve {run.unit.name}", str(error))
        return TaskOutcome(ProcessResult.ERROR, TaskState.FAILED, error=error)

    def _abort(self, run: _UnitRun) -> TaskOutcome:
        run.transition(TaskState.ABORTED)
        self._cleanup(run)
        logger.info("Carving cancelled by user")
        self.notifier.notify_info(MODULE_NAME, "Carving cancelled by user")
        return TaskOutcome(ProcessResult.OK, TaskState.ABORTED)

    def _cleanup(self, run: _UnitRun) -> None:
        """Remove the unit's output directory and temp file."""
        if run.output_dir is not None and run.output_dir.exists():
            shutil.rmtree(run.output_dir, ignore_errors=True)
        self._remove_temp_file(run.temp_file)

    def _remove_temp_file(self, temp_file: Optional[Path]) -> None:
        if temp_file is None:
            return
        try:
            temp_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete temp file {temp_file}: {e}")
