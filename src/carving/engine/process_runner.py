"""
Process runner for the external carving engine.

Runs a child process with its output appended to a log file, and terminates
it when a caller-supplied cancellation predicate fires or a wall-clock
timeout elapses. The runner never interprets the child's output.
"""

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.exceptions import EngineExecutionError


logger = logging.getLogger(__name__)


class TerminationCode(str, Enum):
    """Why the runner stopped waiting on a child process."""
    NONE = "none"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass
class ProcessOutcome:
    """
    Result of one process run.

    ``exit_code`` is only meaningful when ``termination`` is NONE; a child
    that was killed reports whatever the OS returned for the kill.
    """
    exit_code: Optional[int]
    termination: TerminationCode = TerminationCode.NONE
    duration_seconds: float = 0.0

    @property
    def cancelled(self) -> bool:
        return self.termination == TerminationCode.CANCELLED

    @property
    def timed_out(self) -> bool:
        return self.termination == TerminationCode.TIMED_OUT

    @property
    def succeeded(self) -> bool:
        return self.termination == TerminationCode.NONE and self.exit_code == 0


@dataclass
class TerminationPolicy:
    """
    When to forcibly stop a running child.

    Attributes:
        is_cancelled: Polled while the child runs; True terminates it
        timeout_seconds: Wall-clock limit (None or <= 0 disables it)
        poll_interval: Seconds between polls
        kill_grace_seconds: Time allowed after SIGTERM before SIGKILL
    """
    is_cancelled: Callable[[], bool] = lambda: False
    timeout_seconds: Optional[float] = None
    poll_interval: float = 0.5
    kill_grace_seconds: float = 5.0

    def check(self, elapsed: float) -> TerminationCode:
        """Evaluate the policy; cancellation wins over timeout."""
        if self.is_cancelled():
            return TerminationCode.CANCELLED
        if self.timeout_seconds and self.timeout_seconds > 0 and elapsed >= self.timeout_seconds:
            return TerminationCode.TIMED_OUT
        return TerminationCode.NONE


class ProcessRunner:
    """
    Runs external commands under a termination policy.

    On POSIX the child is started in its own session so that termination
    reaches any helper processes it spawned.
    """

    def __init__(self, use_process_group: Optional[bool] = None):
        if use_process_group is None:
            use_process_group = os.name == "posix"
        self.use_process_group = use_process_group

    def run(
        self,
        command: List[str],
        policy: Optional[TerminationPolicy] = None,
        env: Optional[Dict[str, str]] = None,
        log_path: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessOutcome:
        """
        Run a command to completion or termination.

        Args:
            command: Argument vector
            policy: Termination policy (defaults to no cancellation, no timeout)
            env: Variables added on top of the current environment
            log_path: File that stdout and stderr are appended to
            cwd: Working directory for the child

        Returns:
            ProcessOutcome with the exit code or the termination reason

        Raises:
            EngineExecutionError: The process could not be started
        """
        policy = policy or TerminationPolicy()

        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        log_handle = open(log_path, "ab") if log_path else None
        try:
            try:
                proc = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle if log_handle else subprocess.DEVNULL,
                    stderr=subprocess.STDOUT,
                    env=child_env,
                    cwd=str(cwd) if cwd else None,
                    start_new_session=self.use_process_group,
                )
            except OSError as e:
                raise EngineExecutionError(f"Failed to start {command[0]}: {e}") from e

            logger.debug(f"Started pid {proc.pid}: {' '.join(command)}")
            return self._wait(proc, policy)
        finally:
            if log_handle:
                log_handle.close()

    def _wait(self, proc: subprocess.Popen, policy: TerminationPolicy) -> ProcessOutcome:
        start = time.monotonic()
        while True:
            try:
                exit_code = proc.wait(timeout=policy.poll_interval)
                return ProcessOutcome(
                    exit_code=exit_code,
                    duration_seconds=time.monotonic() - start,
                )
            except subprocess.TimeoutExpired:
                pass

            code = policy.check(time.monotonic() - start)
            if code != TerminationCode.NONE:
                logger.info(f"Terminating pid {proc.pid}: {code.value}")
                exit_code = self._terminate(proc, policy.kill_grace_seconds)
                return ProcessOutcome(
                    exit_code=exit_code,
                    termination=code,
                    duration_seconds=time.monotonic() - start,
                )

    def _terminate(self, proc: subprocess.Popen, grace_seconds: float) -> Optional[int]:
        """Send SIGTERM, then SIGKILL if the child outlives the grace period."""
        self._signal(proc, signal.SIGTERM)
        try:
            return proc.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(f"pid {proc.pid} ignored termination, killing")
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            return proc.wait()

    def _signal(self, proc: subprocess.Popen, sig: int) -> None:
        try:
            if self.use_process_group:
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            # Already exited between the poll and the signal
            pass
