"""
Unit tests for the process runner.

These run short-lived Python child processes instead of the real engine.
"""

import sys
import threading
import time

import pytest

from carving.core.exceptions import EngineExecutionError
from carving.engine.process_runner import (
    ProcessOutcome, ProcessRunner, TerminationCode, TerminationPolicy
)


def python_command(code: str):
    return [sys.executable, "-c", code]


class TestTerminationPolicy:
    """Tests for TerminationPolicy.check()."""

    def test_nothing_to_do(self):
        assert TerminationPolicy().check(1000.0) == TerminationCode.NONE

    def test_timeout(self):
        policy = TerminationPolicy(timeout_seconds=5)

        assert policy.check(4.9) == TerminationCode.NONE
        assert policy.check(5.0) == TerminationCode.TIMED_OUT

    def test_zero_timeout_disables(self):
        assert TerminationPolicy(timeout_seconds=0).check(1e9) == TerminationCode.NONE

    def test_cancellation_wins_over_timeout(self):
        policy = TerminationPolicy(is_cancelled=lambda: True, timeout_seconds=1)

        assert policy.check(10.0) == TerminationCode.CANCELLED


class TestProcessOutcome:
    """Tests for ProcessOutcome properties."""

    def test_success(self):
        outcome = ProcessOutcome(exit_code=0)

        assert outcome.succeeded
        assert not outcome.cancelled
        assert not outcome.timed_out

    def test_non_zero_exit(self):
        assert not ProcessOutcome(exit_code=3).succeeded

    def test_terminated_is_not_success(self):
        outcome = ProcessOutcome(exit_code=0, termination=TerminationCode.CANCELLED)

        assert outcome.cancelled
        assert not outcome.succeeded


class TestProcessRunner:
    """Tests for ProcessRunner.run()."""

    @pytest.fixture
    def runner(self):
        return ProcessRunner()

    @pytest.fixture
    def fast_policy(self):
        return TerminationPolicy(poll_interval=0.05, kill_grace_seconds=2.0)

    def test_exit_code_zero(self, runner, fast_policy):
        outcome = runner.run(python_command("pass"), policy=fast_policy)

        assert outcome.exit_code == 0
        assert outcome.termination == TerminationCode.NONE
        assert outcome.succeeded

    def test_non_zero_exit_code(self, runner, fast_policy):
        outcome = runner.run(python_command("import sys; sys.exit(7)"), policy=fast_policy)

        assert outcome.exit_code == 7
        assert not outcome.succeeded

    def test_output_appended_to_log(self, runner, fast_policy, tmp_path):
        log = tmp_path / "run_log.txt"
        log.write_text("previous\n")

        runner.run(
            python_command("import sys; print('to stdout'); print('to stderr', file=sys.stderr)"),
            policy=fast_policy,
            log_path=log,
        )

        text = log.read_text()
        assert text.startswith("previous\n")
        assert "to stdout" in text
        assert "to stderr" in text

    def test_environment_is_extended(self, runner, fast_policy, tmp_path):
        log = tmp_path / "env.txt"

        runner.run(
            python_command("import os; print(os.environ['__COMPAT_LAYER'], bool(os.environ.get('PATH')))"),
            policy=fast_policy,
            env={"__COMPAT_LAYER": "RunAsInvoker"},
            log_path=log,
        )

        assert log.read_text().strip() == "RunAsInvoker True"

    def test_timeout_terminates(self, runner):
        policy = TerminationPolicy(timeout_seconds=0.3, poll_interval=0.05, kill_grace_seconds=2.0)
        start = time.monotonic()

        outcome = runner.run(python_command("import time; time.sleep(30)"), policy=policy)

        assert outcome.timed_out
        assert time.monotonic() - start < 10

    def test_cancellation_terminates(self, runner):
        cancelled = threading.Event()
        policy = TerminationPolicy(is_cancelled=cancelled.is_set, poll_interval=0.05,
                                   kill_grace_seconds=2.0)
        timer = threading.Timer(0.3, cancelled.set)
        timer.start()
        start = time.monotonic()

        try:
            outcome = runner.run(python_command("import time; time.sleep(30)"), policy=policy)
        finally:
            timer.cancel()

        assert outcome.cancelled
        assert time.monotonic() - start < 10

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_child_ignoring_sigterm_is_killed(self, runner):
        code = (
            "import signal, sys, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        policy = TerminationPolicy(timeout_seconds=0.5, poll_interval=0.05, kill_grace_seconds=0.5)
        start = time.monotonic()

        outcome = runner.run(python_command(code), policy=policy)

        assert outcome.timed_out
        assert time.monotonic() - start < 10

    def test_launch_failure(self, runner, tmp_path):
        with pytest.raises(EngineExecutionError):
            runner.run([str(tmp_path / "does-not-exist")])
