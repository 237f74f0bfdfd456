"""Execute-compare-persist pipeline for a single command.

GATED -> EXECUTING -> COMPARING -> PERSISTING -> DONE, with the terminal
branches EXECUTION_FAILED and PERSIST_FAILED. The stored output is only
replaced after a successful execution.
"""

import logging
import os
import signal
import subprocess
from datetime import datetime, timezone
from typing import Callable, Optional

from cmdwatch.config import CommandSpec
from cmdwatch.constants import SHELL
from cmdwatch.differ import DiffError, LineDiffer
from cmdwatch.execution_state import (
    COMPARING,
    DONE,
    EXECUTING,
    EXECUTION_FAILED,
    GATED,
    PERSIST_FAILED,
    PERSISTING,
    CommandResult,
    RunSettings,
)
from cmdwatch.state_store import StateStore, StateWriteError, derive_key, is_due

logger = logging.getLogger(__name__)

# (run_text, timeout) -> captured stdout
CommandExecutor = Callable[[str, Optional[float]], bytes]


def _trace(settings: RunSettings, message: str) -> None:
    """Progress message: INFO when the run is verbose, DEBUG otherwise."""
    logger.log(logging.INFO if settings.verbose else logging.DEBUG, message)


class ExecutionError(Exception):
    """Raised when a command exits non-zero, cannot be started or times out."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def execute_command(run_text: str, timeout: Optional[float] = None) -> bytes:
    """
    Run `run_text` through the shell and return its stdout.

    stderr is not captured; it goes straight to our own stderr. The command
    runs in its own process group so a timeout kills everything it started.

    Raises:
        ExecutionError: On launch failure, non-zero exit or timeout.
    """
    cmd = [SHELL, "-c", run_text]
    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, start_new_session=True)
    except OSError as e:
        raise ExecutionError(f"unable to start {SHELL}: {e}") from e

    with proc:
        try:
            stdout, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(proc)
            proc.communicate()
            raise ExecutionError(f"timed out after {timeout} seconds", returncode=proc.returncode)
        except BaseException:
            _kill_process_group(proc)
            raise

    if proc.returncode != 0:
        raise ExecutionError(
            f"exited with status {proc.returncode}", returncode=proc.returncode
        )
    return stdout


def gate_node(
    result: CommandResult,
    settings: RunSettings,
    store: StateStore,
    now: datetime,
) -> CommandResult:
    """Leave status at GATED when the command is not due, else move to EXECUTING."""
    last = store.last_run(result.key)
    if not is_due(last, result.spec.interval, now, force=settings.force):
        _trace(
            settings,
            f"command {result.spec.run!r} has been run only {now - last} ago, "
            f"which is less than {result.spec.interval}s"
        )
        result.status = GATED
        return result

    result.status = EXECUTING
    return result


def execution_node(
    result: CommandResult,
    settings: RunSettings,
    executor: CommandExecutor,
) -> CommandResult:
    """Run the command. Never raises; failure is recorded on the result."""
    _trace(settings, f"execute command {result.spec.run!r}")
    try:
        result.output = executor(result.spec.run, settings.timeout)
    except ExecutionError as e:
        result.error = e
        result.status = EXECUTION_FAILED
        return result

    result.status = COMPARING
    return result


def compare_node(
    result: CommandResult,
    settings: RunSettings,
    store: StateStore,
    differ: LineDiffer,
) -> CommandResult:
    """Diff the stored baseline against the new output; failures only warn."""
    try:
        baseline = store.load(result.key)
    except OSError as e:
        message = f"unable to read old state file for {result.label!r}: {e}"
        logger.warning(message)
        result.warnings.append(message)
        baseline = b""

    _trace(settings, f"compare output of {result.label!r} to old output")
    try:
        result.diff = differ.diff(baseline, result.output or b"")
    except DiffError as e:
        message = f"unable to compare output of {result.label!r}: {e}"
        logger.warning(message)
        result.warnings.append(message)
        result.diff = b""

    result.status = PERSISTING
    return result


def persist_node(result: CommandResult, store: StateStore) -> CommandResult:
    """Store the new output as the baseline. The diff survives a failed write."""
    try:
        store.save(result.key, result.output or b"")
    except StateWriteError as e:
        result.error = e
        result.status = PERSIST_FAILED
        return result

    result.status = DONE
    return result


def run_command_pipeline(
    spec: CommandSpec,
    settings: RunSettings,
    differ: LineDiffer,
    store: Optional[StateStore] = None,
    executor: CommandExecutor = execute_command,
    now: Optional[datetime] = None,
) -> CommandResult:
    """
    Run one command through gate, execution, comparison and persistence.

    Args:
        spec: The command to run.
        settings: Run-wide settings (state directory, force, timeout).
        differ: Line differ used for the comparison.
        store: State store; defaults to one over settings.state_dir.
        executor: Runs the command text and returns stdout.
        now: Reference time for the gate check (default: current UTC time).

    Returns:
        CommandResult with the final status, the diff (possibly empty) and the
        error (if any). Both diff and error can be set when persisting failed.
    """
    if store is None:
        store = StateStore(settings.state_dir)
    if now is None:
        now = datetime.now(timezone.utc)

    result = CommandResult(spec=spec, key=derive_key(spec.run))

    result = gate_node(result, settings, store, now)
    if result.status == GATED:
        return result

    result = execution_node(result, settings, executor)
    if result.status == EXECUTION_FAILED:
        return result

    result = compare_node(result, settings, store, differ)
    result = persist_node(result, store)
    return result
