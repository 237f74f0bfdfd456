"""Batch runner: one pass over all configured commands, then report.

Commands run in configuration order. With jobs > 1 they are spread over a
thread pool, but commands sharing a state key always run one after another in
the same worker so a state file never has two writers.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import click

from cmdwatch.config import CommandSpec, Config
from cmdwatch.differ import LineDiffer
from cmdwatch.execution_loop import CommandExecutor, execute_command, run_command_pipeline
from cmdwatch.execution_state import CommandResult, RunSettings
from cmdwatch.state_store import StateStore, derive_key, is_due

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 60


def build_settings(
    config: Config,
    state_dir: Optional[Path] = None,
    force: bool = False,
    verbose: bool = False,
    timeout: Optional[float] = None,
    jobs: Optional[int] = None,
) -> RunSettings:
    """Merge CLI overrides over the config file values."""
    return RunSettings(
        state_dir=Path(state_dir) if state_dir else config.state_dir,
        force=force,
        verbose=verbose,
        timeout=timeout if timeout is not None else config.timeout,
        jobs=jobs if jobs is not None else config.jobs,
    )


def group_by_key(commands: List[CommandSpec]) -> Dict[str, List[int]]:
    """Map each state key to the positions of the commands using it, in order."""
    groups: Dict[str, List[int]] = {}
    for index, spec in enumerate(commands):
        groups.setdefault(derive_key(spec.run), []).append(index)
    return groups


def run_batch(
    commands: List[CommandSpec],
    settings: RunSettings,
    differ: LineDiffer,
    executor: CommandExecutor = execute_command,
) -> List[CommandResult]:
    """
    Run every command once and return the results in configuration order.

    Per-command errors are recorded on the results; nothing here aborts the
    batch.
    """
    store = StateStore(settings.state_dir)
    try:
        store.ensure_dir()
    except OSError as e:
        # each command reports its own StateWriteError when persisting
        logger.warning(f"Unable to create state directory {settings.state_dir}: {e}")

    results: List[Optional[CommandResult]] = [None] * len(commands)

    def run_group(indices: List[int]) -> None:
        for index in indices:
            results[index] = run_command_pipeline(
                commands[index],
                settings,
                differ,
                store=store,
                executor=executor,
            )

    groups = group_by_key(commands)
    logger.log(
        logging.INFO if settings.verbose else logging.DEBUG,
        f"running {len(commands)} commands ({len(groups)} distinct) "
        f"with {settings.jobs} job(s), state in {settings.state_dir}"
    )

    if settings.jobs <= 1 or len(groups) <= 1:
        run_group(list(range(len(commands))))
    else:
        with ThreadPoolExecutor(max_workers=min(settings.jobs, len(groups))) as pool:
            futures = [pool.submit(run_group, indices) for indices in groups.values()]
            for future in as_completed(futures):
                future.result()

    return [r for r in results if r is not None]


def print_results(results: List[CommandResult]) -> None:
    """Print diffs to stdout with a header per command, errors to stderr."""
    for result in results:
        if result.changed:
            click.echo(SEPARATOR)
            click.echo(result.label)
            click.echo(SEPARATOR)
            diff = result.diff if result.diff.endswith(b"\n") else result.diff + b"\n"
            click.echo(diff, nl=False)

        if result.failed:
            click.echo(f"error: {result.label}: {result.error}", err=True)


def describe_status(commands: List[CommandSpec], state_dir: Path, now: Optional[datetime] = None) -> List[dict]:
    """Gate information for each command, without running anything."""
    if now is None:
        now = datetime.now(timezone.utc)
    store = StateStore(state_dir)

    rows = []
    for spec in commands:
        key = derive_key(spec.run)
        last = store.last_run(key)
        has_state = store.path_for(key).exists()
        rows.append({
            "name": spec.name or spec.run,
            "key": key,
            "interval": spec.interval,
            "last_run": last if has_state else None,
            "due": is_due(last, spec.interval, now),
        })
    return rows
