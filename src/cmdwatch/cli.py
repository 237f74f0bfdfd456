"""CLI entrypoint for cmdwatch."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from cmdwatch.config import Config, ConfigError, load_config
from cmdwatch.constants import CONFIG_ENV, STATE_DIR_ENV

# Load .env file on CLI startup
load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _load_or_exit(config_path: Optional[str]) -> Config:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(1)


config_option = click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False),
    envvar=CONFIG_ENV,
    help="Config file to use (default: cmdwatch.yaml in the XDG config dirs).",
)

state_dir_option = click.option(
    "--state-dir", "-s",
    type=click.Path(file_okay=False),
    envvar=STATE_DIR_ENV,
    help="Override the state directory from the config file.",
)


@click.group()
@click.version_option(package_name="cmdwatch")
def cli():
    """cmdwatch - run commands periodically and report changes in their output."""
    pass


@cli.command()
@config_option
@state_dir_option
@click.option("--force", "-f", is_flag=True, help="Run every command regardless of its interval.")
@click.option("--verbose", "-v", is_flag=True, help="Be verbose.")
@click.option(
    "--jobs", "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Number of commands to run in parallel (default from config, 1).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Kill commands that run longer than this many seconds.",
)
@click.option(
    "--builtin-diff",
    is_flag=True,
    help="Use the built-in unified diff instead of the external diff command.",
)
def run(
    config_path: Optional[str],
    state_dir: Optional[str],
    force: bool,
    verbose: bool,
    jobs: Optional[int],
    timeout: Optional[float],
    builtin_diff: bool,
):
    """Run all due commands once and print what changed."""
    from cmdwatch.differ import build_differ
    from cmdwatch.runner import build_settings, print_results, run_batch

    _configure_logging(verbose)
    config = _load_or_exit(config_path)

    settings = build_settings(
        config,
        state_dir=Path(state_dir) if state_dir else None,
        force=force,
        verbose=verbose,
        timeout=timeout,
        jobs=jobs,
    )
    differ = build_differ(config.diff_command, builtin=builtin_diff)

    results = run_batch(config.commands, settings, differ)
    print_results(results)

    if any(r.failed for r in results):
        raise SystemExit(1)


@cli.command()
@config_option
@state_dir_option
def status(config_path: Optional[str], state_dir: Optional[str]):
    """Show when each command last ran and whether it is due. Runs nothing."""
    from cmdwatch.runner import describe_status

    _configure_logging(False)
    config = _load_or_exit(config_path)
    directory = Path(state_dir) if state_dir else config.state_dir

    click.echo(f"State directory: {directory}")
    click.echo()
    for row in describe_status(config.commands, directory):
        last_run = row["last_run"].isoformat(timespec="seconds") if row["last_run"] else "never"
        due = "due" if row["due"] else "not due"
        click.echo(f"{row['name']}")
        click.echo(f"  Key:       {row['key']}")
        click.echo(f"  Interval:  {row['interval']}s")
        click.echo(f"  Last run:  {last_run}")
        click.echo(f"  Status:    {due}")


@cli.command()
@click.argument("run_text")
def key(run_text: str):
    """Print the state file name used for RUN_TEXT."""
    from cmdwatch.state_store import derive_key

    click.echo(derive_key(run_text))


@cli.command()
@config_option
def check_config(config_path: Optional[str]):
    """Check that the configuration file loads and validates."""
    config = _load_or_exit(config_path)
    click.echo("Configuration loaded successfully!")
    click.echo(f"  File: {config.source}")
    click.echo(f"  State directory: {config.state_dir}")
    click.echo(f"  Default interval: {config.interval}s")
    click.echo(f"  Commands: {len(config.commands)}")


if __name__ == "__main__":
    cli()
