"""Configuration loading for the command runner.

Reads a YAML file, validates it against a JSON schema (Draft-07) and turns it
into immutable CommandSpec / Config values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import jsonschema
import yaml

from cmdwatch.constants import (
    CONFIG_ENV,
    CONFIG_FILENAME,
    DEFAULT_DIFF_COMMAND,
    DEFAULT_INTERVAL_S,
    DEFAULT_JOBS,
)


CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "required": ["commands"],
    "properties": {
        "interval": {"type": "integer", "minimum": 0},
        "state_dir": {"type": "string", "minLength": 1},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "jobs": {"type": "integer", "minimum": 1},
        "diff_command": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "string"},
        },
        "commands": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["run"],
                "properties": {
                    "name": {"type": "string"},
                    "run": {"type": "string", "minLength": 1},
                    "interval": {"type": "integer", "minimum": 0},
                    "filter": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}


class ConfigError(Exception):
    """Raised when the configuration cannot be found, parsed or validated."""
    pass


@dataclass(frozen=True)
class CommandSpec:
    """A single configured command.

    `filters` is reserved: it is carried through unchanged and never consulted
    when running or comparing.
    """
    run: str
    name: str = ""
    interval: int = DEFAULT_INTERVAL_S
    filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Config:
    """Parsed configuration file."""
    commands: List[CommandSpec]
    state_dir: Path
    interval: int = DEFAULT_INTERVAL_S
    timeout: Optional[float] = None
    jobs: int = DEFAULT_JOBS
    diff_command: List[str] = field(default_factory=lambda: list(DEFAULT_DIFF_COMMAND))
    source: Optional[Path] = None


def default_state_dir() -> Path:
    """State directory following the XDG basedir spec."""
    state_home = os.environ.get("XDG_STATE_HOME")
    if state_home:
        return Path(state_home) / "cmdwatch"
    return Path.home() / ".local" / "state" / "cmdwatch"


def config_search_dirs() -> List[Path]:
    """Directories searched for the config file, most specific first."""
    dirs = []

    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        dirs.append(Path(config_home))
    else:
        dirs.append(Path.home() / ".config")

    config_dirs = os.environ.get("XDG_CONFIG_DIRS")
    if config_dirs:
        dirs.extend(Path(d) for d in config_dirs.split(":") if d)
    else:
        dirs.append(Path("/etc/xdg"))

    return dirs


def find_config() -> Path:
    """
    Return the config file to use.

    $CMDWATCH_CONFIG wins; otherwise the first existing cmdwatch.yaml in the
    XDG config directories.

    Raises:
        ConfigError: If no config file can be found.
    """
    explicit = os.environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()

    searched = []
    for directory in config_search_dirs():
        candidate = directory / CONFIG_FILENAME
        searched.append(str(candidate))
        if candidate.is_file():
            return candidate

    raise ConfigError(
        "No config file found. Searched:\n  " + "\n  ".join(searched)
    )


def validate_config_data(data: dict) -> List[str]:
    """Validate raw config data, returning ALL schema errors."""
    errors = []
    validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
    for error in validator.iter_errors(data):
        path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
        errors.append(f"{error.message} at {path}")
    return errors


def parse_config(data: dict, source: Optional[Path] = None) -> Config:
    """
    Build a Config from already-parsed YAML data.

    Commands without their own interval inherit the global one; an explicit
    interval of 0 means the command is always due.

    Raises:
        ConfigError: If the data does not match the schema.
    """
    if data is None:
        raise ConfigError(f"Config file is empty: {source}")
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at top level, got {type(data).__name__}")

    errors = validate_config_data(data)
    if errors:
        where = f" in {source}" if source else ""
        raise ConfigError(
            f"Invalid configuration{where}:\n  " + "\n  ".join(errors)
        )

    interval = data.get("interval", DEFAULT_INTERVAL_S)

    commands = [
        CommandSpec(
            run=entry["run"],
            name=entry.get("name", ""),
            interval=entry.get("interval", interval),
            filters=tuple(entry.get("filter", [])),
        )
        for entry in data["commands"]
    ]

    if "state_dir" in data:
        state_dir = Path(os.path.expandvars(data["state_dir"])).expanduser()
    else:
        state_dir = default_state_dir()

    return Config(
        commands=commands,
        state_dir=state_dir,
        interval=interval,
        timeout=data.get("timeout"),
        jobs=data.get("jobs", DEFAULT_JOBS),
        diff_command=list(data.get("diff_command", DEFAULT_DIFF_COMMAND)),
        source=source,
    )


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load and validate the configuration file.

    Args:
        config_path: Explicit file to load. If None, uses find_config().

    Returns:
        Parsed Config.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid YAML or
                     fails schema validation.
    """
    if config_path is None:
        config_path = find_config()

    try:
        content = config_path.read_text()
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {config_path}")
    except OSError as e:
        raise ConfigError(f"Unable to read config file {config_path}: {e}")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        if hasattr(e, "problem_mark") and e.problem_mark:
            mark = e.problem_mark
            raise ConfigError(
                f"YAML parse error in {config_path} at line {mark.line + 1}, "
                f"column {mark.column + 1}: {e.problem or 'syntax error'}"
            )
        raise ConfigError(f"YAML parse error in {config_path}: {e}")

    return parse_config(data, source=config_path)
