"""Run settings and per-command results for the execute-compare-persist pipeline."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from cmdwatch.config import CommandSpec
from cmdwatch.constants import DEFAULT_JOBS


# Pipeline statuses
GATED = "GATED"
EXECUTING = "EXECUTING"
COMPARING = "COMPARING"
PERSISTING = "PERSISTING"
DONE = "DONE"
EXECUTION_FAILED = "EXECUTION_FAILED"
PERSIST_FAILED = "PERSIST_FAILED"


@dataclass(frozen=True)
class RunSettings:
    """Run-wide settings threaded into every pipeline call."""
    state_dir: Path
    force: bool = False
    verbose: bool = False
    timeout: Optional[float] = None
    jobs: int = DEFAULT_JOBS


@dataclass
class CommandResult:
    spec: CommandSpec
    key: str
    status: str = GATED  # GATED | EXECUTING | COMPARING | PERSISTING | DONE | EXECUTION_FAILED | PERSIST_FAILED
    diff: bytes = b""
    error: Optional[Exception] = None
    warnings: List[str] = field(default_factory=list)
    output: Optional[bytes] = field(default=None, repr=False)

    @property
    def label(self) -> str:
        """Name used in reports; falls back to the command text."""
        return self.spec.name or self.spec.run

    @property
    def changed(self) -> bool:
        return len(self.diff) > 0

    @property
    def failed(self) -> bool:
        return self.error is not None
