"""Line differs used to compare a command's previous and current output.

ExternalDiffer shells out to a diff tool (git diff by default) against two
files in a private scratch directory. UnifiedDiffer does the same job
in-process with difflib.
"""

import difflib
import logging
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from cmdwatch.constants import DEFAULT_DIFF_COMMAND, NEW_NAME, OLD_NAME, SCRATCH_PREFIX

logger = logging.getLogger(__name__)

# Exit statuses that mean "no differences" / "differences found"
OK_EXIT_CODES = (0, 1)


class DiffError(Exception):
    """Raised when the diff facility or its scratch resources fail."""
    pass


class LineDiffer(ABC):
    """Computes a human-readable diff between two byte sequences."""

    @abstractmethod
    def diff(self, old: bytes, new: bytes) -> bytes:
        """Return the diff of `old` against `new`; empty means no differences."""


class ExternalDiffer(LineDiffer):
    """Runs an external diff command against files named old and new."""

    def __init__(self, argv: Optional[Sequence[str]] = None, scratch_dir: Optional[Path] = None):
        self.argv: List[str] = list(argv) if argv else list(DEFAULT_DIFF_COMMAND)
        self.scratch_dir = scratch_dir

    def diff(self, old: bytes, new: bytes) -> bytes:
        try:
            scratch = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=self.scratch_dir))
        except OSError as e:
            raise DiffError(f"Unable to create scratch directory: {e}") from e

        try:
            output = self._diff_in(scratch, old, new)
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        try:
            shutil.rmtree(scratch)
        except OSError as e:
            logger.warning(f"Unable to remove scratch directory {scratch}: {e}")

        return output

    def _diff_in(self, scratch: Path, old: bytes, new: bytes) -> bytes:
        try:
            (scratch / OLD_NAME).write_bytes(old)
            (scratch / NEW_NAME).write_bytes(new)
        except OSError as e:
            raise DiffError(f"Unable to write comparison files in {scratch}: {e}") from e

        cmd = self.argv + [OLD_NAME, NEW_NAME]
        logger.debug(f"compare {OLD_NAME} and {NEW_NAME} with {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, cwd=scratch, stdout=subprocess.PIPE)
        except OSError as e:
            raise DiffError(f"Unable to run diff command {self.argv[0]!r}: {e}") from e

        if result.returncode not in OK_EXIT_CODES:
            raise DiffError(
                f"Diff command {' '.join(cmd)} exited with status {result.returncode}"
            )

        return result.stdout


class UnifiedDiffer(LineDiffer):
    """In-process unified diff using difflib."""

    def __init__(self, context: int = 3):
        self.context = context

    def diff(self, old: bytes, new: bytes) -> bytes:
        old_lines = _split_lines(old)
        new_lines = _split_lines(new)

        lines = difflib.unified_diff(
            old_lines,
            new_lines,
            fromfile=f"a/{OLD_NAME}",
            tofile=f"b/{NEW_NAME}",
            n=self.context,
        )
        text = "".join(line if line.endswith("\n") else line + "\n" for line in lines)
        return text.encode("utf-8", "surrogateescape")


def _split_lines(data: bytes) -> List[str]:
    # surrogateescape keeps arbitrary bytes round-trippable
    return data.decode("utf-8", "surrogateescape").splitlines(keepends=True)


def build_differ(argv: Optional[Sequence[str]] = None, builtin: bool = False) -> LineDiffer:
    """Pick the differ for a run."""
    if builtin:
        return UnifiedDiffer()
    return ExternalDiffer(argv)
