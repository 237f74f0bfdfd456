"""Content-addressed state for command outputs.

One file per distinct command text, named by the SHA-256 of that text,
directly inside the state directory. The file holds the raw stdout of the
last successful run; its mtime is the "last run" marker.
"""

import hashlib
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class StateWriteError(Exception):
    """Raised when a command's new output cannot be persisted."""
    pass


def derive_key(run_text: str) -> str:
    """Compute the state key (hex SHA-256) for a command text."""
    return hashlib.sha256(run_text.encode("utf-8")).hexdigest()


def is_due(last_run: datetime, interval: int, now: datetime, force: bool = False) -> bool:
    """
    Decide whether a command should run.

    Due when at least `interval` seconds have passed since `last_run`.
    An interval of 0 is always due; `force` overrides the interval entirely.
    """
    if force or interval <= 0:
        return True
    return now - last_run >= timedelta(seconds=interval)


class StateStore:
    """Reads and writes state records inside a single state directory."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def path_for(self, key: str) -> Path:
        return self.state_dir / key

    def ensure_dir(self) -> None:
        """Create the state directory if needed (owner-only permissions)."""
        self.state_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    def last_run(self, key: str) -> datetime:
        """
        Return the mtime of the state file for `key`, or the epoch if absent.

        Never raises: a stat failure other than "not found" is logged and
        treated as "never run", so the command is considered due.
        """
        path = self.path_for(key)
        try:
            st = path.stat()
        except FileNotFoundError:
            return EPOCH
        except OSError as e:
            logger.warning(f"Unable to stat state file {path}, treating as due: {e}")
            return EPOCH
        return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)

    def load(self, key: str) -> bytes:
        """
        Return the persisted output for `key`.

        A missing record is an empty baseline. Read errors propagate as OSError
        so the caller can decide how to report them.
        """
        path = self.path_for(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return b""

    def save(self, key: str, payload: bytes) -> Path:
        """
        Replace the state record for `key` with `payload`.

        The bytes go to a temp file in the state directory which is then
        renamed over the record, so readers see either the old or the new
        content, never a partial write.

        Raises:
            StateWriteError: If the directory, temp file, write or rename fails.
        """
        path = self.path_for(key)
        try:
            self.ensure_dir()
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self.state_dir)
        except OSError as e:
            raise StateWriteError(f"Unable to create state file for {path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Unable to remove temp state file {tmp_name}: {cleanup_error}")
            raise StateWriteError(f"Unable to write state file {path}: {e}") from e

        logger.debug(f"Saved {len(payload)} bytes to {path}")
        return path
