"""Constants for the command runner."""

import os

DEFAULT_INTERVAL_S = 3600

DEFAULT_JOBS = 1

# Exit code 1 from these tools means "differences found"
DEFAULT_DIFF_COMMAND = ["git", "diff", "--no-index", "--no-ext-diff", "--no-color", "--"]

CONFIG_FILENAME = "cmdwatch.yaml"

CONFIG_ENV = "CMDWATCH_CONFIG"
STATE_DIR_ENV = "CMDWATCH_STATE_DIR"

SCRATCH_PREFIX = "cmdwatch-compare-"

# Names of the two files materialized for the external differ
OLD_NAME = "old"
NEW_NAME = "new"

SHELL = os.environ.get("CMDWATCH_SHELL", "sh")
