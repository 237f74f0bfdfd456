"""cmdwatch - run shell commands periodically and report changes in their output."""

__version__ = "0.1.0"
