# log.py
#
# Component loggers are plain callables taking one message. They are passed
# into the authority, the tally server and the benchmark runner, which tag
# and timestamp every line.

from datetime import datetime


def make_logger(tag, sink=None):
    """
    Build a timestamped logger for one component.
    - tag:  component name shown in brackets, e.g. "Server"
    - sink: callable receiving the formatted line (defaults to print)
    """
    out = sink or print

    def log(msg):
        ts = datetime.now().strftime("%H:%M:%S")
        out(f"[{ts}] [{tag}] {msg}")

    return log


def null_logger(msg):
    """Discard a log line."""
