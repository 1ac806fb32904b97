"""memshield logging: operational log setup and the security audit trail."""

import logging
import sys
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Send memshield log records to stderr at the given level.

    Safe to call repeatedly: any handler from an earlier call is replaced
    by one bound to the current sys.stderr.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("memshield")
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_memshield", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._memshield = True
    root.addHandler(handler)
