"""
logging_setup.py - Root logging configuration

Every module logs through logging.getLogger(__name__). Scripts and
config.load_engine() call configure_logging() once at startup to choose the
level and install a single stderr handler.

Levels used by the package:
- INFO: completed state changes (deposit, mint, liquidation, ...)
- WARNING: rejected mutating calls, logged before the exception propagates
- DEBUG: oracle readings and guard transitions
"""

from __future__ import annotations
from typing import Union
import logging
import sys

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


# ============================================================================
# CONFIGURATION
# ============================================================================

def configure_logging(level: Union[str, int] = "INFO") -> None:
    """
    Configure root logging with a single stderr handler.

    Unknown level names fall back to INFO. Calling this again replaces the
    handler instead of stacking a second one.
    """
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_stableledger", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._stableledger = True
    root.addHandler(handler)
    root.setLevel(resolved)
