"""Logging configuration for mindshelf."""

import logging
import sys


def configure_logging(verbose: bool = False) -> None:
    """Send mindshelf logs to stderr.

    Warnings and errors are always shown; ``verbose`` adds debug output,
    including httpx request lines.
    """
    logger = logging.getLogger("mindshelf")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
