"""Logging utilities for registration runs."""

import logging
import sys
from functools import wraps
from time import perf_counter

logger = logging.getLogger("pyramidreg")

CONSOLE_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_step(func):
    """Decorator to log pipeline assembly steps with timing."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        step_name = func.__name__
        logger.debug(f"[{self.run_id}] Starting {step_name}")
        start = perf_counter()
        try:
            result = func(self, *args, **kwargs)
            elapsed = perf_counter() - start
            logger.debug(f"[{self.run_id}] Completed {step_name} in {elapsed:.2f}s")
            return result
        except Exception as e:
            logger.error(f"[{self.run_id}] Failed {step_name}: {e}")
            raise

    return wrapper


def setup_logging(level: str = "INFO") -> None:
    """Attach a console handler to the ``pyramidreg`` logger.

    At DEBUG level records carry timestamps and logger names; otherwise
    only the message is printed so iteration lines stay readable.
    """
    handler = logging.StreamHandler(sys.stdout)
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler.setFormatter(
        logging.Formatter(VERBOSE_FORMAT if numeric <= logging.DEBUG else CONSOLE_FORMAT)
    )
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric)
    logger.propagate = False
