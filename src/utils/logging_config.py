"""Structured logger setup shared across the pipeline and handlers."""

import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterator

from pythonjsonlogger import jsonlogger


def get_logger(name: str) -> logging.Logger:
    """
    Configure a JSON logger once and reuse it.

    The level comes from LOG_LEVEL so noisy debug output can be switched on
    per deployment without code changes.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        "%(levelname)s %(name)s %(message)s %(asctime)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logger.propagate = False
    return logger


@contextmanager
def stage_timer(logger: logging.Logger, stage: str, **extra: Any) -> Iterator[dict]:
    """
    Time a pipeline stage and log its latency.

    Yields a dict that receives ``duration_ms`` once the block exits so the
    caller can put the figure on the trace as well.
    """
    timing: dict = {}
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing["duration_ms"] = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Stage finished",
            extra={"stage": stage, "duration_ms": timing["duration_ms"], **extra},
        )
