"""Convergence history sink and the per-iteration logger."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

LEVEL_DIVIDER = "-------------------------------------"


def format_vector(values: np.ndarray) -> str:
    return " ".join(f"{float(v):.10g}" for v in np.ravel(values))


def format_iteration(iteration: int, value: float, position: np.ndarray) -> str:
    """``iteration<TAB>cost<TAB>p0 p1 ...`` with 10 significant digits."""
    return f"{iteration}\t{float(value):.10g}\t{format_vector(position)}"


class HistorySink:
    """Append-only text file of convergence records.

    Opened once per run and used as a context manager. The sink is never
    read back.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._handle = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> HistorySink:
        self._handle = self.path.open("a")
        return self

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> HistorySink:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write_lines(self, lines: list[str]) -> None:
        """Append lines and flush.

        Raises:
            OSError: If the sink is closed or the write fails.
        """
        if self._handle is None:
            raise OSError(f"History sink {self.path} is not open")
        self._handle.write("".join(f"{line}\n" for line in lines))
        self._handle.flush()


class IterationLogger:
    """Records ``(iteration, cost, parameters)`` after each optimizer iteration."""

    def __init__(self, sink: HistorySink):
        self.sink = sink

    def on_iteration_complete(self, optimizer) -> None:
        line = format_iteration(
            optimizer.current_iteration, optimizer.value, optimizer.current_position
        )
        logger.info(line)
        try:
            self.sink.write_lines([line])
        except OSError as e:
            logger.warning(f"Could not write iteration record to {self.sink.path}: {e}")
