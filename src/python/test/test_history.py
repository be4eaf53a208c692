"""Tests for pyramidreg.pipeline.history module."""

import logging
from types import SimpleNamespace

import numpy as np

from pyramidreg.pipeline.history import HistorySink, IterationLogger, format_iteration


class TestFormatIteration:
    def test_tab_separated(self):
        line = format_iteration(3, 0.123456789012, np.array([1.0, 2.5, -0.25]))

        assert line == "3\t0.123456789\t1 2.5 -0.25"

    def test_ten_significant_digits(self):
        line = format_iteration(0, 12345.678901234, np.zeros(1))

        assert line.split("\t")[1] == "12345.6789"


class TestHistorySink:
    """Tests for HistorySink."""

    def test_appends(self, tmp_path):
        path = tmp_path / "history.txt"
        path.write_text("header\n")

        with HistorySink(path) as sink:
            sink.write_lines(["a", "b"])

        assert path.read_text() == "header\na\nb\n"

    def test_closed_after_context(self, tmp_path):
        with HistorySink(tmp_path / "h.txt") as sink:
            assert sink.is_open
        assert not sink.is_open


class TestIterationLogger:
    """Tests for IterationLogger."""

    def test_writes_and_mirrors(self, tmp_path, caplog):
        optimizer = SimpleNamespace(
            current_iteration=7, value=-0.5, current_position=np.array([0.0, 1.25])
        )
        with HistorySink(tmp_path / "h.txt") as sink, caplog.at_level(logging.INFO):
            IterationLogger(sink).on_iteration_complete(optimizer)

        assert (tmp_path / "h.txt").read_text() == "7\t-0.5\t0 1.25\n"
        assert "7\t-0.5\t0 1.25" in caplog.text

    def test_closed_sink_warns(self, tmp_path, caplog):
        optimizer = SimpleNamespace(current_iteration=0, value=1.0, current_position=np.zeros(2))

        with caplog.at_level(logging.WARNING):
            IterationLogger(HistorySink(tmp_path / "h.txt")).on_iteration_complete(optimizer)

        assert "Could not write iteration record" in caplog.text
