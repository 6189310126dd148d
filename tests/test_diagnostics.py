"""Diagnostic sink tests: formatting, rate limiting and run-scoped files."""

import logging

import pytest

from MCRingDosimetry.utils.logging import DiagnosticSink


@pytest.fixture
def sink_logger():
    logger = logging.getLogger('mc_ring_dosimetry.test_diagnostics')
    logger.setLevel(logging.INFO)
    yield logger
    logger.handlers.clear()


class TestRecords:

    def test_format(self, sink_logger, caplog):
        sink = DiagnosticSink(sink_logger, max_events=5)
        with caplog.at_level(logging.INFO, logger=sink_logger.name):
            assert sink.record('WATER_DEPOSIT', 2, ring=1, edep_keV=12.3456789)
        assert caplog.records[-1].getMessage() == 'WATER_DEPOSIT | Event 2 | ring=1 | edep_keV=12.35'

    def test_rate_limited(self, sink_logger):
        sink = DiagnosticSink(sink_logger, max_events=3)
        assert sink.wants(0)
        assert sink.wants(2)
        assert not sink.wants(3)
        assert not sink.record('EVENT_START', 3)

    def test_disabled(self, sink_logger, caplog):
        sink = DiagnosticSink(sink_logger, max_events=3, enabled=False)
        with caplog.at_level(logging.INFO, logger=sink_logger.name):
            assert not sink.record('EVENT_START', 0)
            sink.header('title')
        assert caplog.records == []


class TestFileHandler:

    def test_file_is_run_scoped(self, sink_logger, tmp_path):
        sink = DiagnosticSink(sink_logger, max_events=1)
        log_file = tmp_path / 'diag' / 'output.log'
        sink.open_file(str(log_file))
        sink.header('Run diagnostics')
        sink.record('EVENT_START', 0, n_primaries=2)
        sink.close_file()
        sink.record('EVENT_START', 0, n_primaries=3)

        text = log_file.read_text()
        assert '  Run diagnostics' in text
        assert 'EVENT_START | Event 0 | n_primaries=2' in text
        assert 'n_primaries=3' not in text
        assert sink_logger.handlers == []

    def test_default_sinks_keep_separate_files(self, tmp_path):
        """Two sinks open at once only write their own records."""
        sink_a = DiagnosticSink(max_events=1)
        sink_b = DiagnosticSink(max_events=1)
        assert sink_a.logger is not sink_b.logger
        try:
            sink_a.open_file(str(tmp_path / 'a.log'))
            sink_b.open_file(str(tmp_path / 'b.log'))
            sink_a.record('ONLY_A', 0)
            sink_b.record('ONLY_B', 0)
        finally:
            sink_a.close_file()
            sink_b.close_file()

        text_a = (tmp_path / 'a.log').read_text()
        text_b = (tmp_path / 'b.log').read_text()
        assert 'ONLY_A | Event 0' in text_a
        assert 'ONLY_B' not in text_a
        assert 'ONLY_B | Event 0' in text_b
        assert 'ONLY_A' not in text_b
