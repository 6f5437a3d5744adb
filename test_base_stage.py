#!/usr/bin/env python3
"""
Tests for the shared stage base class.
"""

import logging
from unittest.mock import patch

from workers.base import BaseStage


def test_overlapping_timers_report_their_own_duration(caplog):
    stage = BaseStage("timing")
    first = stage._execution_timer("video-a")
    second = stage._execution_timer("video-b")

    with caplog.at_level(logging.DEBUG, logger="worker.timing"):
        with patch("workers.base.time") as clock:
            clock.time.side_effect = [0.0, 10.0, 15.0, 30.0]
            first.__enter__()
            second.__enter__()
            first.__exit__(None, None, None)
            second.__exit__(None, None, None)

    messages = [record.getMessage() for record in caplog.records]
    assert "[timing] Execution completed in 15.00s | Context: video_id=video-a" in messages
    assert "[timing] Execution completed in 20.00s | Context: video_id=video-b" in messages


def test_log_with_context_format(caplog):
    stage = BaseStage("acquire")

    with caplog.at_level(logging.INFO, logger="worker.acquire"):
        stage.log_with_context("Staged 3 chunks", extra_context={"video_id": "abc", "count": 3})

    assert caplog.records[-1].getMessage() == "[acquire] Staged 3 chunks | Context: video_id=abc, count=3"
