from __future__ import annotations

import logging

import pytest

from svg_visual_compare.metrics import PipelineStats, collect_stats, current_stats, stage


def test_stage_records_into_active_collector():
    assert current_stats() is None
    with collect_stats() as stats:
        assert current_stats() is stats
        with stage("diff"):
            pass
        with stage("diff"):
            pass
        stats.increment("regenerated", 2)
    assert current_stats() is None
    assert set(stats.timings) == {"diff"}
    assert stats.timings["diff"] >= 0.0
    assert stats.counters == {"regenerated": 2}
    assert "regenerated=2" in stats.summary()


def test_failed_stage_is_still_timed():
    stats = PipelineStats()
    with collect_stats(stats):
        with pytest.raises(RuntimeError):
            with stage("rasterize"):
                raise RuntimeError("backend crashed")
    assert "rasterize" in stats.timings


def test_stage_logs_duration(caplog):
    logger = logging.getLogger("svg_visual_compare.tests")
    with caplog.at_level(logging.DEBUG, logger="svg_visual_compare.tests"):
        with stage("plan", logger=logger):
            pass
    assert any("plan took" in record.getMessage() for record in caplog.records)


def test_stage_without_collector_is_harmless():
    with stage("analyze"):
        pass
    assert PipelineStats().summary() == "no stages recorded"
