"""Tests for media_pipeline.observability.metrics module."""

from __future__ import annotations

import json
import time
from dataclasses import asdict

import pytest

from media_pipeline.observability.metrics import (
    JobMetrics,
    StageTimer,
    log_job_metrics,
)


def _make_job_metrics(**overrides) -> JobMetrics:
    """Create a JobMetrics with sensible defaults, applying any overrides."""
    defaults = {
        "job_id": "job-001",
        "status": "completed",
        "filename": "talk.mp4",
        "file_size_bytes": 5_000_000,
        "media_duration_seconds": 95.0,
        "transcript_chars": 1_420,
        "transcript_segment_count": 18,
        "highlight_count": 3,
        "processing_wall_time_seconds": 14.5,
        "transcription_duration_seconds": 9.8,
        "analysis_duration_seconds": 4.6,
        "queue_wait_time_seconds": 1.2,
        "retry_count": 0,
        "error_stage": None,
        "error_category": None,
        "error_message": None,
    }
    defaults.update(overrides)
    return JobMetrics(**defaults)


class TestJobMetrics:
    """Tests for JobMetrics dataclass."""

    def test_serializes_all_fields_to_dict(self):
        """JobMetrics serializes all fields via dataclasses.asdict()."""
        d = asdict(_make_job_metrics())

        assert d["job_id"] == "job-001"
        assert d["filename"] == "talk.mp4"
        assert d["file_size_bytes"] == 5_000_000
        assert d["media_duration_seconds"] == 95.0
        assert d["transcript_segment_count"] == 18
        assert d["highlight_count"] == 3
        assert d["transcription_duration_seconds"] == 9.8
        assert d["analysis_duration_seconds"] == 4.6
        assert d["queue_wait_time_seconds"] == 1.2
        assert d["error_category"] is None

    def test_error_case_serializes_with_error_fields(self):
        """Failed-job metrics carry the stage, category and message."""
        d = asdict(
            _make_job_metrics(
                status="failed",
                error_stage="transcription",
                error_category="usage_limit",
                error_message="Rate limit reached",
                retry_count=8,
                transcript_chars=0,
                highlight_count=0,
                analysis_duration_seconds=0.0,
            )
        )

        assert d["status"] == "failed"
        assert d["error_stage"] == "transcription"
        assert d["error_category"] == "usage_limit"
        assert d["retry_count"] == 8
        # Partial metrics: upload fields survive, later stages are zero
        assert d["file_size_bytes"] == 5_000_000
        assert d["analysis_duration_seconds"] == 0.0


class TestLogJobMetrics:
    """Tests for log_job_metrics() function."""

    def test_output_is_valid_json_with_envelope_fields(self, capsys):
        log_job_metrics(_make_job_metrics())

        parsed = json.loads(capsys.readouterr().out.strip())

        assert "timestamp" in parsed
        assert parsed["severity"] == "INFO"
        assert parsed["metric_type"] == "job_completion"

    def test_output_contains_all_job_metrics_fields(self, capsys):
        metrics = _make_job_metrics()
        log_job_metrics(metrics)

        parsed = json.loads(capsys.readouterr().out.strip())

        for key in asdict(metrics):
            assert key in parsed, f"Missing key: {key}"


class TestStageTimer:
    """Tests for StageTimer context manager."""

    def test_captures_positive_duration(self):
        timer = StageTimer("transcription")
        with timer:
            time.sleep(0.01)

        assert timer.duration_seconds > 0.0
        assert timer.stage_name == "transcription"
        assert timer.failed is False

    def test_captures_start_and_end_times(self):
        timer = StageTimer("analysis")
        with timer:
            time.sleep(0.01)

        assert timer.start_time is not None
        assert timer.end_time is not None
        assert timer.end_time >= timer.start_time

    def test_duration_on_exception(self):
        """StageTimer still records duration even if the block raises."""
        timer = StageTimer("analysis")
        with pytest.raises(ValueError, match="boom"):
            with timer:
                time.sleep(0.01)
                raise ValueError("boom")

        assert timer.duration_seconds > 0.0
        assert timer.end_time is not None
        assert timer.failed is True
