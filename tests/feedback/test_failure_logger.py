from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from applyflow.feedback.failure_logger import (
    RunFailure,
    RunFailureLogger,
    classify_failure,
    failure_from_state,
)
from applyflow.workflow.application import initial_application_state
from applyflow.workflow.discovery import initial_discovery_state

WHEN = datetime(2024, 5, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_log_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "failures.jsonl"


@pytest.fixture
def logger(temp_log_path: Path) -> RunFailureLogger:
    return RunFailureLogger(log_path=temp_log_path)


def make_failure(timestamp: str = "2024-05-16T12:00:00+00:00", **overrides) -> RunFailure:
    fields = {
        "timestamp": timestamp,
        "workflow": "application",
        "target_url": "https://jobs.example.com/apply/1",
        "failure_type": "load_failed",
        "status": "load_failed",
        "current_step": "page_load_failed",
        "errors": [{"step": "detect_load", "error": "timeout", "timestamp": timestamp}],
    }
    fields.update(overrides)
    return RunFailure(**fields)


class TestClassification:
    @pytest.mark.parametrize(
        "status, expected",
        [
            ("failed", "step_failed"),
            ("login_required", "blocked"),
            ("oauth_required", "blocked"),
            ("email_verification_required", "blocked"),
            ("blocked", "blocked"),
            ("load_failed", "load_failed"),
            ("no_form", "no_form"),
            ("completed", "unconfirmed"),
        ],
    )
    def test_status_to_failure_type(self, status: str, expected: str) -> None:
        state = initial_application_state("https://x.example.com", {}).model_copy(
            update={"status": status}
        )
        assert classify_failure(state) == expected

    def test_from_application_state(self) -> None:
        state = initial_application_state("https://jobs.example.com/apply/1", {}).with_error(
            "detect_load", "net::ERR_TIMED_OUT", WHEN, status="load_failed",
            current_step="page_load_failed", history=("detect_load",),
        )

        failure = failure_from_state("application", state, WHEN.isoformat())

        assert failure.target_url == "https://jobs.example.com/apply/1"
        assert failure.failure_type == "load_failed"
        assert failure.current_step == "page_load_failed"
        assert failure.errors == [{
            "step": "detect_load",
            "error": "net::ERR_TIMED_OUT",
            "timestamp": "2024-05-16T12:00:00Z",
        }]
        assert failure.details == {"history": ["detect_load"]}

    def test_discovery_target_is_domain(self) -> None:
        state = initial_discovery_state("data engineering", {}).model_copy(update={"status": "failed"})

        failure = failure_from_state("discovery", state, WHEN.isoformat())

        assert failure.target_url == "data engineering"
        assert failure.failure_type == "step_failed"


class TestAppendOnlyJSONL:
    def test_log_appends_to_file(self, logger: RunFailureLogger, temp_log_path: Path) -> None:
        logger.log(make_failure("2024-05-16T12:00:00"))
        logger.log(make_failure("2024-05-16T12:01:00"))

        lines = temp_log_path.read_text().strip().split("\n")
        assert len(lines) == 2

    def test_each_line_is_valid_json(self, logger: RunFailureLogger, temp_log_path: Path) -> None:
        logger.log(make_failure())

        data = json.loads(temp_log_path.read_text().strip())
        assert data["workflow"] == "application"
        assert data["addressed"] is False


class TestDirectoryCreation:
    def test_creates_data_directory_if_not_exists(
        self, logger: RunFailureLogger, temp_log_path: Path
    ) -> None:
        assert not temp_log_path.parent.exists()
        logger.log(make_failure())
        assert temp_log_path.exists()


class TestThreadSafety:
    def test_concurrent_writes(self, logger: RunFailureLogger, temp_log_path: Path) -> None:
        def write(i: int) -> None:
            logger.log(make_failure(f"2024-05-16T12:00:{i:02d}"))

        threads = [threading.Thread(target=write, args=(i,)) for i in range(25)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = temp_log_path.read_text().strip().split("\n")
        assert len(lines) == 25
        for line in lines:
            json.loads(line)


class TestReadAll:
    def test_read_all_returns_unaddressed_by_default(self, logger: RunFailureLogger) -> None:
        logger.log(make_failure("t1"))
        logger.log(make_failure("t2", addressed=True))

        result = logger.read_all()

        assert [f.timestamp for f in result] == ["t1"]

    def test_read_all_includes_addressed_when_flag_set(self, logger: RunFailureLogger) -> None:
        logger.log(make_failure("t1"))
        logger.log(make_failure("t2", addressed=True))

        assert len(logger.read_all(include_addressed=True)) == 2

    def test_read_all_filters_by_workflow(self, logger: RunFailureLogger) -> None:
        logger.log(make_failure("t1"))
        logger.log(make_failure("t2", workflow="discovery", target_url="python"))

        assert [f.timestamp for f in logger.read_all(workflow="discovery")] == ["t2"]


class TestMarkAddressed:
    def test_returns_number_changed(self, logger: RunFailureLogger) -> None:
        logger.log(make_failure("t1"))
        logger.log(make_failure("t2", addressed=True))

        assert logger.mark_addressed(["t1", "t2", "t9"]) == 1
        assert logger.mark_addressed(["t1"]) == 0

    def test_empty_timestamps_leave_file_alone(
        self, logger: RunFailureLogger, temp_log_path: Path
    ) -> None:
        logger.log(make_failure("t1"))
        before = temp_log_path.read_text()

        assert logger.mark_addressed([]) == 0
        assert temp_log_path.read_text() == before

    def test_mark_addressed_updates_failures(self, logger: RunFailureLogger) -> None:
        for ts in ("t1", "t2", "t3"):
            logger.log(make_failure(ts))

        logger.mark_addressed(["t1", "t3"])

        assert [f.timestamp for f in logger.read_all()] == ["t2"]
        assert len(logger.read_all(include_addressed=True)) == 3


class TestEdgeCases:
    def test_file_does_not_exist_returns_empty_list(self, logger: RunFailureLogger) -> None:
        assert logger.read_all() == []

    def test_malformed_line_skipped(self, logger: RunFailureLogger, temp_log_path: Path) -> None:
        logger.log(make_failure("t1"))
        with open(temp_log_path, "a", encoding="utf-8") as f:
            f.write("{not valid json\n")
            f.write(json.dumps({"timestamp": "t9", "unexpected": True}) + "\n")
        logger.log(make_failure("t2"))

        assert [f.timestamp for f in logger.read_all()] == ["t1", "t2"]

    def test_non_serializable_details_converted_to_str(
        self, logger: RunFailureLogger, temp_log_path: Path
    ) -> None:
        logger.log(make_failure(details={"path": Path("/tmp/resume.pdf")}))

        data = json.loads(temp_log_path.read_text().strip())
        assert data["details"]["path"] == "/tmp/resume.pdf"

    def test_mark_addressed_on_nonexistent_file(self, logger: RunFailureLogger) -> None:
        logger.mark_addressed(["t1"])
        assert logger.read_all() == []

    def test_mark_addressed_preserves_malformed_lines(
        self, logger: RunFailureLogger, temp_log_path: Path
    ) -> None:
        logger.log(make_failure("t1"))
        with open(temp_log_path, "a", encoding="utf-8") as f:
            f.write("garbage line\n")

        logger.mark_addressed(["t1"])

        assert "garbage line" in temp_log_path.read_text()
