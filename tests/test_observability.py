import json
import logging

import pytest

from middleware.observability import InvocationTracker, project_logger, resolve_level
from scripts.init_project import ensure_config, run


def test_resolve_level():
    assert resolve_level("DEBUG") == logging.DEBUG
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level("verbose") == logging.INFO
    assert resolve_level(logging.ERROR) == logging.ERROR


def test_project_logger_is_namespaced():
    log = project_logger("my-app", "debug")
    assert log.name == "agentrelay.project.my-app"
    assert log.level == logging.DEBUG


def test_tracker_logs_metrics(caplog):
    caplog.set_level(logging.INFO, logger="agentrelay.test")
    tracker = InvocationTracker("claude", "claude", logging.getLogger("agentrelay.test"))

    with tracker.track() as metrics:
        metrics.prompt_chars = 12
        metrics.exit_code = 0
        metrics.success = True
        metrics.progress_events = 3
        metrics.skipped_lines = 1

    summary = tracker.finalize()
    assert summary["progress_events"] == 3
    assert summary["skipped_lines"] == 1
    assert summary["success"] is True
    assert summary["latency_ms"] >= 0
    assert any("Invocation finished" in record.message for record in caplog.records)


def test_tracker_records_exception():
    tracker = InvocationTracker("codex", "codex")
    with pytest.raises(RuntimeError):
        with tracker.track():
            raise RuntimeError("spawn exploded")
    assert tracker.metrics.success is False
    assert tracker.metrics.error == "spawn exploded"


def test_init_project_scaffolds_engine_files(tmp_path):
    run(tmp_path, "cursor")

    config = json.loads((tmp_path / "agentrelay.config.json").read_text())
    assert config["projects"][0]["engine"] == "cursor"
    assert (tmp_path / ".cursor" / "rules").is_dir()
    assert (tmp_path / ".cursorrules").exists()
    assert ensure_config(tmp_path, "claude") is False
