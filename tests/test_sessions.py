import json

import pytest

from engine.adapters.claude import ClaudeAdapter
from engine.adapters.copilot import CopilotAdapter
from engine.session_renewal import PASSIVE_RENEWAL_REPLY, RENEWAL_FAILED_REPLY, renew_session
from engine.session_store import SessionStore
from schemas.engine_types import ExecutionResult


def test_session_store_round_trip(tmp_path):
    store = SessionStore(tmp_path / "users")
    assert store.get(42) is None

    store.save(42, "s-1")
    assert store.get(42) == "s-1"
    data = json.loads((tmp_path / "users" / "42" / "session.json").read_text())
    assert data == {"currentSessionId": "s-1"}


def test_session_store_ignores_corrupt_file(tmp_path):
    store = SessionStore(tmp_path)
    (tmp_path / "7").mkdir()
    (tmp_path / "7" / "session.json").write_text("{not json")
    assert store.get(7) is None


def test_clear_keeps_user_files(tmp_path):
    store = SessionStore(tmp_path)
    store.ensure_user_dirs(42)
    (store.outbox_path(42) / "report.txt").write_text("r")
    store.save(42, "s-1")

    store.clear(42)

    assert store.get(42) is None
    assert (store.outbox_path(42) / "report.txt").exists()
    store.clear(42)


def test_wipe_removes_user_directory(tmp_path):
    store = SessionStore(tmp_path)
    store.ensure_user_dirs(42)
    store.save(42, "s-1")

    store.wipe(42)

    assert not store.user_dir(42).exists()
    store.wipe(42)


def test_collect_outbox_reports_each_file_once(tmp_path):
    store = SessionStore(tmp_path)
    assert store.collect_outbox(42) == []
    store.ensure_user_dirs(42)
    (store.outbox_path(42) / "b.txt").write_text("b")
    (store.outbox_path(42) / "a.txt").write_text("a")

    delivered = store.collect_outbox(42)

    assert delivered == [store.delivered_path(42) / "a.txt", store.delivered_path(42) / "b.txt"]
    assert delivered[0].read_text() == "a"
    assert list(store.outbox_path(42).iterdir()) == []
    assert store.collect_outbox(42) == []


def test_ensure_user_dirs_layout(tmp_path):
    store = SessionStore(tmp_path)
    user_dir = store.ensure_user_dirs("9")
    assert user_dir == tmp_path / "9"
    assert (tmp_path / "9" / "uploads").is_dir()
    assert (tmp_path / "9" / "downloads").is_dir()


@pytest.mark.asyncio
async def test_passive_renewal_only_clears_session(monkeypatch, make_project, tmp_path):
    store = SessionStore(tmp_path)
    store.save(1, "s-1")
    adapter = ClaudeAdapter()

    async def fail_execute(request, project):
        raise AssertionError("passive adapters must not be called")

    monkeypatch.setattr(adapter, "execute", fail_execute)
    outcome = await renew_session(adapter, make_project(), store, 1)

    assert outcome.success is True
    assert outcome.reply == PASSIVE_RENEWAL_REPLY
    assert store.get(1) is None


@pytest.mark.asyncio
async def test_active_renewal_sends_session_message_without_continuation(monkeypatch, make_project, tmp_path):
    store = SessionStore(tmp_path)
    store.save(1, "s-1")
    adapter = CopilotAdapter()
    captured = {}

    async def fake_execute(request, project):
        captured["request"] = request
        return ExecutionResult(success=True, output_text="Hi! Fresh session here.")

    monkeypatch.setattr(adapter, "execute", fake_execute)
    outcome = await renew_session(adapter, make_project(engine_session_msg="hello again"), store, 1)

    assert outcome.success is True
    assert outcome.reply == "Hi! Fresh session here."
    assert captured["request"].prompt_text == "hello again"
    assert captured["request"].continue_session is False
    assert store.get(1) is None


@pytest.mark.asyncio
async def test_active_renewal_failure_is_reported(monkeypatch, make_project, tmp_path):
    adapter = CopilotAdapter()

    async def fake_execute(request, project):
        return ExecutionResult(success=False, error_text="not logged in")

    monkeypatch.setattr(adapter, "execute", fake_execute)
    outcome = await renew_session(adapter, make_project(), SessionStore(tmp_path), 1)

    assert outcome.success is False
    assert outcome.reply == RENEWAL_FAILED_REPLY
    assert outcome.error == "not logged in"
