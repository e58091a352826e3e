import logging

import pytest

from engine.adapters.antigravity import AntigravityAdapter
from engine.adapters.claude import ClaudeAdapter, parse_claude_output
from engine.adapters.codex import CodexAdapter, CodexTier, select_tier
from engine.adapters.copilot import CopilotAdapter
from engine.adapters.cursor import CursorAdapter
from engine.adapters.opencode import OpenCodeAdapter
from schemas.engine_types import ExecutionRequest, ExecutionResult, ResetMode
from schemas.project_config import CodexOptions


def _request(**overrides) -> ExecutionRequest:
    values = {"prompt_text": "hi", "working_directory": "/tmp"}
    values.update(overrides)
    return ExecutionRequest(**values)


def test_claude_args_resume_with_session(make_project):
    args = ClaudeAdapter(model="sonnet").build_args("P", _request(session_id="s-1"), make_project())
    assert args == ["-p", "P", "--output-format", "stream-json", "--verbose", "--model", "sonnet", "--resume", "s-1"]


def test_claude_args_without_session_have_no_resume(make_project):
    args = ClaudeAdapter().build_args("P", _request(), make_project())
    assert "--resume" not in args
    assert "--model" not in args


def test_passive_adapter_omits_resume_when_continuation_disabled(make_project):
    project = make_project()
    request = _request(session_id="s-1", continue_session=False)
    assert "--resume" not in ClaudeAdapter().build_args("P", request, project)
    assert "--resume" not in AntigravityAdapter().build_args("P", request, project)


def test_passive_adapter_omits_resume_when_sessions_disabled_in_config(make_project):
    project = make_project(engine_session=False)
    assert "--resume" not in ClaudeAdapter().build_args("P", _request(session_id="s-1"), project)


def test_antigravity_args(make_project):
    project = make_project(antigravity={"approval_mode": "auto_edit", "sandbox": True})
    args = AntigravityAdapter(model="gemini-2.5-pro").build_args("P", _request(session_id="g-1"), project)
    assert args == [
        "-p", "P", "--output-format", "stream-json", "--approval-mode", "auto_edit",
        "--model", "gemini-2.5-pro", "--resume", "g-1", "--sandbox",
    ]


def test_antigravity_yolo_warns_every_call(make_project, caplog):
    caplog.set_level(logging.WARNING)
    project = make_project(antigravity={"approval_mode": "yolo"})
    adapter = AntigravityAdapter()
    adapter.build_args("P", _request(), project)
    adapter.build_args("P", _request(), project)
    assert sum("yolo" in record.message for record in caplog.records) == 2


@pytest.mark.parametrize(
    "flags, expected",
    [
        ({"dangerously_enable_yolo": True, "full_disk_access": True, "network_access": True}, CodexTier.YOLO),
        ({"full_disk_access": True, "network_access": True}, CodexTier.FULL_DISK_ACCESS),
        ({"network_access": True}, CodexTier.NETWORK_ACCESS),
        ({}, CodexTier.DEFAULT),
    ],
)
def test_codex_tier_precedence(flags, expected):
    assert select_tier(CodexOptions(**flags)) is expected


def test_codex_args_fresh_session(make_project, tmp_path):
    project = make_project(codex={"network_access": True})
    args = CodexAdapter(model="o3").build_args("P", _request(continue_session=False), project)
    assert args == [
        "exec", "--full-auto", "-c", "sandbox_workspace_write.network_access=true", "--skip-git-repo-check",
        "-m", "o3", "-C", str(tmp_path), "P",
    ]


def test_codex_args_continue_last(make_project):
    project = make_project(codex={"full_disk_access": True})
    args = CodexAdapter().build_args("P", _request(), project)
    assert args == ["exec", "--sandbox", "danger-full-access", "--skip-git-repo-check", "resume", "--last", "P"]


def test_codex_yolo_warns_every_call(make_project, caplog):
    caplog.set_level(logging.WARNING)
    project = make_project(codex={"dangerously_enable_yolo": True})
    adapter = CodexAdapter()
    first = adapter.build_args("P", _request(), project)
    adapter.build_args("P", _request(), project)
    assert first[:3] == ["exec", "--dangerously-bypass-approvals-and-sandbox", "--skip-git-repo-check"]
    assert sum("--yolo" in record.message for record in caplog.records) == 2


def test_copilot_args(make_project):
    project = make_project()
    assert CopilotAdapter(model="gpt-5").build_args("P", _request(), project) == [
        "-p", "P", "--allow-all", "--model", "gpt-5", "--continue",
    ]
    assert "--continue" not in CopilotAdapter().build_args("P", _request(continue_session=False), project)


def test_opencode_args_and_env(make_project):
    project = make_project()
    adapter = OpenCodeAdapter(model="opencode/gpt-5-nano")
    assert adapter.build_args("P", _request(), project) == ["run", "-m", "opencode/gpt-5-nano", "-c", "P"]
    assert adapter.build_args("P", _request(continue_session=False), project) == ["run", "-m", "opencode/gpt-5-nano", "P"]
    assert adapter.build_env()["OPENCODE_DISABLE_CLAUDE_CODE_PROMPT"] == "true"


def test_cursor_args(make_project, tmp_path):
    project = make_project()
    assert CursorAdapter().build_args("P", _request(), project) == [
        "--print", "--workspace", str(tmp_path), "--trust", "--force", "--model", "auto", "--continue", "P",
    ]


@pytest.mark.parametrize(
    "adapter, skills, instructions, reset_mode, command",
    [
        (ClaudeAdapter(), ".claude/skills", "CLAUDE.md", ResetMode.PASSIVE, "claude"),
        (CodexAdapter(), ".claude/skills", "AGENTS.md", ResetMode.ACTIVE, "codex"),
        (CopilotAdapter(), ".claude/skills", "AGENTS.md", ResetMode.ACTIVE, "copilot"),
        (OpenCodeAdapter(), ".claude/skills", "AGENTS.md", ResetMode.ACTIVE, "opencode"),
        (CursorAdapter(), ".cursor/rules", ".cursorrules", ResetMode.ACTIVE, "agent"),
        (AntigravityAdapter(), ".agent/skills", "GEMINI.md", ResetMode.PASSIVE, "gemini"),
    ],
)
def test_auxiliary_locations(adapter, skills, instructions, reset_mode, command):
    assert adapter.skills_dir("/work") == f"/work/{skills}"
    assert adapter.instructions_file() == instructions
    assert adapter.reset_mode is reset_mode
    assert adapter.command == command


def test_parse_failure_returns_error_text():
    parsed = CopilotAdapter().parse(ExecutionResult(success=False, error_text="boom"))
    assert parsed.text == "boom"


def test_parse_claude_output_variants():
    assert parse_claude_output("plain text")[0] == "plain text"
    assert parse_claude_output('"quoted"')[0] == "quoted"
    assert parse_claude_output('{"result": "r", "session_id": "s"}')[:2] == ("r", "s")
    assert parse_claude_output('{"content": [{"type": "text", "text": "a"}, {"type": "tool_use"}, {"type": "text", "text": "b"}]}')[0] == "a\nb"
    assert parse_claude_output("")[0] == "No response received"


def test_claude_parse_keeps_result_session():
    parsed = ClaudeAdapter().parse(ExecutionResult(success=True, output_text="hello", session_id="s-9"))
    assert parsed.text == "hello"
    assert parsed.session_id == "s-9"
