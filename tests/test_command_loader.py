import pytest

from engine.command_loader import (
    list_commands,
    list_skills,
    parse_slash_command,
    resolve_command_path,
    run_command,
)
from engine.hook_loader import HotModuleLoader


def _write_command(directory, name: str, body: str):
    command_dir = directory / ".agentrelay" / "commands"
    command_dir.mkdir(parents=True, exist_ok=True)
    path = command_dir / f"{name}.py"
    path.write_text(body, encoding="utf-8")
    return path


def test_parse_slash_command():
    parsed = parse_slash_command("/deploy@relay_bot staging  now")
    assert parsed.name == "deploy"
    assert parsed.args == ["staging", "now"]
    assert parse_slash_command("/status").args == []
    assert parse_slash_command("hello /deploy") is None
    assert parse_slash_command("/") is None


def test_project_command_wins_over_global(tmp_path):
    config_dir = tmp_path / "config"
    project_dir = tmp_path / "project"
    _write_command(config_dir, "status", "description = 'global'\n")
    project_path = _write_command(project_dir, "status", "description = 'project'\n")
    global_only = _write_command(config_dir, "joke", "description = 'tell a joke'\n")

    assert resolve_command_path("status", project_dir, config_dir) == project_path
    assert resolve_command_path("joke", project_dir, config_dir) == global_only
    assert resolve_command_path("missing", project_dir, config_dir) is None
    assert resolve_command_path("../status", project_dir, config_dir) is None


def test_list_commands_merges_and_skips_invalid(tmp_path):
    config_dir = tmp_path / "config"
    project_dir = tmp_path / "project"
    _write_command(config_dir, "status", "description = 'global status'\n")
    _write_command(config_dir, "joke", "description = 'tell a joke'\n")
    _write_command(project_dir, "status", "description = 'project status'\n")
    _write_command(project_dir, "nodesc", "def run(args, ctx, agent):\n    return 'x'\n")
    _write_command(project_dir, "broken", "description = 'broken'\ndef run(\n")

    entries = {entry.command: entry.description for entry in list_commands(HotModuleLoader(), project_dir, config_dir)}
    assert entries == {"status": "project status", "joke": "tell a joke"}


@pytest.mark.asyncio
async def test_run_command_sync_and_async(tmp_path):
    loader = HotModuleLoader()
    sync_path = _write_command(tmp_path, "echo", "description = 'echo'\ndef run(args, ctx, agent):\n    return ' '.join(args) + ctx['bot.userId']\n")
    async_path = _write_command(tmp_path, "ask", "description = 'ask'\nasync def run(args, ctx, agent):\n    return await agent.call('q')\n")
    silent_path = _write_command(tmp_path, "silent", "description = 'silent'\ndef run(args, ctx, agent):\n    return None\n")

    class FakeAgent:
        async def call(self, prompt, on_progress=None, continue_session=None):
            return f"answer to {prompt}"

    assert await run_command(loader, sync_path, ["a", "b"], {"bot.userId": "!"}, FakeAgent()) == "a b!"
    assert await run_command(loader, async_path, [], {}, FakeAgent()) == "answer to q"
    assert await run_command(loader, silent_path, [], {}, FakeAgent()) is None


@pytest.mark.asyncio
async def test_run_command_propagates_errors(tmp_path):
    path = _write_command(tmp_path, "fail", "description = 'fail'\ndef run(args, ctx, agent):\n    raise RuntimeError('deploy failed')\n")
    with pytest.raises(RuntimeError, match="deploy failed"):
        await run_command(HotModuleLoader(), path, [], {}, None)


def test_list_skills_reads_frontmatter(tmp_path):
    skills = tmp_path / ".claude" / "skills"
    (skills / "release").mkdir(parents=True)
    (skills / "release" / "SKILL.md").write_text("---\nname: release\ndescription: Cut a release: tag and publish\n---\n\nSteps...\n")
    (skills / "plain").mkdir()
    (skills / "plain" / "SKILL.md").write_text("No frontmatter here\n")
    (skills / "empty").mkdir()

    entries = list_skills(skills)
    assert [(entry.name, entry.description) for entry in entries] == [
        ("plain", ""),
        ("release", "Cut a release: tag and publish"),
    ]
    assert list_skills(tmp_path / "missing") == []
