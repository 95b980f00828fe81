"""Tests for the Claude Code settings adapter."""

import json

import pytest

from switchyard.adapters.claude_code import ClaudeCodeAdapter, tier_models
from switchyard.core.errors import AdapterWriteError
from switchyard.core.models import ModelType, Scope


def _settings(root):
    return root / ".claude" / "settings.json"


def test_tier_models_match_by_name(make_provider):
    provider = make_provider(
        models=[{"id": "claude-sonnet-4"}, {"id": "claude-opus-4"}, {"id": "custom-model"}]
    )
    assert tier_models(provider) == {
        "ANTHROPIC_DEFAULT_HAIKU_MODEL": "claude-sonnet-4",
        "ANTHROPIC_DEFAULT_SONNET_MODEL": "claude-sonnet-4",
        "ANTHROPIC_DEFAULT_OPUS_MODEL": "claude-opus-4",
    }


@pytest.mark.asyncio
async def test_write_merges_env_and_keeps_other_settings(home, project, make_provider):
    path = _settings(home)
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps({"permissions": {"allow": ["Bash(ls)"]}, "env": {"FOO": "bar", "MAX_THINKING_TOKENS": "9"}}),
        encoding="utf-8",
    )

    await ClaudeCodeAdapter(home, project).write(make_provider(), Scope.GLOBAL)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["permissions"] == {"allow": ["Bash(ls)"]}
    env = document["env"]
    assert env["FOO"] == "bar"
    assert env["ANTHROPIC_BASE_URL"] == "https://relay.example.com"
    assert env["ANTHROPIC_AUTH_TOKEN"] == "sk-test-1234567890"
    assert env["ANTHROPIC_MODEL"] == "claude-sonnet-4"
    assert "ANTHROPIC_API_KEY" not in env
    assert "MAX_THINKING_TOKENS" not in env


@pytest.mark.asyncio
async def test_write_sets_thinking_budget_and_legacy_key(home, project, make_provider):
    path = _settings(project)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"env": {"ANTHROPIC_API_KEY": "old"}}), encoding="utf-8")

    provider = make_provider(models=[{"id": "claude-opus-4", "thinking_budget": 16000}])
    await ClaudeCodeAdapter(home, project).write(provider, Scope.PROJECT)

    env = json.loads(path.read_text(encoding="utf-8"))["env"]
    assert env["ANTHROPIC_API_KEY"] == "sk-test-1234567890"
    assert env["MAX_THINKING_TOKENS"] == "16000"


@pytest.mark.asyncio
async def test_write_is_idempotent(home, project, make_provider):
    adapter = ClaudeCodeAdapter(home, project)
    await adapter.write(make_provider(), Scope.GLOBAL)
    first = _settings(home).read_bytes()
    await adapter.write(make_provider(), Scope.GLOBAL)
    assert _settings(home).read_bytes() == first


@pytest.mark.asyncio
async def test_read_reports_single_model_item(home, project, make_provider):
    adapter = ClaudeCodeAdapter(home, project)
    await adapter.write(make_provider(), Scope.GLOBAL)

    items = await adapter.read_deployed()
    assert len(items) == 1
    item = items[0]
    assert item.name == "Claude Code"
    assert item.model_count == -1
    assert item.current_model == "claude-sonnet-4"
    assert item.inferred_model_type == ModelType.CLAUDE
    assert item.api_key == "sk-test-1234567890"


@pytest.mark.asyncio
async def test_malformed_settings_are_not_overwritten(home, project, make_provider):
    path = _settings(home)
    path.parent.mkdir(parents=True)
    path.write_text("not json", encoding="utf-8")

    adapter = ClaudeCodeAdapter(home, project)
    with pytest.raises(AdapterWriteError) as exc_info:
        await adapter.write(make_provider(), Scope.GLOBAL)
    assert exc_info.value.error_code == "write_failed"
    assert path.read_text(encoding="utf-8") == "not json"


@pytest.mark.asyncio
async def test_deployment_is_recognised_by_endpoint(home, project, make_provider):
    adapter = ClaudeCodeAdapter(home, project)
    await adapter.write(make_provider(), Scope.GLOBAL)

    assert await adapter.is_deployed("Relay", Scope.GLOBAL, ["https://relay.example.com/v1/"])
    assert not await adapter.is_deployed("Relay", Scope.GLOBAL, ["https://other.example.com"])
    assert not await adapter.is_deployed("Relay", Scope.PROJECT, ["https://relay.example.com"])


@pytest.mark.asyncio
async def test_remove_clears_managed_keys_only(home, project, make_provider):
    path = _settings(home)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"env": {"FOO": "bar"}}), encoding="utf-8")
    adapter = ClaudeCodeAdapter(home, project)
    await adapter.write(make_provider(), Scope.GLOBAL)

    assert not await adapter.remove("Relay", Scope.GLOBAL, ["https://elsewhere.example.com"])
    assert await adapter.remove("Relay", Scope.GLOBAL, ["https://relay.example.com"])
    assert json.loads(path.read_text(encoding="utf-8"))["env"] == {"FOO": "bar"}


@pytest.mark.asyncio
async def test_write_without_models_clears_previous_model_keys(home, project, make_provider):
    adapter = ClaudeCodeAdapter(home, project)
    await adapter.write(
        make_provider(models=[{"id": "claude-opus-4", "thinking_budget": 8000}]), Scope.GLOBAL
    )
    await adapter.write(make_provider("Empty", base_url="https://empty.example.com", models=[]), Scope.GLOBAL)

    env = json.loads(_settings(home).read_text(encoding="utf-8"))["env"]
    assert env["ANTHROPIC_BASE_URL"] == "https://empty.example.com"
    for key in (
        "ANTHROPIC_MODEL",
        "ANTHROPIC_DEFAULT_HAIKU_MODEL",
        "ANTHROPIC_DEFAULT_SONNET_MODEL",
        "ANTHROPIC_DEFAULT_OPUS_MODEL",
        "MAX_THINKING_TOKENS",
    ):
        assert key not in env
