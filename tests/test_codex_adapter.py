"""Tests for the Codex CLI adapter."""

import json

import pytest
import tomli

from switchyard.adapters.codex import CodexAdapter, codex_base_url
from switchyard.core.errors import AdapterWriteError, UnsupportedScopeError
from switchyard.core.models import ModelType, Scope


def _codex_provider(make_provider, **overrides):
    data = {
        "model_type": "codex",
        "models": [{"id": "gpt-5.1", "reasoning_effort": "high"}],
    }
    data.update(overrides)
    return make_provider("My Relay", **data)


def test_codex_base_url():
    assert codex_base_url("https://relay.example.com/") == "https://relay.example.com/v1"
    assert codex_base_url("https://relay.example.com/openai") == "https://relay.example.com/openai"


@pytest.mark.asyncio
async def test_write_config_and_auth(home, project, make_provider):
    config_path = home / ".codex" / "config.toml"
    config_path.parent.mkdir(parents=True)
    config_path.write_text('approval_policy = "never"\n', encoding="utf-8")

    await CodexAdapter(home, project).write(_codex_provider(make_provider), Scope.GLOBAL)

    document = tomli.loads(config_path.read_text(encoding="utf-8"))
    assert document["approval_policy"] == "never"
    assert document["model_provider"] == "my_relay"
    assert document["model"] == "gpt-5.1"
    assert document["model_reasoning_effort"] == "high"
    table = document["model_providers"]["my_relay"]
    assert table["name"] == "My Relay"
    assert table["base_url"] == "https://relay.example.com/v1"

    auth = json.loads((home / ".codex" / "auth.json").read_text(encoding="utf-8"))
    assert auth["OPENAI_API_KEY"] == "sk-test-1234567890"


@pytest.mark.asyncio
async def test_write_is_idempotent(home, project, make_provider):
    adapter = CodexAdapter(home, project)
    await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)
    config_bytes = (home / ".codex" / "config.toml").read_bytes()
    auth_bytes = (home / ".codex" / "auth.json").read_bytes()

    await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)
    assert (home / ".codex" / "config.toml").read_bytes() == config_bytes
    assert (home / ".codex" / "auth.json").read_bytes() == auth_bytes


@pytest.mark.asyncio
async def test_project_scope_is_rejected(home, project, make_provider):
    adapter = CodexAdapter(home, project)
    with pytest.raises(UnsupportedScopeError):
        await adapter.write(_codex_provider(make_provider), Scope.PROJECT)
    assert not (project / ".codex").exists()


@pytest.mark.asyncio
async def test_read_marks_active_table(home, project):
    root = home / ".codex"
    root.mkdir()
    (root / "config.toml").write_text(
        'model_provider = "relay"\n'
        'model = "gpt-5.1"\n'
        "\n"
        "[model_providers.relay]\n"
        'name = "Relay"\n'
        'base_url = "https://relay.example.com/v1"\n'
        "\n"
        "[model_providers.backup]\n"
        'base_url = "https://backup.example.com/v1"\n',
        encoding="utf-8",
    )
    (root / "auth.json").write_text('{"OPENAI_API_KEY": "sk-live"}', encoding="utf-8")

    items = {item.name: item for item in await CodexAdapter(home, project).read_deployed()}
    assert set(items) == {"Relay", "backup"}
    active = items["Relay"]
    assert active.model_count == -1
    assert active.current_model == "gpt-5.1"
    assert active.api_key == "sk-live"
    assert active.inferred_model_type == ModelType.CODEX
    assert items["backup"].current_model is None
    assert items["backup"].api_key is None


@pytest.mark.asyncio
async def test_malformed_toml_is_reported_and_preserved(home, project, make_provider):
    config_path = home / ".codex" / "config.toml"
    config_path.parent.mkdir(parents=True)
    config_path.write_text("model = [unterminated", encoding="utf-8")

    adapter = CodexAdapter(home, project)
    result = await adapter.scan()
    assert result.items == []
    assert len(result.warnings) == 1

    with pytest.raises(AdapterWriteError):
        await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)
    assert config_path.read_text(encoding="utf-8") == "model = [unterminated"


@pytest.mark.asyncio
async def test_remove_drops_table_and_active_pointer(home, project, make_provider):
    adapter = CodexAdapter(home, project)
    await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)

    assert await adapter.remove("My Relay", Scope.GLOBAL)
    document = tomli.loads((home / ".codex" / "config.toml").read_text(encoding="utf-8"))
    assert document["model_providers"] == {}
    assert "model_provider" not in document
    assert not await adapter.remove("My Relay", Scope.GLOBAL)


@pytest.mark.asyncio
async def test_write_never_takes_over_a_foreign_table(home, project, make_provider):
    config_path = home / ".codex" / "config.toml"
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        "[model_providers.my_relay]\n"
        'name = "Team Gateway"\n'
        'base_url = "https://team.example.com/v1"\n',
        encoding="utf-8",
    )

    adapter = CodexAdapter(home, project)
    await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)

    document = tomli.loads(config_path.read_text(encoding="utf-8"))
    tables = document["model_providers"]
    assert tables["my_relay"] == {"name": "Team Gateway", "base_url": "https://team.example.com/v1"}
    assert tables["my_relay_2"]["name"] == "My Relay"
    assert document["model_provider"] == "my_relay_2"

    assert await adapter.remove("My Relay", Scope.GLOBAL)
    assert not await adapter.remove("My Relay", Scope.GLOBAL)
    tables = tomli.loads(config_path.read_text(encoding="utf-8"))["model_providers"]
    assert list(tables) == ["my_relay"]


@pytest.mark.asyncio
async def test_write_drops_model_keys_of_previous_provider(home, project, make_provider):
    adapter = CodexAdapter(home, project)
    await adapter.write(_codex_provider(make_provider), Scope.GLOBAL)
    await adapter.write(make_provider("Bare", model_type="codex", models=[]), Scope.GLOBAL)

    document = tomli.loads((home / ".codex" / "config.toml").read_text(encoding="utf-8"))
    assert document["model_provider"] == "bare"
    assert "model" not in document
    assert "model_reasoning_effort" not in document

    await adapter.write(
        make_provider("Plain", model_type="codex", models=[{"id": "gpt-5.2"}]), Scope.GLOBAL
    )
    document = tomli.loads((home / ".codex" / "config.toml").read_text(encoding="utf-8"))
    assert document["model"] == "gpt-5.2"
    assert "model_reasoning_effort" not in document


@pytest.mark.asyncio
async def test_changed_file_is_backed_up(home, project, make_provider):
    config_path = home / ".codex" / "config.toml"
    config_path.parent.mkdir(parents=True)
    config_path.write_text('approval_policy = "never"\n', encoding="utf-8")

    await CodexAdapter(home, project).write(_codex_provider(make_provider), Scope.GLOBAL)

    backup = home / ".codex" / "config.toml.bak"
    assert backup.read_text(encoding="utf-8") == 'approval_policy = "never"\n'
    assert not (home / ".codex" / "auth.json.bak").exists()
