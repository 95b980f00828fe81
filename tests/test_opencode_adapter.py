"""Tests for the OpenCode adapter."""

import asyncio
import json

import pytest

from switchyard.adapters.opencode import SCHEMA_URL, OpenCodeAdapter
from switchyard.core.errors import AdapterWriteError
from switchyard.core.models import ModelType, Scope, Target


def _global_path(home):
    return home / ".config" / "opencode" / "opencode.json"


@pytest.mark.asyncio
async def test_write_creates_document_with_schema(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    provider = make_provider(
        models=[{"id": "claude-sonnet-4", "context_limit": 200000, "output_limit": 8192}]
    )
    await adapter.write(provider, Scope.GLOBAL)

    document = json.loads(_global_path(home).read_text(encoding="utf-8"))
    assert document["$schema"] == SCHEMA_URL
    entry = document["provider"]["Relay"]
    assert entry["npm"] == "@ai-sdk/anthropic"
    assert entry["options"] == {"baseURL": "https://relay.example.com/v1", "apiKey": "sk-test-1234567890"}
    assert entry["models"]["claude-sonnet-4"]["limit"] == {"context": 200000, "output": 8192}


@pytest.mark.asyncio
async def test_write_without_v1_suffix(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    await adapter.write(make_provider(auto_add_v1_suffix=False), Scope.GLOBAL)
    document = json.loads(_global_path(home).read_text(encoding="utf-8"))
    assert document["provider"]["Relay"]["options"]["baseURL"] == "https://relay.example.com"


@pytest.mark.asyncio
async def test_write_is_idempotent(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    provider = make_provider()
    await adapter.write(provider, Scope.GLOBAL)
    first = _global_path(home).read_bytes()
    await adapter.write(provider, Scope.GLOBAL)
    assert _global_path(home).read_bytes() == first


@pytest.mark.asyncio
async def test_write_preserves_unrelated_content(home, project, make_provider):
    path = _global_path(home)
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps(
            {
                "theme": "dark",
                "provider": {
                    "other": {"npm": "@ai-sdk/openai", "options": {"baseURL": "https://o.example.com"}},
                    "Relay": {"options": {"timeout": 30}, "headers": {"X-Team": "core"}},
                },
            }
        ),
        encoding="utf-8",
    )

    await OpenCodeAdapter(home, project).write(make_provider(), Scope.GLOBAL)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["theme"] == "dark"
    assert "other" in document["provider"]
    relay = document["provider"]["Relay"]
    assert relay["headers"] == {"X-Team": "core"}
    assert relay["options"]["timeout"] == 30


@pytest.mark.asyncio
async def test_malformed_file_is_left_untouched(home, project, make_provider):
    path = _global_path(home)
    path.parent.mkdir(parents=True)
    path.write_text("{ broken", encoding="utf-8")

    adapter = OpenCodeAdapter(home, project)
    with pytest.raises(AdapterWriteError):
        await adapter.write(make_provider(), Scope.GLOBAL)
    assert path.read_text(encoding="utf-8") == "{ broken"

    result = await adapter.scan()
    assert result.items == []
    assert result.warnings


@pytest.mark.asyncio
async def test_read_both_scopes(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    await adapter.write(make_provider("Global One"), Scope.GLOBAL)
    await adapter.write(
        make_provider("Project One", model_type="codex", models=[{"id": "gpt-5.1"}, {"id": "gpt-5.2"}]),
        Scope.PROJECT,
    )
    assert (project / ".opencode" / "opencode.json").exists()

    items = {item.name: item for item in await adapter.read_deployed()}
    assert items["Global One"].source == "global"
    assert items["Global One"].inferred_model_type == ModelType.CLAUDE
    project_item = items["Project One"]
    assert project_item.source == "project"
    assert project_item.model_count == 2
    assert project_item.model_ids == ["gpt-5.1", "gpt-5.2"]
    assert project_item.inferred_model_type == ModelType.CODEX
    assert project_item.tool == Target.OPENCODE
    assert project_item.api_key == "sk-test-1234567890"


@pytest.mark.asyncio
async def test_missing_file_reads_empty(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    assert await adapter.read_deployed() == []
    assert not await adapter.is_deployed("Relay", Scope.GLOBAL)


@pytest.mark.asyncio
async def test_remove_only_touches_named_provider(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    await adapter.write(make_provider("Keep"), Scope.GLOBAL)
    await adapter.write(make_provider("Drop"), Scope.GLOBAL)

    assert await adapter.remove("Drop", Scope.GLOBAL)
    assert not await adapter.remove("Drop", Scope.GLOBAL)
    assert await adapter.is_deployed("Keep", Scope.GLOBAL)
    assert not await adapter.is_deployed("Drop", Scope.GLOBAL)


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_file_keep_every_provider(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    names = [f"Relay {index}" for index in range(8)]
    await asyncio.gather(*(adapter.write(make_provider(name), Scope.GLOBAL) for name in names))

    document = json.loads(_global_path(home).read_text(encoding="utf-8"))
    assert sorted(document["provider"]) == sorted(names)


@pytest.mark.asyncio
async def test_legacy_global_file_is_read_and_cleaned(home, project, make_provider):
    legacy = home / ".opencode" / "opencode.json"
    legacy.parent.mkdir(parents=True)
    legacy.write_text(
        json.dumps({"provider": {"Old": {"npm": "@ai-sdk/anthropic", "options": {"baseURL": "https://old.example.com"}}}}),
        encoding="utf-8",
    )

    adapter = OpenCodeAdapter(home, project)
    items = await adapter.read_deployed()
    assert [(item.name, item.source, item.base_url) for item in items] == [
        ("Old", "global", "https://old.example.com")
    ]
    assert await adapter.is_deployed("Old", Scope.GLOBAL)

    assert await adapter.remove("Old", Scope.GLOBAL)
    assert json.loads(legacy.read_text(encoding="utf-8"))["provider"] == {}
    assert not _global_path(home).exists()


@pytest.mark.asyncio
async def test_rewrite_keeps_a_backup_of_the_previous_file(home, project, make_provider):
    adapter = OpenCodeAdapter(home, project)
    await adapter.write(make_provider(), Scope.GLOBAL)
    assert not _global_path(home).with_name("opencode.json.bak").exists()
    before = _global_path(home).read_text(encoding="utf-8")

    await adapter.write(make_provider("Second"), Scope.GLOBAL)
    backup = _global_path(home).with_name("opencode.json.bak")
    assert backup.read_text(encoding="utf-8") == before
