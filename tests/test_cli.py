"""Tests for the `switchyard` command line."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from switchyard.cli import cli as cli_module


@pytest.fixture
def run_cli(home, project, data_dir):
    runner = CliRunner()

    def _run(*args: str):
        return runner.invoke(
            cli_module.cli,
            ["--home", str(home), "--project", str(project), "--data-dir", str(data_dir), *args],
        )

    return _run


def _add_relay(run_cli, *extra: str):
    return run_cli(
        "provider",
        "add",
        "Relay",
        "--base-url",
        "https://relay.example.com",
        "--base-url",
        "https://backup.example.com",
        "--api-key",
        "sk-test-1234567890",
        "--model-type",
        "claude",
        "--model",
        "claude-sonnet-4",
        *extra,
    )


def test_help_lists_command_groups(run_cli):
    result = run_cli("--help")
    assert result.exit_code == 0
    for name in ("provider", "model", "url", "discover", "import", "probe", "apply", "status"):
        assert name in result.output


def test_provider_add_and_list_json(run_cli, data_dir):
    result = _add_relay(run_cli)
    assert result.exit_code == 0, result.output
    assert "Added provider 'Relay'" in result.output
    assert (data_dir / "providers.json").exists()

    listed = run_cli("provider", "list", "--json")
    assert listed.exit_code == 0
    providers = json.loads(listed.output)
    assert providers[0]["name"] == "Relay"
    assert [r["url"] for r in providers[0]["base_urls"]] == [
        "https://relay.example.com",
        "https://backup.example.com",
    ]


def test_duplicate_provider_is_a_clean_error(run_cli):
    _add_relay(run_cli)
    result = _add_relay(run_cli)
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_missing_provider_show(run_cli):
    result = run_cli("provider", "show", "Ghost")
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_model_and_url_commands(run_cli):
    _add_relay(run_cli)
    assert run_cli("model", "add", "Relay", "claude-opus-4", "--thinking-budget", "8000").exit_code == 0
    assert run_cli("url", "use", "Relay", "https://backup.example.com").exit_code == 0
    assert run_cli("url", "remove", "Relay", "https://relay.example.com").exit_code == 0

    shown = json.loads(run_cli("provider", "show", "Relay", "--json").output)
    assert shown["base_url"] == "https://backup.example.com"
    assert [m["id"] for m in shown["models"]] == ["claude-sonnet-4", "claude-opus-4"]
    assert shown["models"][1]["thinking_budget"] == 8000

    fetched = run_cli("model", "fetch", "Relay", "--add", "--json")
    assert fetched.exit_code == 0
    payload = json.loads(fetched.output)
    assert "claude-4.5-sonnet" in payload["models"]
    assert "claude-4.5-sonnet" in payload["added"]


def test_apply_status_and_remove(run_cli, home):
    _add_relay(run_cli)
    applied = run_cli("apply", "Relay", "--target", "opencode", "--target", "claude_code", "--json")
    assert applied.exit_code == 0, applied.output
    assert {r["state"] for r in json.loads(applied.output)} == {"succeeded"}
    assert (home / ".config" / "opencode" / "opencode.json").exists()

    status = json.loads(run_cli("status", "Relay", "--json").output)
    assert status["opencode"]["global"] is True
    assert status["claude_code"]["global"] is True

    removed = run_cli("remove-deployed", "Relay", "--target", "opencode")
    assert removed.exit_code == 0
    status = json.loads(run_cli("status", "Relay", "--json").output)
    assert status["opencode"]["global"] is False


def test_apply_exits_non_zero_on_failed_pair(run_cli):
    _add_relay(run_cli)
    result = run_cli("apply", "Relay", "--target", "codex")
    assert result.exit_code == 1
    assert "no compatible provider to write" in result.output


def test_discover_and_import(run_cli, home):
    root = home / ".gemini"
    root.mkdir()
    (root / ".env").write_text(
        "GOOGLE_GEMINI_BASE_URL=https://gemini.example.com\nGEMINI_API_KEY=g-key\nGEMINI_MODEL=gemini-2.5-pro\n",
        encoding="utf-8",
    )

    report = json.loads(run_cli("discover", "--json").output)
    assert [item["name"] for item in report["importable"]] == ["Gemini CLI"]

    imported = run_cli("import", "Gemini CLI", "--tool", "gemini")
    assert imported.exit_code == 0, imported.output
    provider = json.loads(run_cli("provider", "show", "Gemini CLI", "--json").output)
    assert provider["model_type"] == "gemini"
    assert provider["api_key"] == "g-key"
    assert [m["id"] for m in provider["models"]] == ["gemini-2.5-pro"]


def test_invoke_passes_json_through(run_cli):
    _add_relay(run_cli)
    ok = run_cli("invoke", "get_provider", '{"name": "Relay"}')
    assert ok.exit_code == 0
    assert json.loads(ok.output)["result"]["name"] == "Relay"

    failed = run_cli("invoke", "get_provider", '{"name": "Ghost"}')
    assert failed.exit_code == 1
    assert json.loads(failed.output)["error"]["error_code"] == "provider_not_found"

    bad = run_cli("invoke", "get_provider", "[1, 2]")
    assert bad.exit_code == 1
    assert "must be an object" in bad.output
