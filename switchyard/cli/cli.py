"""Command-line entry point for Switchyard.

Every command is a thin caller of :class:`SwitchyardEngine`; ``--json``
prints the engine's JSON payload unchanged.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from switchyard import __version__
from switchyard.core.config import ConfigManager
from switchyard.core.engine import SwitchyardEngine
from switchyard.core.errors import SwitchyardError
from switchyard.core.models import ModelType, Protocol, ReasoningEffort, Scope, Target
from switchyard.utils.log import get_logger, init_logger, mask_api_key


console = Console()
logger = get_logger()

T = TypeVar("T")

_TARGET_CHOICES = [target.value for target in Target]
_SCOPE_CHOICES = [scope.value for scope in Scope]
_MODEL_TYPE_CHOICES = [model_type.value for model_type in ModelType]

_QUALITY_STYLES = {
    "excellent": "green",
    "good": "green",
    "fair": "yellow",
    "poor": "red",
    "failed": "red",
    "untested": "dim",
}


def _engine(ctx: click.Context) -> SwitchyardEngine:
    state = ctx.find_root().obj
    if state.get("engine") is None:
        home: Optional[Path] = state.get("home")
        manager = ConfigManager(home)
        log_dir = manager.log_dir()
        if log_dir is not None:
            init_logger(log_dir)
        state["engine"] = SwitchyardEngine(
            config_manager=manager,
            data_dir=state.get("data_dir"),
            project_path=state.get("project"),
        )
    return state["engine"]


def _run(ctx: click.Context, call: Callable[[SwitchyardEngine], Awaitable[T]]) -> T:
    engine = _engine(ctx)
    try:
        return asyncio.run(call(engine))
    except SwitchyardError as exc:
        raise click.ClickException(exc.message) from exc


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@click.group(help="Discover, probe and deploy AI provider configurations.")
@click.version_option(__version__, prog_name="switchyard")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Home directory holding the tool configs (defaults to the user's home).",
)
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root for project-scope configs.",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding providers.json.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    home: Optional[Path],
    project: Optional[Path],
    data_dir: Optional[Path],
) -> None:
    ctx.obj = {"home": home, "project": project, "data_dir": data_dir, "engine": None}


# ----------------------------------------------------------------------
# providers
# ----------------------------------------------------------------------


@cli.group(name="provider", help="Manage providers in the registry.")
def provider_group() -> None:
    pass


@provider_group.command(name="list")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def provider_list(ctx: click.Context, json_output: bool) -> None:
    """List registered providers."""
    providers = _run(ctx, lambda engine: engine.list_providers())
    if json_output:
        _echo_json(providers)
        return
    if not providers:
        console.print("No providers registered.")
        return

    table = Table(title="Providers")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Active URL")
    table.add_column("Models", justify="right")
    table.add_column("Enabled")
    for provider in providers:
        table.add_row(
            escape(provider["name"]),
            provider["model_type"],
            escape(provider["base_url"]),
            str(len(provider["models"])),
            "yes" if provider["enabled"] else "[dim]no[/dim]",
        )
    console.print(table)


@provider_group.command(name="show")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def provider_show(ctx: click.Context, name: str, json_output: bool) -> None:
    """Show one provider."""
    provider = _run(ctx, lambda engine: engine.get_provider(name))
    if json_output:
        _echo_json(provider)
        return

    console.print(f"\n[bold]{escape(provider['name'])}[/bold]")
    console.print(f"  Type: {provider['model_type']}  Protocol: {provider['protocol'] or '-'}")
    console.print(f"  API Key: {mask_api_key(provider['api_key']) or 'Not set'}")
    console.print(f"  Enabled: {provider['enabled']}")
    console.print("  Base URLs:")
    for record in provider["base_urls"]:
        marker = "*" if record["url"] == provider["base_url"] else " "
        style = _QUALITY_STYLES.get(record["quality"], "")
        latency = f"{record['latency_ms']} ms" if record["latency_ms"] is not None else "-"
        console.print(
            f"   {marker} {escape(record['url'])} [{style}]{record['quality']}[/{style}] {latency}"
        )
    if provider["models"]:
        console.print("  Models:")
        for model in provider["models"]:
            console.print(f"    - {escape(model['id'])}")
    console.print()


@provider_group.command(name="add")
@click.argument("name")
@click.option("--base-url", "base_urls", multiple=True, required=True, help="Candidate base URL (repeatable; first is active).")
@click.option("--api-key", required=True, help="API key for the provider.")
@click.option("--model-type", type=click.Choice(_MODEL_TYPE_CHOICES), required=True)
@click.option("--protocol", type=click.Choice([p.value for p in Protocol]), default=None)
@click.option("--model", "models", multiple=True, help="Model id (repeatable).")
@click.option("--description", default=None)
@click.option("--no-v1-suffix", is_flag=True, help="Do not append /v1 for Anthropic-style OpenCode entries.")
@click.pass_context
def provider_add(
    ctx: click.Context,
    name: str,
    base_urls: tuple[str, ...],
    api_key: str,
    model_type: str,
    protocol: Optional[str],
    models: tuple[str, ...],
    description: Optional[str],
    no_v1_suffix: bool,
) -> None:
    """Add a provider to the registry."""
    data = {
        "name": name,
        "api_key": api_key,
        "base_url": base_urls[0],
        "base_urls": [{"url": url} for url in base_urls],
        "model_type": model_type,
        "protocol": protocol,
        "description": description,
        "models": [{"id": model_id} for model_id in models],
        "auto_add_v1_suffix": not no_v1_suffix,
    }
    _run(ctx, lambda engine: engine.add_provider(data))
    console.print(f"[green]Added provider '{escape(name)}'.[/green]")


@provider_group.command(name="remove")
@click.argument("name")
@click.pass_context
def provider_remove(ctx: click.Context, name: str) -> None:
    """Delete a provider from the registry (deployed configs are untouched)."""
    _run(ctx, lambda engine: engine.delete_provider(name))
    console.print(f"Removed provider '{escape(name)}'.")


@provider_group.command(name="enable")
@click.argument("name")
@click.pass_context
def provider_enable(ctx: click.Context, name: str) -> None:
    _run(ctx, lambda engine: engine.set_provider_enabled(name, True))
    console.print(f"Enabled '{escape(name)}'.")


@provider_group.command(name="disable")
@click.argument("name")
@click.pass_context
def provider_disable(ctx: click.Context, name: str) -> None:
    _run(ctx, lambda engine: engine.set_provider_enabled(name, False))
    console.print(f"Disabled '{escape(name)}'.")


# ----------------------------------------------------------------------
# models and URLs
# ----------------------------------------------------------------------


@cli.group(name="model", help="Manage the models of a provider.")
def model_group() -> None:
    pass


@model_group.command(name="add")
@click.argument("provider")
@click.argument("model_id")
@click.option("--name", "display_name", default=None, help="Display label (defaults to the id).")
@click.option("--reasoning-effort", type=click.Choice([e.value for e in ReasoningEffort]), default=None)
@click.option("--thinking-budget", type=int, default=None)
@click.pass_context
def model_add(
    ctx: click.Context,
    provider: str,
    model_id: str,
    display_name: Optional[str],
    reasoning_effort: Optional[str],
    thinking_budget: Optional[int],
) -> None:
    data = {
        "id": model_id,
        "name": display_name or "",
        "reasoning_effort": reasoning_effort,
        "thinking_budget": thinking_budget,
    }
    _run(ctx, lambda engine: engine.add_model(provider, data))
    console.print(f"Added model '{escape(model_id)}' to '{escape(provider)}'.")


@model_group.command(name="remove")
@click.argument("provider")
@click.argument("model_id")
@click.pass_context
def model_remove(ctx: click.Context, provider: str, model_id: str) -> None:
    _run(ctx, lambda engine: engine.remove_model(provider, model_id))
    console.print(f"Removed model '{escape(model_id)}' from '{escape(provider)}'.")


@model_group.command(name="fetch")
@click.argument("provider")
@click.option("--add", "add_all", is_flag=True, help="Add the fetched models to the provider.")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def model_fetch(ctx: click.Context, provider: str, add_all: bool, json_output: bool) -> None:
    """List the models a provider's site offers."""

    async def _fetch(engine: SwitchyardEngine) -> dict[str, Any]:
        model_ids = await engine.fetch_site_models(provider)
        payload: dict[str, Any] = {"models": model_ids}
        if add_all:
            payload.update(await engine.add_models_batch(provider, model_ids))
        return payload

    payload = _run(ctx, _fetch)
    if json_output:
        _echo_json(payload)
        return
    for model_id in payload["models"]:
        console.print(f"- {escape(model_id)}")
    if add_all:
        console.print(f"Added {len(payload['added'])}, skipped {len(payload['skipped'])} existing.")


@cli.group(name="url", help="Manage the candidate base URLs of a provider.")
def url_group() -> None:
    pass


@url_group.command(name="add")
@click.argument("provider")
@click.argument("url")
@click.pass_context
def url_add(ctx: click.Context, provider: str, url: str) -> None:
    _run(ctx, lambda engine: engine.add_base_url(provider, url))
    console.print(f"Added {escape(url)}.")


@url_group.command(name="remove")
@click.argument("provider")
@click.argument("url")
@click.pass_context
def url_remove(ctx: click.Context, provider: str, url: str) -> None:
    _run(ctx, lambda engine: engine.remove_base_url(provider, url))
    console.print(f"Removed {escape(url)}.")


@url_group.command(name="use")
@click.argument("provider")
@click.argument("url")
@click.pass_context
def url_use(ctx: click.Context, provider: str, url: str) -> None:
    """Make URL the provider's active base URL."""
    _run(ctx, lambda engine: engine.set_active_base_url(provider, url))
    console.print(f"Active URL for '{escape(provider)}' is now {escape(url)}.")


# ----------------------------------------------------------------------
# discovery, probing, deployment
# ----------------------------------------------------------------------


@cli.command(name="discover")
@click.option("--all", "show_all", is_flag=True, help="Include providers already in the registry.")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def discover_cmd(ctx: click.Context, show_all: bool, json_output: bool) -> None:
    """Find providers configured in external tools."""
    report = _run(ctx, lambda engine: engine.discover())
    if json_output:
        _echo_json(report)
        return

    items = report["items"] if show_all else report["importable"]
    if items:
        table = Table(title="Deployed providers")
        table.add_column("Tool")
        table.add_column("Name")
        table.add_column("Source")
        table.add_column("Base URL")
        table.add_column("Models", justify="right")
        table.add_column("Type")
        for item in items:
            models = item["current_model"] or "-" if item["model_count"] == -1 else str(item["model_count"])
            table.add_row(
                item["tool"],
                escape(item["name"]),
                item["source"],
                escape(item["base_url"]),
                escape(models),
                item["inferred_model_type"] or "?",
            )
        console.print(table)
    else:
        console.print("No importable providers found.")
    for source, message in report["warnings"].items():
        console.print(f"[yellow]Warning ({source}): {escape(message)}[/yellow]")


@cli.command(name="import")
@click.argument("name")
@click.option("--tool", type=click.Choice(_TARGET_CHOICES), required=True)
@click.option("--model-type", type=click.Choice(_MODEL_TYPE_CHOICES), default=None)
@click.option("--api-key", default=None, help="Override the discovered API key.")
@click.pass_context
def import_cmd(
    ctx: click.Context,
    name: str,
    tool: str,
    model_type: Optional[str],
    api_key: Optional[str],
) -> None:
    """Import a discovered provider into the registry."""
    provider = _run(ctx, lambda engine: engine.import_deployed(name, tool, model_type, api_key))
    console.print(
        f"[green]Imported '{escape(provider['name'])}' with {len(provider['models'])} model(s).[/green]"
    )
    if not provider["api_key"]:
        console.print("[yellow]No API key was found; set one before applying.[/yellow]")


@cli.command(name="probe")
@click.argument("provider")
@click.option("--trials", type=int, default=None, help="Trials per URL (default from config).")
@click.option("--auto-select", is_flag=True, help="Persist results and activate the fastest URL.")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def probe_cmd(
    ctx: click.Context,
    provider: str,
    trials: Optional[int],
    auto_select: bool,
    json_output: bool,
) -> None:
    """Measure the latency of a provider's candidate URLs."""

    async def _probe(engine: SwitchyardEngine) -> dict[str, Any]:
        if auto_select:
            return await engine.test_and_auto_select_fastest(provider, trials)
        record = await engine.get_provider(provider)
        return await engine.test_urls(
            provider,
            [item["url"] for item in record["base_urls"]],
            record["api_key"],
            record["model_type"],
            trials,
        )

    result = _run(ctx, _probe)
    if json_output:
        _echo_json(result)
        return

    table = Table(title=f"Probe: {escape(provider)}")
    table.add_column("URL")
    table.add_column("Quality")
    table.add_column("Latency", justify="right")
    table.add_column("Trials", justify="right")
    table.add_column("Error")
    for item in result["results"]:
        style = _QUALITY_STYLES.get(item["quality"], "")
        latency = f"{item['latency_ms']} ms" if item["success"] else "-"
        table.add_row(
            escape(item["url"]),
            f"[{style}]{item['quality']}[/{style}]",
            latency,
            f"{item['successful_trials']}/{item['total_trials']}",
            escape(item["error_message"] or ""),
        )
    console.print(table)
    if result["fastest_url"]:
        verb = "Activated" if auto_select else "Fastest"
        console.print(f"{verb}: {escape(result['fastest_url'])} ({result['fastest_latency_ms']} ms)")
    else:
        console.print("[red]No URL answered successfully.[/red]")


def _print_target_results(results: list[dict[str, Any]]) -> None:
    for result in results:
        label = f"{result['target']}/{result['scope']}"
        if result["state"] == "succeeded":
            written = ", ".join(result["providers_written"]) or "nothing"
            console.print(f"[green]✓[/green] {label}: {escape(written)}")
        else:
            console.print(f"[red]✗[/red] {label}: {escape(result['error'] or 'failed')}")
        for name, reason in result["skipped"].items():
            console.print(f"    [dim]skipped {escape(name)}: {escape(reason)}[/dim]")


@cli.command(name="apply")
@click.argument("providers", nargs=-1, required=True)
@click.option("--target", "targets", multiple=True, type=click.Choice(_TARGET_CHOICES), required=True)
@click.option(
    "--scope",
    "scopes",
    multiple=True,
    type=click.Choice(_SCOPE_CHOICES),
    default=(Scope.GLOBAL.value,),
    show_default=True,
)
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def apply_cmd(
    ctx: click.Context,
    providers: tuple[str, ...],
    targets: tuple[str, ...],
    scopes: tuple[str, ...],
    json_output: bool,
) -> None:
    """Write providers into external tools."""
    results = _run(ctx, lambda engine: engine.apply(list(providers), list(targets), list(scopes)))
    if json_output:
        _echo_json(results)
    else:
        _print_target_results(results)
    if any(result["state"] != "succeeded" for result in results):
        ctx.exit(1)


@cli.command(name="remove-deployed")
@click.argument("name")
@click.option("--target", "targets", multiple=True, type=click.Choice(_TARGET_CHOICES), required=True)
@click.option(
    "--scope",
    "scopes",
    multiple=True,
    type=click.Choice(_SCOPE_CHOICES),
    default=(Scope.GLOBAL.value,),
    show_default=True,
)
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def remove_deployed_cmd(
    ctx: click.Context,
    name: str,
    targets: tuple[str, ...],
    scopes: tuple[str, ...],
    json_output: bool,
) -> None:
    """Remove a provider from external tools."""
    results = _run(ctx, lambda engine: engine.remove_deployed(name, list(targets), list(scopes)))
    if json_output:
        _echo_json(results)
    else:
        _print_target_results(results)
    if any(result["state"] != "succeeded" for result in results):
        ctx.exit(1)


@cli.command(name="status")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
@click.pass_context
def status_cmd(ctx: click.Context, name: str, json_output: bool) -> None:
    """Show where a provider is currently deployed."""
    status = _run(ctx, lambda engine: engine.check_applied(name))
    if json_output:
        _echo_json(status)
        return
    for target, scopes in status.items():
        flags = "  ".join(f"{scope}: {'yes' if deployed else 'no'}" for scope, deployed in scopes.items())
        console.print(f"{target:<12} {flags}")


@cli.command(name="invoke")
@click.argument("command")
@click.argument("args_json", required=False, default="{}")
@click.pass_context
def invoke_cmd(ctx: click.Context, command: str, args_json: str) -> None:
    """Call an engine command with JSON keyword arguments and print the JSON reply."""
    try:
        args = json.loads(args_json)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON arguments: {exc}") from exc
    if not isinstance(args, dict):
        raise click.ClickException("JSON arguments must be an object.")
    reply = _run(ctx, lambda engine: engine.invoke(command, args))
    _echo_json(reply)
    if not reply["ok"]:
        ctx.exit(1)


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except (
        RuntimeError,
        ValueError,
        TypeError,
        OSError,
        ConnectionError,
        click.ClickException,
    ) as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
