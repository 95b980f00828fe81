"""JSON-in/JSON-out facade over the registry, discovery, prober and apply engine.

Callers (the CLI, a desktop shell, scripts) talk to :class:`SwitchyardEngine`
with plain dicts/lists and get plain dicts/lists back; field names are the
snake_case wire names of :mod:`switchyard.core.models`.
"""

from __future__ import annotations

import inspect
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, ValidationError

from switchyard.adapters import build_adapters
from switchyard.adapters.base import ConfigStoreAdapter
from switchyard.core.apply import ApplyEngine
from switchyard.core.config import ConfigManager
from switchyard.core.discovery import DiscoveryEngine
from switchyard.core.errors import ProviderValidationError, SwitchyardError
from switchyard.core.models import Model, ModelType, Provider, Scope, Target
from switchyard.core.prober import EndpointProber
from switchyard.core.registry import ProviderRegistry
from switchyard.utils.log import get_logger


logger = get_logger()

ScopeSelection = Union[Mapping[str, bool], Sequence[Union[str, Scope]]]


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _validation_error(exc: ValidationError) -> ProviderValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return ProviderValidationError(field, first.get("msg", str(exc)))


def _parse(model_cls: type, data: Mapping[str, Any]) -> Any:
    try:
        return model_cls.model_validate(dict(data))
    except ValidationError as exc:
        raise _validation_error(exc) from exc


def _parse_enum(enum_cls: type, value: Any, field: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ProviderValidationError(field, f"'{value}' is not one of: {allowed}") from exc


def parse_targets(targets: Sequence[Union[str, Target]]) -> List[Target]:
    return [_parse_enum(Target, target, "targets") for target in targets]


def parse_scopes(scopes: ScopeSelection) -> List[Scope]:
    """Accept ``{"global": true, "project": false}`` or a list of scope names."""
    if isinstance(scopes, Mapping):
        return [_parse_enum(Scope, key, "scopes") for key, enabled in scopes.items() if enabled]
    return [_parse_enum(Scope, scope, "scopes") for scope in scopes]


class SwitchyardEngine:
    """Every engine operation with JSON-serializable inputs and outputs."""

    def __init__(
        self,
        home: Optional[Path] = None,
        *,
        config_manager: Optional[ConfigManager] = None,
        data_dir: Optional[Path] = None,
        project_path: Optional[Path] = None,
        adapters: Optional[Mapping[Target, ConfigStoreAdapter]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config_manager = config_manager or ConfigManager(home)
        config = self.config_manager.get_config()
        self.home = self.config_manager.home
        self.registry = ProviderRegistry(data_dir or self.config_manager.data_dir())
        self.adapters: Dict[Target, ConfigStoreAdapter] = dict(
            adapters
            if adapters is not None
            else build_adapters(self.home, project_path or self.config_manager.project_path())
        )
        self.discovery = DiscoveryEngine(self.registry, self.adapters)
        self.prober = EndpointProber(
            self.registry,
            trial_count=config.probe_trial_count,
            timeout_sec=config.probe_timeout_sec,
            thresholds=config.quality_thresholds_ms,
            transport=transport,
        )
        self.apply_engine = ApplyEngine(self.registry, self.adapters)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def list_providers(self) -> List[Dict[str, Any]]:
        return _dump(await self.registry.list_providers())

    async def get_provider(self, name: str) -> Dict[str, Any]:
        return _dump(await self.registry.get_provider(name))

    async def add_provider(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return _dump(await self.registry.add_provider(_parse(Provider, data)))

    async def update_provider(self, name: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return _dump(await self.registry.update_provider(name, _parse(Provider, data)))

    async def save_provider(
        self, data: Mapping[str, Any], original_name: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(await self.registry.save_provider(_parse(Provider, data), original_name))

    async def delete_provider(self, name: str) -> None:
        await self.registry.delete_provider(name)

    async def set_provider_enabled(self, name: str, enabled: bool) -> Dict[str, Any]:
        return _dump(await self.registry.set_enabled(name, enabled))

    async def add_model(self, provider_name: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return _dump(await self.registry.add_model(provider_name, _parse(Model, data)))

    async def update_model(
        self, provider_name: str, model_id: str, data: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return _dump(await self.registry.update_model(provider_name, model_id, _parse(Model, data)))

    async def remove_model(self, provider_name: str, model_id: str) -> Dict[str, Any]:
        return _dump(await self.registry.remove_model(provider_name, model_id))

    async def add_models_batch(self, provider_name: str, model_ids: Sequence[str]) -> Dict[str, List[str]]:
        added, skipped = await self.registry.add_models_batch(provider_name, model_ids)
        return {"added": added, "skipped": skipped}

    async def add_base_url(self, provider_name: str, url: str) -> Dict[str, Any]:
        return _dump(await self.registry.add_base_url(provider_name, url))

    async def remove_base_url(self, provider_name: str, url: str) -> Dict[str, Any]:
        return _dump(await self.registry.remove_base_url(provider_name, url))

    async def set_active_base_url(self, provider_name: str, url: str) -> Dict[str, Any]:
        return _dump(await self.registry.set_active_base_url(provider_name, url))

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self) -> Dict[str, Any]:
        return _dump(await self.discovery.discover())

    async def import_deployed(
        self,
        name: str,
        tool: str,
        model_type: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        provider = await self.discovery.import_deployed(
            name,
            _parse_enum(Target, tool, "tool"),
            _parse_enum(ModelType, model_type, "model_type") if model_type else None,
            api_key,
        )
        return _dump(provider)

    # ------------------------------------------------------------------
    # Prober
    # ------------------------------------------------------------------

    async def test_urls(
        self,
        provider_name: str,
        urls: Sequence[str],
        api_key: str,
        model_type: str,
        trial_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        result = await self.prober.test_urls(
            provider_name,
            list(urls),
            api_key,
            _parse_enum(ModelType, model_type, "model_type"),
            trial_count,
        )
        return _dump(result)

    async def test_and_auto_select_fastest(
        self, provider_name: str, trial_count: Optional[int] = None
    ) -> Dict[str, Any]:
        return _dump(await self.prober.test_and_auto_select_fastest(provider_name, trial_count))

    async def fetch_site_models(self, provider_name: str) -> List[str]:
        return await self.prober.fetch_site_models(provider_name)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    async def apply(
        self,
        provider_names: Sequence[str],
        targets: Sequence[str],
        scopes: ScopeSelection,
    ) -> List[Dict[str, Any]]:
        results = await self.apply_engine.apply(
            list(provider_names), parse_targets(targets), parse_scopes(scopes)
        )
        return _dump(results)

    async def remove_deployed(
        self, name: str, targets: Sequence[str], scopes: ScopeSelection
    ) -> List[Dict[str, Any]]:
        results = await self.apply_engine.remove_deployed(
            name, parse_targets(targets), parse_scopes(scopes)
        )
        return _dump(results)

    async def check_applied(self, name: str) -> Dict[str, Dict[str, bool]]:
        return await self.apply_engine.check_applied(name)

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------

    def commands(self) -> Dict[str, Callable[..., Awaitable[Any]]]:
        return {
            "list_providers": self.list_providers,
            "get_provider": self.get_provider,
            "add_provider": self.add_provider,
            "update_provider": self.update_provider,
            "save_provider": self.save_provider,
            "delete_provider": self.delete_provider,
            "set_provider_enabled": self.set_provider_enabled,
            "add_model": self.add_model,
            "update_model": self.update_model,
            "remove_model": self.remove_model,
            "add_models_batch": self.add_models_batch,
            "add_base_url": self.add_base_url,
            "remove_base_url": self.remove_base_url,
            "set_active_base_url": self.set_active_base_url,
            "discover": self.discover,
            "import_deployed": self.import_deployed,
            "test_urls": self.test_urls,
            "test_and_auto_select_fastest": self.test_and_auto_select_fastest,
            "fetch_site_models": self.fetch_site_models,
            "apply": self.apply,
            "remove_deployed": self.remove_deployed,
            "check_applied": self.check_applied,
        }

    async def invoke(self, command: str, args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Run a named command with keyword arguments and wrap the outcome.

        Returns ``{"ok": true, "result": ...}`` or
        ``{"ok": false, "error": {"error_code": ..., "message": ...}}``.
        """
        handler = self.commands().get(command)
        if handler is None:
            return {
                "ok": False,
                "error": {"error_code": "unknown_command", "message": f"Unknown command '{command}'"},
            }
        kwargs = dict(args or {})
        try:
            inspect.signature(handler).bind(**kwargs)
        except TypeError as exc:
            return {"ok": False, "error": {"error_code": "bad_arguments", "message": str(exc)}}
        try:
            result = await handler(**kwargs)
        except SwitchyardError as exc:
            logger.debug("[engine] %s failed: %s", command, exc.message, extra={"error_code": exc.error_code})
            return {"ok": False, "error": exc.to_dict()}
        return {"ok": True, "result": result}
