"""OpenCode adapter (``opencode.json``, global and project scope)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from switchyard.adapters.base import ConfigStoreAdapter, text_field
from switchyard.core.inference import ensure_v1_suffix, infer_model_type, npm_for, speaks_anthropic
from switchyard.core.models import DeployedProviderItem, Provider, Scope, Target
from switchyard.utils.file_io import dump_json, locked_path, read_json_object
from switchyard.utils.log import get_logger, mask_api_key


logger = get_logger()

SCHEMA_URL = "https://opencode.ai/config.json"

# Registry-only fields that OpenCode does not understand.
_INTERNAL_KEYS = ("model_type", "enabled", "metadata", "auto_add_v1_suffix")


class OpenCodeAdapter(ConfigStoreAdapter):
    tool = Target.OPENCODE
    display_name = "OpenCode"
    supported_scopes = (Scope.GLOBAL, Scope.PROJECT)

    def paths(self, scope: Scope) -> List[Path]:
        self.check_scope(scope)
        if scope == Scope.GLOBAL:
            return [self.home / ".config" / "opencode" / "opencode.json"]
        return [self.project_path / ".opencode" / "opencode.json"]

    def legacy_global_path(self) -> Path:
        """Older OpenCode releases kept the global config here; read-only fallback."""
        return self.home / ".opencode" / "opencode.json"

    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        path = self.paths(scope)[0]
        if scope == Scope.GLOBAL and not path.exists():
            path = self.legacy_global_path()
        document = read_json_object(path)
        if not document:
            return []
        providers = document.get("provider")
        if not isinstance(providers, dict):
            return []

        items: List[DeployedProviderItem] = []
        for name, entry in providers.items():
            if not isinstance(entry, dict):
                continue
            options = entry.get("options") if isinstance(entry.get("options"), dict) else {}
            models = entry.get("models") if isinstance(entry.get("models"), dict) else {}
            npm = entry.get("npm") if isinstance(entry.get("npm"), str) else None
            items.append(
                DeployedProviderItem(
                    name=name,
                    base_url=text_field(options, "baseURL", "baseUrl"),
                    model_count=len(models),
                    source=scope.value,
                    tool=self.tool,
                    inferred_model_type=infer_model_type(entry.get("model_type"), npm, name),
                    api_key=text_field(options, "apiKey") or None,
                    model_ids=list(models.keys()),
                    npm=npm,
                )
            )
        return items

    def render_provider(self, provider: Provider, existing: Any = None) -> Dict[str, Any]:
        """OpenCode entry for ``provider``, merged over an existing entry."""
        entry: Dict[str, Any] = dict(existing) if isinstance(existing, dict) else {}
        for key in _INTERNAL_KEYS:
            entry.pop(key, None)

        npm = provider.npm or npm_for(provider.model_type)
        base_url = provider.base_url
        if provider.auto_add_v1_suffix and speaks_anthropic(
            provider.model_type, provider.protocol, npm, base_url
        ):
            base_url = ensure_v1_suffix(base_url)

        options = dict(entry.get("options")) if isinstance(entry.get("options"), dict) else {}
        options["baseURL"] = base_url
        options["apiKey"] = provider.api_key

        models: Dict[str, Any] = {}
        for model in provider.models:
            model_entry: Dict[str, Any] = {"id": model.id, "name": model.name}
            limit: Dict[str, int] = {}
            if model.context_limit is not None:
                limit["context"] = model.context_limit
            if model.output_limit is not None:
                limit["output"] = model.output_limit
            if limit:
                model_entry["limit"] = limit
            if model.reasoning_effort is not None:
                model_entry["reasoning_effort"] = model.reasoning_effort.value
            models[model.id] = model_entry

        entry["npm"] = npm
        entry["name"] = provider.name
        entry["options"] = options
        entry["models"] = models
        return entry

    def _write_sync(self, provider: Provider, scope: Scope) -> None:
        path = self.paths(scope)[0]
        with locked_path(path):
            document = self.load_json(path)
            if "$schema" not in document:
                document = {"$schema": SCHEMA_URL, **document}
            providers = document.get("provider")
            if not isinstance(providers, dict):
                providers = {}
            providers[provider.name] = self.render_provider(provider, providers.get(provider.name))
            document["provider"] = providers
            changed = self.store_text(path, dump_json(document))
        logger.info(
            "%s Wrote provider %s",
            self.log_tag,
            provider.name,
            extra={
                "path": str(path),
                "changed": changed,
                "api_key": mask_api_key(provider.api_key),
            },
        )

    def _remove_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool:
        paths = self.paths(scope)
        if scope == Scope.GLOBAL:
            paths.append(self.legacy_global_path())
        removed = False
        for path in paths:
            with locked_path(path):
                document = read_json_object(path)
                if not document:
                    continue
                providers = document.get("provider")
                if not isinstance(providers, dict) or name not in providers:
                    continue
                del providers[name]
                self.store_text(path, dump_json(document))
            removed = True
            logger.info("%s Removed provider %s", self.log_tag, name, extra={"path": str(path)})
        return removed
