"""Codex CLI adapter (``~/.codex/config.toml`` + ``~/.codex/auth.json``)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import tomli
import tomli_w

from switchyard.adapters.base import ConfigStoreAdapter, text_field
from switchyard.core.errors import ConfigParseError
from switchyard.core.inference import ensure_v1_suffix, is_origin_only, slugify_key, strip_trailing_slash
from switchyard.core.models import DeployedProviderItem, ModelType, Provider, Scope, Target
from switchyard.utils.file_io import dump_json, locked_path, read_json_object, read_text
from switchyard.utils.log import get_logger, mask_api_key


logger = get_logger()

API_KEY_FIELD = "OPENAI_API_KEY"


def codex_base_url(url: str) -> str:
    """Codex expects the versioned API root; origin-only URLs gain ``/v1``."""
    trimmed = strip_trailing_slash(url.strip())
    if is_origin_only(trimmed):
        return ensure_v1_suffix(trimmed)
    return trimmed


class CodexAdapter(ConfigStoreAdapter):
    tool = Target.CODEX
    display_name = "Codex"
    accepted_model_types = frozenset({ModelType.CODEX})
    single_slot = True

    def paths(self, scope: Scope) -> List[Path]:
        self.check_scope(scope)
        root = self.home / ".codex"
        return [root / "config.toml", root / "auth.json"]

    def _load_toml(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            content = read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigParseError(str(path), f"{type(exc).__name__}: {exc}") from exc
        if content is None:
            return None
        try:
            return tomli.loads(content)
        except tomli.TOMLDecodeError as exc:
            raise ConfigParseError(str(path), f"invalid TOML: {exc}") from exc

    def _read_auth_key(self, auth_path: Path) -> Optional[str]:
        try:
            auth = read_json_object(auth_path)
        except ConfigParseError as exc:
            logger.warning("%s Ignoring unreadable auth file: %s", self.log_tag, exc.message)
            return None
        return text_field(auth, API_KEY_FIELD) or None

    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        config_path, auth_path = self.paths(scope)
        document = self._load_toml(config_path)
        if not document:
            return []
        tables = document.get("model_providers")
        if not isinstance(tables, dict):
            return []

        active_key = document.get("model_provider")
        active_api_key = self._read_auth_key(auth_path)
        items: List[DeployedProviderItem] = []
        for key, table in tables.items():
            if not isinstance(table, dict):
                continue
            is_active = key == active_key
            model = document.get("model") if is_active else None
            items.append(
                DeployedProviderItem(
                    name=text_field(table, "name") or key,
                    base_url=text_field(table, "base_url"),
                    model_count=-1,
                    source=scope.value,
                    tool=self.tool,
                    inferred_model_type=ModelType.CODEX,
                    current_model=model if isinstance(model, str) and model else None,
                    api_key=active_api_key if is_active else None,
                )
            )
        return items

    def _find_table_key(self, tables: Dict[str, Any], name: str) -> Optional[str]:
        """Key of the table holding ``name``; an unnamed table under its slug also counts."""
        for key, table in tables.items():
            if isinstance(table, dict) and table.get("name") == name:
                return key
        slug = slugify_key(name)
        table = tables.get(slug)
        if isinstance(table, dict) and not table.get("name"):
            return slug
        return None

    def _new_table_key(self, tables: Dict[str, Any], name: str) -> str:
        slug = slugify_key(name)
        key, counter = slug, 2
        while key in tables:
            key = f"{slug}_{counter}"
            counter += 1
        return key

    def render_config(self, provider: Provider, document: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Return the provider table key and the merged config document."""
        tables = document.get("model_providers")
        tables = dict(tables) if isinstance(tables, dict) else {}
        key = self._find_table_key(tables, provider.name) or self._new_table_key(tables, provider.name)

        table = dict(tables.get(key) or {})
        table["name"] = provider.name
        table["base_url"] = codex_base_url(provider.base_url)
        table["wire_api"] = "responses"
        table["requires_openai_auth"] = True
        tables[key] = table

        merged = dict(document)
        merged["model_provider"] = key
        first = provider.first_model()
        model_keys = {
            "model": first.id if first is not None else None,
            "model_reasoning_effort": (
                first.reasoning_effort.value
                if first is not None and first.reasoning_effort is not None
                else None
            ),
        }
        # Model keys belong to the active provider; stale ones are dropped.
        for model_key, value in model_keys.items():
            if value is None:
                merged.pop(model_key, None)
            else:
                merged[model_key] = value
        merged["model_providers"] = tables
        return key, merged

    def _write_sync(self, provider: Provider, scope: Scope) -> None:
        config_path, auth_path = self.paths(scope)
        with locked_path(config_path), locked_path(auth_path):
            document = self._load_toml(config_path) or {}
            key, merged = self.render_config(provider, document)
            config_changed = self.store_text(config_path, tomli_w.dumps(merged))

            auth = self.load_json(auth_path)
            auth[API_KEY_FIELD] = provider.api_key
            auth_changed = self.store_text(auth_path, dump_json(auth))
        logger.info(
            "%s Wrote provider %s as [model_providers.%s]",
            self.log_tag,
            provider.name,
            key,
            extra={
                "path": str(config_path),
                "changed": config_changed or auth_changed,
                "api_key": mask_api_key(provider.api_key),
            },
        )

    def _remove_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool:
        config_path = self.paths(scope)[0]
        with locked_path(config_path):
            document = self._load_toml(config_path)
            if not document or not isinstance(document.get("model_providers"), dict):
                return False
            tables = dict(document["model_providers"])
            key = self._find_table_key(tables, name)
            if key is None:
                return False
            del tables[key]
            document["model_providers"] = tables
            if document.get("model_provider") == key:
                document.pop("model_provider", None)
            self.store_text(config_path, tomli_w.dumps(document))
        logger.info("%s Removed provider %s", self.log_tag, name, extra={"path": str(config_path)})
        return True
