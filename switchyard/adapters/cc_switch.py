"""cc-switch adapter.

cc-switch keeps one provider list per app. Newer releases store them in the
SQLite database ``~/.cc-switch/cc-switch.db``, which is only ever read here;
older releases (and our writes) use ``~/.cc-switch/config.json``. Reads also
accept the legacy ``claudeProviders``-style maps and ``universalProviders``::

    {"claude": {"providers": {"<id>": {"id", "name", "settingsConfig"}}, "current": "<id>"},
     "codex": {...}, "gemini": {...}}
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import tomli
import tomli_w

from switchyard.adapters.base import ConfigStoreAdapter, text_field
from switchyard.adapters.claude_code import tier_models
from switchyard.adapters.codex import codex_base_url
from switchyard.core.errors import ConfigParseError
from switchyard.core.inference import slugify_key
from switchyard.core.models import DeployedProviderItem, ModelType, Provider, Scope, Target
from switchyard.utils.file_io import dump_json, locked_path, read_json_object
from switchyard.utils.log import get_logger, mask_api_key


logger = get_logger()

NAME_SUFFIX = " (cc-switch)"
ID_PREFIX = "switchyard-"
SECTIONS = ("claude", "codex", "gemini")
# Per-app maps written by releases before the sections were renamed.
LEGACY_SECTIONS = {"claude": "claudeProviders", "codex": "codexProviders", "gemini": "geminiProviders"}

_BASE_URL_ENV_KEYS = ("ANTHROPIC_BASE_URL", "GOOGLE_GEMINI_BASE_URL", "OPENAI_BASE_URL")
_API_KEY_ENV_KEYS = (
    "ANTHROPIC_AUTH_TOKEN",
    "ANTHROPIC_API_KEY",
    "GOOGLE_GEMINI_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
)
_MODEL_ENV_KEYS = ("ANTHROPIC_MODEL", "GEMINI_MODEL")


def strip_suffix(name: str) -> str:
    return name[: -len(NAME_SUFFIX)] if name.endswith(NAME_SUFFIX) else name


def _parse_codex_toml(config_text: Any) -> Tuple[str, Optional[str]]:
    """Base URL and model from an embedded Codex ``config.toml`` string."""
    if not isinstance(config_text, str) or not config_text.strip():
        return "", None
    try:
        document = tomli.loads(config_text)
    except tomli.TOMLDecodeError:
        return "", None
    tables = document.get("model_providers")
    base_url = ""
    if isinstance(tables, dict):
        active = tables.get(document.get("model_provider"))
        candidates = [active] if isinstance(active, dict) else list(tables.values())
        for table in candidates:
            base_url = text_field(table, "base_url")
            if base_url:
                break
    model = document.get("model")
    return base_url, model if isinstance(model, str) and model else None


def settings_fields(app_type: str, settings: Any) -> Tuple[str, Optional[str], Optional[str]]:
    """(base_url, api_key, model) from one cc-switch ``settingsConfig`` object."""
    if not isinstance(settings, dict):
        return "", None, None
    env = settings.get("env") if isinstance(settings.get("env"), dict) else {}
    base_url = text_field(env, *_BASE_URL_ENV_KEYS)
    api_key = text_field(env, *_API_KEY_ENV_KEYS)
    model = text_field(env, *_MODEL_ENV_KEYS)
    if app_type == "codex":
        toml_url, toml_model = _parse_codex_toml(settings.get("config"))
        base_url = base_url or toml_url
        model = model or (toml_model or "")
        api_key = api_key or text_field(settings.get("auth"), "OPENAI_API_KEY")
    return base_url, api_key or None, model or None


class CcSwitchAdapter(ConfigStoreAdapter):
    tool = Target.CC_SWITCH
    display_name = "cc-switch"

    def paths(self, scope: Scope) -> List[Path]:
        self.check_scope(scope)
        root = self.home / ".cc-switch"
        return [root / "config.json", root / "cc-switch.db"]

    def _item(
        self, app_type: str, name: str, settings: Any, source: str
    ) -> DeployedProviderItem:
        base_url, api_key, model = settings_fields(app_type, settings)
        return DeployedProviderItem(
            name=f"{name}{NAME_SUFFIX}",
            base_url=base_url,
            model_count=-1,
            source=source,
            tool=self.tool,
            inferred_model_type=ModelType(app_type) if app_type in SECTIONS else None,
            current_model=model,
            api_key=api_key,
        )

    def _read_database(self, db_path: Path) -> List[DeployedProviderItem]:
        try:
            connection = sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as exc:
            raise ConfigParseError(str(db_path), f"cannot open database: {exc}") from exc
        try:
            rows = connection.execute(
                "SELECT id, app_type, name, settings_config FROM providers"
            ).fetchall()
        except sqlite3.Error as exc:
            raise ConfigParseError(str(db_path), f"cannot read providers table: {exc}") from exc
        finally:
            connection.close()

        items: List[DeployedProviderItem] = []
        for _row_id, app_type, name, settings_config in rows:
            try:
                settings = json.loads(settings_config) if settings_config else {}
            except (TypeError, json.JSONDecodeError):
                settings = {}
            items.append(
                self._item(str(app_type or ""), str(name or "Unknown"), settings, "cc-switch.db")
            )
        return items

    def _read_config_sections(self, document: Dict[str, Any]) -> List[DeployedProviderItem]:
        items: List[DeployedProviderItem] = []
        for app_type in SECTIONS:
            for section_key in (app_type, LEGACY_SECTIONS[app_type]):
                section = document.get(section_key)
                providers = section.get("providers") if isinstance(section, dict) else None
                if not isinstance(providers, dict):
                    continue
                for entry in providers.values():
                    if not isinstance(entry, dict):
                        continue
                    name = text_field(entry, "name") or "Unknown"
                    items.append(self._item(app_type, name, entry.get("settingsConfig"), "config.json"))
        items.extend(self._read_universal(document.get("universalProviders")))
        return items

    def _read_universal(self, entries: Any) -> List[DeployedProviderItem]:
        """Cross-app providers from older releases, typed by their first enabled app."""
        if not isinstance(entries, list):
            return []
        items: List[DeployedProviderItem] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            apps = entry.get("apps") if isinstance(entry.get("apps"), dict) else {}
            enabled = [app_type for app_type in SECTIONS if apps.get(app_type) is True]
            label = " ".join(app_type.capitalize() for app_type in enabled)
            name = text_field(entry, "name") or "Unknown"
            items.append(
                DeployedProviderItem(
                    name=f"{name} ({label}){NAME_SUFFIX}" if label else f"{name}{NAME_SUFFIX}",
                    base_url=text_field(entry, "baseUrl", "baseURL"),
                    model_count=-1,
                    source="config.json",
                    tool=self.tool,
                    inferred_model_type=ModelType(enabled[0]) if enabled else ModelType.CODEX,
                    api_key=text_field(entry, "apiKey") or None,
                )
            )
        return items

    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        config_path, db_path = self.paths(scope)
        if db_path.exists():
            items = self._read_database(db_path)
            if items or not config_path.exists():
                return items
        document = read_json_object(config_path)
        if not document:
            return []
        return self._read_config_sections(document)

    def _is_deployed_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool:
        try:
            document = read_json_object(self.paths(scope)[0])
        except ConfigParseError:
            return False
        if not document:
            return False
        wanted = strip_suffix(name)
        return any(strip_suffix(item.name) == wanted for item in self._read_config_sections(document))

    def render_settings(self, provider: Provider) -> Dict[str, Any]:
        """``settingsConfig`` in the shape cc-switch stores for the provider's app."""
        first = provider.first_model()
        if provider.model_type == ModelType.CLAUDE:
            env: Dict[str, Any] = {
                "ANTHROPIC_BASE_URL": provider.base_url,
                "ANTHROPIC_AUTH_TOKEN": provider.api_key,
            }
            if first is not None:
                env["ANTHROPIC_MODEL"] = first.id
                env.update(tier_models(provider))
            return {"env": env}
        if provider.model_type == ModelType.GEMINI:
            env = {
                "GOOGLE_GEMINI_BASE_URL": provider.base_url,
                "GEMINI_API_KEY": provider.api_key,
            }
            if first is not None:
                env["GEMINI_MODEL"] = first.id
            return {"env": env}

        key = slugify_key(provider.name)
        config: Dict[str, Any] = {"model_provider": key}
        if first is not None:
            config["model"] = first.id
            if first.reasoning_effort is not None:
                config["model_reasoning_effort"] = first.reasoning_effort.value
        config["model_providers"] = {
            key: {
                "name": provider.name,
                "base_url": codex_base_url(provider.base_url),
                "wire_api": "responses",
                "requires_openai_auth": True,
            }
        }
        return {"auth": {"OPENAI_API_KEY": provider.api_key}, "config": tomli_w.dumps(config)}

    def _write_sync(self, provider: Provider, scope: Scope) -> None:
        config_path = self.paths(scope)[0]
        app_type = provider.model_type.value
        with locked_path(config_path):
            document = self.load_json(config_path)
            section = document.get(app_type)
            section = dict(section) if isinstance(section, dict) else {}
            providers = section.get("providers")
            providers = dict(providers) if isinstance(providers, dict) else {}

            entry_id = next(
                (
                    entry_id
                    for entry_id, entry in providers.items()
                    if isinstance(entry, dict) and entry.get("name") == provider.name
                ),
                f"{ID_PREFIX}{slugify_key(provider.name)}",
            )
            entry = dict(providers.get(entry_id) or {})
            entry["id"] = entry_id
            entry["name"] = provider.name
            entry["settingsConfig"] = self.render_settings(provider)
            providers[entry_id] = entry

            section["providers"] = providers
            document[app_type] = section
            changed = self.store_text(config_path, dump_json(document))
        logger.info(
            "%s Wrote provider %s into %s",
            self.log_tag,
            provider.name,
            app_type,
            extra={
                "path": str(config_path),
                "changed": changed,
                "api_key": mask_api_key(provider.api_key),
            },
        )

    def _remove_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool:
        config_path = self.paths(scope)[0]
        wanted = strip_suffix(name)
        removed = False
        with locked_path(config_path):
            document = read_json_object(config_path)
            if not document:
                return False
            for section_key in (*SECTIONS, *LEGACY_SECTIONS.values()):
                section = document.get(section_key)
                if not isinstance(section, dict) or not isinstance(section.get("providers"), dict):
                    continue
                providers = section["providers"]
                for entry_id in [
                    entry_id
                    for entry_id, entry in providers.items()
                    if isinstance(entry, dict) and entry.get("name") == wanted
                ]:
                    del providers[entry_id]
                    if section.get("current") == entry_id:
                        section.pop("current")
                    removed = True
            if removed:
                self.store_text(config_path, dump_json(document))
        if removed:
            logger.info("%s Removed provider %s", self.log_tag, wanted, extra={"path": str(config_path)})
        return removed
