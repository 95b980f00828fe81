"""Gemini CLI adapter (``~/.gemini/.env``)."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from dotenv import dotenv_values

from switchyard.adapters.base import ConfigStoreAdapter, matches_any_endpoint
from switchyard.core.errors import ConfigParseError
from switchyard.core.models import DeployedProviderItem, ModelType, Provider, Scope, Target
from switchyard.utils.file_io import locked_path, read_text
from switchyard.utils.log import get_logger, mask_api_key


logger = get_logger()

BASE_URL_KEY = "GOOGLE_GEMINI_BASE_URL"
API_KEY_KEY = "GEMINI_API_KEY"
LEGACY_API_KEY = "GOOGLE_GEMINI_API_KEY"
MODEL_KEY = "GEMINI_MODEL"
MANAGED_KEYS = (BASE_URL_KEY, API_KEY_KEY, LEGACY_API_KEY, MODEL_KEY)

_SAFE_VALUE_CHARS = set(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.:/@+=,~%?&"
)


def format_env_value(value: str) -> str:
    if value and all(ch in _SAFE_VALUE_CHARS for ch in value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def line_key(line: str) -> Optional[str]:
    """Variable name assigned on a dotenv line, or None for comments/blank lines."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    key = stripped.split("=", 1)[0].strip()
    if key.startswith("export "):
        key = key[len("export ") :].strip()
    return key or None


def merge_env_lines(content: str, updates: Dict[str, Optional[str]]) -> str:
    """Rewrite assignments for ``updates`` in place, keeping every other line.

    A value of None deletes the variable. Keys not yet present are appended in
    the order given.
    """
    output: List[str] = []
    seen: set[str] = set()
    for line in content.splitlines():
        key = line_key(line)
        if key is None or key not in updates:
            output.append(line)
            continue
        if key in seen or updates[key] is None:
            continue
        seen.add(key)
        output.append(f"{key}={format_env_value(updates[key] or '')}")
    for key, value in updates.items():
        if key not in seen and value is not None:
            output.append(f"{key}={format_env_value(value)}")
    return "\n".join(output) + "\n" if output else ""


class GeminiAdapter(ConfigStoreAdapter):
    tool = Target.GEMINI
    display_name = "Gemini CLI"
    accepted_model_types = frozenset({ModelType.GEMINI})
    single_slot = True

    def paths(self, scope: Scope) -> List[Path]:
        self.check_scope(scope)
        return [self.home / ".gemini" / ".env"]

    def _load_env(self, path: Path) -> Optional[str]:
        try:
            return read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigParseError(str(path), f"{type(exc).__name__}: {exc}") from exc

    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        content = self._load_env(self.paths(scope)[0])
        if not content:
            return []
        values = dotenv_values(stream=io.StringIO(content))
        base_url = values.get(BASE_URL_KEY) or ""
        api_key = values.get(API_KEY_KEY) or values.get(LEGACY_API_KEY) or ""
        if not base_url and not api_key:
            return []
        return [
            DeployedProviderItem(
                name=self.display_name,
                base_url=base_url,
                model_count=-1,
                source=scope.value,
                tool=self.tool,
                inferred_model_type=ModelType.GEMINI,
                current_model=values.get(MODEL_KEY) or None,
                api_key=api_key or None,
            )
        ]

    def _write_sync(self, provider: Provider, scope: Scope) -> None:
        path = self.paths(scope)[0]
        with locked_path(path):
            content = self._load_env(path) or ""
            existing = dotenv_values(stream=io.StringIO(content))
            updates: Dict[str, Optional[str]] = {
                BASE_URL_KEY: provider.base_url,
                API_KEY_KEY: provider.api_key,
            }
            if LEGACY_API_KEY in existing:
                updates[LEGACY_API_KEY] = provider.api_key
            first = provider.first_model()
            # None drops a model left behind by the previous provider.
            updates[MODEL_KEY] = first.id if first is not None else None
            changed = self.store_text(path, merge_env_lines(content, updates))
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
        path = self.paths(scope)[0]
        with locked_path(path):
            content = self._load_env(path)
            if not content:
                return False
            values = dotenv_values(stream=io.StringIO(content))
            owned = name == self.display_name or matches_any_endpoint(
                values.get(BASE_URL_KEY) or "", base_urls
            )
            if not owned or not any(key in values for key in MANAGED_KEYS):
                return False
            updates: Dict[str, Optional[str]] = {key: None for key in MANAGED_KEYS}
            self.store_text(path, merge_env_lines(content, updates))
        logger.info("%s Cleared active provider %s", self.log_tag, name, extra={"path": str(path)})
        return True
