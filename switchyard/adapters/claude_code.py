"""Claude Code adapter (``.claude/settings.json`` ``env`` block)."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from switchyard.adapters.base import ConfigStoreAdapter, matches_any_endpoint, text_field
from switchyard.core.models import DeployedProviderItem, ModelType, Provider, Scope, Target
from switchyard.utils.file_io import dump_json, locked_path, read_json_object
from switchyard.utils.log import get_logger, mask_api_key


logger = get_logger()

BASE_URL_KEY = "ANTHROPIC_BASE_URL"
AUTH_TOKEN_KEY = "ANTHROPIC_AUTH_TOKEN"
LEGACY_API_KEY = "ANTHROPIC_API_KEY"
MODEL_KEY = "ANTHROPIC_MODEL"
TIER_KEYS = {
    "haiku": "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "sonnet": "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "opus": "ANTHROPIC_DEFAULT_OPUS_MODEL",
}
THINKING_KEY = "MAX_THINKING_TOKENS"

MANAGED_KEYS = (
    BASE_URL_KEY,
    AUTH_TOKEN_KEY,
    LEGACY_API_KEY,
    MODEL_KEY,
    *TIER_KEYS.values(),
    THINKING_KEY,
)


def tier_models(provider: Provider) -> Dict[str, str]:
    """Model id per Claude tier: a model named after the tier, else the first model."""
    first = provider.first_model()
    if first is None:
        return {}
    result: Dict[str, str] = {}
    for tier, env_key in TIER_KEYS.items():
        match = next((m.id for m in provider.models if tier in m.id.lower()), None)
        result[env_key] = match or first.id
    return result


class ClaudeCodeAdapter(ConfigStoreAdapter):
    tool = Target.CLAUDE_CODE
    display_name = "Claude Code"
    supported_scopes = (Scope.GLOBAL, Scope.PROJECT)
    accepted_model_types = frozenset({ModelType.CLAUDE})
    single_slot = True

    def paths(self, scope: Scope) -> List[Path]:
        self.check_scope(scope)
        root = self.home if scope == Scope.GLOBAL else self.project_path
        return [root / ".claude" / "settings.json"]

    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        document = read_json_object(self.paths(scope)[0])
        if not document:
            return []
        env = document.get("env")
        base_url = text_field(env, BASE_URL_KEY)
        api_key = text_field(env, AUTH_TOKEN_KEY, LEGACY_API_KEY)
        if not base_url and not api_key:
            return []
        return [
            DeployedProviderItem(
                name=self.display_name,
                base_url=base_url,
                model_count=-1,
                source=scope.value,
                tool=self.tool,
                inferred_model_type=ModelType.CLAUDE,
                current_model=text_field(env, MODEL_KEY) or None,
                api_key=api_key or None,
            )
        ]

    def _write_sync(self, provider: Provider, scope: Scope) -> None:
        path = self.paths(scope)[0]
        with locked_path(path):
            document = self.load_json(path)
            env = document.get("env")
            env = dict(env) if isinstance(env, dict) else {}

            env[BASE_URL_KEY] = provider.base_url
            env[AUTH_TOKEN_KEY] = provider.api_key
            if LEGACY_API_KEY in env:
                env[LEGACY_API_KEY] = provider.api_key

            models: Dict[str, str] = {}
            first = provider.first_model()
            if first is not None:
                models[MODEL_KEY] = first.id
                models.update(tier_models(provider))
                if first.thinking_budget is not None:
                    models[THINKING_KEY] = str(first.thinking_budget)
            # Model keys belong to the active provider; stale ones are dropped.
            for key in (MODEL_KEY, *TIER_KEYS.values(), THINKING_KEY):
                if key in models:
                    env[key] = models[key]
                else:
                    env.pop(key, None)

            document["env"] = env
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
        path = self.paths(scope)[0]
        with locked_path(path):
            document = read_json_object(path)
            if not document or not isinstance(document.get("env"), dict):
                return False
            env = dict(document["env"])
            owned = name == self.display_name or matches_any_endpoint(
                text_field(env, BASE_URL_KEY), base_urls
            )
            if not owned:
                return False
            removed = [key for key in MANAGED_KEYS if env.pop(key, None) is not None]
            if not removed:
                return False
            document["env"] = env
            self.store_text(path, dump_json(document))
        logger.info("%s Cleared active provider %s", self.log_tag, name, extra={"path": str(path)})
        return True
