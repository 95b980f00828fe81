"""Normalization helpers: model-type inference, protocol/npm mapping, presets.

The model-type inference is an ordered fallback chain so each step can be
tested on its own:

1. an explicit model type stored by the source format;
2. substrings of the dialect/package string ("anthropic" -> claude,
   "gemini"/"google" -> gemini, "openai" -> codex). Only an OpenAI-style
   or empty dialect consults the provider name for "gemini", so
   OpenAI-compatible Gemini gateways are not mistaken for codex;
3. no signal -> ``None``.
"""

from __future__ import annotations

import hashlib
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from switchyard.core.models import ModelType, Protocol

NPM_ANTHROPIC = "@ai-sdk/anthropic"
NPM_OPENAI = "@ai-sdk/openai"
NPM_OPENAI_COMPATIBLE = "@ai-sdk/openai-compatible"

CLAUDE_PRESET_MODELS: Tuple[str, ...] = (
    "claude-4.1-opus",
    "claude-4.5-haiku",
    "claude-4.5-opus",
    "claude-4.5-sonnet",
)
ZHIPU_PRESET_MODELS: Tuple[str, ...] = ("glm-4.7", "glm-4.6")
CODEX_PRESET_MODELS: Tuple[str, ...] = (
    "gpt-5.2-codex",
    "gpt-5.2",
    "gpt-5.1-codex-max",
    "gpt-5.1-codex-mini",
    "gpt-5.1",
)
GEMINI_PRESET_MODELS: Tuple[str, ...] = ("gemini-3-pro", "gemini-2.5-pro", "gemini-2.5-flash")

# Relay services known to speak the Anthropic dialect.
_ANTHROPIC_URL_MARKERS = ("anthropic", "packyapi.com", "cubence.com", "aigocode.com")
_ZHIPU_URL_MARKERS = ("bigmodel.cn", "zhipu", "glm")


def _coerce_model_type(value: object) -> Optional[ModelType]:
    if isinstance(value, ModelType):
        return value
    if isinstance(value, str):
        try:
            return ModelType(value.strip().lower())
        except ValueError:
            return None
    return None


def infer_model_type(
    explicit: Optional[object] = None,
    dialect: Optional[str] = None,
    name: Optional[str] = None,
) -> Optional[ModelType]:
    """Best-effort model type for a discovered provider."""
    explicit_type = _coerce_model_type(explicit)
    if explicit_type is not None:
        return explicit_type

    dialect_lower = (dialect or "").lower()
    name_lower = (name or "").lower()
    if "anthropic" in dialect_lower:
        return ModelType.CLAUDE
    if "gemini" in dialect_lower or "google" in dialect_lower:
        return ModelType.GEMINI
    if "openai" in dialect_lower or not dialect_lower:
        if "gemini" in name_lower:
            return ModelType.GEMINI
        if "openai" in dialect_lower:
            return ModelType.CODEX
    return None


def npm_for(model_type: ModelType) -> str:
    """OpenCode SDK package used for a model family."""
    if model_type == ModelType.CLAUDE:
        return NPM_ANTHROPIC
    return NPM_OPENAI


def protocol_for(model_type: ModelType, npm: Optional[str] = None) -> Protocol:
    """Wire dialect implied by a model family and an optional SDK package."""
    npm_lower = (npm or "").lower()
    if "anthropic" in npm_lower:
        return Protocol.ANTHROPIC
    if "openai-compatible" in npm_lower:
        return Protocol.OPENAI_COMPATIBLE
    if "openai" in npm_lower:
        return Protocol.OPENAI
    if model_type == ModelType.CLAUDE:
        return Protocol.ANTHROPIC
    if model_type == ModelType.CODEX:
        return Protocol.OPENAI
    return Protocol.OPENAI_COMPATIBLE


def is_anthropic_url(base_url: str) -> bool:
    lowered = base_url.lower()
    return any(marker in lowered for marker in _ANTHROPIC_URL_MARKERS)


def is_zhipu_url(base_url: str) -> bool:
    lowered = base_url.lower()
    return any(marker in lowered for marker in _ZHIPU_URL_MARKERS)


def speaks_anthropic(
    model_type: ModelType,
    protocol: Optional[Protocol] = None,
    npm: Optional[str] = None,
    base_url: str = "",
) -> bool:
    """True when the provider's endpoint expects Anthropic-style requests."""
    if protocol is not None:
        return protocol == Protocol.ANTHROPIC
    if npm and "anthropic" in npm.lower():
        return True
    return model_type == ModelType.CLAUDE or is_anthropic_url(base_url)


def preset_models(
    model_type: Optional[ModelType],
    base_url: str = "",
    npm: Optional[str] = None,
) -> Optional[List[str]]:
    """Built-in model ids for well-known provider families, or None."""
    if is_zhipu_url(base_url):
        return list(ZHIPU_PRESET_MODELS)
    if model_type == ModelType.CODEX:
        return list(CODEX_PRESET_MODELS)
    if model_type == ModelType.GEMINI:
        return list(GEMINI_PRESET_MODELS)
    if model_type == ModelType.CLAUDE or (npm and "anthropic" in npm.lower()):
        return list(CLAUDE_PRESET_MODELS)
    if is_anthropic_url(base_url):
        return list(CLAUDE_PRESET_MODELS)
    return None


def strip_trailing_slash(url: str) -> str:
    return url.rstrip("/")


def ensure_v1_suffix(url: str) -> str:
    """Append ``/v1`` unless the URL already ends with it."""
    trimmed = strip_trailing_slash(url)
    if trimmed.endswith("/v1"):
        return trimmed
    return f"{trimmed}/v1"


def is_origin_only(url: str) -> bool:
    """True for URLs without a path component, such as ``https://host:8443``."""
    parts = urlsplit(url.strip())
    return bool(parts.scheme and parts.netloc) and parts.path in ("", "/")


def slugify_key(name: str) -> str:
    """Deterministic identifier derived from a provider name for keyed formats."""
    chars: List[str] = []
    for ch in name.strip().lower():
        if ch.isascii() and ch.isalnum():
            chars.append(ch)
        elif chars and chars[-1] != "_":
            chars.append("_")
    slug = "".join(chars).strip("_")
    if slug:
        return slug
    return "provider_" + hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
