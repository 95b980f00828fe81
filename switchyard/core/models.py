"""Data model shared by the registry, adapters, prober and apply engine.

Wire names are snake_case and stable: they are what the JSON facade emits
and what ``providers.json`` stores.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ModelType(str, Enum):
    """Model family; decides which tools a provider can be deployed to."""

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


class Protocol(str, Enum):
    """Wire dialect spoken by a provider endpoint."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENAI_COMPATIBLE = "openai-compatible"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Protocol"]:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class ReasoningEffort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UrlQuality(str, Enum):
    """Latency bucket of a base URL."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    FAILED = "failed"
    UNTESTED = "untested"


class Scope(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


class Target(str, Enum):
    """External tools the engine can deploy to."""

    OPENCODE = "opencode"
    CLAUDE_CODE = "claude_code"
    CODEX = "codex"
    GEMINI = "gemini"
    CC_SWITCH = "cc_switch"


class ApplyState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class BaseUrlRecord(BaseModel):
    """One candidate endpoint of a provider and its last measurement."""

    url: str
    latency_ms: Optional[int] = None
    last_tested: Optional[str] = None
    quality: UrlQuality = UrlQuality.UNTESTED

    @model_validator(mode="after")
    def _check_untested(self) -> "BaseUrlRecord":
        # untested <=> no measurement
        if self.latency_ms is None and self.quality != UrlQuality.UNTESTED:
            raise ValueError("latency_ms is required once a URL has been tested")
        if self.latency_ms is not None and self.quality == UrlQuality.UNTESTED:
            raise ValueError("an untested URL cannot carry latency_ms")
        return self


class Model(BaseModel):
    """A selectable model identifier under a provider."""

    model_config = {"protected_namespaces": ()}

    id: str
    name: str = ""
    reasoning_effort: Optional[ReasoningEffort] = None
    # Token budget for extended thinking; only meaningful for claude providers.
    thinking_budget: Optional[int] = None
    context_limit: Optional[int] = None
    output_limit: Optional[int] = None

    @model_validator(mode="after")
    def _default_name(self) -> "Model":
        if not self.name:
            self.name = self.id
        return self


class Provider(BaseModel):
    """A named upstream AI API configuration owned by the registry."""

    model_config = {"protected_namespaces": ()}

    name: str
    api_key: str = ""
    base_url: str = ""
    base_urls: List[BaseUrlRecord] = Field(default_factory=list)
    model_type: ModelType = ModelType.CLAUDE
    protocol: Optional[Protocol] = None
    description: Optional[str] = None
    enabled: bool = True
    models: List[Model] = Field(default_factory=list)
    npm: Optional[str] = None
    auto_add_v1_suffix: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _seed_base_urls(cls, data: Any) -> Any:
        """Let callers pass only ``base_url`` and get a one-element candidate list."""
        if isinstance(data, dict):
            base_url = data.get("base_url")
            if base_url and not data.get("base_urls"):
                data = dict(data)
                data["base_urls"] = [{"url": base_url}]
        return data

    @model_validator(mode="after")
    def _fill_active_url(self) -> "Provider":
        if not self.base_url and self.base_urls:
            self.base_url = self.base_urls[0].url
        return self

    def url_record(self, url: str) -> Optional[BaseUrlRecord]:
        for record in self.base_urls:
            if record.url == url:
                return record
        return None

    def model_ids(self) -> List[str]:
        return [model.id for model in self.models]

    def find_model(self, model_id: str) -> Optional[Model]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def first_model(self) -> Optional[Model]:
        return self.models[0] if self.models else None


class DeployedProviderItem(BaseModel):
    """Read-only projection of a provider found inside an external tool."""

    model_config = {"protected_namespaces": ()}

    name: str
    base_url: str = ""
    # -1 means the tool stores a single active model rather than a list.
    model_count: int = 0
    source: str
    tool: Target
    inferred_model_type: Optional[ModelType] = None
    current_model: Optional[str] = None
    api_key: Optional[str] = Field(default=None, exclude=True)
    model_ids: List[str] = Field(default_factory=list)
    npm: Optional[str] = None

    @property
    def is_single_model(self) -> bool:
        return self.model_count == -1


class DiscoveryReport(BaseModel):
    """Outcome of one discovery pass across every adapter."""

    items: List[DeployedProviderItem] = Field(default_factory=list)
    importable: List[DeployedProviderItem] = Field(default_factory=list)
    warnings: Dict[str, str] = Field(default_factory=dict)


class UrlTestResult(BaseModel):
    url: str
    success: bool
    latency_ms: Optional[int] = None
    quality: UrlQuality = UrlQuality.UNTESTED
    successful_trials: int = 0
    total_trials: int = 0
    trial_latencies_ms: List[Optional[int]] = Field(default_factory=list)
    error_message: Optional[str] = None


class ProviderUrlsTestResult(BaseModel):
    provider_name: str
    results: List[UrlTestResult] = Field(default_factory=list)
    fastest_url: Optional[str] = None
    fastest_latency_ms: Optional[int] = None


class TargetApplyResult(BaseModel):
    """Per (target, scope) outcome of an apply or remove batch."""

    target: Target
    scope: Scope
    state: ApplyState = ApplyState.PENDING
    providers_written: List[str] = Field(default_factory=list)
    skipped: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == ApplyState.SUCCEEDED
