"""Error types shared by the registry, adapters, prober and apply engine."""

from __future__ import annotations

from typing import Optional


class SwitchyardError(Exception):
    """Base exception with a stable error code."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error_code": self.error_code, "message": self.message}


class ConfigParseError(SwitchyardError):
    """An external tool's config file could not be parsed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__("parse_error", f"{path}: {message}")
        self.path = path


class AdapterError(SwitchyardError):
    """Failure inside a config store adapter."""

    def __init__(self, tool: str, message: str, error_code: str = "adapter_error") -> None:
        super().__init__(error_code, message)
        self.tool = tool


class UnsupportedScopeError(AdapterError):
    """The adapter has no configuration file for the requested scope."""

    def __init__(self, tool: str, scope: str) -> None:
        super().__init__(
            tool,
            f"{tool} does not support the '{scope}' scope",
            error_code="unsupported_scope",
        )
        self.scope = scope


class AdapterWriteError(AdapterError):
    """Writing a tool's config file failed (permissions, disk, bad document)."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(tool, message, error_code="write_failed")


class RegistryError(SwitchyardError):
    """Failure of a canonical registry operation."""


class ProviderValidationError(RegistryError):
    """A provider or model failed validation before being persisted."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__("validation_error", f"{field}: {message}")
        self.field = field

    def to_dict(self) -> dict[str, str]:
        payload = super().to_dict()
        payload["field"] = self.field
        return payload


class DuplicateProviderError(RegistryError):
    """A provider with the same name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__("duplicate_provider", f"Provider '{name}' already exists")
        self.name = name


class ProviderNotFoundError(RegistryError):
    """No provider with the given name exists."""

    def __init__(self, name: str) -> None:
        super().__init__("provider_not_found", f"Provider '{name}' does not exist")
        self.name = name


class ModelNotFoundError(RegistryError):
    """No model with the given id exists under the provider."""

    def __init__(self, provider_name: str, model_id: str) -> None:
        super().__init__(
            "model_not_found",
            f"Model '{model_id}' does not exist in provider '{provider_name}'",
        )
        self.provider_name = provider_name
        self.model_id = model_id


class DeployedItemNotFoundError(SwitchyardError):
    """A deployed provider requested for import is no longer discoverable."""

    def __init__(self, name: str, tool: Optional[str] = None) -> None:
        where = f" in {tool}" if tool else ""
        super().__init__("deployed_not_found", f"Deployed provider '{name}' not found{where}")
        self.name = name
        self.tool = tool


class ProbeError(SwitchyardError):
    """Structural failure of a probe request (not a network error)."""

    def __init__(self, message: str) -> None:
        super().__init__("probe_error", message)
