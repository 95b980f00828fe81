"""Config store adapter contract.

Each adapter owns exactly one external tool's file grammar. The public API is
async; the blocking file work runs in a worker thread and every
read-modify-write cycle on a file holds that file's lock.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from switchyard.core.errors import AdapterWriteError, ConfigParseError, UnsupportedScopeError
from switchyard.core.models import DeployedProviderItem, ModelType, Provider, Scope, Target
from switchyard.utils.file_io import backup_file, read_json_object, read_text, write_text_atomic
from switchyard.utils.log import get_logger


logger = get_logger()


@dataclass
class ScanResult:
    """Items read from one adapter plus the parse problems it hit on the way."""

    items: List[DeployedProviderItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ConfigStoreAdapter(ABC):
    """Uniform read/write interface over one external tool's config files."""

    tool: Target
    display_name: str
    supported_scopes: Tuple[Scope, ...] = (Scope.GLOBAL,)
    # None accepts every model type.
    accepted_model_types: Optional[FrozenSet[ModelType]] = None
    # Single-slot tools hold one active provider instead of a named list.
    single_slot: bool = False

    def __init__(self, home: Path, project_path: Optional[Path] = None) -> None:
        self.home = Path(home)
        self.project_path = Path(project_path) if project_path is not None else Path.cwd()

    @property
    def log_tag(self) -> str:
        return f"[adapter:{self.tool.value}]"

    def accepts(self, model_type: ModelType) -> bool:
        return self.accepted_model_types is None or model_type in self.accepted_model_types

    def supports_scope(self, scope: Scope) -> bool:
        return scope in self.supported_scopes

    def check_scope(self, scope: Scope) -> None:
        if not self.supports_scope(scope):
            raise UnsupportedScopeError(self.tool.value, scope.value)

    @abstractmethod
    def paths(self, scope: Scope) -> List[Path]:
        """Files this adapter reads and writes for ``scope``."""

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def scan(self) -> ScanResult:
        """Read every supported scope, collecting parse problems as warnings."""
        return await asyncio.to_thread(self._scan_sync)

    async def read_deployed(self) -> List[DeployedProviderItem]:
        """Providers currently configured in the tool; never raises on bad files."""
        result = await self.scan()
        return result.items

    async def write(self, provider: Provider, scope: Scope) -> None:
        self.check_scope(scope)
        logger.debug(
            "%s Writing provider %s (%s)",
            self.log_tag,
            provider.name,
            scope.value,
        )
        await asyncio.to_thread(self._guarded, self._write_sync, provider, scope)

    async def remove(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]] = None
    ) -> bool:
        """Remove ``name`` from the tool. Returns False when it was not deployed.

        Single-slot tools do not store a provider name, so ``base_urls`` (the
        provider's candidate URLs) identifies whether the active slot is ours.
        """
        self.check_scope(scope)
        return await asyncio.to_thread(self._guarded, self._remove_sync, name, scope, base_urls)

    async def is_deployed(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]] = None
    ) -> bool:
        if not self.supports_scope(scope):
            return False
        return await asyncio.to_thread(self._is_deployed_sync, name, scope, base_urls)

    # ------------------------------------------------------------------
    # Synchronous implementation hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _read_scope_sync(self, scope: Scope) -> List[DeployedProviderItem]:
        """Parse one scope's files; raise ConfigParseError on malformed input."""

    @abstractmethod
    def _write_sync(self, provider: Provider, scope: Scope) -> None: ...

    @abstractmethod
    def _remove_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool: ...

    def _is_deployed_sync(
        self, name: str, scope: Scope, base_urls: Optional[Sequence[str]]
    ) -> bool:
        try:
            items = self._read_scope_sync(scope)
        except ConfigParseError:
            return False
        for item in items:
            if item.name == name:
                return True
            if self.single_slot and matches_any_endpoint(item.base_url, base_urls):
                return True
        return False

    def _scan_sync(self) -> ScanResult:
        result = ScanResult()
        for scope in self.supported_scopes:
            try:
                result.items.extend(self._read_scope_sync(scope))
            except ConfigParseError as exc:
                logger.warning(
                    "%s Ignoring malformed config: %s",
                    self.log_tag,
                    exc.message,
                    extra={"path": exc.path, "scope": scope.value},
                )
                result.warnings.append(exc.message)
        return result

    def _guarded(self, func: Any, *args: Any) -> Any:
        """Translate I/O and parse failures during writes into AdapterWriteError."""
        try:
            return func(*args)
        except ConfigParseError as exc:
            # Never overwrite a file we could not understand.
            raise AdapterWriteError(
                self.tool.value, f"refusing to modify malformed file {exc.message}"
            ) from exc
        except OSError as exc:
            raise AdapterWriteError(
                self.tool.value, f"{type(exc).__name__}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Helpers shared by the JSON-based adapters
    # ------------------------------------------------------------------

    @staticmethod
    def load_json(path: Path) -> Dict[str, Any]:
        document = read_json_object(path)
        return document if document is not None else {}

    @staticmethod
    def store_text(path: Path, content: str) -> bool:
        """Write ``content`` atomically unless the file already holds it.

        A file that is about to change is first copied to ``<name>.bak``.
        """
        try:
            current = read_text(path)
        except (OSError, UnicodeDecodeError):
            current = None
        if current == content:
            return False
        if current is not None:
            backup_file(path)
        write_text_atomic(path, content)
        return True


def text_field(mapping: Any, *keys: str) -> str:
    """First non-empty string value among ``keys`` in a mapping."""
    if not isinstance(mapping, dict):
        return ""
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def normalize_endpoint(url: str) -> str:
    """Comparable form of a base URL: lowercase, no trailing slash or ``/v1``."""
    normalized = url.strip().rstrip("/").lower()
    if normalized.endswith("/v1"):
        normalized = normalized[: -len("/v1")]
    return normalized


def matches_any_endpoint(url: str, candidates: Optional[Sequence[str]]) -> bool:
    if not url or not candidates:
        return False
    target = normalize_endpoint(url)
    return any(normalize_endpoint(candidate) == target for candidate in candidates)
