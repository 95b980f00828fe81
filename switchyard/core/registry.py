"""Canonical provider registry persisted at ``<data_dir>/providers.json``.

The registry is the only owner of Provider/Model/BaseUrlRecord state. Every
mutation runs under one ``asyncio.Lock``, works on a copy of the provider list
and swaps it in only after the file has been atomically replaced, so readers
never observe a half-applied change.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError

from switchyard.core.errors import (
    ConfigParseError,
    DuplicateProviderError,
    ModelNotFoundError,
    ProviderNotFoundError,
    ProviderValidationError,
    RegistryError,
)
from switchyard.core.inference import npm_for, protocol_for
from switchyard.core.models import BaseUrlRecord, Model, Provider, UrlQuality, utc_now
from switchyard.utils.file_io import read_json_object, write_json_atomic
from switchyard.utils.log import get_logger


logger = get_logger()

REGISTRY_VERSION = 1

T = TypeVar("T")


def validate_provider(provider: Provider, *, allow_empty_api_key: bool = False) -> None:
    """Raise ProviderValidationError naming the first offending field."""
    if not provider.name or not provider.name.strip():
        raise ProviderValidationError("name", "provider name must not be empty")
    if not allow_empty_api_key and not provider.api_key.strip():
        raise ProviderValidationError("api_key", "API key must not be empty")
    if not provider.base_urls:
        raise ProviderValidationError("base_urls", "at least one base URL is required")

    urls = [record.url for record in provider.base_urls]
    for url in urls:
        if not url.strip():
            raise ProviderValidationError("base_urls", "base URL must not be empty")
    if len(set(urls)) != len(urls):
        raise ProviderValidationError("base_urls", "base URLs must be unique")
    if provider.base_url not in urls:
        raise ProviderValidationError("base_url", "active base URL must be one of base_urls")

    model_ids = [model.id for model in provider.models]
    for model_id in model_ids:
        if not model_id.strip():
            raise ProviderValidationError("models", "model id must not be empty")
    if len(set(model_ids)) != len(model_ids):
        raise ProviderValidationError("models", "model ids must be unique within a provider")


def with_wire_defaults(provider: Provider) -> Provider:
    """Copy of ``provider`` with ``protocol`` and ``npm`` derived when unset."""
    update: Dict[str, Any] = {}
    if provider.protocol is None:
        update["protocol"] = protocol_for(provider.model_type, provider.npm)
    if not provider.npm:
        update["npm"] = npm_for(provider.model_type)
    return provider.model_copy(deep=True, update=update)


class ProviderRegistry:
    """Ordered, name-keyed collection of providers with a single writer."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / "providers.json"
        self._providers: Optional[List[Provider]] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_sync(self) -> List[Provider]:
        try:
            document = read_json_object(self.path)
        except ConfigParseError as exc:
            raise RegistryError("registry_corrupt", exc.message) from exc
        if document is None:
            logger.debug("[registry] No registry file; starting empty", extra={"path": str(self.path)})
            return []

        raw_providers = document.get("providers", [])
        if not isinstance(raw_providers, list):
            raise RegistryError("registry_corrupt", f"{self.path}: 'providers' must be a list")
        try:
            providers = [with_wire_defaults(Provider.model_validate(item)) for item in raw_providers]
        except ValidationError as exc:
            raise RegistryError("registry_corrupt", f"{self.path}: {exc}") from exc

        logger.debug(
            "[registry] Loaded providers",
            extra={"path": str(self.path), "provider_count": len(providers)},
        )
        return providers

    def _persist_sync(self, providers: List[Provider]) -> None:
        payload = {
            "version": REGISTRY_VERSION,
            "providers": [provider.model_dump(mode="json") for provider in providers],
        }
        write_json_atomic(self.path, payload)

    async def _ensure_loaded(self) -> List[Provider]:
        if self._providers is None:
            self._providers = await asyncio.to_thread(self._load_sync)
        return self._providers

    async def _mutate(self, change: Callable[[List[Provider]], T]) -> T:
        """Apply ``change`` to a copy of the providers and commit it atomically.

        Once started, a mutation finishes even if the awaiting caller is
        cancelled.
        """

        async def _run() -> T:
            async with self._lock:
                current = await self._ensure_loaded()
                working = [provider.model_copy(deep=True) for provider in current]
                result = change(working)
                await asyncio.to_thread(self._persist_sync, working)
                self._providers = working
                return result

        return await asyncio.shield(_run())

    async def reload(self) -> None:
        async with self._lock:
            self._providers = await asyncio.to_thread(self._load_sync)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_providers(self) -> List[Provider]:
        async with self._lock:
            providers = await self._ensure_loaded()
            return [provider.model_copy(deep=True) for provider in providers]

    async def find_provider(self, name: str) -> Optional[Provider]:
        async with self._lock:
            for provider in await self._ensure_loaded():
                if provider.name == name:
                    return provider.model_copy(deep=True)
        return None

    async def get_provider(self, name: str) -> Provider:
        provider = await self.find_provider(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    async def names(self) -> List[str]:
        return [provider.name for provider in await self.list_providers()]

    # ------------------------------------------------------------------
    # Provider edits
    # ------------------------------------------------------------------

    async def add_provider(self, provider: Provider, *, allow_empty_api_key: bool = False) -> Provider:
        """Insert a new provider; an existing name is a DuplicateProviderError."""
        validate_provider(provider, allow_empty_api_key=allow_empty_api_key)
        now = utc_now()
        stored = with_wire_defaults(provider).model_copy(update={"created_at": now, "updated_at": now})

        def change(providers: List[Provider]) -> Provider:
            if _index_of(providers, stored.name) is not None:
                raise DuplicateProviderError(stored.name)
            providers.append(stored)
            return stored

        result = await self._mutate(change)
        logger.info("[registry] Added provider %s", result.name)
        return result.model_copy(deep=True)

    async def update_provider(self, name: str, provider: Provider) -> Provider:
        """Replace ``name`` in place; renaming is allowed only to a free name."""
        validate_provider(provider)

        def change(providers: List[Provider]) -> Provider:
            index = _require_index(providers, name)
            if provider.name != name and _index_of(providers, provider.name) is not None:
                raise DuplicateProviderError(provider.name)
            stored = with_wire_defaults(provider).model_copy(
                update={
                    "created_at": providers[index].created_at or utc_now(),
                    "updated_at": utc_now(),
                },
            )
            providers[index] = stored
            return stored

        result = await self._mutate(change)
        logger.info("[registry] Updated provider %s", result.name, extra={"previous_name": name})
        return result.model_copy(deep=True)

    async def save_provider(self, provider: Provider, original_name: Optional[str] = None) -> Provider:
        """Explicit edit path: update in place when the provider exists, else add."""
        target = original_name or provider.name
        if await self.find_provider(target) is not None:
            return await self.update_provider(target, provider)
        return await self.add_provider(provider)

    async def delete_provider(self, name: str) -> None:
        def change(providers: List[Provider]) -> None:
            del providers[_require_index(providers, name)]

        await self._mutate(change)
        logger.info("[registry] Deleted provider %s", name)

    async def set_enabled(self, name: str, enabled: bool) -> Provider:
        def change(provider: Provider) -> None:
            provider.enabled = enabled

        return await self._edit(name, change)

    # ------------------------------------------------------------------
    # Model edits
    # ------------------------------------------------------------------

    async def add_model(self, name: str, model: Model) -> Provider:
        if not model.id.strip():
            raise ProviderValidationError("models", "model id must not be empty")

        def change(provider: Provider) -> None:
            if provider.find_model(model.id) is not None:
                raise ProviderValidationError(
                    "models", f"model '{model.id}' already exists in provider '{name}'"
                )
            provider.models.append(model.model_copy(deep=True))

        return await self._edit(name, change)

    async def update_model(self, name: str, model_id: str, model: Model) -> Provider:
        """Replace model ``model_id``; the id may change only to an unused one."""

        def change(provider: Provider) -> None:
            index = next((i for i, m in enumerate(provider.models) if m.id == model_id), None)
            if index is None:
                raise ModelNotFoundError(name, model_id)
            if model.id != model_id and provider.find_model(model.id) is not None:
                raise ProviderValidationError(
                    "models", f"model '{model.id}' already exists in provider '{name}'"
                )
            provider.models[index] = model.model_copy(deep=True)

        return await self._edit(name, change)

    async def remove_model(self, name: str, model_id: str) -> Provider:
        def change(provider: Provider) -> None:
            if provider.find_model(model_id) is None:
                raise ModelNotFoundError(name, model_id)
            provider.models = [m for m in provider.models if m.id != model_id]

        return await self._edit(name, change)

    async def add_models_batch(self, name: str, model_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Add models by id, skipping ids that already exist. Returns (added, skipped)."""
        requested = [model_id.strip() for model_id in model_ids if model_id and model_id.strip()]
        added: List[str] = []
        skipped: List[str] = []

        def change(provider: Provider) -> None:
            for model_id in requested:
                if provider.find_model(model_id) is not None:
                    skipped.append(model_id)
                    continue
                provider.models.append(Model(id=model_id))
                added.append(model_id)

        await self._edit(name, change)
        logger.info(
            "[registry] Batch-added models to %s",
            name,
            extra={"added": len(added), "skipped": len(skipped)},
        )
        return added, skipped

    # ------------------------------------------------------------------
    # Base URL edits
    # ------------------------------------------------------------------

    async def add_base_url(self, name: str, url: str) -> Provider:
        url = url.strip()
        if not url:
            raise ProviderValidationError("base_urls", "base URL must not be empty")

        def change(provider: Provider) -> None:
            if provider.url_record(url) is not None:
                raise ProviderValidationError("base_urls", f"base URL '{url}' already exists")
            provider.base_urls.append(BaseUrlRecord(url=url))

        return await self._edit(name, change)

    async def remove_base_url(self, name: str, url: str) -> Provider:
        """Drop a candidate URL; the active URL falls back to the first remaining one."""

        def change(provider: Provider) -> None:
            if provider.url_record(url) is None:
                raise ProviderValidationError("base_urls", f"base URL '{url}' does not exist")
            if len(provider.base_urls) == 1:
                raise ProviderValidationError("base_urls", "cannot remove the last base URL")
            provider.base_urls = [record for record in provider.base_urls if record.url != url]
            if provider.base_url == url:
                provider.base_url = provider.base_urls[0].url

        return await self._edit(name, change)

    async def set_active_base_url(self, name: str, url: str) -> Provider:
        def change(provider: Provider) -> None:
            if provider.url_record(url) is None:
                raise ProviderValidationError("base_url", f"base URL '{url}' is not a candidate")
            provider.base_url = url

        return await self._edit(name, change)

    async def update_url_latency(
        self,
        name: str,
        url: str,
        latency_ms: Optional[int],
        quality: UrlQuality,
        last_tested: Optional[str] = None,
    ) -> Provider:
        record = BaseUrlRecord(
            url=url,
            latency_ms=latency_ms,
            quality=quality,
            last_tested=last_tested or (utc_now() if latency_ms is not None else None),
        )

        def change(provider: Provider) -> None:
            for index, existing in enumerate(provider.base_urls):
                if existing.url == url:
                    provider.base_urls[index] = record
                    return
            raise ProviderValidationError("base_urls", f"base URL '{url}' does not exist")

        return await self._edit(name, change)

    async def replace_base_urls(
        self, name: str, base_urls: Sequence[BaseUrlRecord], base_url: str
    ) -> Provider:
        """Swap the candidate list and active URL together in one commit."""
        records = [record.model_copy(deep=True) for record in base_urls]

        def change(provider: Provider) -> None:
            provider.base_urls = records
            provider.base_url = base_url

        return await self._edit(name, change)

    # ------------------------------------------------------------------

    async def _edit(self, name: str, change: Callable[[Provider], Any]) -> Provider:
        """Mutate one provider in place, re-validating before the commit."""

        def apply(providers: List[Provider]) -> Provider:
            index = _require_index(providers, name)
            provider = providers[index]
            change(provider)
            validate_provider(provider, allow_empty_api_key=True)
            provider.updated_at = utc_now()
            return provider

        result = await self._mutate(apply)
        logger.debug("[registry] Edited provider %s", name)
        return result.model_copy(deep=True)


def _index_of(providers: List[Provider], name: str) -> Optional[int]:
    for index, provider in enumerate(providers):
        if provider.name == name:
            return index
    return None


def _require_index(providers: List[Provider], name: str) -> int:
    index = _index_of(providers, name)
    if index is None:
        raise ProviderNotFoundError(name)
    return index
