"""Discovery of providers already configured inside external tools.

Discovery is read-only: it never touches the registry or any tool file. Each
adapter is scanned independently and a failing adapter only costs its own
items, recorded as a warning in the report.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from switchyard.adapters.base import ConfigStoreAdapter, ScanResult
from switchyard.core.errors import DeployedItemNotFoundError, DuplicateProviderError, ProviderValidationError
from switchyard.core.inference import npm_for, protocol_for
from switchyard.core.models import (
    BaseUrlRecord,
    DeployedProviderItem,
    DiscoveryReport,
    Model,
    ModelType,
    Provider,
    Scope,
    Target,
)
from switchyard.core.registry import ProviderRegistry
from switchyard.utils.log import get_logger


logger = get_logger()

_SOURCE_RANK = {Scope.GLOBAL.value: 0, Scope.PROJECT.value: 1}


def collapse_items(items: Iterable[DeployedProviderItem]) -> List[DeployedProviderItem]:
    """Merge the global/project copies of one provider, global winning, sorted by name.

    Only a global item and a project item sharing a name and model type are
    merged. Everything else, such as the per-app lists of cc-switch, is kept.
    """
    chosen: Dict[Tuple[str, Optional[ModelType]], DeployedProviderItem] = {}
    kept: List[DeployedProviderItem] = []
    for item in items:
        if item.source not in _SOURCE_RANK:
            kept.append(item)
            continue
        key = (item.name, item.inferred_model_type)
        current = chosen.get(key)
        if current is not None and current.source == item.source:
            kept.append(item)
            continue
        if current is None or _SOURCE_RANK[item.source] < _SOURCE_RANK[current.source]:
            chosen[key] = item
    kept.extend(chosen.values())
    return sorted(kept, key=lambda item: item.name)


class DiscoveryEngine:
    """Collects deployed providers from every adapter and imports them."""

    def __init__(
        self,
        registry: ProviderRegistry,
        adapters: Mapping[Target, ConfigStoreAdapter],
    ) -> None:
        self.registry = registry
        self.adapters = dict(adapters)

    async def discover(self) -> DiscoveryReport:
        targets = list(self.adapters)
        results: List[Union[ScanResult, BaseException]] = await asyncio.gather(
            *(self.adapters[target].scan() for target in targets),
            return_exceptions=True,
        )

        report = DiscoveryReport()
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "[discovery] %s failed: %s: %s",
                    target.value,
                    type(result).__name__,
                    result,
                )
                report.warnings[target.value] = f"{type(result).__name__}: {result}"
                continue
            if result.warnings:
                report.warnings[target.value] = "; ".join(result.warnings)
            report.items.extend(collapse_items(result.items))

        existing = set(await self.registry.names())
        report.importable = [item for item in report.items if item.name not in existing]
        logger.debug(
            "[discovery] Pass complete",
            extra={
                "items": len(report.items),
                "importable": len(report.importable),
                "warnings": sorted(report.warnings),
            },
        )
        return report

    async def find_item(
        self, name: str, tool: Target, model_type: Optional[ModelType] = None
    ) -> DeployedProviderItem:
        """The deployed item called ``name``; a matching model type breaks ties."""
        adapter = self.adapters.get(tool)
        if adapter is None:
            raise DeployedItemNotFoundError(name, tool.value)
        matches = [item for item in collapse_items(await adapter.read_deployed()) if item.name == name]
        if model_type is not None:
            matches = [item for item in matches if item.inferred_model_type == model_type] or matches
        if not matches:
            raise DeployedItemNotFoundError(name, tool.value)
        return min(matches, key=lambda item: _SOURCE_RANK.get(item.source, len(_SOURCE_RANK)))

    async def import_deployed(
        self,
        name: str,
        tool: Target,
        model_type: Optional[ModelType] = None,
        api_key: Optional[str] = None,
    ) -> Provider:
        """Turn a deployed provider into a new registry entry.

        Import never updates in place: a name already in the registry raises
        DuplicateProviderError.
        """
        if await self.registry.find_provider(name) is not None:
            raise DuplicateProviderError(name)

        item = await self.find_item(name, tool, model_type)
        resolved_type = model_type or item.inferred_model_type
        if resolved_type is None:
            raise ProviderValidationError(
                "model_type", f"cannot infer a model type for '{name}'; pass one explicitly"
            )
        if not item.base_url:
            raise ProviderValidationError("base_url", f"deployed provider '{name}' has no base URL")

        provider = Provider(
            name=item.name,
            api_key=api_key if api_key is not None else (item.api_key or ""),
            base_url=item.base_url,
            base_urls=[BaseUrlRecord(url=item.base_url)],
            model_type=resolved_type,
            protocol=protocol_for(resolved_type, item.npm),
            npm=item.npm or npm_for(resolved_type),
            description=f"Imported from {tool.value} ({item.source})",
            models=models_for_item(item),
        )
        if not provider.api_key:
            logger.warning("[discovery] Importing %s without an API key", name)

        stored = await self.registry.add_provider(provider, allow_empty_api_key=True)
        logger.info(
            "[discovery] Imported %s from %s",
            name,
            tool.value,
            extra={"model_count": len(stored.models), "model_type": resolved_type.value},
        )
        return stored


def models_for_item(item: DeployedProviderItem) -> List[Model]:
    """Single-model tools yield their current model; list-based tools every id."""
    if item.is_single_model:
        return [Model(id=item.current_model)] if item.current_model else []
    seen: Dict[str, Model] = {}
    for model_id in item.model_ids:
        if model_id and model_id not in seen:
            seen[model_id] = Model(id=model_id)
    return list(seen.values())
