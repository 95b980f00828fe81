"""Apply/deploy engine: pushes registry providers into external tools.

Every (target, scope) pair is its own unit of work moving through
``pending -> attempting -> succeeded | failed``. A failing pair never stops the
others and nothing is rolled back; callers retry by calling ``apply`` again.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence

from switchyard.adapters.base import ConfigStoreAdapter
from switchyard.core.errors import ProviderNotFoundError, SwitchyardError
from switchyard.core.models import ApplyState, Provider, Scope, Target, TargetApplyResult
from switchyard.core.registry import ProviderRegistry
from switchyard.utils.log import get_logger


logger = get_logger()

SKIP_DISABLED = "provider is disabled"
SKIP_SLOT_TAKEN = "single-slot target already assigned"


def _unique(values: Sequence) -> List:
    seen: List = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _fail(result: TargetApplyResult, reason: str) -> None:
    result.state = ApplyState.FAILED
    result.error = reason
    logger.warning(
        "[apply] %s/%s failed: %s",
        result.target.value,
        result.scope.value,
        reason,
    )


class ApplyEngine:
    """Writes providers through adapters with per-target result tracking."""

    def __init__(
        self,
        registry: ProviderRegistry,
        adapters: Mapping[Target, ConfigStoreAdapter],
    ) -> None:
        self.registry = registry
        self.adapters = dict(adapters)

    def _pairs(self, targets: Sequence[Target], scopes: Sequence[Scope]) -> List[TargetApplyResult]:
        return [
            TargetApplyResult(target=target, scope=scope)
            for target in _unique(targets)
            for scope in _unique(scopes)
        ]

    async def _resolve(self, provider_names: Sequence[str]) -> List[Provider]:
        providers: List[Provider] = []
        for name in _unique(provider_names):
            provider = await self.registry.find_provider(name)
            if provider is None:
                raise ProviderNotFoundError(name)
            providers.append(provider)
        return providers

    async def apply(
        self,
        provider_names: Sequence[str],
        targets: Sequence[Target],
        scopes: Sequence[Scope],
    ) -> List[TargetApplyResult]:
        """Write the named providers to every (target, scope) pair.

        Unknown names raise ProviderNotFoundError before anything is written.
        """
        providers = await self._resolve(provider_names)
        disabled = {p.name: SKIP_DISABLED for p in providers if not p.enabled}
        enabled = [p for p in providers if p.enabled]

        results = self._pairs(targets, scopes)
        await asyncio.gather(*(self._apply_pair(result, enabled, disabled) for result in results))
        logger.info(
            "[apply] Applied %d provider(s) to %d target(s)",
            len(enabled),
            len(results),
            extra={
                "succeeded": sum(1 for r in results if r.state == ApplyState.SUCCEEDED),
                "failed": sum(1 for r in results if r.state == ApplyState.FAILED),
            },
        )
        return results

    async def _apply_pair(
        self,
        result: TargetApplyResult,
        providers: List[Provider],
        disabled: Dict[str, str],
    ) -> None:
        result.skipped.update(disabled)
        result.state = ApplyState.ATTEMPTING
        adapter = self.adapters.get(result.target)
        if adapter is None:
            _fail(result, f"no adapter registered for {result.target.value}")
            return
        if not adapter.supports_scope(result.scope):
            _fail(result, f"{result.target.value} does not support the '{result.scope.value}' scope")
            return

        to_write: List[Provider] = []
        for provider in providers:
            if not adapter.accepts(provider.model_type):
                result.skipped[provider.name] = (
                    f"{result.target.value} does not accept {provider.model_type.value} providers"
                )
                continue
            if adapter.single_slot and to_write:
                result.skipped[provider.name] = SKIP_SLOT_TAKEN
                continue
            to_write.append(provider)

        if not to_write:
            _fail(result, "no compatible provider to write")
            return

        try:
            for provider in to_write:
                await adapter.write(provider, result.scope)
                result.providers_written.append(provider.name)
        except SwitchyardError as exc:
            _fail(result, exc.message)
            return
        except Exception as exc:
            _fail(result, f"{type(exc).__name__}: {exc}")
            return
        result.state = ApplyState.SUCCEEDED

    async def remove_deployed(
        self,
        name: str,
        targets: Sequence[Target],
        scopes: Sequence[Scope],
    ) -> List[TargetApplyResult]:
        """Remove ``name`` from each (target, scope) pair.

        The registry entry, when present, supplies the candidate URLs used to
        recognise the provider inside single-slot tools.
        """
        provider = await self.registry.find_provider(name)
        base_urls = [record.url for record in provider.base_urls] if provider else None

        results = self._pairs(targets, scopes)
        await asyncio.gather(*(self._remove_pair(result, name, base_urls) for result in results))
        return results

    async def _remove_pair(
        self, result: TargetApplyResult, name: str, base_urls: Optional[List[str]]
    ) -> None:
        result.state = ApplyState.ATTEMPTING
        adapter = self.adapters.get(result.target)
        if adapter is None:
            _fail(result, f"no adapter registered for {result.target.value}")
            return
        if not adapter.supports_scope(result.scope):
            _fail(result, f"{result.target.value} does not support the '{result.scope.value}' scope")
            return
        try:
            removed = await adapter.remove(name, result.scope, base_urls)
        except SwitchyardError as exc:
            _fail(result, exc.message)
            return
        except Exception as exc:
            _fail(result, f"{type(exc).__name__}: {exc}")
            return
        if removed:
            result.providers_written.append(name)
        else:
            result.skipped[name] = "not deployed"
        result.state = ApplyState.SUCCEEDED

    async def check_applied(self, name: str) -> Dict[str, Dict[str, bool]]:
        """``{target: {scope: deployed}}`` for every supported scope of every tool."""
        provider = await self.registry.find_provider(name)
        base_urls = [record.url for record in provider.base_urls] if provider else None
        status: Dict[str, Dict[str, bool]] = {}
        for target, adapter in self.adapters.items():
            status[target.value] = {
                scope.value: await adapter.is_deployed(name, scope, base_urls)
                for scope in adapter.supported_scopes
            }
        return status
