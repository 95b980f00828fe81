"""Endpoint latency prober.

Each candidate URL gets ``trial_count`` sequential, authenticated model-list
requests; URLs are probed concurrently. A URL's latency is the low median of
its successful trials, so the figure is always one that was actually
observed. Network problems are captured per URL and never raised.
"""

from __future__ import annotations

import asyncio
import statistics
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from switchyard.core.config import QualityThresholds
from switchyard.core.errors import ProbeError, ProviderNotFoundError, ProviderValidationError
from switchyard.core.inference import (
    ensure_v1_suffix,
    is_origin_only,
    is_zhipu_url,
    preset_models,
    speaks_anthropic,
    strip_trailing_slash,
)
from switchyard.core.models import (
    BaseUrlRecord,
    ModelType,
    Protocol,
    ProviderUrlsTestResult,
    UrlQuality,
    UrlTestResult,
    utc_now,
)
from switchyard.core.registry import ProviderRegistry
from switchyard.utils.log import get_logger


logger = get_logger()

ANTHROPIC_VERSION = "2023-06-01"
# Authentication rejected counts as a failed trial even though the host answered.
_AUTH_FAILURE_STATUSES = frozenset({401, 403, 407})


def classify_latency(latency_ms: int, thresholds: Optional[QualityThresholds] = None) -> UrlQuality:
    """Bucket a successful latency; lower latency never yields a worse bucket."""
    limits = thresholds or QualityThresholds()
    if latency_ms < limits.excellent:
        return UrlQuality.EXCELLENT
    if latency_ms < limits.good:
        return UrlQuality.GOOD
    if latency_ms < limits.fair:
        return UrlQuality.FAIR
    return UrlQuality.POOR


def is_trial_success(status_code: int) -> bool:
    return status_code < 500 and status_code not in _AUTH_FAILURE_STATUSES


def build_probe_request(
    base_url: str,
    api_key: str,
    model_type: ModelType,
    protocol: Optional[Protocol] = None,
) -> Tuple[str, Dict[str, str]]:
    """URL and headers of the lightweight model-list call for a protocol family."""
    base = strip_trailing_slash(base_url.strip())
    if model_type == ModelType.GEMINI and protocol in (None, Protocol.OPENAI_COMPATIBLE):
        url = f"{base}/models" if base.endswith("/v1beta") else f"{base}/v1beta/models"
        return url, {"x-goog-api-key": api_key}
    if model_type == ModelType.CLAUDE or protocol == Protocol.ANTHROPIC:
        url = f"{ensure_v1_suffix(base)}/models"
        return url, {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
    return f"{base}/models", {"Authorization": f"Bearer {api_key}"}


def select_fastest(results: Sequence[UrlTestResult]) -> Tuple[Optional[str], Optional[int]]:
    """Minimum successful latency; ties go to the URL listed first."""
    best: Optional[UrlTestResult] = None
    for result in results:
        if not result.success or result.latency_ms is None:
            continue
        if best is None or result.latency_ms < (best.latency_ms or 0):
            best = result
    if best is None:
        return None, None
    return best.url, best.latency_ms


class EndpointProber:
    """Measures candidate base URLs and optionally commits the fastest one."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        trial_count: int = 3,
        timeout_sec: float = 10.0,
        thresholds: Optional[QualityThresholds] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.registry = registry
        self.trial_count = trial_count
        self.timeout_sec = timeout_sec
        self.thresholds = thresholds or QualityThresholds()
        self.transport = transport
        self.clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_sec,
            transport=self.transport,
            follow_redirects=False,
        )

    async def _probe_url(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        model_type: ModelType,
        protocol: Optional[Protocol],
        trial_count: int,
    ) -> UrlTestResult:
        request_url, headers = build_probe_request(base_url, api_key, model_type, protocol)
        trial_latencies: List[Optional[int]] = []
        successes: List[int] = []
        last_error: Optional[str] = None
        last_elapsed = 0

        for _ in range(trial_count):
            started = self.clock()
            try:
                response = await client.get(request_url, headers=headers)
            except httpx.HTTPError as exc:
                last_elapsed = _elapsed_ms(started, self.clock())
                last_error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
                trial_latencies.append(None)
                continue
            last_elapsed = _elapsed_ms(started, self.clock())
            if is_trial_success(response.status_code):
                successes.append(last_elapsed)
                trial_latencies.append(last_elapsed)
            else:
                last_error = f"HTTP {response.status_code}"
                trial_latencies.append(None)

        if not successes:
            logger.debug(
                "[prober] %s failed all trials: %s",
                base_url,
                last_error,
                extra={"trials": trial_count},
            )
            return UrlTestResult(
                url=base_url,
                success=False,
                latency_ms=last_elapsed,
                quality=UrlQuality.FAILED,
                successful_trials=0,
                total_trials=trial_count,
                trial_latencies_ms=trial_latencies,
                error_message=last_error or "no successful trial",
            )

        latency = int(statistics.median_low(successes))
        return UrlTestResult(
            url=base_url,
            success=True,
            latency_ms=latency,
            quality=classify_latency(latency, self.thresholds),
            successful_trials=len(successes),
            total_trials=trial_count,
            trial_latencies_ms=trial_latencies,
        )

    async def test_urls(
        self,
        provider_name: str,
        urls: Sequence[str],
        api_key: str,
        model_type: ModelType,
        trial_count: Optional[int] = None,
        protocol: Optional[Protocol] = None,
    ) -> ProviderUrlsTestResult:
        """Probe ``urls`` in parallel. Pure measurement: nothing is persisted."""
        if await self.registry.find_provider(provider_name) is None:
            raise ProviderNotFoundError(provider_name)
        if not urls:
            raise ProviderValidationError("base_urls", "no URLs to test")
        if not api_key or not api_key.strip():
            raise ProviderValidationError("api_key", "API key must not be empty")
        trials = trial_count if trial_count is not None else self.trial_count
        if trials < 1:
            raise ProviderValidationError("trial_count", "trial_count must be at least 1")

        logger.debug(
            "[prober] Testing %d URL(s) for %s",
            len(urls),
            provider_name,
            extra={"trial_count": trials, "model_type": model_type.value},
        )
        async with self._client() as client:
            results = await asyncio.gather(
                *(
                    self._probe_url(client, url, api_key, model_type, protocol, trials)
                    for url in urls
                )
            )

        fastest_url, fastest_latency = select_fastest(results)
        logger.info(
            "[prober] %s fastest URL: %s",
            provider_name,
            fastest_url or "none",
            extra={"fastest_latency_ms": fastest_latency},
        )
        return ProviderUrlsTestResult(
            provider_name=provider_name,
            results=list(results),
            fastest_url=fastest_url,
            fastest_latency_ms=fastest_latency,
        )

    async def test_and_auto_select_fastest(
        self, provider_name: str, trial_count: Optional[int] = None
    ) -> ProviderUrlsTestResult:
        """Probe every candidate URL, persist all measurements and activate the fastest.

        Cancelling before the measurement finishes leaves the registry
        untouched; once the commit starts it completes.
        """
        provider = await self.registry.get_provider(provider_name)
        result = await self.test_urls(
            provider.name,
            [record.url for record in provider.base_urls],
            provider.api_key,
            provider.model_type,
            trial_count,
            provider.protocol,
        )
        await asyncio.shield(self._commit(provider_name, result))
        return result

    async def _commit(self, provider_name: str, result: ProviderUrlsTestResult) -> None:
        provider = await self.registry.get_provider(provider_name)
        tested_at = utc_now()
        measured = {item.url: item for item in result.results}
        records: List[BaseUrlRecord] = []
        for record in provider.base_urls:
            measurement = measured.get(record.url)
            if measurement is None or measurement.latency_ms is None:
                records.append(record)
                continue
            records.append(
                BaseUrlRecord(
                    url=record.url,
                    latency_ms=measurement.latency_ms,
                    last_tested=tested_at,
                    quality=measurement.quality,
                )
            )

        active = provider.base_url
        if result.fastest_url and any(record.url == result.fastest_url for record in records):
            active = result.fastest_url
        await self.registry.replace_base_urls(provider_name, records, active)
        logger.info(
            "[prober] Committed probe results for %s",
            provider_name,
            extra={"active_url": active, "tested": len(measured)},
        )

    async def fetch_site_models(self, provider_name: str) -> List[str]:
        """Preset ids for well-known families, or the live ``/models`` listing."""
        provider = await self.registry.get_provider(provider_name)
        live = (
            provider.protocol == Protocol.OPENAI_COMPATIBLE
            and provider.model_type != ModelType.GEMINI
            and not is_zhipu_url(provider.base_url)
        )
        if not live or speaks_anthropic(
            provider.model_type, provider.protocol, provider.npm, provider.base_url
        ):
            presets = preset_models(provider.model_type, provider.base_url, provider.npm)
            if presets is not None:
                return presets

        base = strip_trailing_slash(provider.base_url)
        if is_origin_only(base):
            base = ensure_v1_suffix(base)
        async with self._client() as client:
            try:
                response = await client.get(
                    f"{base}/models",
                    headers={"Authorization": f"Bearer {provider.api_key}"},
                )
            except httpx.HTTPError as exc:
                raise ProbeError(f"fetching models failed: {type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise ProbeError(f"fetching models failed: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProbeError("fetching models failed: response is not JSON") from exc

        entries = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise ProbeError("fetching models failed: unexpected response shape")
        model_ids: List[str] = []
        for entry in entries:
            model_id = entry.get("id") if isinstance(entry, dict) else entry
            if isinstance(model_id, str) and model_id and model_id not in model_ids:
                model_ids.append(model_id)
        return model_ids


def _elapsed_ms(started: float, finished: float) -> int:
    return max(0, int(round((finished - started) * 1000)))
