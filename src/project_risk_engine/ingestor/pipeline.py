"""Cached, retrying aggregation of on-chain and off-chain project records.

Both records are fetched concurrently and independently; a project can only
be scored when both sides are available, so ``aggregate`` reports per-source
errors and only assembles a ``ProjectRawData`` when neither side failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from project_risk_engine.ingestor.cache import DEFAULT_MAX_SIZE, DataCache
from project_risk_engine.ingestor.models import (
    AggregationResult,
    DataSourceType,
    FetchResult,
    ProjectOffChainData,
    ProjectOnChainData,
    ProjectRawData,
)
from project_risk_engine.ingestor.sources import OffChainSource, OnChainSource

if TYPE_CHECKING:
    from project_risk_engine.config import PipelineSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 8.0
DEFAULT_RETRY_BASE_DELAY = 0.5


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


@dataclass(frozen=True)
class PipelineConfig:
    """Per-call fetch behaviour."""

    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retry_base_delay_seconds: float = DEFAULT_RETRY_BASE_DELAY
    privacy_mode: bool = False

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> PipelineConfig:
        return cls(
            cache_ttl_seconds=settings.cache_ttl_seconds,
            max_retries=settings.max_retries,
            timeout_seconds=settings.timeout_seconds,
            retry_base_delay_seconds=settings.retry_base_delay_seconds,
            privacy_mode=settings.privacy_mode,
        )


async def fetch_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    label: str = "fetch",
) -> T:
    """Run ``fn`` until it succeeds, with a deadline per attempt.

    Makes the initial attempt plus ``max_retries`` retries. A timed-out
    attempt is cancelled and counts as an ordinary retryable failure.

    Raises:
        RetryError: If every attempt failed; carries the last exception.
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await asyncio.wait_for(fn(), timeout=timeout_seconds)
        except TimeoutError:
            last_exception = TimeoutError(f"Timeout after {timeout_seconds:g}s")
        except Exception as e:
            last_exception = e

        if attempt == max_retries:
            break

        delay = base_delay * (2**attempt)
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.2f seconds...",
            label,
            attempt + 1,
            max_retries + 1,
            last_exception,
            delay,
        )
        await asyncio.sleep(delay)

    raise RetryError(
        f"All {max_retries + 1} attempts failed for {label}",
        last_exception=last_exception,
    )


def _error_message(error: RetryError) -> str:
    if error.last_exception is not None:
        return str(error.last_exception) or type(error.last_exception).__name__
    return str(error)


class DataPipeline:
    """Fetches, caches and aggregates project records from two sources.

    The pipeline owns its cache; create one per engine rather than sharing a
    module-level instance.

    Example:
        ```python
        pipeline = DataPipeline(on_chain_source, off_chain_source)
        result = await pipeline.aggregate("proj-1", chain_id=1)
        if result.raw is None:
            print(result.errors)
        ```
    """

    def __init__(
        self,
        on_chain_source: OnChainSource,
        off_chain_source: OffChainSource,
        *,
        config: PipelineConfig | None = None,
        cache: DataCache[Any] | None = None,
    ) -> None:
        self._on_chain_source = on_chain_source
        self._off_chain_source = off_chain_source
        self._config = config or PipelineConfig()
        self._cache: DataCache[Any] = cache if cache is not None else DataCache(DEFAULT_MAX_SIZE)

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @staticmethod
    def on_chain_key(project_id: str, chain_id: int, privacy_mode: bool) -> str:
        variant = "private" if privacy_mode else "full"
        return f"on_chain:{project_id}:{chain_id}:{variant}"

    @staticmethod
    def off_chain_key(project_id: str) -> str:
        return f"off_chain:{project_id}"

    async def fetch_on_chain(
        self,
        project_id: str,
        contract_address: str | None = None,
        chain_id: int = 1,
        config: PipelineConfig | None = None,
    ) -> FetchResult[ProjectOnChainData]:
        cfg = config or self._config
        key = self.on_chain_key(project_id, chain_id, cfg.privacy_mode)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return FetchResult(
                source=DataSourceType.ON_CHAIN,
                data=cached,
                fetched_at=datetime.now(UTC),
                from_cache=True,
            )

        try:
            data = await fetch_with_retry(
                lambda: self._on_chain_source.fetch(project_id, chain_id, contract_address),
                max_retries=cfg.max_retries,
                timeout_seconds=cfg.timeout_seconds,
                base_delay=cfg.retry_base_delay_seconds,
                label=f"on-chain fetch for {project_id}",
            )
        except RetryError as e:
            return FetchResult(
                source=DataSourceType.ON_CHAIN,
                data=None,
                fetched_at=datetime.now(UTC),
                error=_error_message(e),
            )

        if cfg.privacy_mode:
            data = data.sanitized()
        self._cache.set(key, data, cfg.cache_ttl_seconds)
        return FetchResult(source=DataSourceType.ON_CHAIN, data=data, fetched_at=datetime.now(UTC))

    async def fetch_off_chain(
        self,
        project_id: str,
        config: PipelineConfig | None = None,
    ) -> FetchResult[ProjectOffChainData]:
        cfg = config or self._config
        key = self.off_chain_key(project_id)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return FetchResult(
                source=DataSourceType.OFF_CHAIN,
                data=cached,
                fetched_at=datetime.now(UTC),
                from_cache=True,
            )

        try:
            data = await fetch_with_retry(
                lambda: self._off_chain_source.fetch(project_id),
                max_retries=cfg.max_retries,
                timeout_seconds=cfg.timeout_seconds,
                base_delay=cfg.retry_base_delay_seconds,
                label=f"off-chain fetch for {project_id}",
            )
        except RetryError as e:
            return FetchResult(
                source=DataSourceType.OFF_CHAIN,
                data=None,
                fetched_at=datetime.now(UTC),
                error=_error_message(e),
            )

        self._cache.set(key, data, cfg.cache_ttl_seconds)
        return FetchResult(source=DataSourceType.OFF_CHAIN, data=data, fetched_at=datetime.now(UTC))

    async def aggregate(
        self,
        project_id: str,
        chain_id: int = 1,
        contract_address: str | None = None,
        config: PipelineConfig | None = None,
    ) -> AggregationResult:
        """Fetch both records concurrently and combine them.

        Never raises for upstream failures; they are reported in ``errors``.
        """
        on_chain, off_chain = await asyncio.gather(
            self.fetch_on_chain(project_id, contract_address, chain_id, config),
            self.fetch_off_chain(project_id, config),
            return_exceptions=True,
        )

        errors: list[str] = []
        used: list[DataSourceType] = []

        if isinstance(on_chain, BaseException):
            errors.append(f"On-chain fetch failed: {on_chain}")
        elif on_chain.error:
            errors.append(f"On-chain fetch error: {on_chain.error}")
        else:
            used.append(DataSourceType.ON_CHAIN)

        if isinstance(off_chain, BaseException):
            errors.append(f"Off-chain fetch failed: {off_chain}")
        elif off_chain.error:
            errors.append(f"Off-chain fetch error: {off_chain.error}")
        else:
            used.append(DataSourceType.OFF_CHAIN)

        if (
            isinstance(on_chain, BaseException)
            or isinstance(off_chain, BaseException)
            or on_chain.data is None
            or off_chain.data is None
        ):
            logger.warning("Aggregation incomplete for %s: %s", project_id, "; ".join(errors))
            return AggregationResult(raw=None, errors=tuple(errors), data_sources_used=tuple(used))

        raw = ProjectRawData(on_chain=on_chain.data, off_chain=off_chain.data)
        return AggregationResult(raw=raw, errors=tuple(errors), data_sources_used=tuple(used))

    def invalidate(self, project_id: str, chain_id: int | None = None) -> int:
        """Drop cached records for a project.

        Removes the off-chain record and the on-chain records for ``chain_id``
        (every chain and privacy variant when ``chain_id`` is None).

        Returns:
            Number of cache entries removed.
        """
        removed = int(self._cache.invalidate(self.off_chain_key(project_id)))
        if chain_id is not None:
            for private in (False, True):
                key = self.on_chain_key(project_id, chain_id, private)
                removed += int(self._cache.invalidate(key))
            return removed

        def belongs_to_project(key: str) -> bool:
            # Project ids may contain ":", so split from the right.
            parts = key.rsplit(":", 2)
            return len(parts) == 3 and parts[0] == f"on_chain:{project_id}"

        return removed + self._cache.invalidate_matching(belongs_to_project)

    def cache_stats(self) -> dict[str, int]:
        return self._cache.stats()
