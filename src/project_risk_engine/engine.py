"""Risk engine orchestrator.

Wires data aggregation, feature extraction, ensemble scoring and
explanations into a single ``assess`` call. All mutable state (HTTP client,
cache) belongs to the engine instance, so several engines can coexist.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx

from project_risk_engine.config import Settings, get_settings
from project_risk_engine.ingestor.cache import DataCache
from project_risk_engine.ingestor.models import DataSourceType, ProjectRawData
from project_risk_engine.ingestor.pipeline import DataPipeline, PipelineConfig
from project_risk_engine.ingestor.sources import HttpOffChainSource, HttpOnChainSource
from project_risk_engine.monitor.service import RiskMonitor
from project_risk_engine.scoring.config import DEFAULT_MODEL_CONFIG, ModelConfig, load_model_config
from project_risk_engine.scoring.ensemble import EnsembleModel
from project_risk_engine.scoring.explain import Explainer
from project_risk_engine.scoring.features import FeatureExtractor
from project_risk_engine.scoring.models import RiskAssessmentResult

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.5.0"
DEFAULT_BATCH_CONCURRENCY = 5
TOP_FACTOR_COUNT = 5

_BOTH_SOURCES = (DataSourceType.ON_CHAIN, DataSourceType.OFF_CHAIN)


@dataclass(frozen=True)
class AssessmentRequest:
    project_id: str
    chain_id: int = 1
    contract_address: str | None = None

    @classmethod
    def coerce(cls, item: AssessmentRequest | Mapping[str, Any] | str) -> AssessmentRequest:
        if isinstance(item, AssessmentRequest):
            return item
        if isinstance(item, str):
            return cls(project_id=item)
        return cls(
            project_id=str(item["project_id"]),
            chain_id=int(item.get("chain_id", 1)),
            contract_address=item.get("contract_address"),
        )


class RiskEngine:
    """Assesses project risk end to end.

    When no pipeline is given, the engine builds HTTP sources from settings
    and owns the underlying ``httpx.AsyncClient``; use it as an async
    context manager (or call ``close``) to release it.

    Example:
        ```python
        async with RiskEngine() as engine:
            result = await engine.assess("proj-1", chain_id=1)
            if result is None:
                ...  # data unavailable right now, retry later
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pipeline: DataPipeline | None = None,
        http_client: httpx.AsyncClient | None = None,
        model_config: ModelConfig | None = None,
        extractor: FeatureExtractor | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owned_client: httpx.AsyncClient | None = None

        if pipeline is None:
            pipeline_settings = self._settings.pipeline
            client = http_client
            if client is None:
                client = httpx.AsyncClient(timeout=pipeline_settings.timeout_seconds)
                self._owned_client = client
            pipeline = DataPipeline(
                HttpOnChainSource(client, pipeline_settings.on_chain_api_url),
                HttpOffChainSource(client, pipeline_settings.off_chain_api_url),
                config=PipelineConfig.from_settings(pipeline_settings),
                cache=DataCache(pipeline_settings.cache_max_size),
            )
        self._pipeline = pipeline

        if model_config is None:
            config_path = self._settings.model.config_path
            model_config = load_model_config(config_path) if config_path else DEFAULT_MODEL_CONFIG
        self._model = EnsembleModel(model_config)
        self._extractor = extractor or FeatureExtractor()
        self._explainer = Explainer(
            feature_weights=model_config.feature_weights,
            risk_thresholds=model_config.risk_thresholds,
        )

    @property
    def pipeline(self) -> DataPipeline:
        return self._pipeline

    @property
    def model(self) -> EnsembleModel:
        return self._model

    async def assess(
        self,
        project_id: str,
        chain_id: int = 1,
        contract_address: str | None = None,
    ) -> RiskAssessmentResult | None:
        """Fetch, score and explain a project.

        Returns None when either data source is unavailable; that means
        "try again later", not a worst-case score.
        """
        aggregation = await self._pipeline.aggregate(project_id, chain_id, contract_address)
        if aggregation.raw is None:
            logger.warning(
                "Could not fetch data for project %s: %s",
                project_id,
                "; ".join(aggregation.errors),
            )
            return None
        return self.assess_from_raw_data(aggregation.raw, aggregation.data_sources_used)

    def assess_from_raw_data(
        self,
        raw: ProjectRawData,
        data_sources_used: Iterable[DataSourceType | str] = _BOTH_SOURCES,
    ) -> RiskAssessmentResult:
        """Score pre-fetched data. Deterministic for identical input."""
        features = self._extractor.extract(raw)
        risk_score = self._model.compute_risk_score(features)
        risk_level = self._model.classify_risk_level(risk_score.overall)
        prediction = self._model.predict(features)
        top_risks = self._explainer.top_risk_factors(features, TOP_FACTOR_COUNT)
        top_strengths = self._explainer.top_strengths(features, TOP_FACTOR_COUNT)

        return RiskAssessmentResult(
            project_id=raw.project_id,
            timestamp=raw.timestamp,
            risk_level=risk_level,
            risk_score=risk_score,
            success_prediction=prediction,
            top_risk_factors=tuple(top_risks),
            top_strengths=tuple(top_strengths),
            explanation_summary=self._explainer.explanation_summary(
                risk_score, top_risks, top_strengths
            ),
            investor_insights=tuple(
                self._explainer.investor_insights(features, risk_score, top_risks)
            ),
            data_sources_used=tuple(DataSourceType(s) for s in data_sources_used),
            assessment_version=ENGINE_VERSION,
            features=features,
        )

    async def assess_batch(
        self,
        requests: Sequence[AssessmentRequest | Mapping[str, Any] | str],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> dict[str, RiskAssessmentResult | None]:
        """Assess many projects, ``concurrency`` at a time.

        Each slice is fully awaited before the next starts. A failure is
        recorded as None for that project only.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        items = [AssessmentRequest.coerce(r) for r in requests]
        results: dict[str, RiskAssessmentResult | None] = {}

        for start in range(0, len(items), concurrency):
            batch = items[start : start + concurrency]
            outcomes = await asyncio.gather(
                *(self.assess(r.project_id, r.chain_id, r.contract_address) for r in batch),
                return_exceptions=True,
            )
            for request, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning("Assessment of %s failed: %s", request.project_id, outcome)
                    results[request.project_id] = None
                else:
                    results[request.project_id] = outcome

        return results

    def invalidate_project_cache(self, project_id: str, chain_id: int | None = None) -> int:
        return self._pipeline.invalidate(project_id, chain_id)

    def create_monitor(self) -> RiskMonitor:
        """Build a monitor driven by this engine with the configured thresholds."""
        return RiskMonitor(self, self._settings.monitor)

    async def close(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None

    async def __aenter__(self) -> RiskEngine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
