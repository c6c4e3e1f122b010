"""Data ingestion layer - on-chain and off-chain project records."""

from project_risk_engine.ingestor.cache import DataCache
from project_risk_engine.ingestor.models import (
    AggregationResult,
    DataSourceType,
    FetchResult,
    ProjectCategory,
    ProjectOffChainData,
    ProjectOnChainData,
    ProjectRawData,
)
from project_risk_engine.ingestor.pipeline import (
    DataPipeline,
    PipelineConfig,
    RetryError,
    fetch_with_retry,
)
from project_risk_engine.ingestor.sources import (
    DataSourceError,
    HttpOffChainSource,
    HttpOnChainSource,
    OffChainSource,
    OnChainSource,
)

__all__ = [
    "AggregationResult",
    "DataCache",
    "DataPipeline",
    "DataSourceError",
    "DataSourceType",
    "FetchResult",
    "HttpOffChainSource",
    "HttpOnChainSource",
    "OffChainSource",
    "OnChainSource",
    "PipelineConfig",
    "ProjectCategory",
    "ProjectOffChainData",
    "ProjectOnChainData",
    "ProjectRawData",
    "RetryError",
    "fetch_with_retry",
]
