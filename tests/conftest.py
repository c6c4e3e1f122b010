"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from project_risk_engine.config import Settings
from project_risk_engine.engine import RiskEngine
from project_risk_engine.ingestor.models import (
    ProjectCategory,
    ProjectOffChainData,
    ProjectOnChainData,
    ProjectRawData,
)
from project_risk_engine.ingestor.pipeline import DataPipeline, PipelineConfig

FIXED_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def sample_project_id() -> str:
    """Sample project ID for testing."""
    return "proj-aurora"


@pytest.fixture
def make_on_chain() -> Callable[..., ProjectOnChainData]:
    """Factory for on-chain records with healthy defaults."""

    def factory(**overrides: Any) -> ProjectOnChainData:
        values: dict[str, Any] = {
            "chain_id": 1,
            "total_raised": 80_000.0,
            "contributor_count": 320,
            "average_contribution": 250.0,
            "largest_contribution": 8_000.0,
            "funding_velocity": 2_500.0,
            "days_active": 30.0,
            "has_multisig": True,
            "on_chain_activity_score": 70.0,
            "contract_address": "0x" + "ab" * 20,
            "contract_audit_score": 85.0,
            "tokenomics_score": 60.0,
            "liquidity_depth": 150_000.0,
        }
        values.update(overrides)
        return ProjectOnChainData(**values)

    return factory


@pytest.fixture
def make_off_chain(sample_project_id: str) -> Callable[..., ProjectOffChainData]:
    """Factory for off-chain records with healthy defaults."""

    def factory(**overrides: Any) -> ProjectOffChainData:
        values: dict[str, Any] = {
            "project_id": sample_project_id,
            "title": "Aurora Protocol",
            "category": ProjectCategory.DEFI,
            "team_size": 8,
            "team_experience_years": 4.0,
            "whitepaper_score": 75.0,
            "roadmap_clarity": 70.0,
            "partnership_count": 2,
            "advisor_count": 3,
            "advisor_quality_score": 65.0,
            "legal_compliance_score": 80.0,
            "media_score": 55.0,
            "sentiment_score": 0.4,
            "funding_goal": 100_000.0,
            "funding_deadline_days": 60.0,
            "milestone_count": 6,
            "github_commits": 150,
            "github_stars": 300,
            "github_contributors": 12,
            "twitter_followers": 6_000,
            "discord_members": 2_500,
            "previous_projects_success_rate": 0.6,
            "milestone_completion_rate": 0.5,
        }
        values.update(overrides)
        return ProjectOffChainData(**values)

    return factory


@pytest.fixture
def make_raw(
    make_on_chain: Callable[..., ProjectOnChainData],
    make_off_chain: Callable[..., ProjectOffChainData],
) -> Callable[..., ProjectRawData]:
    """Factory for raw records; keyword dicts override each side."""

    def factory(
        on_chain: dict[str, Any] | None = None,
        off_chain: dict[str, Any] | None = None,
    ) -> ProjectRawData:
        return ProjectRawData(
            on_chain=make_on_chain(**(on_chain or {})),
            off_chain=make_off_chain(**(off_chain or {})),
            timestamp=FIXED_TIME,
        )

    return factory


@pytest.fixture
def raw_data(make_raw: Callable[..., ProjectRawData]) -> ProjectRawData:
    return make_raw()


@pytest.fixture
def on_chain_source(make_on_chain: Callable[..., ProjectOnChainData]) -> MagicMock:
    """On-chain source double answering with the default record."""
    source = MagicMock()
    source.fetch = AsyncMock(return_value=make_on_chain())
    return source


@pytest.fixture
def off_chain_source(make_off_chain: Callable[..., ProjectOffChainData]) -> MagicMock:
    """Off-chain source double answering with the default record."""
    source = MagicMock()
    source.fetch = AsyncMock(return_value=make_off_chain())
    return source


@pytest.fixture
def fast_config() -> PipelineConfig:
    """Pipeline config with no backoff delay and a short deadline."""
    return PipelineConfig(
        cache_ttl_seconds=60.0,
        max_retries=3,
        timeout_seconds=0.05,
        retry_base_delay_seconds=0.0,
    )


@pytest.fixture
def pipeline(
    on_chain_source: MagicMock,
    off_chain_source: MagicMock,
    fast_config: PipelineConfig,
) -> DataPipeline:
    return DataPipeline(on_chain_source, off_chain_source, config=fast_config)


@pytest.fixture
def risk_engine(pipeline: DataPipeline) -> RiskEngine:
    """Engine over mocked sources with built-in settings."""
    return RiskEngine(Settings(), pipeline=pipeline)
