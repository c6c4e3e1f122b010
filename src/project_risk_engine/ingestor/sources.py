"""Upstream data sources for on-chain and off-chain project records."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from project_risk_engine.ingestor.models import ProjectOffChainData, ProjectOnChainData

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class DataSourceError(Exception):
    """Raised when an upstream source answers with an error or a bad payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OnChainSource(Protocol):
    async def fetch(
        self,
        project_id: str,
        chain_id: int,
        contract_address: str | None = None,
    ) -> ProjectOnChainData: ...


class OffChainSource(Protocol):
    async def fetch(self, project_id: str) -> ProjectOffChainData: ...


async def _get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    label: str,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    response = await client.get(url, params=params, headers=DEFAULT_HEADERS)
    if response.status_code < 200 or response.status_code >= 300:
        raise DataSourceError(
            f"{label} API responded with {response.status_code}",
            status_code=response.status_code,
        )
    payload = response.json()
    if not isinstance(payload, dict):
        raise DataSourceError(f"{label} API returned a non-object payload")
    return payload


class HttpOnChainSource:
    """On-chain snapshots from an indexer exposing ``/projects/{id}/on-chain``."""

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch(
        self,
        project_id: str,
        chain_id: int,
        contract_address: str | None = None,
    ) -> ProjectOnChainData:
        params: dict[str, Any] = {"chainId": chain_id}
        if contract_address:
            params["contractAddress"] = contract_address
        payload = await _get_json(
            self._client,
            f"{self._base_url}/projects/{project_id}/on-chain",
            label="On-chain",
            params=params,
        )
        payload.setdefault("chainId", chain_id)
        try:
            return ProjectOnChainData.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Malformed on-chain payload: {e}") from e


class HttpOffChainSource:
    """Project metadata from the projects API (``/projects/{id}``)."""

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch(self, project_id: str) -> ProjectOffChainData:
        payload = await _get_json(
            self._client,
            f"{self._base_url}/projects/{project_id}",
            label="Off-chain",
        )
        payload.setdefault("projectId", project_id)
        try:
            return ProjectOffChainData.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Malformed off-chain payload: {e}") from e
