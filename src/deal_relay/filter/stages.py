"""Stage directories and stage name resolution."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

UNKNOWN_STAGE = "Unknown stage"
DEFAULT_PIPEDRIVE_BASE_URL = "https://api.pipedrive.com/v1"


class StageDirectory(Protocol):
    """Lookup from a stage identifier to its display name."""

    def get_stage_name(self, stage_id: Any) -> str | None:
        """Return the stage name, or None if the stage is unknown."""
        ...


class InMemoryStageDirectory:
    """Stage directory backed by a fixed mapping.

    Keys are compared as strings so that ``3`` and ``"3"`` name the same stage.
    """

    def __init__(self, stages: Mapping[Any, str] | None = None) -> None:
        self._stages = {str(k): v for k, v in (stages or {}).items()}

    def get_stage_name(self, stage_id: Any) -> str | None:
        return self._stages.get(str(stage_id))


class PipedriveStageDirectory:
    """Stage directory that queries the Pipedrive REST API.

    Lookups never raise: transport errors, error responses and responses
    without a name all map to None.
    """

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = DEFAULT_PIPEDRIVE_BASE_URL,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the directory.

        Args:
            api_token: Pipedrive API token.
            base_url: API base URL.
            timeout: HTTP request timeout in seconds.
        """
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def get_stage_name(self, stage_id: Any) -> str | None:
        url = f"{self.base_url}/stages/{stage_id}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url, params={"api_token": self.api_token})
        except httpx.HTTPError as e:
            logger.warning(f"Stage lookup for {stage_id} failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Stage lookup for {stage_id} returned {response.status_code}")
            return None

        try:
            data = response.json().get("data") or {}
        except ValueError:
            logger.warning(f"Stage lookup for {stage_id} returned invalid JSON")
            return None

        name = data.get("name") if isinstance(data, dict) else None
        return str(name) if name else None


class StageNameResolver:
    """Resolves stage ids to display names with a placeholder for unknown ids.

    One resolver is used per batch; names are cached for its lifetime.
    """

    def __init__(self, directory: StageDirectory) -> None:
        self.directory = directory
        self._cache: dict[str, str] = {}

    def resolve(self, stage_id: Any) -> str:
        """Return the stage name, or ``UNKNOWN_STAGE``. Never raises."""
        key = str(stage_id)
        if key in self._cache:
            return self._cache[key]

        name: str | None
        if stage_id is None:
            name = None
        else:
            try:
                name = self.directory.get_stage_name(stage_id)
            except Exception as e:
                logger.error(f"Stage directory failed for {stage_id}: {e}")
                name = None

        resolved = name.strip() if isinstance(name, str) else ""
        result = resolved or UNKNOWN_STAGE
        self._cache[key] = result
        return result
