"""
Directory collaborator client.
Enumerates the Group Policy links under a watched root through the directory
query gateway.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gpowatch.core.config import settings
from gpowatch.core.exceptions import DirectoryQueryFailure, GatewayAuthFailure
from gpowatch.services.auth import gateway_headers

logger = logging.getLogger(__name__)

# Constants for retry mechanism
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds


class LinkedPolicy(BaseModel):
    """One policy link as reported by the directory gateway."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    identifier: str = Field(alias="id")
    display_name: str = Field(alias="displayName")
    modification_time: datetime = Field(alias="modificationTime")
    enabled: bool = True
    location: str = ""


class DirectoryClient:
    """Client for the directory query gateway."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.DIRECTORY_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.transport = transport

    async def list_linked_policies(self, root_path: str) -> List[LinkedPolicy]:
        """
        List every policy linked anywhere under ``root_path``.

        Args:
            root_path: Distinguished name of the watched subtree

        Returns:
            One entry per policy link, nested subtrees included

        Raises:
            DirectoryQueryFailure: the gateway could not be queried or answered
                with something that is not a list of policy links
        """
        items = await self._fetch(root_path)

        policies = []
        try:
            for item in items:
                policies.append(LinkedPolicy.model_validate(item))
        except ValidationError as e:
            raise DirectoryQueryFailure(f"Malformed policy link from directory gateway: {e}") from e

        logger.info(f"Directory gateway returned {len(policies)} policy links under {root_path}")
        return policies

    async def _fetch(self, root_path: str) -> list:
        try:
            headers = await gateway_headers()
        except GatewayAuthFailure as e:
            raise DirectoryQueryFailure(e.message) from e

        last_error = "no attempt made"
        for attempt in range(self.retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.get(
                        f"{self.base_url}/gpo/links",
                        params={"root": root_path},
                        headers=headers
                    )

                if response.status_code == 200:
                    payload = response.json()
                    items = payload.get("value") if isinstance(payload, dict) else None
                    if not isinstance(items, list):
                        raise DirectoryQueryFailure("Directory gateway response has no 'value' list")
                    return items

                last_error = f"HTTP {response.status_code}: {response.text}"
                if response.status_code == 429 or response.status_code >= 500:
                    # Rate limiting or server error - retry after delay
                    retry_after = float(response.headers.get("Retry-After", self.retry_delay))
                    logger.warning(f"Directory gateway unavailable ({last_error}). Retrying after {retry_after}s...")
                    if attempt < self.retries - 1:
                        await asyncio.sleep(retry_after)
                else:
                    logger.error(f"Directory query failed: {last_error}")
                    break
            except (httpx.HTTPError, ValueError) as e:
                last_error = str(e)
                logger.warning(f"Exception querying directory gateway: {last_error}")
                if attempt < self.retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))  # Exponential backoff

        raise DirectoryQueryFailure(f"Cannot enumerate policies under {root_path}: {last_error}")
