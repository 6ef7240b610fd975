"""Dify knowledge-base destination.

Creates dataset documents from text using one profile's API key.
"""

import logging
from typing import Optional

import httpx

from ...core.errors import DestinationRejected, NetworkFailure
from ...core.settings import Profile
from .base_provider import DestinationProvider, DestinationResult

logger = logging.getLogger(__name__)


class DifyDestination(DestinationProvider):
    """Pushes documents into a Dify dataset.

    One instance per profile. Requests are not retried: a rejected or
    failed push is reported and picked up again by the next sync pass.

    Example:
        >>> destination = DifyDestination(profile)
        >>> await destination.create_document(profile.dataset_id, "Notes", "...")
    """

    def __init__(
        self,
        profile: Profile,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize destination.

        Args:
            profile: Profile holding base URL and API key.
            timeout_seconds: HTTP request timeout.
            transport: Optional httpx transport (used by tests).
        """
        self.profile = profile
        self.timeout = timeout_seconds
        self._transport = transport

    def _document_url(self, dataset_id: str) -> str:
        base_url = self.profile.base_url.rstrip("/")
        return f"{base_url}/datasets/{dataset_id}/document/create_by_text"

    async def create_document(self, dataset_id: str, name: str, text: str) -> DestinationResult:
        if not self.profile.api_key:
            raise DestinationRejected(f"Profile '{self.profile.name}' has no API key configured")
        if not dataset_id:
            raise DestinationRejected(f"Profile '{self.profile.name}' has no dataset configured")

        body = {
            "name": name,
            "text": text,
            "indexing_technique": "high_quality",
            "process_rule": {"mode": "automatic"},
        }
        headers = {"Authorization": f"Bearer {self.profile.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self._document_url(dataset_id), json=body, headers=headers)
        except httpx.TransportError as e:
            raise NetworkFailure(f"Could not reach {self.profile.base_url}: {e}") from e

        if response.is_error:
            raise DestinationRejected(self._error_message(response), status_code=response.status_code)

        document_id = None
        try:
            document_id = response.json().get("document", {}).get("id")
        except ValueError:
            logger.debug("Dify response for %s was not JSON", name)

        logger.info(f"Indexed '{name}' into dataset {dataset_id} ({self.profile.name})")
        return DestinationResult(
            success=True,
            message=f"Document indexed in profile {self.profile.name}",
            document_id=document_id,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text[:500] or f"HTTP {response.status_code}"
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"HTTP {response.status_code}"
