"""Gemini summary enrichment via the google-genai SDK."""

import asyncio
import logging
from typing import Optional

from google import genai

from ...core.errors import EnrichmentFailure
from .base_provider import SummaryProvider

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "You are a knowledge management assistant. Provide a very brief, "
    "single-sentence summary (maximum 40 words) of the following document. "
    "It will be stored as metadata in a knowledge base.\n\n{content}"
)


class GeminiSummarizer(SummaryProvider):
    """Best-effort one-sentence summaries.

    Input is truncated so very large files cannot exhaust the token budget,
    and each call is bounded by a soft timeout.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        max_chars: int = 10_000,
        timeout_seconds: float = 20.0,
        client: Optional[genai.Client] = None,
    ):
        self.model_name = model_name
        self.max_chars = max_chars
        self.timeout = timeout_seconds
        self._client = client or genai.Client(api_key=api_key)

    async def summarize(self, text: str) -> str:
        prompt = SUMMARY_PROMPT.format(content=text[:self.max_chars])
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(model=self.model_name, contents=prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise EnrichmentFailure(f"Summary timed out after {self.timeout}s") from e
        except Exception as e:
            # SDK raises a variety of client/server errors; none may abort a push
            raise EnrichmentFailure(f"Gemini summary failed: {e}") from e

        summary = (response.text or "").strip()
        if not summary:
            raise EnrichmentFailure("Gemini returned an empty summary")
        return summary
