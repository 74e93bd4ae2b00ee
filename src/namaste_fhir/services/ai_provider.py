"""
Generative AI provider client.

Wraps the Gemini ``generateContent`` endpoint behind a one-method
``generate(prompt) -> text`` interface.
"""

import logging
from typing import Optional, Protocol

import httpx

from namaste_fhir.errors import AIProviderFailure

logger = logging.getLogger(__name__)


class AIProvider(Protocol):
    """Opaque text generation capability."""

    @property
    def configured(self) -> bool: ...

    async def generate(self, prompt: str) -> str: ...


class GeminiProvider:
    """Gemini REST client."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        model: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.api_url.rstrip('/')}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the first candidate's text.

        Raises:
            AIProviderFailure: No API key, timeout, HTTP error or empty response
        """
        if not self.api_key:
            raise AIProviderFailure("Gemini API key not configured")

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.3,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 2048,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise AIProviderFailure(f"Gemini request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise AIProviderFailure(
                f"Gemini API error: {e.response.status_code} - {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise AIProviderFailure(f"Gemini request failed: {e}") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderFailure("No response from Gemini API") from e
