"""
Signing key resolution for ABHA tokens.

Fetches the identity provider's JWKS document and returns the public key
for a key id. Caching is done by the token verifier, not here.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
import jwt

from namaste_fhir.errors import KeyFetchFailed, ServiceUnavailable

logger = logging.getLogger(__name__)


class KeyProvider(Protocol):
    """Resolves a key id to verification key material."""

    async def get_key(self, key_id: str) -> jwt.PyJWK: ...


class JwksKeyProvider:
    """Key provider backed by a remote JWKS endpoint."""

    def __init__(
        self,
        jwks_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.jwks_url = jwks_url
        self.timeout = timeout
        self.transport = transport

    async def get_key(self, key_id: str) -> jwt.PyJWK:
        """
        Fetch the JWKS and return the key with the given id.

        Raises:
            ServiceUnavailable: The endpoint timed out or refused the connection
            KeyFetchFailed: Non-2xx response, malformed JWKS, or unknown key id
        """
        document = await self._fetch()

        keys = document.get("keys")
        if not isinstance(keys, list):
            raise KeyFetchFailed("JWKS document has no 'keys' array", {"kid": key_id})

        for entry in keys:
            if isinstance(entry, dict) and entry.get("kid") == key_id:
                try:
                    key = jwt.PyJWK(entry)
                except jwt.PyJWTError as e:
                    raise KeyFetchFailed(f"Unusable signing key '{key_id}': {e}", {"kid": key_id}) from e
                logger.info("Fetched signing key %s from %s", key_id, self.jwks_url)
                return key

        logger.warning("Key id %s not published at %s", key_id, self.jwks_url)
        raise KeyFetchFailed(f"Unknown signing key id '{key_id}'", {"kid": key_id})

    async def _fetch(self) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.jwks_url, headers={"Accept": "application/json"})
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.warning("JWKS endpoint unreachable: %s", e)
            raise ServiceUnavailable("ABHA key service unavailable") from e
        except httpx.HTTPError as e:
            raise KeyFetchFailed(f"JWKS request failed: {e}") from e

        if response.status_code >= 400:
            raise KeyFetchFailed(f"JWKS endpoint returned HTTP {response.status_code}")

        try:
            document = response.json()
        except ValueError as e:
            raise KeyFetchFailed("JWKS endpoint returned invalid JSON") from e

        if not isinstance(document, dict):
            raise KeyFetchFailed("JWKS document is not an object")
        return document
