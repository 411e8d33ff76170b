"""Content Store — Pinata pinning over httpx for profile images.

Invariants:
    - upload() returns a gateway URL, never a bare CID
    - Missing/placeholder JWT raises NotConfiguredError without any IO
    - Non-2xx responses, transport errors and 2xx bodies without an IpfsHash raise
      ContentUploadError (no retry here)

Design Decisions:
    - httpx.AsyncClient injected: tests drive it with httpx.MockTransport
    - Fallback to inline content is the registration service's decision, not the store's
"""

import json
import logging
from datetime import datetime, timezone

import httpx

from talk2me.config import Settings
from talk2me.core.errors import ContentUploadError, NotConfiguredError

logger = logging.getLogger(__name__)

MIN_JWT_LENGTH = 20
PLACEHOLDER_JWT = "YOUR_PINATA_JWT"


def resolve_content_url(reference: str, gateway_url: str) -> str:
    """Full URL for a stored reference; URLs and inline data pass through."""
    if reference.startswith(("http", "data:")):
        return reference
    return f"{gateway_url.rstrip('/')}/{reference}"


class PinataContentStore:
    """ContentStore implementation backed by Pinata's pinFileToIPFS endpoint."""

    def __init__(
        self,
        jwt: str | None,
        api_url: str,
        gateway_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ):
        self.jwt = jwt
        self.api_url = api_url
        self.gateway_url = gateway_url
        self._client = client
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None,
    ) -> "PinataContentStore":
        return cls(
            settings.pinata_jwt, settings.pinata_api_url,
            settings.pinata_gateway_url, client,
            settings.content_upload_timeout_s,
        )

    @property
    def is_configured(self) -> bool:
        return bool(
            self.jwt and self.jwt != PLACEHOLDER_JWT
            and len(self.jwt) > MIN_JWT_LENGTH
        )

    async def upload(self, data: bytes, filename: str, mime_type: str) -> str:
        if not self.is_configured:
            raise NotConfiguredError("pinata")

        metadata = json.dumps({
            "name": f"talk2me_profile_{int(datetime.now(timezone.utc).timestamp() * 1000)}",
            "keyvalues": {
                "app": "talk2me",
                "uploadTime": datetime.now(timezone.utc).isoformat(),
            },
        })
        try:
            response = await self._post(
                files={"file": (filename, data, mime_type)},
                data={"pinataMetadata": metadata},
            )
        except httpx.HTTPError as e:
            raise ContentUploadError(f"Pinata unreachable: {e}") from e

        if response.status_code >= 400:
            body = response.text
            if response.status_code == 403 and "NO_SCOPES_FOUND" in body:
                logger.warning("Pinata JWT missing pinFileToIPFS scope")
            raise ContentUploadError(
                f"Pinata upload failed: {response.status_code} {body[:200]}",
                response.status_code,
            )

        try:
            cid = response.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as e:
            raise ContentUploadError(
                f"Pinata returned no IpfsHash: {response.text[:200]}",
                response.status_code,
            ) from e
        logger.info(f"Pinned profile image {cid}")
        return resolve_content_url(cid, self.gateway_url)

    async def _post(self, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.jwt}"}
        if self._client is not None:
            return await self._client.post(self.api_url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await client.post(self.api_url, headers=headers, **kwargs)
