"""Anonymous HTTP download pipeline used for release metadata.

``create_pipeline`` builds an unauthenticated ``httpx.AsyncClient``;
``download`` opens a streaming GET and wraps the response in a
:class:`RetryReader`, which resumes a body interrupted mid-transfer with a
``Range`` request, a bounded number of times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from src.launcher.exceptions import ConfigurationError
from src.shared.constants import APP_NAME, VERSION

logger = logging.getLogger(__name__)

# Resume attempts allowed while reading a single response body
MAX_RETRY_PER_DOWNLOAD_BODY = 5

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class CredentialType(str, Enum):
    """Kinds of credentials a pipeline can be opened with."""

    ANONYMOUS = "anonymous"
    OAUTH_TOKEN = "oauth_token"
    SHARED_KEY = "shared_key"


@dataclass(frozen=True)
class CredentialInfo:
    credential_type: CredentialType = CredentialType.ANONYMOUS


def create_pipeline(
    credential: CredentialInfo,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
) -> httpx.AsyncClient:
    """Open an HTTP pipeline for *credential*.

    Only anonymous pipelines are supported here; authenticated access
    belongs to the storage client.

    Args:
        credential: Credential descriptor.
        transport: Optional transport override (tests pass
            ``httpx.MockTransport``).
        timeout: Request timeout.

    Raises:
        ConfigurationError: For any non-anonymous credential.
    """
    if credential.credential_type is not CredentialType.ANONYMOUS:
        raise ConfigurationError(
            f"Credential type {credential.credential_type.value!r} is not "
            "supported by the anonymous pipeline"
        )
    return httpx.AsyncClient(
        transport=transport,
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": f"{APP_NAME}/{VERSION}"},
    )


class RetryReader:
    """Reads a streamed response body, resuming after transport errors.

    When the connection drops mid-body the reader re-issues the GET with
    ``Range: bytes=<offset>-``.  A server that ignores the range and
    answers ``200`` restarts the body from scratch.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: httpx.URL,
        response: httpx.Response,
        max_retry_requests: int = MAX_RETRY_PER_DOWNLOAD_BODY,
    ) -> None:
        self._client = client
        self._url = url
        self._response: httpx.Response | None = response
        self.max_retry_requests = max_retry_requests
        self.retries = 0

    async def read(self) -> bytes:
        """Read the whole body.

        Raises:
            httpx.HTTPError: When the retry budget is exhausted or a resume
                request fails.
        """
        buf = bytearray()
        while True:
            response = self._response
            if response is None:
                response = await self._resume(len(buf))
                if response.status_code != 206:
                    buf.clear()
                self._response = response
            try:
                async for chunk in response.aiter_bytes():
                    buf.extend(chunk)
                return bytes(buf)
            except httpx.TransportError:
                await response.aclose()
                self._response = None
                if self.retries >= self.max_retry_requests:
                    raise
                self.retries += 1
                logger.debug(
                    "Body read interrupted at %d bytes; retry %d/%d",
                    len(buf), self.retries, self.max_retry_requests,
                )

    async def _resume(self, offset: int) -> httpx.Response:
        headers = {"Range": f"bytes={offset}-"} if offset else {}
        request = self._client.build_request("GET", self._url, headers=headers)
        response = await self._client.send(request, stream=True)
        if response.is_error:
            await response.aclose()
            response.raise_for_status()
        return response

    async def aclose(self) -> None:
        if self._response is not None:
            await self._response.aclose()
            self._response = None


async def download(
    client: httpx.AsyncClient,
    url: httpx.URL,
    *,
    max_retry_requests: int = MAX_RETRY_PER_DOWNLOAD_BODY,
) -> RetryReader:
    """Start a streaming download of *url*.

    Raises:
        httpx.HTTPError: If the request fails or returns an error status.
    """
    request = client.build_request("GET", url)
    response = await client.send(request, stream=True)
    if response.is_error:
        await response.aclose()
        response.raise_for_status()
    return RetryReader(client, url, response, max_retry_requests=max_retry_requests)
