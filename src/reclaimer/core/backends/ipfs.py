# src/reclaimer/core/backends/ipfs.py
"""IPFS pin client: ContentAddressedStore over the IPFS HTTP API.

Deleting content-addressed data means unpinning its hash so the node's
garbage collector can reclaim the blocks. Unpinning is idempotent here:
a hash that is not pinned counts as already unpinned.

The API answers "not pinned" with a 500 and that text in the body; that
response is a definitive answer, not a server failure, and is never
retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from reclaimer.contracts.errors import (
    BackendUnavailableError,
    PermanentBackendError,
    TransientBackendError,
)
from reclaimer.core.logging import get_logger
from reclaimer.core.retry import MaxRetriesExceeded, RetryConfig, RetryManager

if TYPE_CHECKING:
    from reclaimer.core.config import IpfsSettings, RetrySettings

logger = get_logger(__name__)

_BACKEND = "ipfs"
_NOT_PINNED_MARKER = "not pinned"


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, TransientBackendError)


class IpfsPinClient:
    """Pin presence checks and unpinning against an IPFS node.

    Example:
        with IpfsPinClient("http://localhost:5001/api/v0") as ipfs:
            if ipfs.is_pinned(cid):
                ipfs.unpin(cid)
    """

    def __init__(
        self,
        api_url: str,
        *,
        retry: RetryManager | None = None,
        client: httpx.Client | None = None,
        connect_timeout: float = 5.0,
        pin_ls_timeout: float = 10.0,
        pin_rm_timeout: float = 30.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: RPC API base URL, e.g. "http://localhost:5001/api/v0"
            retry: Retry policy for transient failures (default: 3 attempts)
            client: Pre-built httpx.Client (tests pass one with a MockTransport)
            connect_timeout: TCP connect timeout in seconds
            pin_ls_timeout: Read timeout for pin/ls
            pin_rm_timeout: Read timeout for pin/rm (recursive unpins are slow)
        """
        self._api_url = api_url.rstrip("/")
        self._retry = retry or RetryManager(RetryConfig())
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._connect_timeout = connect_timeout
        self._pin_ls_timeout = pin_ls_timeout
        self._pin_rm_timeout = pin_rm_timeout

    @classmethod
    def from_settings(cls, settings: IpfsSettings, retry: RetrySettings) -> IpfsPinClient:
        return cls(
            settings.api_url,
            retry=RetryManager(RetryConfig.from_settings(retry)),
            connect_timeout=settings.connect_timeout_seconds,
            pin_ls_timeout=settings.pin_ls_timeout_seconds,
            pin_rm_timeout=settings.pin_rm_timeout_seconds,
        )

    # -- ContentAddressedStore --------------------------------------------------

    def is_pinned(self, content_hash: str) -> bool:
        """Check whether the hash is pinned (directly, recursively or indirectly).

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: The node rejected the request
        """
        response = self._call("pin/ls", {"arg": content_hash, "type": "all"}, self._pin_ls_timeout, content_hash)
        if self._is_not_pinned(response):
            return False
        keys = self._json(response, content_hash).get("Keys") or {}
        return content_hash in keys

    def unpin(self, content_hash: str) -> bool:
        """Unpin the hash recursively.

        Returns True once the hash is no longer pinned, including when it
        never was.

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: The node rejected the request
        """
        if not self.is_pinned(content_hash):
            logger.info("Hash not pinned, nothing to unpin", content_hash=content_hash)
            return True

        response = self._call("pin/rm", {"arg": content_hash, "recursive": "true"}, self._pin_rm_timeout, content_hash)
        if self._is_not_pinned(response):
            # Unpinned by someone else between the check and the remove
            logger.info("Hash unpinned concurrently", content_hash=content_hash)
            return True
        logger.info("Hash unpinned", content_hash=content_hash)
        return True

    # -- transport --------------------------------------------------------------

    def _call(self, path: str, params: dict[str, str], read_timeout: float, locator: str) -> httpx.Response:
        """POST to an API endpoint with retries.

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: 4xx other than 429
        """

        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning("Retrying IPFS call", endpoint=path, locator=locator, attempt=attempt, error=str(error))

        try:
            return self._retry.execute_with_retry(
                lambda: self._request_once(path, params, read_timeout, locator),
                is_retryable=_is_transient,
                on_retry=on_retry,
            )
        except MaxRetriesExceeded as e:
            logger.error("IPFS unavailable after retries", endpoint=path, locator=locator, attempts=e.attempts, error=str(e.last_error))
            raise BackendUnavailableError(backend=_BACKEND, locator=locator, attempts=e.attempts, last_error=e.last_error) from e

    def _request_once(self, path: str, params: dict[str, str], read_timeout: float, locator: str) -> httpx.Response:
        url = f"{self._api_url}/{path}"
        timeout = httpx.Timeout(read_timeout, connect=self._connect_timeout)
        try:
            response = self._client.post(url, params=params, timeout=timeout)
        except httpx.TransportError as e:
            # Covers connect errors and timeouts
            raise TransientBackendError(f"{path} transport error: {e}", backend=_BACKEND, locator=locator) from e

        if response.is_success or self._is_not_pinned(response):
            return response
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientBackendError(
                f"{path} returned HTTP {response.status_code}: {response.text[:200]}",
                backend=_BACKEND,
                locator=locator,
            )
        raise PermanentBackendError(
            f"{path} returned HTTP {response.status_code}: {response.text[:200]}",
            backend=_BACKEND,
            locator=locator,
        )

    @staticmethod
    def _is_not_pinned(response: httpx.Response) -> bool:
        return response.status_code == 500 and _NOT_PINNED_MARKER in response.text

    @staticmethod
    def _json(response: httpx.Response, locator: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise PermanentBackendError(f"Malformed JSON from IPFS API: {e}", backend=_BACKEND, locator=locator) from e
        if not isinstance(body, dict):
            raise PermanentBackendError(f"Expected a JSON object from IPFS API, got {type(body).__name__}", backend=_BACKEND, locator=locator)
        return body

    def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> IpfsPinClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
