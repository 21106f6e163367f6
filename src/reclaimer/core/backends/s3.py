# src/reclaimer/core/backends/s3.py
"""S3 object store: ObjectStore over S3 or an S3-compatible service.

Deletion is idempotent: a key that does not exist counts as deleted, and
a prefix with nothing under it yields (0, 0).

botocore's own retries are disabled; transient failures (throttling, 5xx,
connection errors) are retried by RetryManager so both adapters share one
retry policy and one exhaustion error.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, TypeVar

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from reclaimer.contracts.backends import PrefixDeleteResult
from reclaimer.contracts.errors import (
    BackendUnavailableError,
    PermanentBackendError,
    TransientBackendError,
)
from reclaimer.core.logging import get_logger
from reclaimer.core.retry import MaxRetriesExceeded, RetryConfig, RetryManager

if TYPE_CHECKING:
    from reclaimer.core.config import RetrySettings, S3Settings

logger = get_logger(__name__)

T = TypeVar("T")

_BACKEND = "s3"

# delete_objects accepts at most this many keys per request
MAX_DELETE_BATCH = 1000

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

_THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottled",
        "RequestThrottledException",
        "TooManyRequestsException",
        "SlowDown",
        "RequestLimitExceeded",
        "ServiceUnavailable",
        "InternalError",
        "RequestTimeout",
    }
)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _http_status(error: ClientError) -> int:
    return int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


def _is_not_found(error: ClientError) -> bool:
    return _error_code(error) in _NOT_FOUND_CODES or _http_status(error) == 404


def _is_transient_client_error(error: ClientError) -> bool:
    return _error_code(error) in _THROTTLING_CODES or _http_status(error) >= 500 or _http_status(error) == 429


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, TransientBackendError)


class S3ObjectStore:
    """Existence checks and deletes against one bucket.

    Example:
        store = S3ObjectStore.from_settings(settings.s3, settings.retry)
        store.delete("originals/clip.mp4")
        result = store.delete_by_prefix("my-permlink/720p/")
    """

    def __init__(self, bucket: str, client: Any, *, retry: RetryManager | None = None) -> None:
        """Initialize the store.

        Args:
            bucket: Bucket name
            client: boto3 S3 client (tests pass a fake with the same methods)
            retry: Retry policy for transient failures (default: 3 attempts)
        """
        self.bucket = bucket
        self._client = client
        self._retry = retry or RetryManager(RetryConfig())

    @classmethod
    def from_settings(cls, settings: S3Settings, retry: RetrySettings) -> S3ObjectStore:
        config = BotoConfig(
            connect_timeout=settings.connect_timeout_seconds,
            read_timeout=settings.read_timeout_seconds,
            retries={"max_attempts": 1, "mode": "standard"},
            s3={"addressing_style": "path" if settings.force_path_style else "auto"},
        )
        client = boto3.client(
            "s3",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            config=config,
        )
        return cls(settings.bucket, client, retry=RetryManager(RetryConfig.from_settings(retry)))

    # -- ObjectStore --------------------------------------------------------------

    def exists(self, key: str) -> bool:
        """Check whether an object exists at key.

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: Access denied or malformed request
        """
        return self._head(key) is not None

    def delete(self, key: str) -> bool:
        """Delete one object; a missing object counts as deleted.

        Returns False when the service refuses the delete.

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
        """
        if not self.exists(key):
            logger.info("Object already absent", key=key)
            return True
        try:
            self._call("delete_object", key, lambda: self._client.delete_object(Bucket=self.bucket, Key=key))
        except PermanentBackendError as e:
            logger.error("S3 refused delete", key=key, error=str(e))
            return False
        logger.info("Object deleted", key=key)
        return True

    def delete_by_prefix(self, prefix: str) -> PrefixDeleteResult:
        """Delete every object under prefix.

        Raises:
            PermanentBackendError: Blank prefix (would address the whole bucket)
            BackendUnavailableError: Transient failures outlasted retries
        """
        if not prefix or not prefix.strip() or prefix.strip() == "/":
            raise PermanentBackendError("Refusing to delete by blank prefix", backend=_BACKEND, locator=prefix)

        deleted = 0
        errors = 0
        for page_keys in self._iter_key_pages(prefix, page_size=MAX_DELETE_BATCH):
            for start in range(0, len(page_keys), MAX_DELETE_BATCH):
                chunk = page_keys[start : start + MAX_DELETE_BATCH]
                response = self._call(
                    "delete_objects",
                    prefix,
                    lambda chunk=chunk: self._client.delete_objects(  # type: ignore[misc]
                        Bucket=self.bucket,
                        Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                    ),
                )
                failed = response.get("Errors") or []
                for failure in failed:
                    logger.warning("Key under prefix not deleted", key=failure.get("Key"), code=failure.get("Code"), message=failure.get("Message"))
                errors += len(failed)
                deleted += len(chunk) - len(failed)

        logger.info("Prefix deleted", prefix=prefix, deleted=deleted, errors=errors)
        return PrefixDeleteResult(deleted=deleted, errors=errors)

    def usage(self, keys: list[str]) -> int:
        """Sum of stored sizes of the given keys; missing keys count as 0."""
        total = 0
        for key in keys:
            head = self._head(key)
            if head is not None:
                total += int(head.get("ContentLength", 0))
        return total

    # -- helpers --------------------------------------------------------------------

    def _head(self, key: str) -> dict[str, Any] | None:
        def head() -> dict[str, Any] | None:
            try:
                response: dict[str, Any] = self._client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise
            return response

        return self._call("head_object", key, head)

    def _iter_key_pages(self, prefix: str, *, page_size: int) -> Iterator[list[str]]:
        token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": page_size}
            if token is not None:
                kwargs["ContinuationToken"] = token
            response = self._call("list_objects_v2", prefix, lambda kwargs=kwargs: self._client.list_objects_v2(**kwargs))  # type: ignore[misc]
            keys = [obj["Key"] for obj in response.get("Contents") or []]
            if keys:
                yield keys
            if not response.get("IsTruncated"):
                return
            token = response.get("NextContinuationToken")
            if token is None:
                return

    def _call(self, operation: str, locator: str, fn: Callable[[], T]) -> T:
        """Run one S3 call with retries, translating botocore errors.

        Raises:
            BackendUnavailableError: Transient failures outlasted retries
            PermanentBackendError: Non-retryable client errors
        """

        def attempt() -> T:
            try:
                return fn()
            except ClientError as e:
                message = f"{operation} failed: {_error_code(e) or _http_status(e)}: {e}"
                if _is_transient_client_error(e):
                    raise TransientBackendError(message, backend=_BACKEND, locator=locator) from e
                raise PermanentBackendError(message, backend=_BACKEND, locator=locator) from e
            except (BotoConnectionError, HTTPClientError) as e:
                raise TransientBackendError(f"{operation} connection error: {e}", backend=_BACKEND, locator=locator) from e

        def on_retry(attempt_number: int, error: BaseException) -> None:
            logger.warning("Retrying S3 call", operation=operation, locator=locator, attempt=attempt_number, error=str(error))

        try:
            return self._retry.execute_with_retry(attempt, is_retryable=_is_transient, on_retry=on_retry)
        except MaxRetriesExceeded as e:
            logger.error("S3 unavailable after retries", operation=operation, locator=locator, attempts=e.attempts, error=str(e.last_error))
            raise BackendUnavailableError(backend=_BACKEND, locator=locator, attempts=e.attempts, last_error=e.last_error) from e

    # Defined last: the method name shadows the builtin for annotations below it
    def list(self, prefix: str, max_keys: int = 1000) -> list[str]:
        """List up to max_keys keys under prefix, in service order."""
        keys: list[str] = []
        for page_keys in self._iter_key_pages(prefix, page_size=min(max_keys, MAX_DELETE_BATCH)):
            keys.extend(page_keys[: max_keys - len(keys)])
            if len(keys) >= max_keys:
                break
        return keys
