# tests/fixtures/stores.py
"""In-memory backend fakes that record every call.

RecordingContentStore and RecordingObjectStore stand in for the IPFS and
S3 adapters at the executor seam. FakeS3Client stands in for the boto3
client underneath S3ObjectStore.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import httpx
import pytest
from botocore.exceptions import ClientError

from reclaimer.contracts import PrefixDeleteResult


class SleepRecorder:
    """Drop-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingContentStore:
    """ContentAddressedStore fake backed by a set of pinned hashes.

    Unpinning a hash that is not pinned succeeds, like the real adapter.
    """

    def __init__(
        self,
        pinned: Iterable[str] = (),
        *,
        fail_on: dict[str, Exception] | None = None,
        refuse: Iterable[str] = (),
    ) -> None:
        self.pinned = set(pinned)
        self.fail_on = dict(fail_on or {})
        self.refuse = set(refuse)
        self.calls: list[tuple[str, str]] = []

    @property
    def unpin_calls(self) -> list[str]:
        return [arg for op, arg in self.calls if op == "unpin"]

    def is_pinned(self, content_hash: str) -> bool:
        self.calls.append(("is_pinned", content_hash))
        return content_hash in self.pinned

    def unpin(self, content_hash: str) -> bool:
        self.calls.append(("unpin", content_hash))
        if content_hash in self.fail_on:
            raise self.fail_on[content_hash]
        if content_hash in self.refuse:
            return False
        self.pinned.discard(content_hash)
        return True

    def __enter__(self) -> RecordingContentStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        pass


class RecordingObjectStore:
    """ObjectStore fake backed by a dict of key -> size."""

    def __init__(
        self,
        objects: dict[str, int] | None = None,
        *,
        refuse: Iterable[str] = (),
        fail_on: dict[str, Exception] | None = None,
    ) -> None:
        self.objects = dict(objects or {})
        self.refuse = set(refuse)
        self.fail_on = dict(fail_on or {})
        self.calls: list[tuple[str, str]] = []

    @property
    def deleted_keys(self) -> list[str]:
        return [arg for op, arg in self.calls if op == "delete"]

    @property
    def deleted_prefixes(self) -> list[str]:
        return [arg for op, arg in self.calls if op == "delete_by_prefix"]

    def exists(self, key: str) -> bool:
        self.calls.append(("exists", key))
        if key in self.fail_on:
            raise self.fail_on[key]
        return key in self.objects

    def delete(self, key: str) -> bool:
        self.calls.append(("delete", key))
        if key in self.fail_on:
            raise self.fail_on[key]
        if key in self.refuse:
            return False
        self.objects.pop(key, None)
        return True

    def delete_by_prefix(self, prefix: str) -> PrefixDeleteResult:
        self.calls.append(("delete_by_prefix", prefix))
        if prefix in self.fail_on:
            raise self.fail_on[prefix]
        deleted = errors = 0
        for key in [k for k in self.objects if k.startswith(prefix)]:
            if key in self.refuse:
                errors += 1
                continue
            del self.objects[key]
            deleted += 1
        return PrefixDeleteResult(deleted=deleted, errors=errors)

    def list(self, prefix: str, max_keys: int = 1000) -> list[str]:
        self.calls.append(("list", prefix))
        return sorted(k for k in self.objects if k.startswith(prefix))[:max_keys]


def client_error(code: str, status: int, operation: str = "HeadObject") -> ClientError:
    """Build a botocore ClientError the way the service reports it."""
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} from test"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """The subset of the boto3 S3 client S3ObjectStore uses.

    failures maps a method name to exceptions raised by its next calls,
    in order, before the method behaves normally again.
    """

    def __init__(
        self,
        objects: dict[str, int] | None = None,
        *,
        deny: Iterable[str] = (),
        failures: dict[str, list[Exception]] | None = None,
    ) -> None:
        self.objects = dict(objects or {})
        self.deny = set(deny)
        self.failures = {name: list(errors) for name, errors in (failures or {}).items()}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def _maybe_fail(self, method: str) -> None:
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        self._maybe_fail("head_object")
        key = kwargs["Key"]
        if key not in self.objects:
            raise client_error("404", 404, "HeadObject")
        return {"ContentLength": self.objects[key]}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        self._maybe_fail("delete_object")
        key = kwargs["Key"]
        if key in self.deny:
            raise client_error("AccessDenied", 403, "DeleteObject")
        self.objects.pop(key, None)
        return {}

    def delete_objects(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_objects", kwargs))
        self._maybe_fail("delete_objects")
        errors = []
        for entry in kwargs["Delete"]["Objects"]:
            key = entry["Key"]
            if key in self.deny:
                errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
            else:
                self.objects.pop(key, None)
        return {"Errors": errors} if errors else {}

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("list_objects_v2", kwargs))
        self._maybe_fail("list_objects_v2")
        keys = sorted(k for k in self.objects if k.startswith(kwargs.get("Prefix", "")))
        # Tokens are the last key returned, so deleting between pages is safe
        token = kwargs.get("ContinuationToken")
        if token is not None:
            keys = [k for k in keys if k > token]
        page = keys[: kwargs.get("MaxKeys", 1000)]
        response: dict[str, Any] = {"KeyCount": len(page)}
        if page:
            response["Contents"] = [{"Key": k, "Size": self.objects[k]} for k in page]
        if len(page) < len(keys):
            response["IsTruncated"] = True
            response["NextContinuationToken"] = page[-1]
        else:
            response["IsTruncated"] = False
        return response


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


class FakeIpfsNode:
    """httpx.MockTransport handler serving pin/ls and pin/rm over a set of pins.

    Answers "not pinned" the way the real API does: HTTP 500 with that
    text in the body.
    """

    def __init__(self, pinned: Iterable[str] = ()) -> None:
        self.pinned = set(pinned)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        cid = request.url.params["arg"]
        if request.url.path.endswith("/pin/ls"):
            if cid not in self.pinned:
                return httpx.Response(500, json={"Message": f"path '{cid}' is not pinned", "Code": 0, "Type": "error"})
            return httpx.Response(200, json={"Keys": {cid: {"Type": "recursive"}}})
        if request.url.path.endswith("/pin/rm"):
            if cid not in self.pinned:
                return httpx.Response(500, json={"Message": "not pinned or pinned indirectly", "Code": 0, "Type": "error"})
            self.pinned.discard(cid)
            return httpx.Response(200, json={"Pins": [cid]})
        return httpx.Response(404, text="404 page not found")

    def paths(self) -> list[str]:
        """Endpoint of each request, e.g. "pin/ls"."""
        return ["/".join(r.url.path.rsplit("/", 2)[-2:]) for r in self.requests]
