# src/reclaimer/core/backends/__init__.py
"""Storage backend adapters.

IpfsPinClient - ContentAddressedStore over the IPFS HTTP API (httpx)
S3ObjectStore - ObjectStore over S3 or an S3-compatible service (boto3)
"""

from reclaimer.core.backends.ipfs import IpfsPinClient
from reclaimer.core.backends.s3 import S3ObjectStore

__all__ = [
    "IpfsPinClient",
    "S3ObjectStore",
]
