"""
Reclaimer: policy-driven retention and storage reclamation.

Retires unwanted content records from a catalog and reclaims the bytes they
occupy in a content-addressed store (IPFS) and an object store (S3).
"""

__version__ = "0.3.0"
