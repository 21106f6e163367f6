# src/reclaimer/core/retention/__init__.py
"""Retention: preview and execution of retention policies.

Primary API:
    PreviewAnalyzer - Read-only forecast of a run
    RetentionExecutor - The destructive run itself
    CancellationToken - Pause/resume/cancel handle for a running executor
    ProgressStream - Buffered progress events for streaming consumers
    StorageReconciler - Retires records whose object-store renditions are gone
"""

from reclaimer.core.retention.cancellation import CancellationToken
from reclaimer.core.retention.executor import RetentionExecutor
from reclaimer.core.retention.ledger import LocatorLedger
from reclaimer.core.retention.preview import PreviewAnalyzer
from reclaimer.core.retention.progress import ProgressReporter, ProgressStream, format_sse
from reclaimer.core.retention.reconcile import StorageReconciler

__all__ = [
    "CancellationToken",
    "LocatorLedger",
    "PreviewAnalyzer",
    "ProgressReporter",
    "ProgressStream",
    "RetentionExecutor",
    "StorageReconciler",
    "format_sse",
]
