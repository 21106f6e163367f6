# src/reclaimer/cli_formatters.py
"""CLI event formatter factories for retention run output.

Provides factory functions that return event handler maps for console
(human-readable) and JSON (structured) output formats. Each factory
returns a dict mapping event types to handler callables, suitable for
subscribing to an EventBus.

Also renders preview reports and catalog stats, which are returned
values rather than events.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import typer

from reclaimer.contracts.enums import RunStatus, StorageKind
from reclaimer.contracts.events import PhaseChanged, ProgressEvent, RunSummary
from reclaimer.contracts.results import PreviewReport, PurgeResult, ReconcileResult
from reclaimer.core.catalog.store import RECENT_CLEANUP_DAYS, CleanupStats
from reclaimer.core.events import EventBusProtocol

_KIND_LABELS = {
    StorageKind.CONTENT_ADDRESSED: "IPFS",
    StorageKind.OBJECT_STORE: "S3",
    StorageKind.UNKNOWN: "unknown",
}


def format_bytes(size: int) -> str:
    """Human-readable size using binary units."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if value < 1024 or unit == "TB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    raise AssertionError("unreachable")  # pragma: no cover


def create_console_formatters(progress_every: int = 10) -> dict[type, Callable[..., None]]:
    """Create console formatters for human-readable CLI output.

    Args:
        progress_every: Print a progress line every N processed records
            (terminal events are always printed).
    """

    def _format_phase(event: PhaseChanged) -> None:
        detail = f": {event.detail}" if event.detail else ""
        typer.echo(f"[{event.phase.value.upper()}]{detail}")

    def _format_progress(event: ProgressEvent) -> None:
        if event.status is RunStatus.RUNNING and event.processed_count % progress_every != 0:
            return
        typer.echo(
            f"  Batch {event.current_batch}/{event.total_batches} | "
            f"{event.processed_count:,}/{event.total_count:,} records ({event.fraction:.0%}) | "
            f"✗{len(event.errors)} errors"
        )

    def _format_run_summary(event: RunSummary) -> None:
        status_symbols = {
            RunStatus.COMPLETED: "✓",
            RunStatus.COMPLETED_WITH_ERRORS: "⚠",
            RunStatus.CANCELLED: "✗",
            RunStatus.ABORTED: "✗",
        }
        symbol = status_symbols.get(event.status, "?")
        typer.echo(
            f"\n{symbol} Purge {event.status.value.upper()}: "
            f"{event.candidates:,} candidates | "
            f"✓{event.marked_cleaned:,} cleaned | "
            f"{format_bytes(event.bytes_freed)} freed | "
            f"↷{event.duplicates_skipped:,} shared locators skipped | "
            f"↷{event.claimed_skipped:,} already handled | "
            f"✗{event.error_count:,} errors | "
            f"{event.duration_seconds:.2f}s total"
        )

    return {
        PhaseChanged: _format_phase,
        ProgressEvent: _format_progress,
        RunSummary: _format_run_summary,
    }


def create_json_formatters() -> dict[type, Callable[..., None]]:
    """Create JSON formatters for structured CLI output (one object per line)."""

    def _format_phase_json(event: PhaseChanged) -> None:
        typer.echo(
            json.dumps(
                {
                    "event": "phase_changed",
                    "operation_id": event.operation_id,
                    "phase": event.phase.value,
                    "detail": event.detail,
                }
            )
        )

    def _format_progress_json(event: ProgressEvent) -> None:
        typer.echo(json.dumps({"event": "progress", **event.to_dict()}))

    def _format_run_summary_json(event: RunSummary) -> None:
        typer.echo(
            json.dumps(
                {
                    "event": "run_completed",
                    "operation_id": event.operation_id,
                    "policy": event.policy_name,
                    "status": event.status.value,
                    "candidates": event.candidates,
                    "marked_cleaned": event.marked_cleaned,
                    "bytes_freed": event.bytes_freed,
                    "duplicates_skipped": event.duplicates_skipped,
                    "claimed_skipped": event.claimed_skipped,
                    "errors": event.error_count,
                    "duration_seconds": event.duration_seconds,
                }
            )
        )

    return {
        PhaseChanged: _format_phase_json,
        ProgressEvent: _format_progress_json,
        RunSummary: _format_run_summary_json,
    }


def subscribe_formatters(
    event_bus: EventBusProtocol,
    formatters: dict[type, Callable[..., None]],
) -> None:
    """Subscribe all formatters to the event bus."""
    for event_type, handler in formatters.items():
        event_bus.subscribe(event_type, handler)


# =============================================================================
# Reports
# =============================================================================


def preview_to_dict(report: PreviewReport) -> dict[str, Any]:
    return {
        "policy": report.policy_name,
        "total_candidates": report.total_candidates,
        "total_bytes": report.total_bytes,
        "reclaimable_bytes": report.reclaimable_bytes,
        "by_kind": {kind.value: n for kind, n in report.by_kind.items()},
        "by_status": {status.value: n for status, n in sorted(report.by_status.items())},
        "unclassifiable": report.unclassifiable,
        "unique_hashes": report.unique_hashes,
        "unique_files": report.unique_files,
        "unique_prefixes": report.unique_prefixes,
        "duplicate_locators": report.duplicate_locators,
        "oldest_age_days": report.oldest_age_days,
        "newest_age_days": report.newest_age_days,
        "samples": [
            {
                "record_id": s.record_id,
                "owner": s.owner,
                "title": s.title,
                "status": s.status.value,
                "kind": s.kind.value,
                "size_bytes": s.size_bytes,
                "age_days": s.age_days,
                "content_hash": s.content_hash,
                "files": list(s.files),
                "prefixes": list(s.prefixes),
            }
            for s in report.samples
        ],
    }


def render_preview(report: PreviewReport) -> list[str]:
    """Console lines for a preview report."""
    if report.is_empty:
        return [f"No records match policy '{report.policy_name}'."]

    kinds = ", ".join(f"{_KIND_LABELS[kind]}: {n:,}" for kind, n in report.by_kind.items() if n)
    statuses = ", ".join(f"{status.value}: {n:,}" for status, n in sorted(report.by_status.items()))
    lines = [
        f"Policy: {report.policy_name}",
        f"  Candidates:        {report.total_candidates:,}",
        f"  Total size:        {format_bytes(report.total_bytes)}",
        f"  Reclaimable:       {format_bytes(report.reclaimable_bytes)}",
        f"  Backends:          {kinds}",
        f"  Statuses:          {statuses}",
        f"  Age (days):        {report.newest_age_days} - {report.oldest_age_days}",
        f"  Unique locators:   {report.unique_hashes:,} hashes, {report.unique_files:,} files, {report.unique_prefixes:,} prefixes",
    ]
    if report.duplicate_locators:
        lines.append(f"  Shared locators:   {report.duplicate_locators:,} (handled once)")
    if report.unclassifiable:
        lines.append(f"  ⚠ Unclassifiable:  {report.unclassifiable:,} (will be reported as errors, not deleted)")

    lines.append("")
    lines.append(f"First {len(report.samples)} candidate(s):")
    for sample in report.samples:
        label = sample.title or sample.record_id
        lines.append(
            f"  - {label} [{sample.owner}] {sample.status.value}, {_KIND_LABELS[sample.kind]}, "
            f"{format_bytes(sample.size_bytes)}, {sample.age_days}d old"
        )
    return lines


def result_to_dict(result: PurgeResult) -> dict[str, Any]:
    return {
        "operation_id": result.operation_id,
        "policy": result.policy_name,
        "status": result.status.value,
        "candidates": result.candidates,
        "processed": result.processed,
        "marked_cleaned": result.marked_cleaned,
        "unpinned": result.unpinned,
        "objects_deleted": result.objects_deleted,
        "prefixes_deleted": result.prefixes_deleted,
        "prefix_objects_deleted": result.prefix_objects_deleted,
        "catalog_only": result.catalog_only,
        "duplicates_skipped": result.duplicates_skipped,
        "claimed_skipped": result.claimed_skipped,
        "partial": result.partial,
        "bytes_freed": result.bytes_freed,
        "batches": result.batches,
        "by_kind": {kind.value: n for kind, n in result.by_kind.items()},
        "errors": [e.to_dict() for e in result.errors],
        "duration_seconds": result.duration_seconds,
    }


def render_stats(status_counts: dict[Any, int], cleanup: CleanupStats) -> list[str]:
    """Console lines for the stats command."""
    lines = ["Records by status:"]
    for status, n in sorted(status_counts.items(), key=lambda item: (-item[1], str(item[0]))):
        lines.append(f"  {status.value:<22} {n:>10,}")
    lines.append("")
    lines.append("Cleanup:")
    lines.append(f"  Total cleaned:         {cleanup.total_cleaned:,}")
    lines.append(f"  Already deleted:       {cleanup.manually_deleted:,}")
    lines.append(f"  Last {RECENT_CLEANUP_DAYS} days:           {cleanup.recent:,}")
    if cleanup.partial:
        lines.append(f"  Kept live (partial):   {cleanup.partial:,}")
    if cleanup.by_backend:
        backends = ", ".join(f"{_KIND_LABELS[kind]}: {n:,}" for kind, n in cleanup.by_backend.items())
        lines.append(f"  By backend:            {backends}")
    if cleanup.by_reason:
        lines.append("  By reason:")
        for reason, n in sorted(cleanup.by_reason.items(), key=lambda item: -item[1]):
            lines.append(f"    {n:>8,}  {reason}")
    return lines


def reconcile_to_dict(result: ReconcileResult) -> dict[str, Any]:
    return {
        "operation_id": result.operation_id,
        "policy": result.policy_name,
        "applied": result.applied,
        "status": result.status.value,
        "checked": result.checked,
        "present": result.present,
        "missing": result.missing,
        "missing_bytes": result.missing_bytes,
        "marked_cleaned": result.marked_cleaned,
        "claimed_skipped": result.claimed_skipped,
        "errors": [e.to_dict() for e in result.errors],
        "duration_seconds": result.duration_seconds,
    }


def render_reconcile(result: ReconcileResult) -> list[str]:
    """Console lines for a reconciliation pass."""
    lines = [
        f"Reconciliation: {result.policy_name} ({'applied' if result.applied else 'dry run'})",
        f"  Checked:           {result.checked:,}",
        f"  Present:           {result.present:,}",
        f"  Missing:           {len(result.missing):,} ({format_bytes(result.missing_bytes)} of catalog size)",
    ]
    if result.applied:
        lines.append(f"  Marked cleaned:    {result.marked_cleaned:,}")
        if result.claimed_skipped:
            lines.append(f"  Already handled:   {result.claimed_skipped:,}")
    if result.errors:
        lines.append(f"  ⚠ Not checked:     {len(result.errors):,} (existence check failed, left untouched)")
    for record_id in result.missing:
        lines.append(f"  - {record_id}")
    if result.missing and not result.applied:
        lines.append("")
        lines.append("Run again with --apply to mark these records cleaned.")
    return lines
