# src/reclaimer/cli.py
"""Reclaimer Command Line Interface.

Entry point for the reclaimer CLI tool. Commands wire configuration to the
engine; every behavior lives in reclaimer.core.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError

from reclaimer import __version__
from reclaimer.contracts import (
    PRESETS,
    CatalogQueryTimeoutError,
    PurgeResult,
    RecordStatus,
    RetentionPolicy,
    StorageKind,
    get_preset,
)
from reclaimer.core.config import ReclaimerSettings, SettingsError, load_policy_file, load_settings, resolve_config
from reclaimer.core.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from reclaimer.core.catalog import CatalogDB, SqlCatalogStore
    from reclaimer.core.classifier import StorageClassifier
    from reclaimer.core.selector import CriteriaSelector

__all__ = [
    "app",
]

logger = get_logger(__name__)

# Errors shown before a purge aborts
_MAX_ERRORS_SHOWN = 10

app = typer.Typer(
    name="reclaimer",
    help="Reclaimer: policy-driven retention and purge for stored content.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"reclaimer version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Reclaimer: retire catalog records and reclaim their storage."""


# =============================================================================
# Shared option definitions
# =============================================================================

_SETTINGS_OPTION = typer.Option(None, "--settings", "-c", help="Path to settings YAML (default: ./settings.yaml if present).")
_DATABASE_OPTION = typer.Option(None, "--database", "-d", help="Catalog database URL or SQLite file path (overrides settings).")
_PRESET_OPTION = typer.Option(None, "--preset", "-p", help="Named policy preset (see 'reclaimer presets').")
_POLICY_FILE_OPTION = typer.Option(None, "--policy-file", "-f", help="Policy YAML file.")
_STATUS_OPTION = typer.Option(None, "--status", help="Only records in this status (repeatable).")
_OWNER_OPTION = typer.Option(None, "--owner", help="Only records owned by this identity (repeatable).")
_MIN_AGE_OPTION = typer.Option(None, "--min-age-days", help="Only records at least this many days old.")
_MAX_VIEWS_OPTION = typer.Option(None, "--max-views", help="Only records with fewer views (unknown counts as 0).")
_MIN_VIEWS_OPTION = typer.Option(None, "--min-views", help="Only records with at least this many views.")
_BACKEND_OPTION = typer.Option(None, "--backend", help="Only records stored on this backend kind.")
_ORPHANED_OPTION = typer.Option(None, "--orphaned/--no-orphaned", help="Only records with no storage locator at all.")
_INCLUDE_CLEANED_OPTION = typer.Option(False, "--include-cleaned", help="Also select records already carrying cleanup metadata.")
_LIMIT_OPTION = typer.Option(None, "--limit", "-n", help="Maximum records selected.")
_BATCH_SIZE_OPTION = typer.Option(None, "--batch-size", help="Records per batch (capped by safety.max_batch_size).")
_KEEP_OPTION = typer.Option(
    None,
    "--keep-resolution",
    help="Keep this rendition and delete the others; the record stays live (repeatable, implies --backend object_store).",
)
_JSON_OPTION = typer.Option(False, "--json", help="Machine-readable JSON output on stdout.")


@dataclass
class _Runtime:
    """Wired collaborators shared by commands."""

    settings: ReclaimerSettings
    db: CatalogDB
    store: SqlCatalogStore
    classifier: StorageClassifier
    selector: CriteriaSelector


def _fail(message: str) -> typer.Exit:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    return typer.Exit(1)


def _load_settings(settings_path: Path | None) -> ReclaimerSettings:
    """Load settings from an explicit path, ./settings.yaml, or defaults."""
    if settings_path is not None and not settings_path.exists():
        raise _fail(f"Settings file not found: {settings_path}")
    path = settings_path or Path("settings.yaml")
    if not path.exists():
        return ReclaimerSettings()
    try:
        return load_settings(path)
    except ValidationError as e:
        raise _fail(f"Invalid settings in {path}:\n{e}") from None
    except Exception as e:
        # Dynaconf raises assorted parser errors for malformed YAML
        raise _fail(f"Could not load settings from {path}: {e}") from None


def _database_url(database: str) -> str:
    if "://" in database:
        return database
    db_path = Path(database).expanduser().resolve()
    # Fail fast on typoed paths rather than silently creating an empty catalog
    if not db_path.exists():
        raise _fail(f"Database file not found: {db_path}")
    return f"sqlite:///{db_path}"


def _build_runtime(settings_path: Path | None, database: str | None) -> _Runtime:
    from reclaimer.core.catalog import CatalogDB, SqlCatalogStore
    from reclaimer.core.classifier import StorageClassifier
    from reclaimer.core.selector import CriteriaSelector

    settings = _load_settings(settings_path)
    if database is not None:
        settings = settings.model_copy(update={"catalog": settings.catalog.model_copy(update={"url": _database_url(database)})})

    configure_logging(json_output=settings.logging.json_output, level=settings.logging.level)
    logger.debug("Settings resolved", settings=resolve_config(settings))

    try:
        db = CatalogDB.from_settings(settings.catalog)
    except Exception as e:
        raise _fail(f"Could not connect to catalog: {e}") from None

    classifier = StorageClassifier(settings.classifier)
    store = SqlCatalogStore(db, rules=settings.classifier)
    selector = CriteriaSelector(store, classifier, max_scan=settings.selector_max_scan)
    return _Runtime(settings=settings, db=db, store=store, classifier=classifier, selector=selector)


def _resolve_policy(
    *,
    preset: str | None,
    policy_file: Path | None,
    status: list[RecordStatus] | None,
    owner: list[str] | None,
    min_age_days: int | None,
    max_views: int | None,
    min_views: int | None,
    backend: StorageKind | None,
    orphaned: bool | None,
    include_cleaned: bool,
    limit: int | None,
    batch_size: int | None,
    keep_resolution: list[str] | None = None,
) -> RetentionPolicy:
    """Combine a preset or policy file with command-line overrides.

    Command-line filters replace the corresponding field of the base
    policy. With no base and no filter the command is refused: an empty
    predicate would select everything.
    """
    if preset and policy_file:
        raise _fail("--preset and --policy-file are mutually exclusive")

    overrides: dict[str, Any] = {
        "status_in": frozenset(status) if status else None,
        "owner_in": frozenset(owner) if owner else None,
        "min_age_days": min_age_days,
        "max_views": max_views,
        "min_views": min_views,
        "backend_kind": backend,
        "orphaned_only": orphaned,
        "limit": limit,
        "batch_size": batch_size,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    filters_given = bool(set(overrides) - {"limit", "batch_size"})
    if keep_resolution:
        overrides["keep_resolutions"] = tuple(keep_resolution)
        overrides.setdefault("backend_kind", StorageKind.OBJECT_STORE)
    if include_cleaned:
        overrides["exclude_already_cleaned"] = False

    try:
        if preset:
            base: dict[str, Any] = get_preset(preset).model_dump()
        elif policy_file:
            base = load_policy_file(policy_file).model_dump()
        elif filters_given:
            base = {}
        else:
            raise _fail("Specify --preset, --policy-file, or at least one filter option")
        return RetentionPolicy(**{**base, **overrides})
    except KeyError as e:
        raise _fail(str(e.args[0])) from None
    except SettingsError as e:
        raise _fail(str(e)) from None
    except ValidationError as e:
        raise _fail(f"Invalid policy:\n{e}") from None


# =============================================================================
# Commands
# =============================================================================


@app.command()
def presets() -> None:
    """List the named policy presets."""
    for name, policy in PRESETS.items():
        typer.echo(f"{name:<18} {policy.describe()}")


@app.command()
def preview(
    settings: Path | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
    preset: str | None = _PRESET_OPTION,
    policy_file: Path | None = _POLICY_FILE_OPTION,
    status: list[RecordStatus] | None = _STATUS_OPTION,
    owner: list[str] | None = _OWNER_OPTION,
    min_age_days: int | None = _MIN_AGE_OPTION,
    max_views: int | None = _MAX_VIEWS_OPTION,
    min_views: int | None = _MIN_VIEWS_OPTION,
    backend: StorageKind | None = _BACKEND_OPTION,
    orphaned: bool | None = _ORPHANED_OPTION,
    include_cleaned: bool = _INCLUDE_CLEANED_OPTION,
    limit: int | None = _LIMIT_OPTION,
    keep_resolution: list[str] | None = _KEEP_OPTION,
    json_output: bool = _JSON_OPTION,
) -> None:
    """Show what a purge would do without changing anything.

    Examples:

        # Failed encodings, default limit
        reclaimer preview --preset failed-encodings

        # Published records under 5 views older than a year
        reclaimer preview --status published --max-views 5 --min-age-days 365
    """
    from reclaimer.cli_formatters import preview_to_dict, render_preview
    from reclaimer.core.retention import PreviewAnalyzer

    policy = _resolve_policy(
        preset=preset,
        policy_file=policy_file,
        status=status,
        owner=owner,
        min_age_days=min_age_days,
        max_views=max_views,
        min_views=min_views,
        backend=backend,
        orphaned=orphaned,
        include_cleaned=include_cleaned,
        limit=limit,
        batch_size=None,
        keep_resolution=keep_resolution,
    )
    runtime = _build_runtime(settings, database)
    try:
        analyzer = PreviewAnalyzer(runtime.selector, runtime.classifier, sample_size=runtime.settings.preview.sample_size)
        report = analyzer.analyze(policy)
    except CatalogQueryTimeoutError as e:
        raise _fail(str(e)) from None
    except ValueError as e:
        raise _fail(str(e)) from None
    finally:
        runtime.db.close()

    if json_output:
        typer.echo(json.dumps(preview_to_dict(report)))
        return
    for line in render_preview(report):
        typer.echo(line)


@app.command()
def purge(
    settings: Path | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
    preset: str | None = _PRESET_OPTION,
    policy_file: Path | None = _POLICY_FILE_OPTION,
    status: list[RecordStatus] | None = _STATUS_OPTION,
    owner: list[str] | None = _OWNER_OPTION,
    min_age_days: int | None = _MIN_AGE_OPTION,
    max_views: int | None = _MAX_VIEWS_OPTION,
    min_views: int | None = _MIN_VIEWS_OPTION,
    backend: StorageKind | None = _BACKEND_OPTION,
    orphaned: bool | None = _ORPHANED_OPTION,
    include_cleaned: bool = _INCLUDE_CLEANED_OPTION,
    limit: int | None = _LIMIT_OPTION,
    batch_size: int | None = _BATCH_SIZE_OPTION,
    keep_resolution: list[str] | None = _KEEP_OPTION,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be purged without purging (same as 'preview').",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Purge records matching a policy and reclaim their storage.

    Unpins content-addressed data, deletes object-store keys and prefixes,
    and marks each record cleaned. Records that fail stay selectable for
    the next run. Exits 1 if any record failed.

    Examples:

        # See what would be purged
        reclaimer purge --preset failed-encodings --dry-run

        # Purge stuck uploads without prompting
        reclaimer purge --preset stuck-uploads --yes

        # Keep only 480p of old, rarely watched object-store records
        reclaimer purge --preset storage-diet
    """
    from reclaimer.cli_formatters import (
        create_console_formatters,
        create_json_formatters,
        format_bytes,
        preview_to_dict,
        render_preview,
        result_to_dict,
        subscribe_formatters,
    )
    from reclaimer.core.backends import IpfsPinClient, S3ObjectStore
    from reclaimer.core.events import EventBus
    from reclaimer.core.retention import CancellationToken, PreviewAnalyzer, RetentionExecutor

    policy = _resolve_policy(
        preset=preset,
        policy_file=policy_file,
        status=status,
        owner=owner,
        min_age_days=min_age_days,
        max_views=max_views,
        min_views=min_views,
        backend=backend,
        orphaned=orphaned,
        include_cleaned=include_cleaned,
        limit=limit,
        batch_size=batch_size,
        keep_resolution=keep_resolution,
    )
    runtime = _build_runtime(settings, database)
    config = runtime.settings

    try:
        analyzer = PreviewAnalyzer(runtime.selector, runtime.classifier, sample_size=config.preview.sample_size)
        report = analyzer.analyze(policy)

        if report.is_empty:
            if json_output:
                typer.echo(json.dumps(preview_to_dict(report)))
            else:
                typer.echo(f"No records match policy '{policy.name}'.")
            return

        if dry_run:
            if json_output:
                typer.echo(json.dumps(preview_to_dict(report)))
            else:
                for line in render_preview(report):
                    typer.echo(line)
            return

        if not json_output:
            for line in render_preview(report):
                typer.echo(line)
            typer.echo("")

        # Confirm unless --yes
        if config.safety.require_confirmation and not yes:
            confirm = typer.confirm(
                f"Purge {report.total_candidates:,} record(s) ({format_bytes(report.reclaimable_bytes)})? Stored content will be deleted."
            )
            if not confirm:
                typer.echo("Aborted.")
                raise typer.Exit(1)

        bus = EventBus()
        subscribe_formatters(bus, create_json_formatters() if json_output else create_console_formatters())

        with IpfsPinClient.from_settings(config.ipfs, config.retry) as ipfs:
            executor = RetentionExecutor(
                catalog=runtime.store,
                selector=runtime.selector,
                classifier=runtime.classifier,
                content_store=ipfs,
                object_store=S3ObjectStore.from_settings(config.s3, config.retry),
                event_bus=bus,
                pacing=config.pacing,
                max_batch_size=config.safety.max_batch_size,
            )
            result = _execute_interruptibly(executor, policy, CancellationToken())
    except CatalogQueryTimeoutError as e:
        raise _fail(str(e)) from None
    except ValueError as e:
        raise _fail(str(e)) from None
    finally:
        runtime.db.close()

    if json_output:
        typer.echo(json.dumps(result_to_dict(result)))

    if result.errors:
        typer.echo(f"\n{len(result.errors)} record(s) failed and remain selectable:", err=True)
        for error in result.errors[:_MAX_ERRORS_SHOWN]:
            typer.echo(f"  {error.record_id} [{error.failure.value}]: {error.message}", err=True)
        if len(result.errors) > _MAX_ERRORS_SHOWN:
            typer.echo(f"  ... and {len(result.errors) - _MAX_ERRORS_SHOWN} more", err=True)
        raise typer.Exit(1)


def _execute_interruptibly(executor: Any, policy: RetentionPolicy, token: Any) -> PurgeResult:
    """Run the executor on a worker thread; Ctrl-C cancels at the next item."""
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="reclaimer-run") as pool:
        future = pool.submit(executor.execute, policy, confirmed=True, cancel_token=token)
        try:
            result: PurgeResult = future.result()
        except KeyboardInterrupt:
            typer.echo("\nInterrupted: cancelling after the current record...", err=True)
            token.cancel()
            result = future.result()
    return result


@app.command()
def reconcile(
    settings: Path | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
    preset: str | None = _PRESET_OPTION,
    policy_file: Path | None = _POLICY_FILE_OPTION,
    status: list[RecordStatus] | None = _STATUS_OPTION,
    owner: list[str] | None = _OWNER_OPTION,
    min_age_days: int | None = _MIN_AGE_OPTION,
    include_cleaned: bool = _INCLUDE_CLEANED_OPTION,
    limit: int | None = _LIMIT_OPTION,
    batch_size: int | None = _BATCH_SIZE_OPTION,
    apply: bool = typer.Option(False, "--apply", help="Mark records with no renditions left as cleaned (default: report only)."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt."),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Find object-store records whose renditions no longer exist.

    Checks each record for any resolution playlist. Records with none are
    reported, and with --apply marked cleaned and moved to deleted. Nothing
    is deleted from storage. Exits 1 if any record could not be checked.

    Examples:

        # Report alice's records with missing files
        reclaimer reconcile --owner alice

        # Retire them
        reclaimer reconcile --owner alice --apply --yes
    """
    from reclaimer.cli_formatters import reconcile_to_dict, render_reconcile
    from reclaimer.core.backends import S3ObjectStore
    from reclaimer.core.retention import StorageReconciler

    policy = _resolve_policy(
        preset=preset,
        policy_file=policy_file,
        status=status,
        owner=owner,
        min_age_days=min_age_days,
        max_views=None,
        min_views=None,
        backend=None,
        orphaned=None,
        include_cleaned=include_cleaned,
        limit=limit,
        batch_size=batch_size,
    )
    runtime = _build_runtime(settings, database)
    config = runtime.settings

    if apply and config.safety.require_confirmation and not yes:
        if not typer.confirm(f"Mark records matching '{policy.describe()}' with no renditions left as deleted?"):
            runtime.db.close()
            typer.echo("Aborted.")
            raise typer.Exit(1)

    try:
        reconciler = StorageReconciler(
            runtime.store,
            runtime.selector,
            runtime.classifier,
            S3ObjectStore.from_settings(config.s3, config.retry),
            pacing=config.pacing,
        )
        result = reconciler.run(policy, apply=apply)
    except (CatalogQueryTimeoutError, ValueError) as e:
        raise _fail(str(e)) from None
    finally:
        runtime.db.close()

    if json_output:
        typer.echo(json.dumps(reconcile_to_dict(result)))
    else:
        for line in render_reconcile(result):
            typer.echo(line)
    if result.errors:
        raise typer.Exit(1)


@app.command()
def stats(
    settings: Path | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
    json_output: bool = _JSON_OPTION,
) -> None:
    """Show catalog status counts and cleanup totals."""
    from reclaimer.cli_formatters import render_stats

    runtime = _build_runtime(settings, database)
    try:
        status_counts = runtime.store.status_stats()
        cleanup = runtime.store.cleanup_stats()
    except CatalogQueryTimeoutError as e:
        raise _fail(str(e)) from None
    finally:
        runtime.db.close()

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "by_status": {s.value: n for s, n in sorted(status_counts.items())},
                    "cleanup": {
                        "total_cleaned": cleanup.total_cleaned,
                        "manually_deleted": cleanup.manually_deleted,
                        "recent": cleanup.recent,
                        "by_reason": cleanup.by_reason,
                        "by_backend": {k.value: n for k, n in cleanup.by_backend.items()},
                        "partial": cleanup.partial,
                    },
                }
            )
        )
        return
    for line in render_stats(status_counts, cleanup):
        typer.echo(line)


if __name__ == "__main__":
    app()
