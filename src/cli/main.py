"""bulktag CLI: bulk product tag operations for Shopify stores.

Usage:
    bulktag run add --tag sale --ids-file ids.txt   Add a tag to products
    bulktag run replace --old-tag old --tag new --id 1 --id 2
    bulktag job list                                 List jobs
    bulktag job show JOB_ID                          Show one job and its errors
    bulktag job stats                                Completed-job success rate
    bulktag tags top                                 Most-used tags
    bulktag recover [--resume]                       Handle interrupted jobs
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.config import BulkTagConfig, masked_config, resolve_config
from src.cli.factory import build_engine, build_tag_client, configure_logging, open_database
from src.cli.output import (
    format_job_detail,
    format_job_stats,
    format_job_table,
    format_mapping,
    format_run_result,
    format_usage_table,
)
from src.db.models import JobStatus, OperationType
from src.errors import DomainError, get_error
from src.services.job_models import JobResult
from src.services.job_recorder import JobRecorder
from src.services.preferences_service import PreferencesService
from src.services.recovery import (
    RecoveryChoice,
    check_interrupted_jobs,
    get_recovery_prompt,
    recover_interrupted_jobs,
)
from src.services.tag_usage_service import TagUsageService

_log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RECORD_FAILURES = 1
EXIT_ABORTED = 2

app = typer.Typer(
    name="bulktag",
    help="Bulk add, remove and replace product tags",
    no_args_is_help=True,
)
run_app = typer.Typer(help="Run a bulk tag operation", no_args_is_help=True)
job_app = typer.Typer(help="Inspect bulk tag jobs", no_args_is_help=True)
tags_app = typer.Typer(help="Tag usage statistics", no_args_is_help=True)
prefs_app = typer.Typer(help="Shop preferences", no_args_is_help=True)
config_app = typer.Typer(help="Configuration management", no_args_is_help=True)

app.add_typer(run_app, name="run")
app.add_typer(job_app, name="job")
app.add_typer(tags_app, name="tags")
app.add_typer(prefs_app, name="prefs")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to bulktag.yaml config file"
    ),
):
    """bulktag: bulk product tag operations."""
    global _config_path
    _config_path = config


def _load() -> BulkTagConfig:
    """Resolve config and configure logging, exiting on a bad config."""
    try:
        cfg = resolve_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(EXIT_ABORTED)
    except ValueError as e:
        console.print(f"[red]Invalid config:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_ABORTED)
    configure_logging(cfg.logging)
    return cfg


def _emit(output: str) -> None:
    """Print already-rendered formatter output verbatim."""
    typer.echo(output.rstrip("\n"))


def _read_ids(ids: list[str] | None, ids_file: Path | None) -> list[str]:
    """Collect product ids from --id options and an ids file.

    The file holds one id per line; blank lines and ``#`` comments are skipped.
    """
    collected = [i.strip() for i in ids or [] if i.strip()]
    if ids_file is not None:
        for line in ids_file.read_text().splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                collected.append(line)
    return collected


# --- Run commands ---


def _run_job(
    operation: OperationType,
    tag: str,
    old_tag: str | None,
    ids: list[str] | None,
    ids_file: Path | None,
    shop: str | None,
    batch_size: int | None,
    json_output: bool,
) -> None:
    cfg = _load()
    product_ids = _read_ids(ids, ids_file)
    if not product_ids:
        console.print(f"[red]{get_error('E-1002').message_template}[/red]")
        raise typer.Exit(EXIT_ABORTED)

    tenant = shop or cfg.shopify.tenant
    try:
        client = build_tag_client(cfg)
    except ValueError as e:
        console.print(f"[red]Shopify is not configured:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_ABORTED)

    async def _execute(session) -> JobResult:
        async with client:
            engine = build_engine(cfg, client, session, shop=tenant)
            return await engine.execute(
                operation,
                product_ids,
                tag,
                old_tag,
                batch_size=size,
            )

    with open_database(cfg) as db:
        with db.session_scope() as session:
            size = batch_size or PreferencesService(session).get_batch_size(
                tenant, fallback=cfg.engine.batch_size
            )
            try:
                result = asyncio.run(_execute(session))
            except DomainError as e:
                console.print(f"[red]Error:[/red] {escape(str(e))}")
                raise typer.Exit(EXIT_ABORTED)
            except Exception as e:
                _log.error("Bulk tag job aborted: %s", e)
                console.print(f"[red]Job aborted:[/red] {escape(str(e))}")
                raise typer.Exit(EXIT_ABORTED)

    _emit(format_run_result(result, as_json=json_output))
    if result.failed_count:
        raise typer.Exit(EXIT_RECORD_FAILURES)


_IDS_OPTION = typer.Option(None, "--id", help="Product id (repeatable)")
_IDS_FILE_OPTION = typer.Option(
    None, "--ids-file", exists=True, dir_okay=False, help="File with one product id per line"
)
_SHOP_OPTION = typer.Option(None, "--shop", help="Tenant id (defaults to the store url)")
_BATCH_OPTION = typer.Option(None, "--batch-size", min=1, help="Products per batch")
_JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")


@run_app.command("add")
def run_add(
    tag: str = typer.Option(..., "--tag", help="Tag to add"),
    ids: Optional[list[str]] = _IDS_OPTION,
    ids_file: Optional[Path] = _IDS_FILE_OPTION,
    shop: Optional[str] = _SHOP_OPTION,
    batch_size: Optional[int] = _BATCH_OPTION,
    json_output: bool = _JSON_OPTION,
):
    """Add a tag to every product."""
    _run_job(OperationType.add_tag, tag, None, ids, ids_file, shop, batch_size, json_output)


@run_app.command("remove")
def run_remove(
    tag: str = typer.Option(..., "--tag", help="Tag to remove"),
    ids: Optional[list[str]] = _IDS_OPTION,
    ids_file: Optional[Path] = _IDS_FILE_OPTION,
    shop: Optional[str] = _SHOP_OPTION,
    batch_size: Optional[int] = _BATCH_OPTION,
    json_output: bool = _JSON_OPTION,
):
    """Remove a tag from every product."""
    _run_job(OperationType.remove_tag, tag, None, ids, ids_file, shop, batch_size, json_output)


@run_app.command("replace")
def run_replace(
    tag: str = typer.Option(..., "--tag", help="New tag"),
    old_tag: str = typer.Option(..., "--old-tag", help="Tag to replace"),
    ids: Optional[list[str]] = _IDS_OPTION,
    ids_file: Optional[Path] = _IDS_FILE_OPTION,
    shop: Optional[str] = _SHOP_OPTION,
    batch_size: Optional[int] = _BATCH_OPTION,
    json_output: bool = _JSON_OPTION,
):
    """Replace one tag with another on every product."""
    _run_job(
        OperationType.replace_tag, tag, old_tag, ids, ids_file, shop, batch_size, json_output
    )


# --- Job commands ---


@job_app.command("list")
def job_list(
    shop: Optional[str] = typer.Option(None, "--shop", help="Filter by tenant"),
    status: Optional[JobStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum jobs to show"),
    json_output: bool = _JSON_OPTION,
):
    """List bulk tag jobs, newest first."""
    cfg = _load()
    with open_database(cfg) as db, db.session_scope() as session:
        recorder = JobRecorder(session)
        jobs = [
            recorder.get_job_summary(job.id)
            for job in recorder.list_jobs(shop=shop, status=status, limit=limit)
        ]
    _emit(format_job_table(jobs, as_json=json_output))


@job_app.command("show")
def job_show(
    job_id: str = typer.Argument(help="Job ID to show"),
    json_output: bool = _JSON_OPTION,
):
    """Show one job with its error log."""
    cfg = _load()
    with open_database(cfg) as db, db.session_scope() as session:
        try:
            summary = JobRecorder(session).get_job_summary(job_id)
        except DomainError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)
    _emit(format_job_detail(summary, as_json=json_output))


@job_app.command("stats")
def job_stats(
    shop: Optional[str] = typer.Option(None, "--shop", help="Only jobs of this tenant"),
    json_output: bool = _JSON_OPTION,
):
    """Success statistics over completed jobs."""
    cfg = _load()
    with open_database(cfg) as db, db.session_scope() as session:
        stats = JobRecorder(session).get_stats(shop)
    _emit(format_job_stats(stats, as_json=json_output))


# --- Tag usage ---


@tags_app.command("top")
def tags_top(
    shop: Optional[str] = _SHOP_OPTION,
    limit: int = typer.Option(10, "--limit", min=1, help="Number of tags"),
    json_output: bool = _JSON_OPTION,
):
    """Show the most-used tags for a shop."""
    cfg = _load()
    tenant = shop or cfg.shopify.tenant
    with open_database(cfg) as db, db.session_scope() as session:
        rows = [
            {"tag_name": u.tag_name, "usage_count": u.usage_count, "last_used": u.last_used}
            for u in TagUsageService(session).top_tags(tenant, limit=limit)
        ]
    _emit(format_usage_table(rows, as_json=json_output))


# --- Recovery ---


@app.command()
def recover(
    resume: bool = typer.Option(
        False, "--resume", help="Continue interrupted jobs instead of failing them"
    ),
    shop: Optional[str] = typer.Option(None, "--shop", help="Only jobs of this tenant"),
):
    """Handle jobs interrupted by a process exit."""
    cfg = _load()
    choice = RecoveryChoice.RESUME if resume else RecoveryChoice.FAIL

    with open_database(cfg) as db, db.session_scope() as session:
        recorder = JobRecorder(session)
        interrupted = check_interrupted_jobs(recorder, shop)
        if not interrupted:
            console.print("[green]No interrupted jobs.[/green]")
            return
        for info in interrupted:
            console.print(get_recovery_prompt(info))
            console.print()

        async def _recover():
            if choice == RecoveryChoice.FAIL:
                return await recover_interrupted_jobs(recorder, choice, shop=shop)
            prefs = PreferencesService(session)
            async with build_tag_client(cfg) as client:
                engine = build_engine(cfg, client, session, shop=cfg.shopify.tenant)
                return await recover_interrupted_jobs(
                    recorder,
                    choice,
                    engine,
                    shop=shop,
                    batch_size_for=lambda tenant: prefs.get_batch_size(
                        tenant, fallback=cfg.engine.batch_size
                    ),
                )

        try:
            outcomes = asyncio.run(_recover())
        except Exception as e:
            _log.error("Recovery aborted: %s", e)
            console.print(f"[red]Recovery aborted:[/red] {escape(str(e))}")
            raise typer.Exit(EXIT_ABORTED)

    for info, result in outcomes:
        if result is None:
            console.print(f"[yellow]Job {info.job_id} marked failed.[/yellow]")
        else:
            _emit(format_run_result(result))


# --- Preferences ---


@prefs_app.command("show")
def prefs_show(
    shop: Optional[str] = _SHOP_OPTION,
    json_output: bool = _JSON_OPTION,
):
    """Show a shop's preferences."""
    cfg = _load()
    tenant = shop or cfg.shopify.tenant
    with open_database(cfg) as db, db.session_scope() as session:
        service = PreferencesService(session)
        data = service.to_dict(service.get_or_create(tenant))
    _emit(format_mapping("Preferences", data, as_json=json_output))


@prefs_app.command("set-batch-size")
def prefs_set_batch_size(
    size: int = typer.Argument(help="Default products per batch"),
    shop: Optional[str] = _SHOP_OPTION,
):
    """Store the default batch size used by runs without --batch-size."""
    cfg = _load()
    tenant = shop or cfg.shopify.tenant
    with open_database(cfg) as db, db.session_scope() as session:
        try:
            PreferencesService(session).set_batch_size(tenant, size)
        except DomainError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)
    console.print(f"[green]Default batch size for {tenant} set to {size}.[/green]")


@prefs_app.command("set-email-notifications")
def prefs_set_email_notifications(
    enabled: bool = typer.Argument(help="true to receive completion emails"),
    shop: Optional[str] = _SHOP_OPTION,
):
    """Turn completion email notifications on or off."""
    cfg = _load()
    tenant = shop or cfg.shopify.tenant
    with open_database(cfg) as db, db.session_scope() as session:
        PreferencesService(session).set_email_notifications(tenant, enabled)
    state = "enabled" if enabled else "disabled"
    console.print(f"[green]Email notifications for {tenant} {state}.[/green]")


@prefs_app.command("save-filter")
def prefs_save_filter(
    name: str = typer.Argument(help="Filter name"),
    query: str = typer.Argument(help="Product filter query, e.g. 'tag:summer'"),
    shop: Optional[str] = _SHOP_OPTION,
):
    """Store a named product filter."""
    cfg = _load()
    tenant = shop or cfg.shopify.tenant
    with open_database(cfg) as db, db.session_scope() as session:
        try:
            PreferencesService(session).save_filter(tenant, name, query)
        except DomainError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)
    console.print(f"[green]Saved filter {escape(name.strip())} for {tenant}.[/green]")


# --- Config ---


@config_app.command("show")
def config_show(json_output: bool = _JSON_OPTION):
    """Display resolved configuration (secrets masked)."""
    cfg = _load()
    _emit(format_mapping("Configuration", masked_config(cfg), as_json=json_output))


if __name__ == "__main__":
    app()
