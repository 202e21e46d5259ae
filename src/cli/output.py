"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.services.job_models import JobResult

console = Console()

STATUS_COLORS = {
    "pending": "yellow",
    "in_progress": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
}

OPERATION_LABELS = {
    "add_tag": "add",
    "remove_tag": "remove",
    "replace_tag": "replace",
}


def _ts(value: str | None) -> str:
    return value[:19] if value else "-"


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def _colored_status(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _describe_tags(job: dict[str, Any]) -> str:
    if job.get("old_tag_value"):
        return f"{escape(job['old_tag_value'])} -> {escape(job['tag_value'])}"
    return escape(job["tag_value"])


def format_job_table(jobs: list[dict[str, Any]], as_json: bool = False) -> str:
    """Format a list of job summaries as a Rich table or JSON.

    Args:
        jobs: Job summaries as returned by JobRecorder.get_job_summary.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(jobs, indent=2)

    if not jobs:
        return "No jobs found."

    table = Table(title="Jobs", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Shop")
    table.add_column("Operation")
    table.add_column("Tag")
    table.add_column("Status")
    table.add_column("Done", justify="right")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Created")

    for job in jobs:
        table.add_row(
            job["id"][:12],
            job["shop"],
            OPERATION_LABELS.get(job["operation"], job["operation"]),
            _describe_tags(job),
            _colored_status(job["status"]),
            f"{job['processed_count']}/{job['total_count']}",
            str(job["success_count"]),
            str(job["failed_count"]),
            _ts(job["created_at"]),
        )

    return _render(table)


def format_job_detail(job: dict[str, Any], as_json: bool = False) -> str:
    """Format a single job's full detail and error log as a Rich panel or JSON."""
    if as_json:
        return json.dumps(job, indent=2)

    lines = [
        f"[bold]Job ID:[/bold]    {job['id']}",
        f"[bold]Shop:[/bold]      {job['shop']}",
        f"[bold]Operation:[/bold] {job['operation']} {_describe_tags(job)}",
        f"[bold]Status:[/bold]    {_colored_status(job['status'])}",
        "",
        f"[bold]Records:[/bold]   {job['processed_count']}/{job['total_count']} processed",
        f"[bold]Success:[/bold]   [green]{job['success_count']}[/green]",
        f"[bold]Failed:[/bold]    [red]{job['failed_count']}[/red]",
        "",
        f"[bold]Created:[/bold]   {_ts(job['created_at'])}",
        f"[bold]Started:[/bold]   {_ts(job.get('started_at'))}",
        f"[bold]Completed:[/bold] {_ts(job.get('completed_at'))}",
    ]

    errors = job.get("error_log") or []
    if errors:
        lines.append("")
        lines.append(f"[bold red]Errors ({len(errors)}):[/bold red]")
        lines.extend(f"  - {escape(message)}" for message in errors)

    return _render(Panel("\n".join(lines), title="Job Detail", border_style="cyan"))


def format_run_result(result: JobResult, as_json: bool = False) -> str:
    """Format the outcome of one engine run."""
    if as_json:
        return json.dumps(result.to_dict(), indent=2)

    lines = [
        f"[bold]Job ID:[/bold]   {result.job_id}",
        f"[bold]Status:[/bold]   {_colored_status(result.status.value)}",
        f"[bold]Success:[/bold]  [green]{result.success_count}[/green]"
        f"/{result.total_count}",
        f"[bold]Failed:[/bold]   [red]{result.failed_count}[/red]",
        f"[bold]Writes:[/bold]   {result.write_count}",
    ]
    if result.errors:
        lines.append("")
        lines.append("[bold red]Errors:[/bold red]")
        lines.extend(f"  - {escape(message)}" for message in result.errors)

    return _render(Panel("\n".join(lines), title="Bulk Tag Result", border_style="cyan"))


def format_usage_table(rows: list[dict[str, Any]], as_json: bool = False) -> str:
    """Format tag usage counters as a Rich table or JSON."""
    if as_json:
        return json.dumps(rows, indent=2)

    if not rows:
        return "No tag usage recorded."

    table = Table(title="Top Tags")
    table.add_column("Tag", style="cyan")
    table.add_column("Uses", justify="right")
    table.add_column("Last Used")
    for row in rows:
        table.add_row(escape(row["tag_name"]), str(row["usage_count"]), _ts(row["last_used"]))

    return _render(table)


def format_mapping(title: str, data: dict[str, Any], as_json: bool = False) -> str:
    """Format a flat or nested mapping (preferences, config) as a panel or JSON."""
    if as_json:
        return json.dumps(data, indent=2)

    lines: list[str] = []
    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"[bold]{key}[/bold]")
            lines.extend(f"  {k}: {escape(str(v))}" for k, v in value.items())
        else:
            lines.append(f"[bold]{key}:[/bold] {escape(str(value))}")

    return _render(Panel("\n".join(lines) or "(empty)", title=title, border_style="cyan"))


def format_job_stats(stats: dict[str, Any], as_json: bool = False) -> str:
    """Format completed-job statistics as a panel or JSON."""
    if as_json:
        return json.dumps(stats, indent=2)

    if not stats["job_count"]:
        return "No completed jobs."

    rate = stats["success_rate"]
    rate_text = "-" if rate is None else f"{rate:.1f}%"
    lines = [
        f"[bold]Shop:[/bold]               {escape(stats['shop'] or 'all')}",
        f"[bold]Completed jobs:[/bold]     {stats['job_count']}",
        f"[bold]Products processed:[/bold] {stats['products_processed']}",
        f"[bold]Success rate:[/bold]       [green]{rate_text}[/green]",
        f"[bold]Failed operations:[/bold]  [red]{stats['failed_count']}[/red]",
    ]
    return _render(Panel("\n".join(lines), title="Job Statistics", border_style="cyan"))
