"""Rich output formatting for the usage-tracking CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tracking_engine.models.interaction import (
    HealthStatus,
    QueueStatus,
    UsageStats,
    UserInteractionRow,
)
from tracking_engine.models.privacy import PrivacySettings, RetentionInfo
from tracking_engine.telemetry.privacy import REDACTED_PROMPT

# Rough blended price used for the cost estimate in ``usage stats``.
COST_PER_1K_TOKENS_USD = 0.002

_PROMPT_PREVIEW_CHARS = 80


def _yes_no(flag: bool) -> str:
    return "[green]✓ Yes[/green]" if flag else "[red]✗ No[/red]"


def _format_ts(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def estimate_cost_usd(total_tokens: int) -> float:
    return (total_tokens / 1000) * COST_PER_1K_TOKENS_USD


# ---------------------------------------------------------------------------
# Privacy status
# ---------------------------------------------------------------------------


def display_privacy_status(
    console: Console,
    settings: PrivacySettings,
    retention: RetentionInfo,
    queue: QueueStatus,
    *,
    remote_configured: bool,
    user_email: str | None,
) -> None:
    """Render consent, per-category switches, retention and queue state.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    settings:
        Current privacy settings.
    retention:
        Retention window and next cleanup date.
    queue:
        Snapshot of the in-process tracking queue.
    remote_configured:
        Whether remote store credentials are present and valid.
    user_email:
        Identity records are stored under, if configured.
    """
    header_lines = [
        f"[bold]Supabase Configuration:[/bold] {'[green]✓ Configured[/green]' if remote_configured else '[red]✗ Not configured[/red]'}",
        f"[bold]User Email:[/bold]             {user_email or 'Not set'}",
        f"[bold]Tracking Enabled:[/bold]       {_yes_no(settings.tracking_enabled)}",
        f"[bold]Consent Given:[/bold]          {_yes_no(settings.consent_given)}",
    ]
    if settings.consent_date is not None:
        header_lines.append(f"[bold]Consent Date:[/bold]           {_format_ts(settings.consent_date)}")
    console.print(Panel("\n".join(header_lines), title="Privacy & Tracking Status", border_style="blue"))

    table = Table(title="Tracking Settings", show_header=False, pad_edge=True, expand=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Track Prompts", _yes_no(settings.track_prompts))
    table.add_row("Track Tokens", _yes_no(settings.track_tokens))
    table.add_row("Track Metadata", _yes_no(settings.track_metadata))
    table.add_row("Data Retention", f"{retention.retention_days} days")
    if retention.next_cleanup_date is not None:
        table.add_row("Next Cleanup", _format_ts(retention.next_cleanup_date))
    console.print(table)

    console.print(f"[bold]Pending Interactions:[/bold] {queue.pending_count}")
    console.print(f"[bold]Processing:[/bold] {'Yes' if queue.is_processing else 'No'}")


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


def display_usage_stats(console: Console, stats: UsageStats) -> None:
    """Render aggregate usage with a rough cost estimate."""
    lines = [
        f"[bold]Total Interactions:[/bold]  {stats.total_interactions}",
        f"[bold]Total Tokens Used:[/bold]   {stats.total_tokens:,}",
        f"[bold]Avg Tokens/Interaction:[/bold] {stats.average_tokens_per_interaction}",
    ]
    if stats.last_interaction is not None:
        lines.append(f"[bold]Last Interaction:[/bold]    {_format_ts(stats.last_interaction)}")
    lines.append(f"[bold]Estimated Cost:[/bold]      ~${estimate_cost_usd(stats.total_tokens):.4f}")
    console.print(Panel("\n".join(lines), title="Usage Statistics", border_style="blue"))


def display_history(console: Console, rows: Sequence[UserInteractionRow]) -> None:
    """Render recent interactions, newest first.

    Redacted prompts are left out of the preview column.
    """
    if not rows:
        console.print("[dim]No interaction history found.[/dim]")
        return

    table = Table(title=f"Recent Interactions ({len(rows)})", show_lines=False, pad_edge=True, expand=False)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("When")
    table.add_column("Model", style="bold")
    table.add_column("Tokens", justify="right")
    table.add_column("Prompt")

    for idx, row in enumerate(rows, start=1):
        preview = "-"
        if row.prompt_text and row.prompt_text != REDACTED_PROMPT:
            preview = row.prompt_text[:_PROMPT_PREVIEW_CHARS]
            if len(row.prompt_text) > _PROMPT_PREVIEW_CHARS:
                preview += "..."
            preview = escape(preview)
        table.add_row(
            str(idx),
            _format_ts(row.interaction_timestamp),
            escape(row.model_name or "Unknown"),
            str(row.total_token_count or 0),
            preview,
        )

    console.print(table)


def display_queue_status(console: Console, status: QueueStatus, flush_interval: float) -> None:
    lines = [
        f"[bold]Enabled:[/bold]               {_yes_no(status.is_enabled)}",
        f"[bold]Pending Interactions:[/bold]  {status.pending_count}",
        f"[bold]Currently Processing:[/bold]  {'Yes' if status.is_processing else 'No'}",
    ]
    console.print(Panel("\n".join(lines), title="Tracking Queue Status", border_style="blue"))
    if status.pending_count > 0:
        console.print(f"[dim]Interactions are processed in batches every {flush_interval:g} seconds.[/dim]")


def display_health(console: Console, health: HealthStatus) -> None:
    latency = f"{health.latency_ms:.0f} ms" if health.latency_ms is not None else "-"
    if health.is_healthy:
        console.print(f"[green]✓ Remote store reachable[/green] (latency {latency})")
    else:
        console.print(f"[red]✗ Remote store unhealthy:[/red] {health.error or 'unknown error'} (latency {latency})")
