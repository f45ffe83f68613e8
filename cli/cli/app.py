"""Codec usage CLI application -- Typer-based privacy and usage interface.

Provides commands for reviewing and changing usage-tracking consent,
per-category privacy switches, and for inspecting the usage recorded in the
remote store.  Human-readable output goes to *stderr* via Rich;
machine-readable output (``--json``) goes to *stdout* so that scripts can
compose cleanly.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, NoReturn, TypeVar

import typer
from rich.console import Console

from cli.display import (
    display_health,
    display_history,
    display_privacy_status,
    display_queue_status,
    display_usage_stats,
    estimate_cost_usd,
)
from tracking_engine.config import load_settings
from tracking_engine.errors import PrivacySettingsError
from tracking_engine.services import TrackingServices, build_services
from tracking_engine.sink.supabase import SupabaseSink

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="codec-usage",
    help="Codec usage tracking - consent, privacy settings and usage statistics.",
    no_args_is_help=True,
)
console = Console(stderr=True)

privacy_app = typer.Typer(
    name="privacy",
    help="Review and change usage-tracking consent and privacy settings.",
    no_args_is_help=True,
)
app.add_typer(privacy_app, name="privacy")

usage_app = typer.Typer(
    name="usage",
    help="Inspect tracked usage and the local tracking queue.",
    no_args_is_help=True,
)
app.add_typer(usage_app, name="usage")

# Mutable global options populated by the Typer callback.
_json_output: bool = False

_GIVE_ACTIONS = frozenset({"give", "yes", "enable"})
_REVOKE_ACTIONS = frozenset({"revoke", "no", "disable"})


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log tracking activity at debug level.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_services() -> TrackingServices:
    """Build the tracking components from the environment."""
    return build_services(load_settings())


@contextmanager
def _open_services() -> Iterator[TrackingServices]:
    """Yield the tracking components and always release them on the way out.

    Commands that already ran async work through :func:`_run` were closed on
    that event loop; everything else is closed here on a short-lived one.
    """
    services = _load_services()
    try:
        yield services
    finally:
        if not services.closed:
            asyncio.run(services.aclose())


def _run(services: TrackingServices, work: Callable[[], Awaitable[T]]) -> T:
    """Run *work* on a fresh event loop and release the services afterwards."""

    async def _main() -> T:
        try:
            return await work()
        finally:
            await services.aclose()

    return asyncio.run(_main())


def _exit_not_configured(services: TrackingServices) -> NoReturn:
    console.print(f"[red]Remote store not configured: {services.config_error}[/red]")
    console.print("[dim]Set SUPABASE_URL, SUPABASE_ANON_KEY and SUPABASE_USER_EMAIL.[/dim]")
    raise typer.Exit(code=3)


def _require_store(services: TrackingServices) -> SupabaseSink:
    """Return the remote store or exit with code 3 when it is not configured."""
    if services.store is None:
        _exit_not_configured(services)
    return services.store


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# privacy
# ---------------------------------------------------------------------------


@privacy_app.command("status")
def privacy_status() -> None:
    """Show consent, privacy switches, retention and queue state."""
    with _open_services() as services:
        settings = services.privacy.settings
        retention = services.privacy.get_retention_info()
        queue = services.tracker.get_queue_status()
        user_email = services.store.user_email if services.store is not None else None

        if _json_output:
            _emit_json(
                {
                    "remote_configured": services.remote_configured,
                    "config_error": services.config_error,
                    "user_email": user_email,
                    "settings": settings.model_dump(mode="json"),
                    "retention": retention.model_dump(mode="json"),
                    "queue": queue.model_dump(mode="json"),
                }
            )
            return

        display_privacy_status(
            console,
            settings,
            retention,
            queue,
            remote_configured=services.remote_configured,
            user_email=user_email,
        )
        if services.config_error:
            console.print(f"[yellow]{services.config_error}[/yellow]")


@privacy_app.command("consent")
def privacy_consent(
    action: str | None = typer.Argument(
        None,
        help="give | revoke. Without an action the consent text is shown.",
    ),
) -> None:
    """Give or revoke consent for usage tracking."""
    with _open_services() as services:
        normalized = (action or "").strip().lower()

        if normalized in _GIVE_ACTIONS:
            _require_store(services)
            services.privacy.give_consent()
            console.print("[green]✓ Usage tracking enabled.[/green]")
            console.print("[dim]Your interactions will now be tracked and stored remotely.[/dim]")
        elif normalized in _REVOKE_ACTIONS:
            services.privacy.revoke_consent()
            console.print("[green]✓ Usage tracking disabled.[/green]")
            console.print("[dim]No new interactions will be tracked.[/dim]")
        else:
            if action:
                console.print(f"[yellow]Unknown consent action '{action}'.[/yellow]")
            console.print(services.privacy.consent_text())
            console.print("\nUse [bold]privacy consent give[/bold] or [bold]privacy consent revoke[/bold].")
            return

        if _json_output:
            _emit_json({"consent_given": services.privacy.settings.consent_given})


@privacy_app.command("delete")
def privacy_delete(
    confirm: bool = typer.Option(
        False,
        "--confirm",
        help="Actually delete. Without it the command only explains what would happen.",
    ),
) -> None:
    """Delete every interaction stored for your identity."""
    with _open_services() as services:
        store = _require_store(services)

        if not confirm:
            console.print("[yellow]This permanently deletes all of your tracked interactions.[/yellow]")
            console.print("Run [bold]privacy delete --confirm[/bold] to proceed.")
            raise typer.Exit(code=1)

        deleted = _run(services, lambda: services.privacy.delete_all_data(store))
        if _json_output:
            _emit_json({"deleted": deleted})
        if not deleted:
            console.print("[red]Failed to delete your data. Please try again later.[/red]")
            raise typer.Exit(code=1)
        console.print("[green]✓ All of your tracked data has been deleted and tracking is disabled.[/green]")


@privacy_app.command("settings")
def privacy_settings(
    prompts: bool | None = typer.Option(None, "--prompts/--no-prompts", help="Track prompt text."),
    tokens: bool | None = typer.Option(None, "--tokens/--no-tokens", help="Track token counts."),
    metadata: bool | None = typer.Option(None, "--metadata/--no-metadata", help="Track session metadata."),
    retention_days: int | None = typer.Option(
        None,
        "--retention-days",
        help="Days before tracked interactions are deleted.",
    ),
) -> None:
    """Change which categories are tracked and how long data is kept."""
    with _open_services() as services:
        changes = {
            key: value
            for key, value in (
                ("track_prompts", prompts),
                ("track_tokens", tokens),
                ("track_metadata", metadata),
                ("data_retention_days", retention_days),
            )
            if value is not None
        }

        if changes:
            try:
                updated = services.privacy.update_settings(**changes)
            except PrivacySettingsError as exc:
                console.print(f"[red]{exc}[/red]")
                raise typer.Exit(code=3) from exc
            console.print("[green]✓ Privacy settings updated.[/green]")
        else:
            updated = services.privacy.settings

        if _json_output:
            _emit_json(updated.model_dump(mode="json"))
            return

        display_privacy_status(
            console,
            updated,
            services.privacy.get_retention_info(),
            services.tracker.get_queue_status(),
            remote_configured=services.remote_configured,
            user_email=services.store.user_email if services.store is not None else None,
        )


# ---------------------------------------------------------------------------
# usage
# ---------------------------------------------------------------------------


@usage_app.command("stats")
def usage_stats() -> None:
    """Show total interactions, tokens and an estimated cost."""
    with _open_services() as services:
        store = _require_store(services)
        if not services.privacy.is_tracking_enabled():
            console.print("[yellow]Usage tracking is disabled; statistics may be out of date.[/yellow]")

        stats = _run(services, store.get_user_stats)
        if _json_output:
            payload = stats.model_dump(mode="json")
            payload["estimated_cost_usd"] = round(estimate_cost_usd(stats.total_tokens), 6)
            _emit_json(payload)
            return
        display_usage_stats(console, stats)


@usage_app.command("history")
def usage_history(
    limit: int = typer.Argument(10, min=1, max=50, help="Number of interactions to show (1-50)."),
) -> None:
    """Show your most recent tracked interactions."""
    with _open_services() as services:
        store = _require_store(services)

        rows = _run(services, lambda: store.list_interactions(limit=limit))
        if _json_output:
            _emit_json([row.model_dump(mode="json") for row in rows])
            return
        display_history(console, rows)


@usage_app.command("queue")
def usage_queue() -> None:
    """Show the local tracking queue."""
    with _open_services() as services:
        status = services.tracker.get_queue_status()
        if _json_output:
            _emit_json(status.model_dump(mode="json"))
            return
        display_queue_status(console, status, services.settings.tracking_flush_interval)


@usage_app.command("flush")
def usage_flush(
    timeout: float = typer.Option(30.0, "--timeout", min=0.0, help="Seconds to wait for delivery."),
) -> None:
    """Deliver every queued interaction now."""
    with _open_services() as services:
        try:
            _run(services, lambda: services.tracker.flush(timeout))
        except TimeoutError as exc:
            console.print(f"[yellow]Flush timed out after {timeout:g}s.[/yellow]")
            raise typer.Exit(code=1) from exc

        delivered = services.processor.delivered_count
        abandoned = services.processor.abandoned_count
        if _json_output:
            _emit_json({"delivered": delivered, "abandoned": abandoned})
            return
        console.print(f"[green]✓ Tracking queue flushed[/green] ({delivered} delivered, {abandoned} dropped)")


@usage_app.command("health")
def usage_health() -> None:
    """Probe the remote store."""
    with _open_services() as services:
        store = _require_store(services)

        health = _run(services, store.health_check)
        if _json_output:
            _emit_json(health.model_dump(mode="json"))
        else:
            display_health(console, health)
        if not health.is_healthy:
            raise typer.Exit(code=1)


@usage_app.command("cleanup")
def usage_cleanup() -> None:
    """Delete tracked interactions older than your retention window."""
    with _open_services() as services:
        retention = services.retention
        if retention is None:
            _exit_not_configured(services)

        deleted = _run(services, retention.cleanup_expired)
        if _json_output:
            _emit_json({"deleted": deleted, "retention_days": services.privacy.settings.data_retention_days})
            return
        console.print(
            f"[green]✓ Removed {deleted} interaction(s) older than "
            f"{services.privacy.settings.data_retention_days} days.[/green]"
        )
