"""Caregate CLI entry point.

Caregiver-facing commands for reviewing blocked communications, managing
contact quotas, and configuring or resetting caregiver alerts.
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from caregate.config import get_config
from caregate.governor import default_quota
from caregate.main import CaregateApplication, build_application
from caregate.models import ContactQuota, KindQuota, QuietHours
from caregate.storage import StorageError
from caregate.windows import to_local

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Create CLI app
app = typer.Typer(
    name="caregate",
    help="Caregate - communication limits and escalating caregiver alerts",
    add_completion=False,
)

ConfigOption = Annotated[
    str, typer.Option("--config", "-c", help="Path to configuration file")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose output")
]


def _run(
    config_path: str,
    verbose: bool,
    action: Callable[[CaregateApplication], Awaitable[T]],
) -> T:
    """Start the application, run ``action`` against it, and shut down."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = get_config(config_path or None)
    if not verbose:
        logging.getLogger().setLevel(config.log_level.upper())

    async def runner() -> T:
        application = build_application(config)
        await application.start()
        try:
            return await action(application)
        finally:
            await application.close()

    try:
        return asyncio.run(runner())
    except StorageError as e:
        typer.echo(f"❌ Storage unavailable: {e}", err=True)
        raise typer.Exit(code=1)


def _fmt(value, tz=None) -> str:
    return to_local(value, tz).strftime("%Y-%m-%d %H:%M") if value else "-"


@app.command()
def status(config: ConfigOption = "", verbose: VerboseOption = False) -> None:
    """Show caregiver alert settings, breaker state and today's blocked count."""

    async def action(application: CaregateApplication):
        coordinator = application.coordinator
        return coordinator.state, coordinator.get_current_violation_stats(), application.timezone

    state, stats, tz = _run(config, verbose, action)

    typer.echo("Caregiver alerts")
    typer.echo(f"  Notifications: {'enabled' if state.notifications_enabled else 'disabled'}")
    typer.echo(f"  SMS: {'enabled' if state.sms_enabled else 'disabled'}")
    typer.echo(f"  Caregiver phone: {state.phone_number or 'not set'}")
    typer.echo(f"  Primary threshold: {state.primary_threshold}")
    escalation = (
        f"{state.escalation_threshold}" if state.escalation_configured else "disabled"
    )
    typer.echo(f"  Escalation threshold: {escalation}")
    typer.echo(f"  Status: {state.status.value}")
    typer.echo(f"  Last reset: {_fmt(state.last_reset_at, tz)}")
    typer.echo("")
    typer.echo("Blocked attempts")
    typer.echo(f"  Last 24 hours: {stats.today_blocked}")
    typer.echo(f"  Lifetime: {stats.lifetime_blocked}")
    typer.echo(
        f"  Primary: threshold reached {_fmt(stats.primary_threshold_reached_at, tz)}, "
        f"sent {_fmt(stats.primary_sent_at, tz)}"
    )
    if state.escalation_configured:
        typer.echo(
            f"  Escalation: threshold reached {_fmt(stats.escalation_threshold_reached_at, tz)}, "
            f"sent {_fmt(stats.escalation_sent_at, tz)}"
        )


@app.command()
def blocked(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Entries to show")] = 20,
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """List blocked calls and texts, newest first."""

    async def action(application: CaregateApplication):
        violations = application.governor.iter_violations()
        names = {v.contact_id: application.contacts.contact_name(v.contact_id) for v in violations}
        return violations, names, application.timezone

    violations, names, tz = _run(config, verbose, action)

    if not violations:
        typer.echo("No blocked communications")
        return

    for violation in list(reversed(violations))[:limit]:
        who = names.get(violation.contact_id) or violation.contact_id
        line = f"{_fmt(violation.occurred_at, tz)}  {violation.kind.value:<4}  {who}"
        if violation.text:
            line += f"  {violation.text!r}"
        typer.echo(line)


@app.command()
def stats(
    contact_id: Annotated[str, typer.Argument(help="Contact ID")],
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Show allowed calls and texts to a contact in the last 24 hours."""

    async def action(application: CaregateApplication):
        return application.governor.get_communication_stats(contact_id)

    result = _run(config, verbose, action)
    typer.echo(f"Contact {contact_id}: {result.calls} calls, {result.texts} texts in the last 24 hours")


@app.command()
def contacts(config: ConfigOption = "", verbose: VerboseOption = False) -> None:
    """Export contacts and their quotas as JSON."""

    async def action(application: CaregateApplication):
        return application.contacts.export()

    typer.echo(_run(config, verbose, action))


@app.command()
def reset(
    level: Annotated[
        str, typer.Option("--level", "-l", help="What to reset (all|primary|escalation)")
    ] = "all",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Reset the caregiver alert breaker."""
    valid_levels = ["all", "primary", "escalation"]
    if level not in valid_levels:
        typer.echo(f"❌ Invalid level: {level}", err=True)
        typer.echo(f"   Valid levels: {', '.join(valid_levels)}", err=True)
        raise typer.Exit(code=1)

    async def action(application: CaregateApplication):
        coordinator = application.coordinator
        if level == "primary":
            changed = await coordinator.reset_primary_alert()
        elif level == "escalation":
            changed = await coordinator.reset_escalation_alert()
        else:
            await coordinator.reset_alerts()
            changed = True
        return changed, coordinator.state.status

    changed, new_status = _run(config, verbose, action)
    if changed:
        typer.echo(f"✅ Alerts reset, status is now {new_status.value}")
    else:
        typer.echo(f"Nothing to reset at level {level} (status is {new_status.value})")


@app.command("clear-blocked")
def clear_blocked(
    scope: Annotated[
        str, typer.Option("--scope", "-s", help="What to clear (all|messages|calls)")
    ] = "all",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Permanently delete blocked communication history."""
    valid_scopes = ["all", "messages", "calls"]
    if scope not in valid_scopes:
        typer.echo(f"❌ Invalid scope: {scope}", err=True)
        typer.echo(f"   Valid scopes: {', '.join(valid_scopes)}", err=True)
        raise typer.Exit(code=1)

    if not yes:
        typer.confirm(f"Permanently delete blocked {scope}?", abort=True)

    async def action(application: CaregateApplication):
        governor = application.governor
        if scope == "messages":
            return await governor.clear_blocked_messages()
        if scope == "calls":
            return await governor.clear_blocked_calls()
        return await governor.clear_all_blocked()

    removed = _run(config, verbose, action)
    typer.echo(f"✅ Removed {removed} blocked entries")


@app.command()
def configure(
    phone: Annotated[Optional[str], typer.Option("--phone", help="Caregiver phone number")] = None,
    notifications: Annotated[
        Optional[bool],
        typer.Option("--notifications/--no-notifications", help="Enable caregiver alerts"),
    ] = None,
    sms: Annotated[Optional[bool], typer.Option("--sms/--no-sms", help="Deliver alerts by SMS")] = None,
    primary_threshold: Annotated[
        Optional[int], typer.Option("--primary-threshold", help="Blocked attempts before first alert")
    ] = None,
    escalation: Annotated[
        Optional[bool], typer.Option("--escalation/--no-escalation", help="Enable urgent follow-up")
    ] = None,
    escalation_threshold: Annotated[
        Optional[int], typer.Option("--escalation-threshold", help="Blocked attempts before urgent alert")
    ] = None,
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Edit caregiver alert settings."""
    candidates = {
        "phone_number": phone,
        "notifications_enabled": notifications,
        "sms_enabled": sms,
        "primary_threshold": primary_threshold,
        "escalation_enabled": escalation,
        "escalation_threshold": escalation_threshold,
    }
    changes = {k: v for k, v in candidates.items() if v is not None}
    if not changes:
        typer.echo("Nothing to change")
        return

    async def action(application: CaregateApplication):
        return await application.coordinator.update_settings(**changes)

    try:
        state = _run(config, verbose, action)
    except ValidationError as e:
        typer.echo(f"❌ Invalid settings: {e.error_count()} errors", err=True)
        for error in e.errors():
            typer.echo(f"   {'.'.join(str(p) for p in error['loc'])}: {error['msg']}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"✅ Updated {', '.join(sorted(changes))}")
    if state.escalation_enabled and not state.escalation_configured:
        typer.echo(
            "⚠️  Escalation threshold must be above the primary threshold; "
            "escalation will not fire",
            err=True,
        )


@app.command("set-quota")
def set_quota(
    contact_id: Annotated[str, typer.Argument(help="Contact ID")],
    calls_per_hour: Annotated[Optional[int], typer.Option("--calls-per-hour")] = None,
    calls_per_day: Annotated[Optional[int], typer.Option("--calls-per-day")] = None,
    texts_per_hour: Annotated[Optional[int], typer.Option("--texts-per-hour")] = None,
    texts_per_day: Annotated[Optional[int], typer.Option("--texts-per-day")] = None,
    voicemail: Annotated[
        Optional[int], typer.Option("--voicemail", help="Blocked calls that may leave voicemail")
    ] = None,
    quiet_start: Annotated[Optional[str], typer.Option("--quiet-start", help="HH:MM")] = None,
    quiet_end: Annotated[Optional[str], typer.Option("--quiet-end", help="HH:MM")] = None,
    no_quiet_hours: Annotated[
        bool, typer.Option("--no-quiet-hours", help="Remove quiet hours")
    ] = False,
    unlimited: Annotated[
        bool, typer.Option("--unlimited", help="Remove every limit for this contact")
    ] = False,
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Edit a contact's communication limits.

    Limits tighter than the unlimited reference values are enforced
    automatically; looser ones are stored but not enforced.
    """
    if (quiet_start is None) != (quiet_end is None):
        typer.echo("❌ --quiet-start and --quiet-end must be given together", err=True)
        raise typer.Exit(code=1)

    def edited(current: ContactQuota) -> ContactQuota:
        calls = current.calls.model_dump()
        texts = current.texts.model_dump()
        if calls_per_hour is not None:
            calls["max_per_hour"] = calls_per_hour
        if calls_per_day is not None:
            calls["max_per_day"] = calls_per_day
        if texts_per_hour is not None:
            texts["max_per_hour"] = texts_per_hour
        if texts_per_day is not None:
            texts["max_per_day"] = texts_per_day

        quiet_hours = current.quiet_hours
        if no_quiet_hours:
            quiet_hours = None
        elif quiet_start is not None:
            quiet_hours = QuietHours(start=quiet_start, end=quiet_end)

        return ContactQuota(
            calls=KindQuota(**calls),
            texts=KindQuota(**texts),
            voicemail_allowance=(
                current.voicemail_allowance if voicemail is None else voicemail
            ),
            quiet_hours=quiet_hours,
        )

    async def action(application: CaregateApplication):
        contact = application.contacts.get_contact(contact_id)
        if contact is None:
            raise KeyError(contact_id)
        quota = None if unlimited else edited(contact.quota or default_quota())
        return await application.contacts.update_quota(contact_id, quota)

    try:
        contact = _run(config, verbose, action)
    except KeyError:
        typer.echo(f"❌ Unknown contact: {contact_id}", err=True)
        raise typer.Exit(code=1)
    except ValidationError as e:
        typer.echo(f"❌ Invalid quota: {e.error_count()} errors", err=True)
        raise typer.Exit(code=1)

    if contact.quota is None:
        typer.echo(f"✅ {contact.name or contact_id}: no limits")
        return

    quota = contact.quota
    typer.echo(f"✅ Updated limits for {contact.name or contact_id}")
    for label, limits in (("Calls", quota.calls), ("Texts", quota.texts)):
        state = "enforced" if limits.enabled else "not enforced"
        typer.echo(f"   {label}: {limits.max_per_hour}/hour, {limits.max_per_day}/day ({state})")
    typer.echo(f"   Voicemail allowance: {quota.voicemail_allowance}")
    if quota.quiet_hours:
        typer.echo(f"   Quiet hours: {quota.quiet_hours.start}-{quota.quiet_hours.end}")


@app.command("test-alert")
def test_alert(config: ConfigOption = "", verbose: VerboseOption = False) -> None:
    """Send a test message to the caregiver without changing alert state."""

    async def action(application: CaregateApplication):
        return await application.coordinator.send_test_alert()

    result = _run(config, verbose, action)
    if result.delivered:
        typer.echo("✅ Test alert sent")
    else:
        typer.echo("❌ Test alert was not delivered (check phone number, SMS and gateway)", err=True)
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show Caregate version information."""
    try:
        ver = importlib.metadata.version("caregate")
    except importlib.metadata.PackageNotFoundError:
        ver = "unknown"
    typer.echo(f"Caregate version: {ver}")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
