"""Caregiver alert message composition."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import tzinfo

from caregate.models import AlertLevel, CommunicationKind, Violation
from caregate.windows import to_local

PREVIEW_LENGTH = 30
RECENT_VIOLATION_LIMIT = 5

NameLookup = Callable[[str], "str | None"]


def truncate_preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    """Collapse whitespace and cut ``text`` to at most ``limit`` characters."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: max(limit - 3, 0)].rstrip() + "..."


def most_recent(violations: Iterable[Violation], limit: int = RECENT_VIOLATION_LIMIT) -> list[Violation]:
    """Newest violations first, at most ``limit`` of them."""
    return sorted(violations, key=lambda v: v.occurred_at, reverse=True)[:limit]


def _plural(count: int) -> str:
    return "attempt" if count == 1 else "attempts"


def format_violation(
    violation: Violation,
    name_lookup: NameLookup | None = None,
    timezone: tzinfo | None = None,
    preview_length: int = PREVIEW_LENGTH,
) -> str:
    """One summary line: who was contacted, how, when, and a text preview."""
    who = (name_lookup(violation.contact_id) if name_lookup else None) or violation.contact_id
    when = to_local(violation.occurred_at, timezone).strftime("%b %d %H:%M")

    if violation.kind is CommunicationKind.CALL:
        return f"- Call to {who} at {when}"

    preview = truncate_preview(violation.text or "", preview_length)
    return f'- Text to {who} at {when}: "{preview}"'


def compose_alert_message(
    level: AlertLevel | None,
    today_blocked: int,
    violations: Iterable[Violation],
    name_lookup: NameLookup | None = None,
    timezone: tzinfo | None = None,
    recent_limit: int = RECENT_VIOLATION_LIMIT,
    preview_length: int = PREVIEW_LENGTH,
) -> str:
    """Build the SMS body for a caregiver alert.

    Args:
        level: Alert level, or None for a caregiver-requested test message
        today_blocked: Blocked attempts in the rolling 24 hours
        violations: Blocked calls and texts to summarize
        name_lookup: Resolves contact IDs to display names
        timezone: Zone for displayed times (None for system local time)
        recent_limit: Maximum violations listed
        preview_length: Maximum characters of text preview

    Returns:
        Human-readable alert text
    """
    noun = _plural(today_blocked)

    if level is AlertLevel.ESCALATION:
        lines = [
            f"URGENT Caregiver Alert: {today_blocked} blocked communication {noun} "
            "in the last 24 hours.",
            "Repeated attempts may mean your loved one is distressed or confused. "
            "Please check in as soon as possible.",
        ]
    elif level is AlertLevel.PRIMARY:
        lines = [
            f"Caregiver Alert: {today_blocked} blocked communication {noun} "
            "in the last 24 hours.",
        ]
    else:
        lines = [
            "[TEST] Caregiver Alert: this is a test notification.",
            f"Currently {today_blocked} blocked communication {noun} in the last 24 hours.",
        ]

    recent = most_recent(violations, recent_limit)
    if recent:
        lines.append("")
        lines.append("Most recent:")
        lines.extend(
            format_violation(v, name_lookup, timezone, preview_length) for v in recent
        )

    lines.append("")
    lines.append("Open the app to review blocked communications.")
    return "\n".join(lines)
