"""Human-readable notification and activity messages."""

from __future__ import annotations

from calendar_sync.models.content import POOL, parse_slot_key


def format_location(location: str) -> str:
    """Render a location as ``Content Pool`` or ``January 14, 2025``."""
    if location == POOL:
        return "Content Pool"
    day = parse_slot_key(location)
    if day is None:
        return location
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def _suffix(location: str, instance: str) -> str:
    text = f" placed at '{format_location(location)}'" if location else ""
    if instance:
        text += f" • {instance}"
    return text


def comment_message(actor: str, title: str, location: str = "", instance: str = "") -> str:
    return f'{actor} commented on the card with title "{title or "Untitled"}"{_suffix(location, instance)}'


def merged_comment_message(actor: str, title: str, count: int) -> str:
    return f'{actor or "Someone"} commented {count} times on "{title or "an item"}"'


def approval_message(
    actor: str, title: str, *, approving: bool, location: str = "", instance: str = ""
) -> str:
    verb = "approved" if approving else "un-approved"
    return f'{actor} has {verb} the card with title "{title or "Untitled"}"{_suffix(location, instance)}'


def edit_message(actor: str, title: str, location: str = "", instance: str = "") -> str:
    return f'{actor} edited the card with title "{title or "Untitled"}"{_suffix(location, instance)}'


def status_message(
    actor: str,
    title: str,
    old_status: str,
    new_status: str,
    location: str = "",
    instance: str = "",
) -> str:
    return (
        f'{actor} changed the status of the card with title "{title or "Untitled"}"'
        f" from {old_status} to {new_status}{_suffix(location, instance)}"
    )


# Activity log lines


def dropped_activity(actor: str, title: str, location: str) -> str:
    return f"{actor} dropped '{title}' on {format_location(location)}"


def pooled_activity(actor: str, title: str) -> str:
    return f"{actor} moved '{title}' back to pool"


def approval_activity(actor: str, title: str, *, approving: bool) -> str:
    if approving:
        return f"{actor} approved '{title}'"
    return f"{actor} marked '{title}' for review"


def status_activity(actor: str, title: str, new_status: str) -> str:
    return f"{actor} set '{title}' to {new_status}"


def created_activity(actor: str, title: str) -> str:
    return f"{actor} uploaded a new content: {title}"


def edited_activity(actor: str, title: str) -> str:
    return f"{actor} made changes to '{title}'"


def attached_activity(actor: str, title: str, count: int) -> str:
    noun = "file" if count == 1 else "files"
    return f"{actor} attached {count} {noun} to '{title}'"


def commented_activity(actor: str, title: str) -> str:
    return f"{actor} commented on '{title}'"


def deleted_activity(actor: str, title: str) -> str:
    return f"{actor} deleted content: {title}"
