"""Command request passed from the dispatcher to every handler.

Handlers have the shape ``async def handler(request) -> str`` and never
touch Telegram objects directly.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import TYPE_CHECKING

from telegram.helpers import escape_markdown

from volunteer_bot.core.errors import InvalidArgument
from volunteer_bot.data.models import TaskStatus, VolunteerStatus, normalize_handle

if TYPE_CHECKING:
    from volunteer_bot.core.session import Session
    from volunteer_bot.data.db import EventDB, VolunteerDB
    from volunteer_bot.ports.notification_port import NotificationPort


@dataclass
class Caller:
    """The Telegram user who sent the command."""

    user_id: int | None
    username: str | None = None

    @property
    def handle(self) -> str | None:
        if not self.username:
            return None
        return normalize_handle(self.username)


@dataclass
class CommandRequest:
    args: list[str]
    session: Session
    caller: Caller
    volunteers: VolunteerDB
    events: EventDB
    notifier: NotificationPort | None = None
    text: str = ""


def split_args(raw: str) -> list[str]:
    """Split command arguments shell-style so names can be quoted.

    >>> split_args('@alice "Alice A"')
    ['@alice', 'Alice A']
    """
    try:
        return shlex.split(raw)
    except ValueError:
        raise InvalidArgument("Unbalanced quotes in arguments.") from None


def md(text: object) -> str:
    """Escape user-supplied text for Telegram's legacy Markdown.

    Legacy Markdown has no escapes inside an entity, so the result must sit
    outside `*...*` and other markers.
    """
    return escape_markdown(str(text), version=1)


def parse_id(value: str, kind: str = "task") -> int:
    try:
        parsed = int(value.lstrip("#"))
    except ValueError:
        raise InvalidArgument(f"Invalid {kind} ID: {value}") from None
    if parsed < 1:
        raise InvalidArgument(f"Invalid {kind} ID: {value}")
    return parsed


def parse_handle(value: str) -> str:
    handle = normalize_handle(value)
    if len(handle) < 2 or any(ch.isspace() for ch in handle):
        raise InvalidArgument(f"Invalid handle: {value}")
    return handle


def parse_volunteer_status(value: str) -> VolunteerStatus:
    try:
        return VolunteerStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in VolunteerStatus)
        raise InvalidArgument(f"Unknown status '{value}'. Use one of: {allowed}") from None


def parse_task_status(value: str) -> TaskStatus:
    try:
        return TaskStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise InvalidArgument(f"Unknown task status '{value}'. Use one of: {allowed}") from None
