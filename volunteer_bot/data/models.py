"""
Volunteer Bot — Data Models.

Volunteers, events and their tasks persist in SQLite across restarts.
Sessions (wizard progress, admin login) are transient and live in
volunteer_bot.core.session instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class VolunteerStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    LEAD = "lead"          # promoted tier


class TaskStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    DONE = "done"


def normalize_handle(handle: str) -> str:
    """Return ``handle`` lowercased with exactly one leading ``@``."""
    return "@" + handle.strip().lstrip("@").lower()


@dataclass
class Volunteer:
    """A volunteer known to the bot, identified by their Telegram handle."""

    id: int
    handle: str                         # e.g. "@alice"
    name: str
    status: VolunteerStatus = VolunteerStatus.PENDING
    last_active_at: str = ""            # ISO datetime
    created_at: str = ""                # ISO datetime
    telegram_user_id: int | None = None  # learned on first interaction


@dataclass
class Task:
    """A unit of work inside an event.

    ``assignee`` is a volunteer handle; the volunteer itself is owned by
    the store, not by the task.
    """

    id: int
    event_id: int
    description: str
    status: TaskStatus = TaskStatus.OPEN
    assignee: str | None = None


@dataclass
class Event:
    """An event created through the /create_event wizard.

    Once ``finalized`` is set the task list can no longer change.
    """

    id: int
    title: str
    scheduled_for: str = ""             # free text, e.g. "Sat 2 Nov 10:00"
    finalized: bool = False
    created_by: int | None = None       # Telegram user id of the admin
    created_at: str = ""
    tasks: list[Task] = field(default_factory=list)
