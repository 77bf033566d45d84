"""
Volunteer Bot — Volunteer & task commands.

Handlers for the commands every volunteer can run, plus the task
assignment commands shared with admins. Each handler takes a
CommandRequest and returns the reply text; failures are raised as
VolunteerBotError subclasses and rendered by the dispatcher.
"""

from __future__ import annotations

import logging

from volunteer_bot.core.auth import require_admin
from volunteer_bot.core.errors import InvalidArgument, NotFound
from volunteer_bot.core.request import (
    CommandRequest,
    md,
    parse_handle,
    parse_id,
    parse_task_status,
)
from volunteer_bot.data.models import Task, TaskStatus, VolunteerStatus

logger = logging.getLogger(__name__)

STATUS_EMOJI = {
    VolunteerStatus.PENDING: "⏳",
    VolunteerStatus.ACTIVE: "✅",
    VolunteerStatus.INACTIVE: "💤",
    VolunteerStatus.LEAD: "⭐",
}

TASK_EMOJI = {
    TaskStatus.OPEN: "🟢",
    TaskStatus.ASSIGNED: "🟡",
    TaskStatus.DONE: "✔️",
}

ONBOARD_TEXT = (
    "👋 *Welcome to the volunteer program!*\n\n"
    "Here is how it works:\n"
    "1. An organiser adds you to the volunteer list using your Telegram username.\n"
    "2. When an event is published you will get a message with its tasks.\n"
    "3. Pick a task with `/commit <task_id>` — it is yours until it is done.\n"
    "4. Check where you stand any time with /my\\_status.\n\n"
    "Volunteers who stay active get promoted to *lead* after a while. "
    "If you are away for a long time your status switches to inactive; "
    "committing to a new task makes you active again."
)


def format_task(task: Task) -> str:
    """One-line rendering of a task, used by several listings."""
    line = f"{TASK_EMOJI[task.status]} `#{task.id}` {md(task.description)} — {task.status.value}"
    if task.assignee:
        line += f" ({md(task.assignee)})"
    return line


async def onboard(request: CommandRequest) -> str:
    """Handle /onboard — static program information."""
    return ONBOARD_TEXT


async def my_status(request: CommandRequest) -> str:
    """Handle /my_status — look up the caller by their Telegram username."""
    handle = request.caller.handle
    volunteer = request.volunteers.get_volunteer(handle) if handle else None
    if volunteer is None:
        return (
            "You are not registered as a volunteer yet. "
            "Ask an organiser to add you, or see /onboard."
        )

    lines = [
        f"{md(volunteer.name)} ({md(volunteer.handle)})",
        f"Status: {STATUS_EMOJI[volunteer.status]} {volunteer.status.value}",
    ]
    tasks = request.events.list_tasks_for(volunteer.handle)
    if tasks:
        lines.append("\n*Your tasks:*")
        lines.extend(format_task(t) for t in tasks)
    return "\n".join(lines)


async def commit(request: CommandRequest) -> str:
    """Handle /commit <task_id> — sign the caller up for a task."""
    if len(request.args) != 1:
        raise InvalidArgument("Usage: /commit <task_id>")
    task_id = parse_id(request.args[0])

    handle = request.caller.handle
    if handle is None:
        raise InvalidArgument("Set a Telegram username first; volunteers are tracked by handle.")
    if request.events.get_task(task_id) is None:
        raise NotFound(f"Task {task_id} not found.")
    if request.volunteers.get_volunteer(handle) is None:
        raise NotFound("You are not registered as a volunteer. See /onboard.")

    task, changed = request.events.commit_task(task_id, handle, request.caller.user_id)
    if not changed:
        return f"You are already signed up for task `#{task.id}`."
    return f"🙌 You are now assigned to task `#{task.id}`: {md(task.description)}"


async def assign_task(request: CommandRequest) -> str:
    """Handle /assign_task <task_id> <handle> (admin)."""
    if len(request.args) != 2:
        raise InvalidArgument("Usage: /assign_task <task_id> @handle")
    task_id = parse_id(request.args[0])
    handle = parse_handle(request.args[1])

    task = request.events.assign_task(task_id, handle)
    return f"✅ Task `#{task.id}` ({md(task.description)}) assigned to {md(handle)}."


async def update_task_status(request: CommandRequest) -> str:
    """Handle /update_task_status <task_id> <status>.

    Admins may update any task; other callers only the tasks assigned to them.
    """
    if len(request.args) != 2:
        raise InvalidArgument("Usage: /update_task_status <task_id> <open|assigned|done>")
    task_id = parse_id(request.args[0])
    status = parse_task_status(request.args[1])

    acting_handle = None
    if not require_admin(request.session):
        acting_handle = request.caller.handle
        if acting_handle is None:
            raise InvalidArgument("Set a Telegram username first; volunteers are tracked by handle.")

    task = request.events.update_task_status(task_id, status, acting_handle=acting_handle)
    return f"{TASK_EMOJI[task.status]} Task `#{task.id}` is now *{task.status.value}*."
