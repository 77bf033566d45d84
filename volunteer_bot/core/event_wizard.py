"""
Volunteer Bot — Event wizard and event listings.

/create_event walks an admin through a short conversation:

    Idle -> CollectingTitle -> SelectingTasks -> (event stored) -> Idle

/finalize_event <id> puts the chat into AwaitingFinalizeConfirm; only an
explicit "yes" publishes the event and notifies volunteers. Plain text in
an idle chat is ignored.
"""

from __future__ import annotations

import logging
import time

from volunteer_bot.core.auth import require_admin
from volunteer_bot.core.errors import Conflict, InvalidArgument, NotFound
from volunteer_bot.core.request import CommandRequest, md, parse_id
from volunteer_bot.core.session import (
    AwaitingFinalizeConfirm,
    CollectingTitle,
    Idle,
    SelectingTasks,
    Session,
)
from volunteer_bot.core.volunteer_service import format_task
from volunteer_bot.data.models import Event, TaskStatus, VolunteerStatus

logger = logging.getLogger(__name__)

DONE_SENTINEL = "done"
_YES = ("yes", "y")
_NO = ("no", "n")

_BUSY_REPLY = (
    "Another operation is in progress in this chat. "
    "Finish it or type /cancel first."
)


def _templates() -> list[str]:
    from volunteer_bot.config import settings
    return settings.TASK_TEMPLATES


def _confirm_timeout() -> int:
    from volunteer_bot.config import settings
    return settings.FINALIZE_CONFIRM_TIMEOUT_SECONDS


def _expire_stale(session: Session) -> None:
    """Drop a finalize confirmation that has outlived its timeout."""
    state = session.wizard
    if (
        isinstance(state, AwaitingFinalizeConfirm)
        and time.monotonic() - state.requested_at > _confirm_timeout()
    ):
        logger.info(
            "Finalize request for event #%d in chat %s expired", state.event_id, session.chat_id,
        )
        session.reset_wizard()


def _parse_title(text: str) -> tuple[str, str]:
    """Split ``"Title | schedule"`` into its parts; schedule is optional."""
    title, _, scheduled_for = text.partition("|")
    return title.strip(), scheduled_for.strip()


def _event_summary(event: Event) -> str:
    state = "✅ published" if event.finalized else "📝 draft"
    open_count = sum(1 for t in event.tasks if t.status is TaskStatus.OPEN)
    line = f"`#{event.id}` {md(event.title)}"
    if event.scheduled_for:
        line += f" — {md(event.scheduled_for)}"
    return f"{line}\n   {state}, {len(event.tasks)} task(s), {open_count} open"


# ---------------------------------------------------------------------------
# /create_event and the plain-text wizard steps
# ---------------------------------------------------------------------------


async def create_event(request: CommandRequest) -> str:
    """Handle /create_event — start the wizard."""
    session = request.session
    _expire_stale(session)
    if session.in_wizard:
        return _BUSY_REPLY
    session.wizard = CollectingTitle()
    return (
        "📅 *New event*\n\n"
        "What's the event title? You can add when it happens after a `|`, e.g.\n"
        "`Beach cleanup | Sat 2 Nov 10:00`\n\n"
        "Type /cancel to abort."
    )


def _task_prompt() -> str:
    lines = ["Now add tasks, one per message."]
    templates = _templates()
    if templates:
        lines.append("Send a number to pick a common task:")
        lines.extend(f"  {i}. {md(name)}" for i, name in enumerate(templates, start=1))
        lines.append("…or type any task description.")
    lines.append(f"Send `{DONE_SENTINEL}` when finished.")
    return "\n".join(lines)


async def handle_text(request: CommandRequest) -> str | None:
    """Feed a plain-text message into the chat's wizard.

    Returns the reply, or None when no wizard is active for the chat.
    """
    session = request.session
    state = session.wizard
    text = request.text.strip()

    if isinstance(state, Idle):
        return None

    if isinstance(state, CollectingTitle):
        title, scheduled_for = _parse_title(text)
        if not title:
            return "The title can't be empty. What's the event title?"
        session.wizard = SelectingTasks(title=title, scheduled_for=scheduled_for)
        return f"*Title:* {md(title)}\n\n" + _task_prompt()

    if isinstance(state, SelectingTasks):
        return await _select_task(request, state, text)

    if isinstance(state, AwaitingFinalizeConfirm):
        return await _confirm_finalize(request, state, text)

    raise TypeError(f"Unknown wizard state: {state!r}")


async def _select_task(request: CommandRequest, state: SelectingTasks, text: str) -> str:
    session = request.session

    if text.lower() == DONE_SENTINEL:
        if not state.tasks:
            return "Add at least one task before finishing."
        event = request.events.create_event(
            title=state.title,
            task_descriptions=list(state.tasks),
            scheduled_for=state.scheduled_for,
            created_by=request.caller.user_id,
        )
        session.reset_wizard()
        lines = [f"✅ Event `#{event.id}` {md(event.title)} created with tasks:"]
        lines.extend(format_task(t) for t in event.tasks)
        lines.append(f"\nPublish it with `/finalize_event {event.id}` when ready.")
        return "\n".join(lines)

    if not text:
        return _task_prompt()

    templates = _templates()
    if text.isdigit():
        index = int(text)
        if not 1 <= index <= len(templates):
            return f"There is no task template {index}. " + _task_prompt()
        description = templates[index - 1]
    else:
        description = text

    tasks = state.tasks + (description,)
    session.wizard = SelectingTasks(
        title=state.title, scheduled_for=state.scheduled_for, tasks=tasks,
    )
    return (
        f"➕ Task {len(tasks)}: {md(description)}\n"
        f"Send another task or `{DONE_SENTINEL}` to finish."
    )


# ---------------------------------------------------------------------------
# /finalize_event and its confirmation
# ---------------------------------------------------------------------------


async def finalize_event(request: CommandRequest) -> str:
    """Handle /finalize_event <event_id> — ask for confirmation."""
    if len(request.args) != 1:
        raise InvalidArgument("Usage: /finalize_event <event_id>")
    event_id = parse_id(request.args[0], kind="event")

    session = request.session
    _expire_stale(session)
    if session.in_wizard:
        return _BUSY_REPLY

    event = request.events.get_event(event_id)
    if event is None:
        raise NotFound(f"Event {event_id} not found.")
    if event.finalized:
        raise Conflict(f"Event {event_id} is already finalized.")

    session.wizard = AwaitingFinalizeConfirm(event_id=event_id, requested_at=time.monotonic())
    return (
        f"You are about to publish:\n\n{_event_summary(event)}\n\n"
        "After publishing, the task list can no longer change and volunteers "
        "will be notified.\nReply *yes* to publish or *no* to abort."
    )


async def _confirm_finalize(
    request: CommandRequest, state: AwaitingFinalizeConfirm, text: str,
) -> str:
    session = request.session
    answer = text.lower()

    if time.monotonic() - state.requested_at > _confirm_timeout():
        session.reset_wizard()
        return (
            f"⌛ The request to publish event `#{state.event_id}` expired. "
            f"Run `/finalize_event {state.event_id}` again."
        )

    if answer in _NO:
        session.reset_wizard()
        return f"Publishing of event `#{state.event_id}` aborted. Nothing was changed."

    if answer not in _YES:
        return "Please reply *yes* to publish or *no* to abort."

    session.reset_wizard()
    event = request.events.finalize_event(state.event_id)
    notified = await _broadcast_event(request, event)
    return (
        f"🎉 Event `#{event.id}` {md(event.title)} is published.\n"
        f"Notified {notified} volunteer(s)."
    )


async def _broadcast_event(request: CommandRequest, event: Event) -> int:
    """Tell active and lead volunteers about a newly published event."""
    if request.notifier is None:
        return 0

    open_tasks = [t for t in event.tasks if t.status is TaskStatus.OPEN]
    lines = [f"📣 New event: {event.title}"]
    if event.scheduled_for:
        lines.append(f"When: {event.scheduled_for}")
    if open_tasks:
        lines.append("\nOpen tasks:")
        lines.extend(f"  #{t.id} {t.description}" for t in open_tasks)
        lines.append("\nSign up with /commit <task_id>")
    text = "\n".join(lines)

    sent = 0
    recipients = request.volunteers.list_reachable(
        (VolunteerStatus.ACTIVE, VolunteerStatus.LEAD)
    )
    for volunteer in recipients:
        try:
            await request.notifier.send_message(volunteer.telegram_user_id, text)
            sent += 1
        except Exception as exc:
            logger.error(
                "Failed to notify %s about event #%d: %s", volunteer.handle, event.id, exc,
            )
    logger.info("Event #%d broadcast to %d/%d volunteer(s)", event.id, sent, len(recipients))
    return sent


# ---------------------------------------------------------------------------
# /cancel
# ---------------------------------------------------------------------------


async def cancel(request: CommandRequest) -> str:
    """Handle /cancel — abandon whatever flow the chat is in."""
    session = request.session
    _expire_stale(session)
    state = session.wizard

    if isinstance(state, Idle):
        return "Nothing to cancel."
    session.reset_wizard()
    if isinstance(state, AwaitingFinalizeConfirm):
        return f"Publishing of event `#{state.event_id}` cancelled."
    return "❌ Event creation cancelled. Nothing was saved."


# ---------------------------------------------------------------------------
# Read-only projections
# ---------------------------------------------------------------------------


async def list_events(request: CommandRequest) -> str:
    """Handle /list_events — admins see drafts too, others published only."""
    admin = require_admin(request.session)
    events = request.events.list_events(finalized_only=not admin)
    if not events:
        return "No events yet." if admin else "No published events yet."

    lines = ["*Events:*\n"]
    lines.extend(_event_summary(e) for e in events)
    return "\n".join(lines)


async def list_events_with_tasks(request: CommandRequest) -> str:
    """Handle /list_events_with_tasks (admin)."""
    events = request.events.list_events()
    if not events:
        return "No events yet."

    blocks = []
    for event in events:
        lines = [_event_summary(event)]
        lines.extend("   " + format_task(t) for t in event.tasks)
        blocks.append("\n".join(lines))
    return "*Events with tasks:*\n\n" + "\n\n".join(blocks)


async def event_details(request: CommandRequest) -> str:
    """Handle /event_details <event_id> (admin)."""
    if len(request.args) != 1:
        raise InvalidArgument("Usage: /event_details <event_id>")
    event_id = parse_id(request.args[0], kind="event")

    event = request.events.get_event(event_id)
    if event is None:
        raise NotFound(f"Event {event_id} not found.")

    lines = [
        f"*Event* `#{event.id}`: {md(event.title)}",
        f"When: {md(event.scheduled_for) if event.scheduled_for else 'not set'}",
        f"Status: {'✅ published' if event.finalized else '📝 draft'}",
        f"Created: {event.created_at}",
        "",
        "*Tasks:*",
    ]
    if event.tasks:
        lines.extend(format_task(t) for t in event.tasks)
    else:
        lines.append("(none)")

    done = sum(1 for t in event.tasks if t.status is TaskStatus.DONE)
    lines.append(f"\nProgress: {done}/{len(event.tasks)} done")
    return "\n".join(lines)
