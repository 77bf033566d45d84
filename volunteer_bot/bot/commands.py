"""
Volunteer Bot — Command registry.

Static mapping from command name to its handler. The dispatcher registers
exactly these commands with Telegram; anything else is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from volunteer_bot.core import admin_service, event_wizard, volunteer_service
from volunteer_bot.core.request import CommandRequest

Handler = Callable[[CommandRequest], Awaitable[str]]

HELP_TEXT = (
    "🤖 *Volunteer Management Bot*\n\n"
    "I help manage volunteer onboarding, event planning and admin tasks.\n\n"
    "*For volunteers:*\n"
    "• /onboard — Learn about the volunteer program\n"
    "• /my\\_status — Check your volunteer status\n"
    "• `/commit <task_id>` — Sign up for an event task\n"
    "• `/update_task_status <task_id> <status>` — Update your task\n"
    "• /list\\_events — View published events\n\n"
    "*For admins:*\n"
    "• `/admin_login <secret>` — Authenticate as admin\n"
    "• /list\\_volunteers — View all volunteers\n"
    "• `/add_volunteer @handle \"Name\"` — Add a volunteer\n"
    "• `/add_volunteer_with_status @handle \"Name\" <status>` — Add with status\n"
    "• `/remove_volunteer @handle` — Remove a volunteer\n"
    "• /create\\_event — Create an event (interactive)\n"
    "• `/assign_task <task_id> @handle` — Assign a task\n"
    "• `/finalize_event <event_id>` — Publish an event\n"
    "• /list\\_events\\_with\\_tasks — Events with task IDs\n"
    "• `/event_details <event_id>` — Event details\n\n"
    "*General:*\n"
    "• /start, /help — Show this message\n"
    "• /cancel — Cancel the current operation"
)


@dataclass(frozen=True)
class Command:
    name: str
    handler: Handler
    description: str
    admin_only: bool = False


async def show_help(request: CommandRequest) -> str:
    """Handle /start and /help."""
    return HELP_TEXT


_COMMAND_LIST = (
    Command("start", show_help, "Show welcome message and help"),
    Command("help", show_help, "Show all available commands"),
    Command("onboard", volunteer_service.onboard, "Learn about the volunteer program"),
    Command("my_status", volunteer_service.my_status, "Check your volunteer status"),
    Command("commit", volunteer_service.commit, "Sign up for event tasks"),
    Command("admin_login", admin_service.admin_login, "Authenticate as admin"),
    Command("list_volunteers", admin_service.list_volunteers,
            "View all volunteers (admin)", admin_only=True),
    Command("add_volunteer", admin_service.add_volunteer,
            "Add new volunteer (admin)", admin_only=True),
    Command("remove_volunteer", admin_service.remove_volunteer,
            "Remove volunteer (admin)", admin_only=True),
    Command("add_volunteer_with_status", admin_service.add_volunteer_with_status,
            "Add volunteer with status (admin)", admin_only=True),
    Command("create_event", event_wizard.create_event,
            "Create new event with task selection (admin)", admin_only=True),
    Command("assign_task", volunteer_service.assign_task,
            "Assign tasks to volunteers (admin)", admin_only=True),
    Command("update_task_status", volunteer_service.update_task_status, "Update task status"),
    Command("finalize_event", event_wizard.finalize_event,
            "Publish event (admin)", admin_only=True),
    Command("list_events", event_wizard.list_events, "View events"),
    Command("list_events_with_tasks", event_wizard.list_events_with_tasks,
            "View events with task IDs (admin)", admin_only=True),
    Command("event_details", event_wizard.event_details,
            "View detailed event information (admin)", admin_only=True),
    Command("cancel", event_wizard.cancel, "Cancel current operation"),
)

COMMANDS: dict[str, Command] = {c.name: c for c in _COMMAND_LIST}
