"""
Volunteer Bot — Admin commands.

Login and volunteer roster management. Everything here except
``admin_login`` sits behind the admin gate in the dispatcher.
"""

from __future__ import annotations

import logging

from volunteer_bot.core import auth
from volunteer_bot.core.errors import InvalidArgument
from volunteer_bot.core.request import (
    CommandRequest,
    md,
    parse_handle,
    parse_volunteer_status,
)
from volunteer_bot.core.volunteer_service import STATUS_EMOJI
from volunteer_bot.data.models import VolunteerStatus

logger = logging.getLogger(__name__)


async def admin_login(request: CommandRequest) -> str:
    """Handle /admin_login <secret>."""
    from volunteer_bot.config import settings

    if len(request.args) != 1:
        raise InvalidArgument("Usage: /admin_login <secret>")

    if not auth.login(request.session, request.args[0], settings.ADMIN_SECRET):
        return "❌ Invalid admin secret."
    return "🔓 Logged in as admin. Type /help to see admin commands."


def _split_name(args: list[str]) -> str:
    name = " ".join(args).strip()
    if not name:
        raise InvalidArgument("Volunteer name must not be empty.")
    return name


async def add_volunteer(request: CommandRequest) -> str:
    """Handle /add_volunteer @handle "Name"."""
    if len(request.args) < 2:
        raise InvalidArgument('Usage: /add_volunteer @handle "Full Name"')
    handle = parse_handle(request.args[0])
    name = _split_name(request.args[1:])

    volunteer = request.volunteers.add_volunteer(handle, name)
    return (
        f"✅ Added volunteer {md(volunteer.name)} ({md(volunteer.handle)}) "
        f"with status {volunteer.status.value}."
    )


async def add_volunteer_with_status(request: CommandRequest) -> str:
    """Handle /add_volunteer_with_status @handle "Name" <status>."""
    if len(request.args) < 3:
        allowed = "|".join(s.value for s in VolunteerStatus)
        raise InvalidArgument(
            f'Usage: /add_volunteer_with_status @handle "Full Name" <{allowed}>'
        )
    handle = parse_handle(request.args[0])
    status = parse_volunteer_status(request.args[-1])
    name = _split_name(request.args[1:-1])

    volunteer = request.volunteers.add_volunteer(handle, name, status=status)
    return (
        f"✅ Added volunteer {md(volunteer.name)} ({md(volunteer.handle)}) "
        f"with status {STATUS_EMOJI[volunteer.status]} {volunteer.status.value}."
    )


async def remove_volunteer(request: CommandRequest) -> str:
    """Handle /remove_volunteer @handle."""
    if len(request.args) != 1:
        raise InvalidArgument("Usage: /remove_volunteer @handle")
    handle = parse_handle(request.args[0])

    released = request.volunteers.delete_volunteer(handle)
    msg = f"🗑️ Volunteer {md(handle)} removed."
    if released:
        msg += f"\n{released} task(s) released back to open."
    return msg


async def list_volunteers(request: CommandRequest) -> str:
    """Handle /list_volunteers — roster in insertion order."""
    volunteers = request.volunteers.list_volunteers()
    if not volunteers:
        return "No volunteers registered yet."

    lines = [f"*Volunteers ({len(volunteers)}):*\n"]
    for v in volunteers:
        lines.append(
            f"{STATUS_EMOJI[v.status]} {md(v.handle)} — {md(v.name)} ({v.status.value})"
        )
    return "\n".join(lines)
