"""Error kinds raised by the store and the command services.

Every error carries a message that is safe to show to the chat user;
the dispatcher turns them into replies instead of crashing.
"""

from __future__ import annotations


class VolunteerBotError(Exception):
    """Base class for all user-facing command failures."""


class NotFound(VolunteerBotError):
    """A referenced volunteer, event or task does not exist."""


class Conflict(VolunteerBotError):
    """The request clashes with existing state (duplicate handle, finalized event)."""


class InvalidArgument(VolunteerBotError):
    """An argument could not be parsed or is outside the allowed values."""


class Unauthorized(VolunteerBotError):
    """The caller is not allowed to run this command."""


class AlreadyAssigned(VolunteerBotError):
    """The task is already taken by another volunteer."""
