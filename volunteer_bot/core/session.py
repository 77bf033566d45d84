"""Per-chat session state.

A Session holds the admin login flag and the progress of the event wizard
for one chat. Sessions live in memory only; a restart logs everybody out
and drops unfinished wizards.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Union


# ---------------------------------------------------------------------------
# Wizard states (one dataclass per state)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class CollectingTitle:
    pass


@dataclass(frozen=True)
class SelectingTasks:
    title: str
    scheduled_for: str = ""
    tasks: tuple[str, ...] = ()


@dataclass(frozen=True)
class AwaitingFinalizeConfirm:
    event_id: int
    requested_at: float          # time.monotonic() when /finalize_event ran


WizardState = Union[Idle, CollectingTitle, SelectingTasks, AwaitingFinalizeConfirm]


@dataclass
class Session:
    """Transient state for one chat, passed into every command handler."""

    chat_id: int
    is_admin: bool = False
    wizard: WizardState = field(default_factory=Idle)

    @property
    def in_wizard(self) -> bool:
        return not isinstance(self.wizard, Idle)

    def reset_wizard(self) -> None:
        self.wizard = Idle()


class SessionStore:
    """In-memory sessions keyed by chat id.

    Sessions untouched for ``ttl`` seconds are dropped, which also abandons
    any wizard left half way.
    """

    def __init__(self, ttl: int = 12 * 60 * 60) -> None:
        self.ttl = ttl
        self._data: dict[int, tuple[Session, float]] = {}

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [cid for cid, (_, ts) in self._data.items() if now - ts > self.ttl]
        for cid in expired:
            self._data.pop(cid, None)

    def get(self, chat_id: int) -> Session:
        """Return the session for ``chat_id``, creating a fresh one if needed."""
        self._evict_expired()
        item = self._data.get(chat_id)
        session = item[0] if item else Session(chat_id=chat_id)
        self._data[chat_id] = (session, time.monotonic())
        return session

    def __len__(self) -> int:
        return len(self._data)
