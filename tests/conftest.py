"""Shared test fixtures and configuration.

Sets up fake environment variables so volunteer_bot.config doesn't sys.exit(),
and provides temp-file databases plus a CommandRequest factory.
"""

import os

# Patch env vars BEFORE any volunteer_bot imports
os.environ.setdefault("BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ADMIN_SECRET", "s3cret")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TASK_TEMPLATES", "Setup,Registration desk,Cleanup")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by both stores."""
    return str(tmp_path / "test_volunteers.db")


@pytest.fixture
def volunteer_db(tmp_db_path):
    """Return a VolunteerDB instance backed by a temp file."""
    from volunteer_bot.data.db import VolunteerDB
    return VolunteerDB(db_path=tmp_db_path)


@pytest.fixture
def event_db(tmp_db_path):
    """Return an EventDB instance backed by the same temp file."""
    from volunteer_bot.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def make_request(volunteer_db, event_db):
    """Factory for CommandRequest objects against the temp databases."""
    from volunteer_bot.core.request import Caller, CommandRequest
    from volunteer_bot.core.session import Session

    def _make(
        args=None,
        *,
        session=None,
        admin=False,
        username="alice",
        user_id=111,
        notifier=None,
        text="",
    ):
        return CommandRequest(
            args=list(args or []),
            session=session or Session(chat_id=1, is_admin=admin),
            caller=Caller(user_id=user_id, username=username),
            volunteers=volunteer_db,
            events=event_db,
            notifier=notifier,
            text=text,
        )

    return _make
