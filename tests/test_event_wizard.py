"""Tests for volunteer_bot.core.event_wizard — event creation and finalization.

Drives the wizard through plain-text messages the same way the dispatcher
does. The notifier is an AsyncMock.
"""

import time
from unittest.mock import AsyncMock, patch

import pytest

from volunteer_bot.config import settings
from volunteer_bot.core import event_wizard
from volunteer_bot.core.errors import Conflict, InvalidArgument, NotFound
from volunteer_bot.core.request import md
from volunteer_bot.core.session import (
    AwaitingFinalizeConfirm,
    CollectingTitle,
    Idle,
    SelectingTasks,
    Session,
)
from volunteer_bot.data.models import VolunteerStatus


@pytest.fixture(autouse=True)
def _templates(monkeypatch):
    monkeypatch.setattr(settings, "TASK_TEMPLATES", ["Setup", "Cleanup"])
    monkeypatch.setattr(settings, "FINALIZE_CONFIRM_TIMEOUT_SECONDS", 300)


@pytest.fixture
def admin_session():
    return Session(chat_id=1, is_admin=True)


async def _say(make_request, session, text, notifier=None):
    return await event_wizard.handle_text(
        make_request(session=session, text=text, notifier=notifier),
    )


# ---------------------------------------------------------------------------
# Creation wizard
# ---------------------------------------------------------------------------


class TestCreateEvent:
    @pytest.mark.asyncio
    async def test_starts_collecting_title(self, make_request, admin_session):
        reply = await event_wizard.create_event(make_request(session=admin_session))
        assert "title" in reply
        assert isinstance(admin_session.wizard, CollectingTitle)

    @pytest.mark.asyncio
    async def test_busy_when_wizard_active(self, make_request, admin_session):
        admin_session.wizard = SelectingTasks(title="Cleanup", tasks=("Bags",))
        reply = await event_wizard.create_event(make_request(session=admin_session))
        assert "/cancel" in reply
        assert admin_session.wizard == SelectingTasks(title="Cleanup", tasks=("Bags",))

    @pytest.mark.asyncio
    async def test_plain_text_ignored_when_idle(self, make_request, admin_session, event_db):
        reply = await _say(make_request, admin_session, "hello there")
        assert reply is None
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.list_events() == []

    @pytest.mark.asyncio
    async def test_title_with_schedule(self, make_request, admin_session):
        admin_session.wizard = CollectingTitle()
        reply = await _say(make_request, admin_session, "Beach cleanup | Sat 2 Nov 10:00")
        assert "Beach cleanup" in reply
        assert admin_session.wizard == SelectingTasks(
            title="Beach cleanup", scheduled_for="Sat 2 Nov 10:00",
        )

    @pytest.mark.asyncio
    async def test_empty_title_reprompts(self, make_request, admin_session):
        admin_session.wizard = CollectingTitle()
        reply = await _say(make_request, admin_session, "   ")
        assert "can't be empty" in reply
        assert isinstance(admin_session.wizard, CollectingTitle)

    @pytest.mark.asyncio
    async def test_template_number_and_free_text(self, make_request, admin_session):
        admin_session.wizard = SelectingTasks(title="Beach cleanup")

        await _say(make_request, admin_session, "2")
        await _say(make_request, admin_session, "Bring gloves")

        assert admin_session.wizard.tasks == ("Cleanup", "Bring gloves")

    @pytest.mark.asyncio
    async def test_unknown_template_number(self, make_request, admin_session):
        admin_session.wizard = SelectingTasks(title="Beach cleanup")
        reply = await _say(make_request, admin_session, "9")
        assert "no task template 9" in reply
        assert admin_session.wizard.tasks == ()

    @pytest.mark.asyncio
    async def test_done_without_tasks_reprompts(self, make_request, admin_session, event_db):
        admin_session.wizard = SelectingTasks(title="Beach cleanup")
        reply = await _say(make_request, admin_session, "done")
        assert "at least one task" in reply
        assert isinstance(admin_session.wizard, SelectingTasks)
        assert event_db.list_events() == []

    @pytest.mark.asyncio
    async def test_full_flow_stores_event(self, make_request, admin_session, event_db):
        await event_wizard.create_event(make_request(session=admin_session))
        await _say(make_request, admin_session, "Beach cleanup | Saturday")
        await _say(make_request, admin_session, "1")
        await _say(make_request, admin_session, "Hand out bags")
        reply = await _say(make_request, admin_session, "DONE")

        assert isinstance(admin_session.wizard, Idle)
        events = event_db.list_events()
        assert len(events) == 1
        event = events[0]
        assert event.title == "Beach cleanup"
        assert event.scheduled_for == "Saturday"
        assert event.finalized is False
        assert event.created_by == 111
        assert [t.description for t in event.tasks] == ["Setup", "Hand out bags"]
        assert f"/finalize_event {event.id}" in reply

    @pytest.mark.asyncio
    async def test_markdown_in_title_is_escaped_outside_bold(
        self, make_request, admin_session, event_db,
    ):
        title = "snake_case *party*"
        admin_session.wizard = CollectingTitle()

        title_reply = await _say(make_request, admin_session, title)
        await _say(make_request, admin_session, "Setup")
        done_reply = await _say(make_request, admin_session, "done")

        for reply in (title_reply, done_reply):
            assert md(title) in reply
            assert f"*{md(title)}*" not in reply
        assert event_db.list_events()[0].title == title


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_discards_draft(self, make_request, admin_session, event_db):
        admin_session.wizard = SelectingTasks(title="Beach cleanup", tasks=("Setup",))
        reply = await event_wizard.cancel(make_request(session=admin_session))
        assert "cancelled" in reply
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.list_events() == []

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, make_request, admin_session):
        reply = await event_wizard.cancel(make_request(session=admin_session))
        assert reply == "Nothing to cancel."

    @pytest.mark.asyncio
    async def test_cancel_pending_finalize(self, make_request, admin_session, event_db):
        event = event_db.create_event("Food drive", ["Sorting"])
        admin_session.wizard = AwaitingFinalizeConfirm(event.id, time.monotonic())
        await event_wizard.cancel(make_request(session=admin_session))
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.get_event(event.id).finalized is False


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------


class TestFinalizeEvent:
    @pytest.fixture
    def event(self, event_db):
        return event_db.create_event("Food drive", ["Sorting", "Packing"], scheduled_for="Sunday")

    @pytest.mark.asyncio
    async def test_requires_confirmation(self, make_request, admin_session, event_db, event):
        reply = await event_wizard.finalize_event(
            make_request([str(event.id)], session=admin_session),
        )
        assert "yes" in reply
        assert isinstance(admin_session.wizard, AwaitingFinalizeConfirm)
        assert event_db.get_event(event.id).finalized is False

    @pytest.mark.asyncio
    async def test_other_reply_reprompts(self, make_request, admin_session, event_db, event):
        await event_wizard.finalize_event(make_request([str(event.id)], session=admin_session))
        reply = await _say(make_request, admin_session, "maybe")
        assert "yes" in reply
        assert isinstance(admin_session.wizard, AwaitingFinalizeConfirm)
        assert event_db.get_event(event.id).finalized is False

    @pytest.mark.asyncio
    async def test_no_abandons(self, make_request, admin_session, event_db, event):
        await event_wizard.finalize_event(make_request([str(event.id)], session=admin_session))
        reply = await _say(make_request, admin_session, "no")
        assert "aborted" in reply
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.get_event(event.id).finalized is False

    @pytest.mark.asyncio
    async def test_yes_finalizes_and_broadcasts(
        self, make_request, admin_session, volunteer_db, event_db, event,
    ):
        volunteer_db.add_volunteer("@alice", "Alice", status=VolunteerStatus.ACTIVE)
        volunteer_db.add_volunteer("@bob", "Bob", status=VolunteerStatus.ACTIVE)
        other = event_db.create_event("Earlier event", ["Misc"])
        event_db.commit_task(other.tasks[0].id, "@alice", telegram_user_id=555)
        notifier = AsyncMock()

        await event_wizard.finalize_event(make_request([str(event.id)], session=admin_session))
        reply = await _say(make_request, admin_session, "Yes", notifier=notifier)

        assert "published" in reply
        assert "Notified 1" in reply
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.get_event(event.id).finalized is True
        notifier.send_message.assert_awaited_once()
        chat_id, text = notifier.send_message.await_args.args
        assert chat_id == 555
        assert "Food drive" in text
        assert "Sorting" in text

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_not_fatal(
        self, make_request, admin_session, volunteer_db, event_db, event,
    ):
        volunteer_db.add_volunteer("@alice", "Alice", status=VolunteerStatus.ACTIVE)
        other = event_db.create_event("Earlier event", ["Misc"])
        event_db.commit_task(other.tasks[0].id, "@alice", telegram_user_id=555)
        notifier = AsyncMock()
        notifier.send_message.side_effect = RuntimeError("blocked by user")

        await event_wizard.finalize_event(make_request([str(event.id)], session=admin_session))
        reply = await _say(make_request, admin_session, "yes", notifier=notifier)

        assert "Notified 0" in reply
        assert event_db.get_event(event.id).finalized is True

    @pytest.mark.asyncio
    async def test_expired_confirmation(self, make_request, admin_session, event_db, event):
        admin_session.wizard = AwaitingFinalizeConfirm(event.id, time.monotonic() - 10_000)
        reply = await _say(make_request, admin_session, "yes")
        assert "expired" in reply
        assert isinstance(admin_session.wizard, Idle)
        assert event_db.get_event(event.id).finalized is False

    @pytest.mark.asyncio
    async def test_lapsed_confirmation_does_not_block_new_commands(
        self, make_request, admin_session, event_db, event,
    ):
        with patch("volunteer_bot.core.event_wizard.time.monotonic", return_value=1000.0):
            await event_wizard.finalize_event(
                make_request([str(event.id)], session=admin_session),
            )
        assert isinstance(admin_session.wizard, AwaitingFinalizeConfirm)

        with patch("volunteer_bot.core.event_wizard.time.monotonic", return_value=2000.0):
            reply = await event_wizard.finalize_event(
                make_request([str(event.id)], session=admin_session),
            )
        assert "yes" in reply
        assert admin_session.wizard == AwaitingFinalizeConfirm(event.id, 2000.0)

        with patch("volunteer_bot.core.event_wizard.time.monotonic", return_value=3000.0):
            reply = await event_wizard.create_event(make_request(session=admin_session))
        assert isinstance(admin_session.wizard, CollectingTitle)
        assert event_db.get_event(event.id).finalized is False

    @pytest.mark.asyncio
    async def test_cancel_after_lapse_has_nothing_to_cancel(
        self, make_request, admin_session, event,
    ):
        admin_session.wizard = AwaitingFinalizeConfirm(event.id, time.monotonic() - 10_000)
        reply = await event_wizard.cancel(make_request(session=admin_session))
        assert reply == "Nothing to cancel."
        assert isinstance(admin_session.wizard, Idle)

    @pytest.mark.asyncio
    async def test_fresh_confirmation_still_blocks(self, make_request, admin_session, event):
        admin_session.wizard = AwaitingFinalizeConfirm(event.id, time.monotonic())
        reply = await event_wizard.create_event(make_request(session=admin_session))
        assert "/cancel" in reply
        assert isinstance(admin_session.wizard, AwaitingFinalizeConfirm)

    @pytest.mark.asyncio
    async def test_missing_event(self, make_request, admin_session):
        with pytest.raises(NotFound):
            await event_wizard.finalize_event(make_request(["999"], session=admin_session))
        assert isinstance(admin_session.wizard, Idle)

    @pytest.mark.asyncio
    async def test_already_finalized(self, make_request, admin_session, event_db, event):
        event_db.finalize_event(event.id)
        with pytest.raises(Conflict):
            await event_wizard.finalize_event(make_request([str(event.id)], session=admin_session))

    @pytest.mark.asyncio
    async def test_busy_during_creation(self, make_request, admin_session, event):
        admin_session.wizard = CollectingTitle()
        reply = await event_wizard.finalize_event(
            make_request([str(event.id)], session=admin_session),
        )
        assert "/cancel" in reply
        assert isinstance(admin_session.wizard, CollectingTitle)

    @pytest.mark.asyncio
    async def test_usage(self, make_request, admin_session):
        with pytest.raises(InvalidArgument):
            await event_wizard.finalize_event(make_request([], session=admin_session))


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class TestListings:
    @pytest.mark.asyncio
    async def test_list_events_hides_drafts_from_non_admins(self, make_request, event_db):
        event_db.create_event("Draft event", ["Setup"])
        published = event_db.create_event("Published event", ["Setup"])
        event_db.finalize_event(published.id)

        public = await event_wizard.list_events(make_request())
        admin = await event_wizard.list_events(make_request(admin=True))

        assert "Published event" in public
        assert "Draft event" not in public
        assert "Draft event" in admin
        assert "Published event" in admin

    @pytest.mark.asyncio
    async def test_list_events_empty(self, make_request):
        assert "No published events" in await event_wizard.list_events(make_request())

    @pytest.mark.asyncio
    async def test_list_events_with_tasks(self, make_request, event_db):
        event = event_db.create_event("Food drive", ["Sorting", "Packing"])
        reply = await event_wizard.list_events_with_tasks(make_request(admin=True))
        assert "Food drive" in reply
        for task in event.tasks:
            assert f"#{task.id}" in reply

    @pytest.mark.asyncio
    async def test_event_details(self, make_request, volunteer_db, event_db):
        volunteer_db.add_volunteer("@alice", "Alice")
        event = event_db.create_event("Food drive", ["Sorting"], scheduled_for="Sunday")
        event_db.assign_task(event.tasks[0].id, "@alice")

        reply = await event_wizard.event_details(make_request([str(event.id)], admin=True))

        assert "Food drive" in reply
        assert "Sunday" in reply
        assert "@alice" in reply
        assert "0/1 done" in reply

    @pytest.mark.asyncio
    async def test_event_details_missing(self, make_request):
        with pytest.raises(NotFound):
            await event_wizard.event_details(make_request(["404"], admin=True))
