"""
Volunteer Bot — Telegram Bot.

Telegram is the only user interface. This module is the dispatcher: it
registers every command from the registry, applies the admin gate, owns the
per-chat sessions, routes plain text to the event wizard and schedules the
maintenance job.

Unknown commands get no reply at all.
"""

from __future__ import annotations

import logging
import signal
from datetime import timedelta
from typing import TYPE_CHECKING

from telegram import BotCommand, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from volunteer_bot.bot.commands import COMMANDS, Command
from volunteer_bot.config import settings
from volunteer_bot.core import event_wizard
from volunteer_bot.core.auth import require_admin
from volunteer_bot.core.errors import VolunteerBotError
from volunteer_bot.core.maintenance import run_maintenance
from volunteer_bot.core.request import Caller, CommandRequest, split_args
from volunteer_bot.core.session import Session, SessionStore

if TYPE_CHECKING:
    from volunteer_bot.data.db import EventDB, VolunteerDB
    from volunteer_bot.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

NOT_AUTHORIZED_REPLY = "⛔ Not authorized. Log in with /admin_login <secret> first."


# ---------------------------------------------------------------------------
# Request plumbing
# ---------------------------------------------------------------------------


def _raw_args(text: str | None) -> str:
    """Everything after the ``/command`` token."""
    parts = (text or "").split(maxsplit=1)
    return parts[1] if len(parts) > 1 else ""


def _build_request(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    session: Session,
    args: list[str],
    text: str = "",
) -> CommandRequest:
    user = update.effective_user
    caller = Caller(
        user_id=user.id if user else None,
        username=user.username if user else None,
    )
    return CommandRequest(
        args=args,
        session=session,
        caller=caller,
        volunteers=context.bot_data["volunteers"],
        events=context.bot_data["events"],
        notifier=context.bot_data.get("notifier"),
        text=text,
    )


async def _reply(update: Update, text: str, markdown: bool = True) -> None:
    await update.effective_message.reply_text(
        text, parse_mode=ParseMode.MARKDOWN if markdown else None,
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def dispatch(
    command: Command, update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> None:
    """Run one registered command: gate, parse, handle, reply."""
    message = update.effective_message
    chat = update.effective_chat
    if message is None or chat is None:
        return

    session = context.bot_data["sessions"].get(chat.id)

    if command.admin_only and not require_admin(session):
        user = update.effective_user
        logger.warning(
            "Unauthorized /%s from user_id=%s in chat %s",
            command.name, user.id if user else "unknown", chat.id,
        )
        await _reply(update, NOT_AUTHORIZED_REPLY, markdown=False)
        return

    try:
        args = split_args(_raw_args(message.text))
        request = _build_request(update, context, session, args)
        reply = await command.handler(request)
    except VolunteerBotError as exc:
        logger.info("/%s failed: %s", command.name, exc)
        await _reply(update, f"❌ {exc}", markdown=False)
        return

    await _reply(update, reply)


def _command_callback(command: Command):
    async def callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatch(command, update, context)

    callback.__name__ = f"cmd_{command.name}"
    return callback


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Offer plain text to the chat's wizard; silent when none is active."""
    message = update.effective_message
    chat = update.effective_chat
    if message is None or chat is None:
        return

    session = context.bot_data["sessions"].get(chat.id)
    request = _build_request(update, context, session, args=[], text=message.text or "")
    try:
        reply = await event_wizard.handle_text(request)
    except VolunteerBotError as exc:
        logger.info("Wizard step failed in chat %s: %s", chat.id, exc)
        await _reply(update, f"❌ {exc}", markdown=False)
        return

    if reply:
        await _reply(update, reply)


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log anything the handlers did not turn into a reply."""
    logger.error("Unhandled error while processing update %s", update, exc_info=context.error)


# ---------------------------------------------------------------------------
# Lifecycle hooks and jobs
# ---------------------------------------------------------------------------


async def _maintenance_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    await run_maintenance(context.bot_data["volunteers"], context.bot_data.get("notifier"))


async def _post_init(application: Application) -> None:
    """Register the command menu for auto-completion; failures are not fatal."""
    try:
        await application.bot.set_my_commands(
            [BotCommand(c.name, c.description) for c in COMMANDS.values()]
        )
        logger.info("Bot commands registered for auto-completion")
    except Exception as exc:
        logger.error("Failed to set bot commands: %s", exc)


async def _post_shutdown(application: Application) -> None:
    logger.info("Volunteer bot stopped, %d session(s) dropped", len(application.bot_data["sessions"]))


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    volunteer_db: VolunteerDB | None = None,
    event_db: EventDB | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        volunteer_db: Volunteer store. Defaults to VolunteerDB at DATABASE_PATH.
        event_db: Event store. Defaults to EventDB at DATABASE_PATH.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = (
        ApplicationBuilder()
        .token(settings.BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    if volunteer_db is None or event_db is None:
        from volunteer_bot.data.db import EventDB, VolunteerDB
        volunteer_db = volunteer_db or VolunteerDB()
        event_db = event_db or EventDB()

    if notifier is None:
        from volunteer_bot.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    app.bot_data["volunteers"] = volunteer_db
    app.bot_data["events"] = event_db
    app.bot_data["notifier"] = notifier
    app.bot_data["sessions"] = SessionStore()

    # Commands
    for command in COMMANDS.values():
        app.add_handler(CommandHandler(command.name, _command_callback(command)))

    # Text messages (non-command) feed the wizard
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    app.add_error_handler(on_error)

    # Maintenance: once at startup, then every interval
    app.job_queue.run_repeating(
        _maintenance_job,
        interval=timedelta(minutes=settings.MAINTENANCE_INTERVAL_MINUTES),
        first=0,
        name="maintenance",
    )

    logger.info(
        "Telegram bot application built with %d handlers, maintenance every %d min",
        len(app.handlers[0]),
        settings.MAINTENANCE_INTERVAL_MINUTES,
    )
    return app


def main() -> None:
    """Entry point: build the app and start polling until SIGINT/SIGTERM."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Volunteer bot...")
    app = build_app()
    app.run_polling(
        allowed_updates=Update.ALL_TYPES,
        stop_signals=(signal.SIGINT, signal.SIGTERM),
    )
