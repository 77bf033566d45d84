"""
Volunteer Bot — Periodic maintenance.

Two housekeeping passes over the volunteer roster, run once at startup and
then on a fixed interval by the job queue:

- Inactivity sweep: volunteers idle for longer than the threshold become
  inactive.
- Promotion check: long-standing active volunteers with enough completed
  tasks are promoted to lead and told about it.

Both passes only touch records that are not yet in the target state, so
running them twice in a row changes nothing the second time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from volunteer_bot.config import settings

if TYPE_CHECKING:
    from volunteer_bot.data.db import VolunteerDB
    from volunteer_bot.data.models import Volunteer
    from volunteer_bot.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

PROMOTION_MESSAGE = (
    "⭐ Congratulations {name}! Thanks to your work on {count} completed tasks "
    "you have been promoted to volunteer lead."
)


def mark_inactive_volunteers(
    volunteer_db: VolunteerDB,
    threshold_days: int | None = None,
    now: datetime | None = None,
) -> list[Volunteer]:
    """Mark volunteers with no activity in ``threshold_days`` as inactive."""
    if threshold_days is None:
        threshold_days = settings.INACTIVITY_THRESHOLD_DAYS
    now = now or datetime.now()

    cutoff = (now - timedelta(days=threshold_days)).isoformat(timespec="seconds")
    changed = volunteer_db.mark_inactive(cutoff)
    logger.info("Inactivity sweep: %d volunteer(s) marked inactive", len(changed))
    return changed


async def check_and_promote_volunteers(
    volunteer_db: VolunteerDB,
    notifier: NotificationPort | None,
    min_tenure_days: int | None = None,
    min_completed: int | None = None,
    now: datetime | None = None,
) -> list[Volunteer]:
    """Promote eligible volunteers to lead and notify them.

    A failed notification is logged; the promotion itself stands and is
    not repeated on the next run.
    """
    if min_tenure_days is None:
        min_tenure_days = settings.PROMOTION_MIN_TENURE_DAYS
    if min_completed is None:
        min_completed = settings.PROMOTION_MIN_COMPLETED_TASKS
    now = now or datetime.now()

    tenure_cutoff = (now - timedelta(days=min_tenure_days)).isoformat(timespec="seconds")
    promoted = volunteer_db.promote_eligible(tenure_cutoff, min_completed)

    for volunteer in promoted:
        if notifier is None or volunteer.telegram_user_id is None:
            logger.info("Promotion of %s not announced: no chat id known", volunteer.handle)
            continue
        try:
            count = volunteer_db.completed_task_count(volunteer.handle)
            await notifier.send_message(
                volunteer.telegram_user_id,
                PROMOTION_MESSAGE.format(name=volunteer.name, count=count),
            )
            logger.info("Promotion notice sent to %s", volunteer.handle)
        except Exception as exc:
            logger.error("Failed to send promotion notice to %s: %s", volunteer.handle, exc)

    logger.info("Promotion check: %d volunteer(s) promoted", len(promoted))
    return promoted


async def run_maintenance(
    volunteer_db: VolunteerDB,
    notifier: NotificationPort | None,
) -> None:
    """Run both passes; a failure in one is logged and does not stop the other."""
    logger.info("Running maintenance tasks...")

    try:
        mark_inactive_volunteers(volunteer_db)
    except Exception as exc:
        logger.error("Inactivity sweep failed: %s", exc)

    try:
        await check_and_promote_volunteers(volunteer_db, notifier)
    except Exception as exc:
        logger.error("Promotion check failed: %s", exc)

    logger.info("Maintenance tasks completed")
