"""Admin authorization gate.

Admin rights are granted per chat session by ``/admin_login <secret>``.
There is no lockout: every call is a single independent attempt.
"""

from __future__ import annotations

import hmac
import logging

from volunteer_bot.core.session import Session

logger = logging.getLogger(__name__)


def login(session: Session, secret: str, admin_secret: str) -> bool:
    """Mark ``session`` as admin if ``secret`` matches ``admin_secret``.

    A successful login also discards any wizard in progress.
    An empty ``admin_secret`` never matches.
    """
    if not admin_secret or not hmac.compare_digest(
        secret.encode("utf-8"), admin_secret.encode("utf-8")
    ):
        logger.warning("Failed admin login in chat %s", session.chat_id)
        return False

    session.is_admin = True
    session.reset_wizard()
    logger.info("Admin login in chat %s", session.chat_id)
    return True


def require_admin(session: Session) -> bool:
    """Return True when the session may run admin-only commands."""
    return session.is_admin
