"""Age and inactivity rules deciding which sessions are evicted."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from .models import Session

DEFAULT_MAX_SESSION_AGE = timedelta(hours=24)
DEFAULT_MAX_INACTIVITY = timedelta(hours=4)


@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    """Sessions older than ``max_session_age`` are evicted, as are active
    sessions idle for longer than ``max_inactivity``. Ended sessions are only
    subject to the age rule."""

    max_session_age: timedelta = DEFAULT_MAX_SESSION_AGE
    max_inactivity: timedelta = DEFAULT_MAX_INACTIVITY

    def is_expired(self, session: Session, now: datetime) -> bool:
        if now - session.start_time > self.max_session_age:
            return True
        return not session.is_ended and now - session.last_activity_time > self.max_inactivity

    def select_expired(self, sessions: Iterable[Session], now: datetime) -> list[str]:
        return [session.session_id for session in sessions if self.is_expired(session, now)]


__all__ = ["DEFAULT_MAX_INACTIVITY", "DEFAULT_MAX_SESSION_AGE", "RetentionPolicy"]
