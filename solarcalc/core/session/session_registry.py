"""
User session registry.

Keeps at most one live session per user, each with an isolated working
directory so concurrent Excel automation for different users never shares
files.

Dependencies: pathlib, shutil
System role: Session bookkeeping for the operation queue
"""

import logging
import shutil
from pathlib import Path

from solarcalc.core.exceptions import ValidationError
from solarcalc.core.session.models import (
    SESSION_SUBDIRS,
    UserSession,
    generate_session_id,
)

logger = logging.getLogger(__name__)

SESSIONS_DIR_NAME = "user-sessions"


def validate_user_id(user_id: str) -> str:
    """
    Reject user IDs that are unusable as a single path component.

    Raises:
        ValidationError: Empty ID, path separators or dot segments
    """
    if not user_id or not user_id.strip():
        raise ValidationError("User ID must not be empty", field="user_id")
    if "/" in user_id or "\\" in user_id or user_id in (".", ".."):
        raise ValidationError(f"Invalid user ID: {user_id!r}", field="user_id")
    return user_id


class SessionRegistry:
    """
    In-memory map of user ID to UserSession.

    A session stays valid while its last activity is younger than the
    configured timeout. Expired sessions are replaced on the next access and
    swept by the owning service.
    """

    def __init__(self, base_dir: Path, timeout_seconds: float) -> None:
        """
        Initialize registry.

        Args:
            base_dir: Directory under which ``user-sessions`` is created
            timeout_seconds: Idle time before a session expires
        """
        self.root = Path(base_dir) / SESSIONS_DIR_NAME
        self.timeout_seconds = timeout_seconds
        self._sessions: dict[str, UserSession] = {}

    def create_or_get(self, user_id: str) -> UserSession:
        """
        Return the user's valid session or create a fresh one.

        A stale session is discarded together with its working directory.

        Args:
            user_id: User identifier

        Returns:
            UserSession: Valid session with its subfolders created
        """
        validate_user_id(user_id)
        existing = self._sessions.get(user_id)
        if existing is not None:
            if not existing.is_expired(self.timeout_seconds):
                existing.touch()
                return existing
            logger.info(f"Replacing expired session {existing.session_id} for user {user_id}")
            self.remove_directory(existing)

        session_id = generate_session_id()
        working_directory = self.root / user_id / session_id
        for name in SESSION_SUBDIRS:
            (working_directory / name).mkdir(parents=True, exist_ok=True)

        session = UserSession(
            user_id=user_id,
            session_id=session_id,
            working_directory=working_directory,
        )
        self._sessions[user_id] = session
        logger.info(f"Created session {session_id} for user {user_id}")
        return session

    def get(self, user_id: str) -> UserSession | None:
        """Return the session only while it is still valid."""
        session = self._sessions.get(user_id)
        if session is None or session.is_expired(self.timeout_seconds):
            return None
        return session

    def get_any(self, user_id: str) -> UserSession | None:
        """Return the session regardless of expiry."""
        return self._sessions.get(user_id)

    def is_valid(self, user_id: str) -> bool:
        return self.get(user_id) is not None

    def start_operation(self, user_id: str, request_id: str) -> bool:
        """
        Record a request as executing for the user.

        Returns:
            bool: False when the user has no valid session
        """
        session = self.get(user_id)
        if session is None:
            return False
        session.active_operations.add(request_id)
        session.touch()
        return True

    def complete_operation(self, user_id: str, request_id: str) -> None:
        session = self._sessions.get(user_id)
        if session is None:
            return
        session.active_operations.discard(request_id)
        session.touch()

    def has_active_operations(self, user_id: str) -> bool:
        session = self._sessions.get(user_id)
        return bool(session and session.active_operations)

    def get_working_directory(self, user_id: str) -> Path | None:
        session = self.get(user_id)
        return session.working_directory if session else None

    def remove(self, user_id: str) -> UserSession | None:
        """Forget the user's session. The working directory is left to the caller."""
        return self._sessions.pop(user_id, None)

    def expired_user_ids(self) -> list[str]:
        return [
            user_id
            for user_id, session in self._sessions.items()
            if session.is_expired(self.timeout_seconds)
        ]

    def sessions(self) -> list[UserSession]:
        return list(self._sessions.values())

    def count(self) -> int:
        return len(self._sessions)

    @staticmethod
    def remove_directory(session: UserSession) -> bool:
        """
        Delete a session's working directory.

        Returns:
            bool: True if removed or already absent
        """
        try:
            shutil.rmtree(session.working_directory)
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(
                f"Failed to remove working directory {session.working_directory}: {e}"
            )
            return False
