"""In-memory conversation sessions keyed by user id."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionState(str, Enum):
    ACTIVE = "ACTIVE"
    FINALIZING = "FINALIZING"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def as_message(self) -> Dict[str, str]:
        """Return the turn in the format expected by the chat API."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class Session:
    user_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    turns: List[ConversationTurn] = field(default_factory=list)
    last_activity: Optional[datetime] = None
    pending_timer: Optional[Any] = None
    state: SessionState = SessionState.ACTIVE
    compacting: bool = False
    summary_failures: int = 0

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE


def format_transcript(turns: List[ConversationTurn]) -> str:
    return "\n".join(f"{turn.role.value}: {turn.content}" for turn in turns)


class SessionStore:
    """
    Owns the user_id -> Session map.

    Every method here runs without awaiting, so each call is a single step
    on the event loop. begin_finalize is the check-and-set that lets only one
    finalize per session proceed.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: str) -> Optional[Session]:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> Session:
        """Return the active session for user_id, starting a new one if needed."""
        session = self._sessions.get(user_id)
        if session is not None and session.is_active:
            return session

        if session is not None:
            logger.info(f"Session {session.session_id} for {user_id} is {session.state.value}, starting a new one")
        session = Session(user_id=user_id)
        self._sessions[user_id] = session
        logger.info(f"Created session {session.session_id} for {user_id}")
        return session

    def append(self, user_id: str, turn: ConversationTurn) -> Session:
        session = self.get_or_create(user_id)
        session.turns.append(turn)
        if session.last_activity is None or turn.timestamp > session.last_activity:
            session.last_activity = turn.timestamp
        return session

    def append_to(self, session: Session, turn: ConversationTurn) -> bool:
        """Append to a specific session object, only while it is still active."""
        if not session.is_active or self._sessions.get(session.user_id) is not session:
            return False
        session.turns.append(turn)
        return True

    def begin_finalize(self, user_id: str, deadline: Optional[Any] = None) -> Optional[Session]:
        """
        Move the user's session from ACTIVE to FINALIZING, or return None.

        When the deadline that fired is given, the session must still be
        waiting on that same deadline; a turn recorded since then has
        replaced it and the session stays active.
        """
        session = self._sessions.get(user_id)
        if session is None or not session.is_active:
            return None
        if deadline is not None and session.pending_timer is not deadline:
            return None
        session.state = SessionState.FINALIZING
        return session

    def close(self, session: Session) -> None:
        if session.state == SessionState.CLOSED:
            return
        session.state = SessionState.CLOSED
        session.pending_timer = None
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
        logger.info(f"Closed session {session.session_id} for {session.user_id}")

    def replace_prefix(self, session: Session, prefix: List[ConversationTurn], replacement: ConversationTurn) -> bool:
        """Swap the given leading turns for one replacement turn."""
        if not session.is_active or self._sessions.get(session.user_id) is not session:
            return False
        count = len(prefix)
        if count == 0 or len(session.turns) < count:
            return False
        if any(current is not old for current, old in zip(session.turns[:count], prefix)):
            return False
        session.turns = [replacement] + session.turns[count:]
        return True
