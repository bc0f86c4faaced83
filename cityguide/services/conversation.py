"""In-memory conversation history for planning sessions."""
import logging
from typing import Dict, List, Optional, Tuple

from cityguide.models.conversation import ConversationTurn, Role

logger = logging.getLogger(__name__)


class ConversationState:
    """
    Ordered, append-only turn history for one trip.

    Alternation of user and assistant turns is not enforced; callers append
    a user turn before asking for a refinement and an assistant turn after a
    successful one. ``generation`` counts requests started against this
    session so a slow response can tell it has been superseded.
    """

    def __init__(self):
        self._turns: List[ConversationTurn] = []
        self.generation = 0
        self._pending: Optional[int] = None
        # Turns a fresh-start request cleared, kept until it completes
        self._replaced: Optional[List[ConversationTurn]] = None

    def __len__(self) -> int:
        return len(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def add(self, role: Role, text: str) -> ConversationTurn:
        """Append a turn built from ``role`` and ``text``."""
        turn = ConversationTurn(role=role, text=text)
        self.append(turn)
        return turn

    def history(self) -> List[ConversationTurn]:
        """Snapshot of the turns in order."""
        return list(self._turns)

    def reset(self) -> None:
        """Forget every turn, used when a brand-new trip is planned."""
        self._turns.clear()
        self._pending = None
        self._replaced = None

    def checkpoint(self) -> int:
        return len(self._turns)

    def rollback(self, mark: int) -> None:
        """Drop the turns appended after ``mark``."""
        del self._turns[mark:]

    def _undo_pending(self) -> None:
        if self._replaced is not None:
            self._turns = self._replaced
        elif self._pending is not None:
            self.rollback(self._pending)
        self._pending = None
        self._replaced = None

    def begin_request(self, fresh: bool = False) -> int:
        """
        Register a new in-flight request and return its ticket.

        Turns left behind by a request this one supersedes are dropped, so the
        newest request always starts from the last completed exchange. With
        ``fresh`` the request starts from an empty history; the previous turns
        come back if it is abandoned.
        """
        self._undo_pending()
        if fresh:
            self._replaced = list(self._turns)
            self._turns = []
        self.generation += 1
        self._pending = len(self._turns)
        return self.generation

    def is_current(self, ticket: int) -> bool:
        return ticket == self.generation

    def complete_request(self, ticket: int, reply: ConversationTurn) -> bool:
        """Record the assistant reply if ``ticket`` is still the newest request."""
        if not self.is_current(ticket):
            return False
        self.append(reply)
        self._pending = None
        self._replaced = None
        return True

    def abandon_request(self, ticket: int) -> None:
        """Restore the history ``ticket`` started from, unless a newer request owns it."""
        if self.is_current(ticket):
            self._undo_pending()


class ConversationRegistry:
    """Conversation sessions keyed by (owner, trip id)."""

    def __init__(self):
        self._sessions: Dict[Tuple[str, str], ConversationState] = {}

    def get(self, owner_id: str, trip_id: str) -> ConversationState:
        """Return the session for a trip, creating an empty one if needed."""
        key = (owner_id, trip_id)
        session = self._sessions.get(key)
        if session is None:
            session = ConversationState()
            self._sessions[key] = session
        return session

    def peek(self, owner_id: str, trip_id: str) -> Optional[ConversationState]:
        return self._sessions.get((owner_id, trip_id))

    def discard(self, owner_id: str, trip_id: str) -> None:
        if self._sessions.pop((owner_id, trip_id), None) is not None:
            logger.info(f"Discarded conversation for trip {trip_id}")
