"""In-process conversation sessions keyed by company number.

Every mutation goes through :meth:`SessionStore.session`, which holds a
per-company ``asyncio.Lock`` for the duration of the block. Two analysis
turns for the same company therefore never interleave their appends.
Sessions live for the process lifetime only; the least recently used idle
session is evicted once ``max_sessions`` is reached.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from ch_analyst.models.chat import ChatMessage, FunctionResultMessage, SystemMessage, UserMessage

logger = logging.getLogger(__name__)


def normalise_company_number(company_number: str) -> str:
    return company_number.strip().upper()


@dataclass
class ConversationSession:
    company_number: str
    messages: list[ChatMessage] = field(default_factory=list)

    @property
    def system_prompt(self) -> str | None:
        if self.messages and isinstance(self.messages[0], SystemMessage):
            return self.messages[0].content
        return None

    def set_system_prompt(self, content: str) -> None:
        """Replace the leading system message, keeping the conversation."""
        if self.messages and isinstance(self.messages[0], SystemMessage):
            self.messages[0] = SystemMessage(content=content)
        else:
            self.messages.insert(0, SystemMessage(content=content))

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)

    def window(self, max_history_messages: int) -> list[ChatMessage]:
        """The system prompt plus the newest ``max_history_messages``.

        The current turn (the latest user message and everything after it)
        is always kept whole, even when it alone exceeds the limit; only
        earlier history is cut. The window never starts with a function
        result whose call was cut off.
        """
        head = [m for m in self.messages[:1] if isinstance(m, SystemMessage)]
        body = self.messages[len(head):]
        if len(body) <= max_history_messages:
            return list(self.messages)

        turn_start = next(
            (i for i in range(len(body) - 1, -1, -1) if isinstance(body[i], UserMessage)),
            len(body),
        )
        current = body[turn_start:]
        earlier = body[:turn_start]
        budget = max_history_messages - len(current)
        recent = earlier[-budget:] if budget > 0 else []
        while recent and isinstance(recent[0], FunctionResultMessage):
            recent = recent[1:]
        return head + recent + current

    def trim(self, max_history_messages: int) -> int:
        """Cut the stored transcript down to :meth:`window`; returns the number dropped."""
        kept = self.window(max_history_messages)
        dropped = len(self.messages) - len(kept)
        self.messages = kept
        return dropped


class SessionStore:
    """Owner of all conversation sessions, serialising access per company."""

    def __init__(self, max_sessions: int = 256, max_history_messages: int = 40):
        self.max_sessions = max_sessions
        self.max_history_messages = max_history_messages
        self._sessions: OrderedDict[str, ConversationSession] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}  # callers holding or waiting on a key's lock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, company_number: str) -> bool:
        return normalise_company_number(company_number) in self._sessions

    @asynccontextmanager
    async def session(self, company_number: str) -> AsyncIterator[ConversationSession]:
        """Exclusive access to a company's session, creating it if needed."""
        key = normalise_company_number(company_number)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                session = self._sessions.get(key)
                if session is None:
                    session = ConversationSession(company_number=key)
                    self._sessions[key] = session
                    logger.debug("Created session for %s", key)
                self._sessions.move_to_end(key)
                try:
                    yield session
                finally:
                    dropped = session.trim(self.max_history_messages)
                    if dropped:
                        logger.debug("Trimmed %d old messages from session %s", dropped, key)
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
            self._evict()

    async def seed(self, company_number: str, system_prompt: str) -> None:
        """Install (or refresh) the system prompt of a company's session."""
        async with self.session(company_number) as session:
            session.set_system_prompt(system_prompt)

    def snapshot(self, company_number: str) -> list[ChatMessage]:
        """Copy of a session's transcript, empty if there is none."""
        session = self._sessions.get(normalise_company_number(company_number))
        return list(session.messages) if session else []

    def _evict(self) -> None:
        for key in list(self._sessions):
            if len(self._sessions) <= self.max_sessions:
                return
            if key in self._users:
                continue
            del self._sessions[key]
            self._locks.pop(key, None)
            logger.info("Evicted idle session %s", key)
