"""Per-session pub/sub for simulation output with bounded subscriber buffers."""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Dict, List, Optional
from shared.constants import SUBSCRIBER_BUFFER_SIZE, SESSION_RETENTION_SECONDS
from shared.exceptions import NotFoundError
from shared.types import CompleteEvent, GapEvent, SessionEvent


class Subscription:
    """Async iterator over one subscriber's view of a session.

    Log events that arrive while the buffer is full are dropped and counted;
    the count is delivered as a single gap event just before the next event
    that makes it into the buffer. The completion event is never dropped and
    ends the iteration.
    """

    def __init__(self, channel: "LogChannel", session_id: str, maxsize: int):
        self.channel = channel
        self.session_id = session_id
        self.maxsize = maxsize
        self._buffer: deque = deque()
        self._ready = asyncio.Event()
        self._missed = 0
        self._first_missed_seq = 0
        self._finished = False
        self._closed = False

    def _push(self, event: SessionEvent) -> None:
        if self._closed:
            return
        terminal = isinstance(event, CompleteEvent)
        if not terminal and len(self._buffer) >= self.maxsize:
            if self._missed == 0:
                self._first_missed_seq = event.seq
            self._missed += 1
            return

        if self._missed:
            self._buffer.append(GapEvent(seq=self._first_missed_seq, missed=self._missed))
            self._missed = 0
        self._buffer.append(event)
        self._ready.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> SessionEvent:
        while not self._buffer:
            if self._finished or self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()

        event = self._buffer.popleft()
        if isinstance(event, CompleteEvent):
            self._finished = True
            self.channel.unsubscribe(self)
        return event

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.channel.unsubscribe(self)
            self._ready.set()


class _Session:

    def __init__(self):
        self.seq = 0
        self.subscribers: List[Subscription] = []
        self.terminal: Optional[CompleteEvent] = None
        self.completed_at: Optional[float] = None


class LogChannel:
    """Fans each session's events out to its subscribers in publish order.

    Publishing never waits on subscribers. A completed session keeps its
    completion event for ``retention_seconds`` so late subscribers still see
    how the run ended; after that the session is purged and unknown.
    """

    def __init__(self, buffer_size: int = SUBSCRIBER_BUFFER_SIZE,
                 retention_seconds: float = SESSION_RETENTION_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.buffer_size = buffer_size
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._sessions: Dict[str, _Session] = {}

    def open(self, session_id: str) -> None:
        self._purge()
        self._sessions.setdefault(session_id, _Session())

    def has_session(self, session_id: str) -> bool:
        self._purge()
        return session_id in self._sessions

    def publish(self, session_id: str, event: SessionEvent) -> Optional[SessionEvent]:
        """Stamps the event with the session's next sequence number and delivers it"""
        session = self._get(session_id)
        if session.terminal is not None:
            logging.warning(f"Dropping event published after completion of {session_id}",
                            extra={"session_id": session_id, "event_type": event.type})
            return None

        session.seq += 1
        event = event.model_copy(update={"seq": session.seq})
        if isinstance(event, CompleteEvent):
            session.terminal = event
            session.completed_at = self.clock()

        for subscriber in list(session.subscribers):
            subscriber._push(event)
        return event

    def subscribe(self, session_id: str) -> Subscription:
        session = self._get(session_id)
        subscription = Subscription(self, session_id, self.buffer_size)
        if session.terminal is not None:
            subscription._push(session.terminal)
        else:
            session.subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        session = self._sessions.get(subscription.session_id)
        if session is not None and subscription in session.subscribers:
            session.subscribers.remove(subscription)

    def _get(self, session_id: str) -> _Session:
        self._purge()
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Simulation session {session_id} not found", session_id=session_id)
        return session

    def _purge(self) -> None:
        now = self.clock()
        expired = [
            sid for sid, session in self._sessions.items()
            if session.completed_at is not None and now - session.completed_at >= self.retention_seconds
        ]
        for sid in expired:
            del self._sessions[sid]
