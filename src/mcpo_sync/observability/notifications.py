"""User-facing notices for the admin UI.

Maintains a ring buffer of recent notices (success, info, error) and lets
listeners subscribe to new ones. A notice pushed with an id that is already
in the buffer is dropped, so repeated failures of the same kind show once.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "error")


@dataclass
class Notification:
    """A notice shown to the user."""
    id: str
    level: str
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class NotificationCenter:
    """Collects notices and fans them out to subscribers."""

    def __init__(self, max_history: int = 200):
        self._history: Deque[Notification] = deque(maxlen=max_history)
        self._subscribers: Set[asyncio.Queue] = set()

    def push(self, level: str, message: str, notice_id: Optional[str] = None) -> Optional[Notification]:
        """Record a notice. Returns None when *notice_id* was already shown."""
        if level not in LEVELS:
            raise ValueError(f"Unknown notice level: {level}")
        if notice_id is not None and any(n.id == notice_id for n in self._history):
            return None

        notice = Notification(id=notice_id or uuid.uuid4().hex, level=level, message=message)
        self._history.append(notice)

        dead_queues = []
        for queue in self._subscribers:
            try:
                queue.put_nowait(notice)
            except asyncio.QueueFull:
                dead_queues.append(queue)
        for q in dead_queues:
            self._subscribers.discard(q)

        log = logger.error if level == "error" else logger.info
        log("[%s] %s", level, message)
        return notice

    def info(self, message: str, notice_id: Optional[str] = None) -> Optional[Notification]:
        return self.push("info", message, notice_id)

    def success(self, message: str, notice_id: Optional[str] = None) -> Optional[Notification]:
        return self.push("success", message, notice_id)

    def error(self, message: str, notice_id: Optional[str] = None) -> Optional[Notification]:
        return self.push("error", message, notice_id)

    def get_recent(self, count: int = 50) -> List[Notification]:
        """Get the most recent notices, oldest first."""
        entries = list(self._history)
        return entries[-count:]

    def clear(self):
        self._history.clear()

    def subscribe(self) -> asyncio.Queue:
        """Create a new subscriber queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        """Remove a subscriber queue."""
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
