"""Best-effort status channel from the storage engine to its UI collaborator."""
from __future__ import annotations

import threading
from collections import deque

from chat_core.protocol import DEFAULT_NOTIFY_BACKLOG


class Notifier:
    """Bounded ring of status strings.

    - send() never blocks: when the ring is full the oldest pending message is dropped.
    - wait_next() is one-shot: call it again after every message to keep receiving.
    - close() wakes every waiter; pending messages can still be drained afterwards.
    """

    def __init__(self, maxlen: int = DEFAULT_NOTIFY_BACKLOG):
        self.buffer: deque[str] = deque(maxlen=maxlen)
        self.dropped = 0
        self.closed = False
        self._cond = threading.Condition()

    def send(self, msg: str) -> bool:
        with self._cond:
            if self.closed:
                return False
            if len(self.buffer) == self.buffer.maxlen:
                self.dropped += 1
            self.buffer.append(msg)
            self._cond.notify()
            return True

    def wait_next(self, timeout: float | None = None) -> str | None:
        """Block until one message arrives.

        Returns None when the channel is closed and drained, or when the timeout expires.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self.buffer or self.closed, timeout):
                return None
            if self.buffer:
                return self.buffer.popleft()
            return None

    def drain(self) -> list[str]:
        with self._cond:
            out = list(self.buffer)
            self.buffer.clear()
            return out

    def close(self) -> None:
        with self._cond:
            self.closed = True
            self._cond.notify_all()
