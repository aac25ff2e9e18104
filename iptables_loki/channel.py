"""Zero-capacity handoff between the file watcher thread and the main loop.

A message is delivered only while the receiver is blocked in :meth:`recv`.
When the receiver is busy (parsing, pushing a batch) :meth:`try_send`
returns False and the message is dropped. The watcher never blocks on a
busy consumer, and the consumer re-reads the file after every wakeup, so a
dropped notification is covered by the next read.
"""

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class Rendezvous(Generic[T]):
    def __init__(self):
        self._cond = threading.Condition()
        self._receivers = 0
        self._item: T | None = None
        self._full = False

    def try_send(self, item: T) -> bool:
        """Hand *item* to a waiting receiver. Returns False if it was dropped."""
        with self._cond:
            if self._receivers == 0 or self._full:
                return False
            self._item = item
            self._full = True
            self._cond.notify()
            return True

    def recv(self, timeout: float | None = None) -> T | None:
        """Block until a message arrives. Returns None on timeout."""
        with self._cond:
            self._receivers += 1
            try:
                if not self._cond.wait_for(lambda: self._full, timeout):
                    return None
                item = self._item
                self._item = None
                self._full = False
                return item
            finally:
                self._receivers -= 1
