"""Log file tailer with watchdog notifications and rotation handling.

The main loop owns the file handle. A watchdog observer thread watches the
file's directory and only signals the loop through a rendezvous channel:

- ``DATA``: the file was written to; the loop reads again.
- ``ROTATE``: the path was moved, deleted or re-created; the loop finishes
  the old handle, waits for the path to exist again and reopens it at
  offset 0.

Notifications that arrive while the loop is busy are dropped. After every
wakeup the tailer compares the path's inode with the open handle and the
file size with the read position, so a missed rotation or truncation is
still picked up.
"""

import enum
import logging
import os
import threading
from collections.abc import Iterator

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from iptables_loki.channel import Rendezvous
from iptables_loki.errors import TailerError

logger = logging.getLogger(__name__)

MAX_LINE_BYTES = 64 * 1024


class ModifyType(enum.Enum):
    DATA = "data"
    ROTATE = "rotate"


class LogFileEventHandler(FileSystemEventHandler):
    """Translates watchdog events for one path into ModifyType messages."""

    def __init__(self, path: str, channel: Rendezvous[ModifyType]):
        super().__init__()
        self._path = os.path.abspath(path)
        self._channel = channel

    def dispatch(self, event):
        try:
            super().dispatch(event)
        except Exception:
            logger.exception("Error watching file %s", self._path)

    def _matches(self, path) -> bool:
        return bool(path) and os.path.abspath(os.fsdecode(path)) == self._path

    def on_modified(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._channel.try_send(ModifyType.DATA)

    def on_closed(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._channel.try_send(ModifyType.DATA)

    def on_moved(self, event):
        if event.is_directory:
            return
        if self._matches(event.src_path) or self._matches(event.dest_path):
            self._channel.try_send(ModifyType.ROTATE)

    def on_created(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._channel.try_send(ModifyType.ROTATE)

    def on_deleted(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._channel.try_send(ModifyType.ROTATE)


class Tailer:
    """Yields lines appended to a file, surviving rotation and truncation."""

    def __init__(
        self,
        path: str,
        shutdown_event: threading.Event,
        poll_interval: float = 1.0,
        wake_interval: float = 5.0,
        start_at_end: bool = False,
    ):
        self._path = os.path.abspath(path)
        self._shutdown = shutdown_event
        self._poll_interval = poll_interval
        self._wake_interval = wake_interval
        self._start_at_end = start_at_end

        self._channel: Rendezvous[ModifyType] = Rendezvous()
        self._observer = None
        self._file = None
        self._file_id: tuple[int, int] | None = None
        self._partial = b""
        self._discarding = False
        self._rotation_pending = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def channel(self) -> Rendezvous[ModifyType]:
        return self._channel

    # Lifecycle

    def open(self) -> "Tailer":
        """Wait for the file, open it and start the watcher.

        Raises:
            TailerError: If the file cannot be opened or the watcher cannot start.
        """
        self._wait_for_file()
        if self._shutdown.is_set():
            return self
        try:
            self._open_file(seek_end=self._start_at_end)
        except OSError as exc:
            raise TailerError(f"Failed to open log file '{self._path}': {exc}") from exc

        handler = LogFileEventHandler(self._path, self._channel)
        observer = Observer()
        try:
            observer.schedule(handler, os.path.dirname(self._path), recursive=False)
            observer.start()
        except OSError as exc:
            self._close_file()
            raise TailerError(f"Failed to watch log file '{self._path}': {exc}") from exc
        self._observer = observer
        return self

    def close(self):
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._close_file()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Reading

    def lines(self) -> Iterator[str]:
        """Lazily yield non-empty lines until the shutdown event is set."""
        while not self._shutdown.is_set():
            try:
                line = self.next_line()
                if line is None:
                    self.wait_for_change()
                    continue
            except OSError as e:
                logger.error("Failed to read line from %s: %s", self._path, e)
                self._shutdown.wait(self._poll_interval)
                continue

            if line:
                yield line

    def next_line(self) -> str | None:
        """Return the next complete line, or None when there is nothing new."""
        while True:
            line = self._read_line()
            if line is not None:
                return line
            if not self._rotation_pending:
                return None

            # The old file is exhausted; an unterminated tail is its last line.
            leftover = self._partial
            self._finish_rotation()
            if leftover:
                return leftover.rstrip(b"\r").decode("utf-8", errors="replace")

    def wait_for_change(self) -> ModifyType | None:
        """Block until the watcher signals a change or the wake interval passes."""
        msg = self._channel.recv(timeout=self._wake_interval)
        if self._shutdown.is_set():
            return msg

        if self._file is None:
            self._reopen()
        elif self._rotated():
            if msg is not ModifyType.ROTATE:
                logger.info("Missed rotation notification for %s", self._path)
            self._rotation_pending = True
        else:
            self._check_truncation()
        return msg

    # Internal helpers

    def _read_line(self) -> str | None:
        """Return the next complete line, or None at end of file.

        Lines of MAX_LINE_BYTES or more are skipped up to their newline.
        """
        if self._file is None:
            return None

        while True:
            chunk = self._file.readline(MAX_LINE_BYTES)
            if not chunk:
                return None

            if not chunk.endswith(b"\n"):
                if not self._discarding:
                    self._partial += chunk
                    if len(self._partial) >= MAX_LINE_BYTES:
                        self._start_discarding()
                continue

            if self._discarding:
                self._discarding = False
                continue

            data = self._partial + chunk
            self._partial = b""
            if len(data) > MAX_LINE_BYTES:
                logger.warning("Discarding overlong line (%d bytes) in %s", len(data), self._path)
                continue
            return data.rstrip(b"\r\n").decode("utf-8", errors="replace")

    def _start_discarding(self):
        logger.warning("Discarding overlong line (more than %d bytes) in %s",
                       MAX_LINE_BYTES, self._path)
        self._partial = b""
        self._discarding = True

    def _wait_for_file(self):
        """Block until the file exists or shutdown is requested."""
        while not self._shutdown.is_set():
            if os.path.exists(self._path):
                return
            logger.debug("Waiting for file %s to appear...", self._path)
            self._shutdown.wait(self._poll_interval)

    def _open_file(self, seek_end: bool = False):
        self._file = open(self._path, "rb")
        st = os.fstat(self._file.fileno())
        self._file_id = (st.st_dev, st.st_ino)
        self._partial = b""
        self._discarding = False
        if seek_end:
            self._file.seek(0, os.SEEK_END)
        logger.debug("Opened %s (inode=%d)", self._path, st.st_ino)

    def _close_file(self):
        if self._file:
            self._file.close()
            self._file = None
            self._file_id = None

    def _rotated(self) -> bool:
        """True if the path no longer refers to the open file."""
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return True
        return (st.st_dev, st.st_ino) != self._file_id

    def _finish_rotation(self):
        logger.info("File rotation detected for %s", self._path)
        self._rotation_pending = False
        self._close_file()
        self._reopen()

    def _reopen(self):
        self._wait_for_file()
        if self._shutdown.is_set():
            return
        try:
            self._open_file(seek_end=False)
        except OSError as e:
            logger.error("Failed to reopen %s: %s", self._path, e)
            self._close_file()

    def _check_truncation(self):
        """Restart from the beginning if the file shrank below our position."""
        size = os.fstat(self._file.fileno()).st_size
        if self._file.tell() > size:
            logger.info("File truncation detected for %s", self._path)
            self._file.seek(0)
            self._partial = b""
            self._discarding = False
