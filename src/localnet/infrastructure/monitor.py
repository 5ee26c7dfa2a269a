import logging
import os
import sys
import time
from enum import Enum

log = logging.getLogger(__name__)


class CancelToken:
    """
    Cancellation flag shared between the interrupt handler and the monitor loop.
    A plain attribute, so setting it from a signal handler takes no lock.
    """

    def __init__(self, slice_interval=0.05):
        self._cancelled = False
        self.slice_interval = slice_interval

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled

    def wait(self, timeout=None):
        """Sleep up to timeout; returns True as soon as the token is cancelled."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._cancelled:
            if deadline is None:
                time.sleep(self.slice_interval)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(remaining, self.slice_interval))
        return self._cancelled


class FollowResult(Enum):
    CANCELLED = 'cancelled'
    UNAVAILABLE = 'unavailable'


class LogMonitor:
    """
    Follows one node's log file like `tail -f`, copying complete lines to
    `out` as they are appended.
    """

    def __init__(self, path, out=None, poll_interval=0.2, missing_timeout=10.0):
        self.path = path
        self.out = out if out is not None else sys.stdout
        self.poll_interval = poll_interval
        self.missing_timeout = missing_timeout
        self._file = None
        self._inode = None
        self._partial = b''

    def _open(self):
        try:
            f = open(self.path, 'rb')
        except FileNotFoundError:
            return False
        self._file = f
        self._inode = os.fstat(f.fileno()).st_ino
        return True

    def _close(self):
        if self._file is not None:
            self._file.close()
        self._file = None
        self._inode = None

    def _check_rotation(self):
        """Rewind on truncation, reopen on replacement. Returns False if the file is gone."""
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            self._close()
            return False
        if st.st_ino != self._inode:
            self._close()
            self._partial = b''
            return self._open()
        if st.st_size < self._file.tell():
            self._file.seek(0)
            self._partial = b''
        return True

    def _pump(self):
        """Copy whatever complete lines are available. Returns True if anything was written."""
        chunk = self._file.read()
        if not chunk:
            return False
        data = self._partial + chunk
        lines = data.split(b'\n')
        # Bytes after the last newline may end mid-character; decode whole lines only.
        self._partial = lines.pop()
        if lines:
            self.out.write(b'\n'.join(lines).decode('utf-8', errors='replace') + '\n')
            self.out.flush()
        return True

    def _flush_partial(self):
        if self._partial:
            self.out.write(self._partial.decode('utf-8', errors='replace') + '\n')
            self.out.flush()
            self._partial = b''

    def follow(self, token, on_tick=None):
        """
        Block streaming new lines until the token is cancelled or the file
        has been missing for longer than missing_timeout.
        """
        missing_since = None
        try:
            while not token.cancelled:
                if on_tick is not None:
                    on_tick()

                if self._file is None and not self._open():
                    now = time.monotonic()
                    if missing_since is None:
                        missing_since = now
                        log.warning(f"Waiting for log file {self.path}")
                    elif now - missing_since >= self.missing_timeout:
                        log.error(f"Log file {self.path} unavailable, stopping monitor")
                        return FollowResult.UNAVAILABLE
                    token.wait(self.poll_interval)
                    continue
                missing_since = None

                if not self._pump():
                    self._check_rotation()
                    token.wait(self.poll_interval)
            if self._file is not None:
                self._pump()
            return FollowResult.CANCELLED
        finally:
            self._flush_partial()
            self._close()
