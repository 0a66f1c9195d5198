"""
Output capture for a wrapper run
Redirects fds 1 and 2 (ours and every child's) into a per-process log file, teeing to the terminal when interactive
"""
import logging
import os
import sys
import tempfile
import threading
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

LOG_PREFIX = "kopia-wrapper"
PUMP_CHUNK_SIZE = 65536
PUMP_JOIN_TIMEOUT = 5.0


def _write_all(fd: int, data: bytes):
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _flush_python_streams():
    for stream in (sys.stdout, sys.stderr):
        if stream is not None:
            stream.flush()


class OutputCaptureSink:
    """Captures everything written to stdout/stderr into a temporary log file"""

    def __init__(self, log_dir: Optional[str] = None, interactive: Optional[bool] = None,
                 pid: Optional[int] = None):
        base_dir = Path(log_dir) if log_dir else Path(tempfile.gettempdir())
        self.log_path = base_dir / f"{LOG_PREFIX}.{pid or os.getpid()}.log"
        self.interactive = interactive
        self._log_fd: Optional[int] = None
        self._saved_fds: Optional[Tuple[int, int]] = None
        self._pipe_write: Optional[int] = None
        self._pump: Optional[threading.Thread] = None
        self._removed = False

    @property
    def active(self) -> bool:
        return self._saved_fds is not None

    def start(self):
        """Begin capturing; from here on fds 1 and 2 feed the log"""
        if self.active:
            return
        if self.interactive is None:
            self.interactive = os.isatty(1)

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_fd = os.open(self.log_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_APPEND, 0o600)

        _flush_python_streams()
        self._saved_fds = (os.dup(1), os.dup(2))

        if self.interactive:
            read_fd, write_fd = os.pipe()
            self._pipe_write = write_fd
            self._pump = threading.Thread(
                target=self._pump_output,
                args=(read_fd, self._saved_fds[0]),
                name="output-capture-tee",
                daemon=True,
            )
            self._pump.start()
            target = write_fd
        else:
            target = self._log_fd

        os.dup2(target, 1)
        os.dup2(target, 2)

    def stop(self):
        """Restore the original stdout/stderr; later writes no longer reach the log"""
        if not self.active:
            return
        _flush_python_streams()
        saved_out, saved_err = self._saved_fds
        os.dup2(saved_out, 1)
        os.dup2(saved_err, 2)
        self._saved_fds = None

        pump_finished = True
        if self._pipe_write is not None:
            os.close(self._pipe_write)
            self._pipe_write = None
            self._pump.join(PUMP_JOIN_TIMEOUT)
            if self._pump.is_alive():
                # A lingering child still holds the pipe; its fds stay with the pump thread
                logger.warning("Output still held open by a child process; log may be incomplete")
                pump_finished = False
            self._pump = None

        if pump_finished:
            os.close(saved_out)
            os.close(self._log_fd)
        os.close(saved_err)
        self._log_fd = None

    def read_log(self) -> str:
        """Captured text so far; empty if the log is already gone"""
        try:
            return self.log_path.read_text(errors='replace')
        except FileNotFoundError:
            return ""

    def remove(self):
        """Delete the log file, once"""
        if self._removed:
            return
        self._removed = True
        try:
            self.log_path.unlink()
        except FileNotFoundError:
            pass

    def _pump_output(self, read_fd: int, terminal_fd: int):
        log_fd = self._log_fd
        tee = True
        try:
            while True:
                chunk = os.read(read_fd, PUMP_CHUNK_SIZE)
                if not chunk:
                    break
                _write_all(log_fd, chunk)
                if tee:
                    try:
                        _write_all(terminal_fd, chunk)
                    except OSError:
                        # Terminal went away (hangup); the log keeps receiving output
                        tee = False
        finally:
            os.close(read_fd)

    def __enter__(self) -> 'OutputCaptureSink':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
