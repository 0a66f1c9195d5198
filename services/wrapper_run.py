"""
Run scope for the wrapper
Lock, capture and end-of-run notification tied to a single with-block so every exit path cleans up
"""
import logging
import signal
import sys
import traceback
from typing import Dict, Optional

from models.run import RunContext
from services.notification_service import NotificationService
from services.output_capture import OutputCaptureSink
from services.process_lock import ProcessLockGuard

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class WrapperRun:
    """Holds the lock and captures output for the duration of a with-block.

    Leaving the block by any route (normal completion, exception, SystemExit,
    SIGTERM/SIGHUP/SIGINT) stops capture, runs the notification and deletes the
    log, in that order. The lock is taken first: if it is busy,
    LockUnavailableError propagates from __enter__ and no log is ever created.
    """

    def __init__(self, lock: ProcessLockGuard, sink: OutputCaptureSink,
                 notification_service: NotificationService, context: Optional[RunContext] = None):
        self.lock = lock
        self.sink = sink
        self.notification_service = notification_service
        self.context = context or RunContext()
        self._previous_handlers: Dict[int, object] = {}

    def __enter__(self) -> RunContext:
        self.lock.acquire()
        try:
            self._install_signal_handlers()
            self.sink.start()
        except BaseException:
            self._restore_signal_handlers()
            self.lock.release()
            raise
        return self.context

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None:
                # Still capturing: the explanation ends up in the notified log
                self._report_abort(exc_type, exc, tb)
            self.notification_service.finish_run(self.context, self.sink)
        finally:
            self._restore_signal_handlers()
            self.lock.release()
        return False

    def _report_abort(self, exc_type, exc, tb):
        if self.context.aborted_by:
            print(f"ERROR: Run aborted by {self.context.aborted_by}", file=sys.stderr, flush=True)
        elif issubclass(exc_type, KeyboardInterrupt):
            self.context.aborted_by = "SIGINT"
            print("ERROR: Run interrupted", file=sys.stderr, flush=True)
        elif issubclass(exc_type, SystemExit):
            self.context.aborted_by = f"exit({exc.code})"
            print(f"ERROR: Run exited early with status {exc.code}", file=sys.stderr, flush=True)
        else:
            self.context.aborted_by = exc_type.__name__
            print("ERROR: Run failed with an unexpected error:", file=sys.stderr, flush=True)
            traceback.print_exception(exc_type, exc, tb, file=sys.stderr)
            sys.stderr.flush()

    def _handle_signal(self, signum, frame):
        self.context.aborted_by = signal.Signals(signum).name
        raise SystemExit(128 + signum)

    def _install_signal_handlers(self):
        for signum in HANDLED_SIGNALS:
            previous = signal.signal(signum, self._handle_signal)
            self._previous_handlers[signum] = signal.SIG_DFL if previous is None else previous

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
