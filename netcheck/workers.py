"""Worker classes that run probe calls on the Qt thread pool."""

import logging
import threading

from PySide6.QtCore import QObject, QRunnable, Signal

from netcheck.gateway import ProbeError

logger = logging.getLogger(__name__)


class ProbeCancelled(Exception):
    """Raised inside a streaming call once its worker has been cancelled."""


class WorkerSignals(QObject):
    """Signals for communicating between worker threads and main thread."""

    result = Signal(object, object)  # (probe result, tag)
    error = Signal(str, object)  # (error message, tag)
    progress = Signal(object, object)  # (streamed event, tag)
    finished = Signal(object)  # (tag)


class ProbeWorker(QRunnable):
    """Worker that executes one blocking gateway call in a background thread.

    ``tag`` is opaque to the worker and echoed on every signal so the owner
    can route the result and discard stale ones. When ``streaming`` is set,
    ``call`` receives a callback that forwards intermediate events over the
    ``progress`` signal. Once the worker is cancelled the next forwarded event
    raises ProbeCancelled so the call unwinds and releases its resources.
    """

    def __init__(self, call, tag=None, streaming: bool = False):
        super().__init__()
        self.call = call
        self.tag = tag
        self.streaming = streaming
        self.signals = WorkerSignals()
        self._cancelled = threading.Event()

    def cancel(self):
        """Stop forwarding streamed events and abort the call at its next event."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _emit_progress(self, event):
        if self._cancelled.is_set():
            raise ProbeCancelled(self.tag)
        self.signals.progress.emit(event, self.tag)

    def run(self):
        """Execute the probe call in background thread."""
        try:
            logger.debug("Worker starting: tag=%s", self.tag)

            if self.streaming:
                value = self.call(self._emit_progress)
            else:
                value = self.call()

            self.signals.result.emit(value, self.tag)
            logger.debug("Worker completed: tag=%s", self.tag)

        except ProbeCancelled:
            logger.debug("Worker cancelled: tag=%s", self.tag)

        except ProbeError as e:
            logger.warning("Probe failed: tag=%s, error=%s", self.tag, e)
            self.signals.error.emit(str(e) or type(e).__name__, self.tag)

        except Exception as e:
            logger.exception("Worker exception: tag=%s, error=%s", self.tag, str(e))
            self.signals.error.emit(str(e) or type(e).__name__, self.tag)

        finally:
            # Always signal completion
            self.signals.finished.emit(self.tag)
