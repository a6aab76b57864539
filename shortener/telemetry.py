"""
Logging setup and the remote log reporter.

TelemetryHandler forwards records to a log collector over HTTP. Delivery
is best effort: a failed POST goes to Handler.handleError and never
reaches the code that logged. Posting happens on a QueueListener thread,
so logging from the event loop never waits on the collector.
"""
from __future__ import annotations

import logging
import queue
from logging.handlers import QueueHandler, QueueListener

import httpx

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


def level_name(levelno: int) -> str:
    # nearest standard level at or below levelno
    for threshold in sorted(LEVEL_NAMES, reverse=True):
        if levelno >= threshold:
            return LEVEL_NAMES[threshold]
    return "debug"


class TelemetryHandler(logging.Handler):
    def __init__(
        self,
        url: str,
        client: httpx.Client | None = None,
        stack: str = "backend",
        level: int = logging.INFO,
    ) -> None:
        super().__init__(level)
        self.url = url
        self.stack = stack
        self.client = client or httpx.Client(timeout=2.0)

    def report(self, level: str, category: str, message: str) -> None:
        response = self.client.post(
            self.url,
            json={"stack": self.stack, "level": level, "package": category, "message": message},
        )
        response.raise_for_status()

    def emit(self, record: logging.LogRecord) -> None:
        # httpx logs its own requests; forwarding those would recurse
        if record.name.startswith(("httpx", "httpcore")):
            return
        try:
            self.report(level_name(record.levelno), record.name, self.format(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            self.client.close()
        finally:
            super().close()


def queued(handler: logging.Handler) -> tuple[QueueHandler, QueueListener]:
    """Front `handler` with a queue; the listener delivers on its own thread."""
    records: queue.SimpleQueue = queue.SimpleQueue()
    listener = QueueListener(records, handler, respect_handler_level=True)
    return QueueHandler(records), listener


_configured = False
_listener: QueueListener | None = None


def configure_logging(level: str = "INFO", telemetry_url: str = "") -> None:
    """Console logging plus, when telemetry_url is set, remote reporting. Runs once per process."""
    global _configured, _listener
    if _configured:
        return

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    if telemetry_url:
        handler = TelemetryHandler(telemetry_url)
        handler.setFormatter(logging.Formatter("%(message)s"))
        queue_handler, _listener = queued(handler)
        logging.getLogger().addHandler(queue_handler)
        _listener.start()
    _configured = True


def shutdown_logging() -> None:
    """Flush queued telemetry and stop the delivery thread."""
    global _configured, _listener
    if _listener is not None:
        _listener.stop()
        root = logging.getLogger()
        for h in root.handlers[:]:
            if isinstance(h, QueueHandler) and h.queue is _listener.queue:
                root.removeHandler(h)
        for h in _listener.handlers:
            h.close()
        _listener = None
    _configured = False
