"""
Events emitted while a supervised process runs, and the channel that carries them.

Producers are the reader and waiter threads of each launched process. The
channel is safe for any number of producers; closing it makes every further
emit fail with ChannelClosed, which the producers treat as a stop signal.
"""
import queue
import threading
from collections import namedtuple
from typing import Iterator, Optional

from runstack.local.config import effective_settings as config


class StdoutLine(namedtuple("StdoutLine", ["token", "text"])):
    __slots__ = ()
    kind = "stdout-line"


class StderrLine(namedtuple("StderrLine", ["token", "text"])):
    __slots__ = ()
    kind = "stderr-line"


class ProcessExited(namedtuple("ProcessExited", ["token", "pid", "returncode"])):
    __slots__ = ()
    kind = "process-exited"


class ProcessWaitFailed(namedtuple("ProcessWaitFailed", ["token", "pid", "error"])):
    __slots__ = ()
    kind = "process-wait-failed"


class ShellFallbackUsed(namedtuple("ShellFallbackUsed", ["token", "preferred", "used"])):
    __slots__ = ()
    kind = "shell-fallback-used"


class ChannelClosed(Exception):
    """Raised by EventChannel.emit once the consumer has closed the channel."""


class EventChannel:
    """A multi-producer event queue with an explicit close."""

    def __init__(self, maxsize: Optional[int] = None) -> None:
        self._queue: "queue.Queue" = queue.Queue(config.EVENT_QUEUE_SIZE if maxsize is None else maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def emit(self, event) -> None:
        """
        Queues an event for the consumer.

        :raises ChannelClosed: If the channel has been closed.
        """
        if self._closed.is_set():
            raise ChannelClosed()
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None):
        """Returns the next event, or None if nothing arrived within the timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()

    def __iter__(self) -> Iterator:
        """Yields queued events until the channel is closed and drained."""
        while True:
            event = self.get(timeout=0.1)
            if event is not None:
                yield event
            elif self._closed.is_set():
                return
