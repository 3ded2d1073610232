from __future__ import annotations

import queue
import threading
import time
from typing import Callable, Optional

from livecaption.asr.base import BlockingDecoderEngine, ListenCallbacks, StreamingListenerEngine
from livecaption.contracts import AudioFrame, Utterance
from livecaption.errors import CaptureError, CaptureErrorKind, EngineError, EngineErrorKind


# --- timers ---

class ManualTimer:
    def __init__(self, delay: float, fn: Callable[[], None]) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.fn()


class ManualTimers:
    """timer_factory whose timers only run when a test fires them."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, fn)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> int:
        due = self.pending
        for t in due:
            t.fire()
        return len(due)


# --- engines ---

class FakeListener(StreamingListenerEngine):
    """Streaming listener driven by the test through result()/error()."""

    def __init__(self, *, prepare_error: Optional[Exception] = None) -> None:
        self.prepare_error = prepare_error
        self.start_error: Optional[Exception] = None
        self.cycles: list[ListenCallbacks] = []
        self.cancels = 0
        self.closed = False

    @property
    def name(self) -> str:
        return "fake-listener"

    def prepare(self) -> None:
        if self.prepare_error is not None:
            raise self.prepare_error

    def start_listening(self, callbacks: ListenCallbacks) -> None:
        if self.start_error is not None:
            err, self.start_error = self.start_error, None
            raise err
        self.cycles.append(callbacks)

    def cancel(self) -> None:
        self.cancels += 1

    def close(self) -> None:
        self.closed = True

    @property
    def current(self) -> ListenCallbacks:
        return self.cycles[-1]

    def result(self, text: str) -> None:
        self.current.on_result(text)

    def error(self, kind: EngineErrorKind, code: Optional[int] = None) -> None:
        self.current.on_error(EngineError(kind, code=code))


def speech(text: str) -> AudioFrame:
    """Frame that makes FakeDecoder finish an utterance with `text`."""
    return AudioFrame(pcm16=b"END:" + text.encode("utf-8"))


def noise() -> AudioFrame:
    return AudioFrame(pcm16=b"....")


def broken() -> AudioFrame:
    return AudioFrame(pcm16=b"ERR")


def crash() -> AudioFrame:
    """Frame that makes FakeDecoder raise something other than EngineError."""
    return AudioFrame(pcm16=b"BOOM")


class FakeDecoder(BlockingDecoderEngine):
    """Blocking decoder whose endpoints are encoded in the frame bytes."""

    def __init__(self) -> None:
        self.seen: list[bytes] = []
        self.resets = 0
        self.closed = False
        self._pending: Optional[str] = None

    @property
    def name(self) -> str:
        return "fake-decoder"

    def accept_frame(self, frame: AudioFrame) -> bool:
        self.seen.append(frame.pcm16)
        if frame.pcm16 == b"ERR":
            raise EngineError(EngineErrorKind.AUDIO)
        if frame.pcm16 == b"BOOM":
            raise RuntimeError("unexpected decoder failure")
        if frame.pcm16.startswith(b"END:"):
            self._pending = frame.pcm16[4:].decode("utf-8")
            return True
        return False

    def current_result(self) -> Utterance:
        text, self._pending = self._pending or "", None
        return Utterance(text=text)

    def partial_result(self) -> Optional[str]:
        return "..."

    def reset(self) -> None:
        self.resets += 1
        self._pending = None

    def close(self) -> None:
        self.closed = True


# --- capture ---

_END = object()


class FakeFrameSource:
    """Capture source fed by the test. stop() ends the stream with CaptureError(CLOSED)."""

    def __init__(self) -> None:
        self._q: "queue.Queue[object]" = queue.Queue()
        self.started_with: list[object] = []
        self.stopped = False

    def start(self, token=None):
        self.started_with.append(token)
        return self._frames()

    def _frames(self):
        while True:
            item = self._q.get()
            if item is _END:
                raise CaptureError(CaptureErrorKind.CLOSED)
            if isinstance(item, BaseException):
                raise item
            yield item

    def push(self, *frames: AudioFrame) -> None:
        for frame in frames:
            self._q.put(frame)

    def fail(self, error: BaseException) -> None:
        self._q.put(error)

    def stop(self) -> None:
        if not self.stopped:
            self.stopped = True
            self._q.put(_END)


# --- sinks ---

class RecordingSink:
    def __init__(self) -> None:
        self.pairs: list[tuple[Optional[str], Optional[str]]] = []
        self._cond = threading.Condition()

    def deliver(self, original: Optional[str], translated: Optional[str]) -> None:
        with self._cond:
            self.pairs.append((original, translated))
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 3.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.pairs) >= count, timeout=timeout)


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
