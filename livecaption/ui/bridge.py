from __future__ import annotations

import queue
from typing import Any, Callable, Optional, Protocol

from livecaption.contracts import SubtitlePair


class DisplaySink(Protocol):
    def deliver(self, original: Optional[str], translated: Optional[str]) -> None:
        ...


class SubtitleBus:
    """
    Thread-safe handoff from pipeline workers -> UI thread.
    Workers deliver pairs. UI polls (non-blocking).
    """
    def __init__(self, maxsize: int = 100):
        self.q: "queue.Queue[SubtitlePair]" = queue.Queue(maxsize=maxsize)

    def deliver(self, original: Optional[str], translated: Optional[str]) -> None:
        self.push(SubtitlePair(original=original, translated=translated))

    def push(self, pair: SubtitlePair) -> None:
        try:
            self.q.put_nowait(pair)
        except queue.Full:
            # drop oldest to keep UI responsive
            try:
                _ = self.q.get_nowait()
            except queue.Empty:
                return
            try:
                self.q.put_nowait(pair)
            except queue.Full:
                return

    def pop(self) -> Optional[SubtitlePair]:
        try:
            return self.q.get_nowait()
        except queue.Empty:
            return None


def drain_subtitle_bus(bus: SubtitleBus, apply: Callable[[SubtitlePair], Any], max_items: int) -> int:
    drained = 0
    while drained < max_items:
        pair = bus.pop()
        if pair is None:
            break
        apply(pair)
        drained += 1
    return drained


class ConsoleSink:
    def __init__(self, *, show_original: bool = True, printer: Callable[[str], Any] = print) -> None:
        self.show_original = show_original
        self.printer = printer

    def deliver(self, original: Optional[str], translated: Optional[str]) -> None:
        if self.show_original and original:
            self.printer(f"SRC: {original}")
        if translated:
            self.printer(f"DST: {translated}")
        elif original:
            self.printer("DST: (untranslated)")

    def deliver_partial(self, text: str) -> None:
        if text:
            self.printer(f"... {text}")


class FanoutSink:
    def __init__(self, *sinks: DisplaySink) -> None:
        self.sinks = sinks

    def deliver(self, original: Optional[str], translated: Optional[str]) -> None:
        for sink in self.sinks:
            sink.deliver(original, translated)

    def deliver_partial(self, text: str) -> None:
        for sink in self.sinks:
            deliver_partial = getattr(sink, "deliver_partial", None)
            if deliver_partial is not None:
                deliver_partial(text)
            else:
                sink.deliver(text, None)
