from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from livecaption.asr.base import ListenCallbacks, StreamingListenerEngine
from livecaption.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from livecaption.audio.endpoint import UtteranceEndpointer
from livecaption.errors import CaptureError, EngineError, EngineErrorKind

logger = logging.getLogger(__name__)


class FasterWhisperListener(StreamingListenerEngine):
    """
    Streaming listener: every cycle opens its own capture stream, records a
    single utterance, transcribes it and reports exactly one terminal event.
    """

    def __init__(
        self,
        *,
        transcriber: FasterWhisperPCM16Transcriber,
        endpointer: UtteranceEndpointer,
        source_factory: Callable[[], Any],
        speech_timeout_sec: float = 8.0,
    ) -> None:
        self.transcriber = transcriber
        self.endpointer = endpointer
        self.source_factory = source_factory
        self.speech_timeout_sec = float(speech_timeout_sec)

        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._source: Any = None
        self._cancel = threading.Event()
        self._closed = False

    @property
    def name(self) -> str:
        return "faster-whisper-listener"

    def prepare(self) -> None:
        self.transcriber.load()

    def start_listening(self, callbacks: ListenCallbacks) -> None:
        with self._lock:
            if self._closed:
                raise EngineError(EngineErrorKind.CLIENT_FAULT, "listener is closed")
            if self._thread is not None and self._thread.is_alive():
                raise EngineError(EngineErrorKind.BUSY)
            self._cancel = threading.Event()
            cancel = self._cancel
            self._thread = threading.Thread(
                target=self._run_cycle,
                args=(callbacks, cancel),
                name="livecaption-listen-cycle",
                daemon=True,
            )
            self._thread.start()

    def _record_utterance(self, cancel: threading.Event):
        source = self.source_factory()
        with self._lock:
            self._source = source
        self.endpointer.reset()
        started = time.monotonic()
        try:
            for frame in source.start():
                if cancel.is_set():
                    return None
                utterance = self.endpointer.push(frame)
                if utterance is not None:
                    return utterance
                waited = time.monotonic() - started
                if not self.endpointer.in_utterance and waited >= self.speech_timeout_sec:
                    raise EngineError(EngineErrorKind.TIMEOUT)
        finally:
            source.stop()
            with self._lock:
                self._source = None
        return None

    def _run_cycle(self, callbacks: ListenCallbacks, cancel: threading.Event) -> None:
        try:
            utterance = self._record_utterance(cancel)
            if cancel.is_set():
                return
            if utterance is None:
                callbacks.on_result("")
                return
            text = self.transcriber.transcribe_utterance(
                utterance.pcm16,
                sample_rate=utterance.sample_rate,
                channels=utterance.channels,
            )
        except EngineError as e:
            if not cancel.is_set():
                callbacks.on_error(e)
            return
        except CaptureError as e:
            if not cancel.is_set():
                callbacks.on_error(EngineError(EngineErrorKind.AUDIO, str(e)))
            return
        except Exception as e:
            logger.exception("listen_cycle_crashed", extra={"engine": self.name})
            if not cancel.is_set():
                callbacks.on_error(EngineError(EngineErrorKind.UNKNOWN, f"{type(e).__name__}: {e}"))
            return
        if not cancel.is_set():
            callbacks.on_result(text)

    def cancel(self) -> None:
        with self._lock:
            self._cancel.set()
            source = self._source
        if source is not None:
            source.stop()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self.transcriber.unload()
