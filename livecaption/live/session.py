from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Optional

from livecaption.asr.base import BlockingDecoderEngine, RecognitionEngine, StreamingListenerEngine
from livecaption.contracts import AudioFrame, RecognitionState, Utterance
from livecaption.errors import EngineError, EngineErrorKind, EngineUnavailable

logger = logging.getLogger(__name__)

DEFAULT_RESTART_DELAY = 0.3

TimerFactory = Callable[[float, Callable[[], None]], Any]


def thread_timer(delay: float, fn: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, fn)
    timer.name = "livecaption-restart"
    timer.daemon = True
    return timer


def _unexpected(engine_name: str, exc: Exception) -> EngineError:
    logger.error(
        "session_engine_crashed",
        exc_info=exc,
        extra={"engine": engine_name, "error_type": type(exc).__name__},
    )
    return EngineError(EngineErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")


class _CycleCallbacks:
    """Callbacks handed to a streaming listener for a single cycle."""

    def __init__(self, session: "RecognitionSession", cycle_id: int) -> None:
        self._session = session
        self._cycle_id = cycle_id

    def on_partial(self, text: str) -> None:
        self._session._cycle_partial(self._cycle_id, text)

    def on_result(self, text: str) -> None:
        self._session._cycle_result(self._cycle_id, text)

    def on_error(self, error: EngineError) -> None:
        self._session._cycle_error(self._cycle_id, error)


class RecognitionSession:
    """
    Owns one recognition engine and keeps it listening.

    States: IDLE -> LISTENING -> {PROCESSING_RESULT | ERROR_BACKOFF} -> LISTENING,
    and any state -> IDLE on stop(). Every terminal event of a listen cycle
    (result or error) is followed by a restart scheduled `restart_delay`
    seconds later. The restart is a cancellable timer tagged with a token, so
    a timer that already fired when stop() ran is a no-op.
    Blocking decoders never leave LISTENING on a result; they only go through
    ERROR_BACKOFF, buffering incoming frames that the next feed() after the
    restart decodes first. Decoding runs on the feeding thread; reset() is
    issued by the restart timer while in ERROR_BACKOFF, when no frame is
    being decoded. Any exception an engine raises is treated as an
    EngineError(UNKNOWN) and recovered like one.
    """

    def __init__(
        self,
        engine: RecognitionEngine,
        *,
        on_utterance: Callable[[Utterance], None],
        on_error: Optional[Callable[[EngineError], None]] = None,
        on_partial: Optional[Callable[[Utterance], None]] = None,
        language: str = "en",
        restart_delay: float = DEFAULT_RESTART_DELAY,
        timer_factory: Optional[TimerFactory] = None,
        max_backlog_frames: int = 300,
    ) -> None:
        if not isinstance(engine, (StreamingListenerEngine, BlockingDecoderEngine)):
            raise TypeError(f"unsupported engine type: {type(engine).__name__}")
        if restart_delay < 0:
            raise ValueError("restart_delay must be >= 0")

        self.engine = engine
        self.on_utterance = on_utterance
        self.on_error = on_error
        self.on_partial = on_partial
        self.language = language
        self.restart_delay = float(restart_delay)
        self.timer_factory = timer_factory or thread_timer

        self._lock = threading.RLock()
        self._state = RecognitionState.IDLE
        self._cycle_id = 0
        self._cycle_open = False
        self._restart_token = 0
        self._restart_timer: Any = None
        self._backlog: Deque[AudioFrame] = deque(maxlen=max(1, int(max_backlog_frames)))
        self._engine_closed = False

        self.last_error: Optional[EngineError] = None
        self.error_count = 0
        self.restart_count = 0
        self.utterance_count = 0

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def is_listener(self) -> bool:
        return isinstance(self.engine, StreamingListenerEngine)

    # --- lifecycle ---

    def start(self) -> None:
        with self._lock:
            if self._state != RecognitionState.IDLE:
                logger.debug("session_start_ignored", extra={"state": self._state.value})
                return
            if self._engine_closed:
                raise EngineUnavailable(f"engine '{self.engine.name}' was already closed")
            try:
                self.engine.prepare()
            except EngineUnavailable:
                raise
            except Exception as e:
                raise EngineUnavailable(f"engine '{self.engine.name}' failed to start: {e}") from e
            self.last_error = None
            logger.info("session_started", extra={"engine": self.engine.name, "listener": self.is_listener})
            self._begin_cycle()

    def stop(self) -> None:
        with self._lock:
            self._restart_token += 1
            if self._restart_timer is not None:
                self._restart_timer.cancel()
                self._restart_timer = None
            was = self._state
            self._state = RecognitionState.IDLE
            self._cycle_open = False
            self._backlog.clear()
            if self._engine_closed:
                return
            self._engine_closed = True

        # engine threads may be waiting on our lock; release it before closing
        if isinstance(self.engine, StreamingListenerEngine):
            self.engine.cancel()
        self.engine.close()
        logger.info(
            "session_stopped",
            extra={
                "engine": self.engine.name,
                "from_state": was.value,
                "utterances": self.utterance_count,
                "errors": self.error_count,
                "restarts": self.restart_count,
            },
        )

    # --- frames (blocking decoders) ---

    def feed(self, frame: AudioFrame) -> None:
        """Forward one frame. Listener engines feed themselves, so frames are ignored."""
        if not isinstance(self.engine, BlockingDecoderEngine):
            return
        with self._lock:
            if self._state == RecognitionState.IDLE:
                return
            if self._state == RecognitionState.ERROR_BACKOFF:
                self._backlog.append(frame)
                return
            token = self._restart_token
            pending = list(self._backlog)
            self._backlog.clear()
        pending.append(frame)
        for i, item in enumerate(pending):
            if not self._decode(item, token):
                with self._lock:
                    if self._state == RecognitionState.ERROR_BACKOFF:
                        self._backlog.extend(pending[i + 1:])
                return

    def _decode(self, frame: AudioFrame, token: int) -> bool:
        engine = self.engine
        if not isinstance(engine, BlockingDecoderEngine):
            return False
        partial: Optional[str] = None
        utterance: Optional[Utterance] = None
        try:
            if engine.accept_frame(frame):
                utterance = engine.current_result()
            elif self.on_partial is not None:
                partial = engine.partial_result()
        except Exception as e:
            error = e if isinstance(e, EngineError) else _unexpected(engine.name, e)
            with self._lock:
                if self._is_current(token) and self._state == RecognitionState.LISTENING:
                    self._enter_backoff(error)
            return False

        with self._lock:
            if not self._is_current(token):
                return False
            if utterance is not None:
                self._emit(utterance)
            elif partial:
                self._emit_partial(partial)
        return True

    # --- listener callbacks ---

    def _cycle_partial(self, cycle_id: int, text: str) -> None:
        with self._lock:
            if self._cycle_open and cycle_id == self._cycle_id:
                self._emit_partial(text)

    def _cycle_result(self, cycle_id: int, text: str) -> None:
        with self._lock:
            if not self._close_cycle(cycle_id):
                return
            self._state = RecognitionState.PROCESSING_RESULT
            self._emit(Utterance(text=text or "", is_final=True, source_language=self.language))
            self._schedule_restart()

    def _cycle_error(self, cycle_id: int, error: EngineError) -> None:
        if error.kind == EngineErrorKind.NO_MATCH:
            # nothing recognized is an empty result, not a failure
            self._cycle_result(cycle_id, "")
            return
        with self._lock:
            if not self._close_cycle(cycle_id):
                return
            self._enter_backoff(error)

    def _close_cycle(self, cycle_id: int) -> bool:
        if self._state == RecognitionState.IDLE or not self._cycle_open or cycle_id != self._cycle_id:
            logger.debug("session_stale_event_dropped", extra={"cycle": cycle_id, "current": self._cycle_id})
            return False
        self._cycle_open = False
        return True

    # --- transitions (lock held) ---

    def _is_current(self, token: int) -> bool:
        return token == self._restart_token and self._state != RecognitionState.IDLE

    def _begin_cycle(self) -> None:
        self._state = RecognitionState.LISTENING
        engine = self.engine
        if isinstance(engine, StreamingListenerEngine):
            self._cycle_id += 1
            self._cycle_open = True
            try:
                engine.start_listening(_CycleCallbacks(self, self._cycle_id))
            except Exception as e:
                self._cycle_open = False
                self._enter_backoff(e if isinstance(e, EngineError) else _unexpected(engine.name, e))

    def _emit(self, utterance: Utterance) -> None:
        text = (utterance.text or "").strip()
        if not text or not utterance.is_final:
            logger.debug("session_empty_result")
            return
        self.utterance_count += 1
        if text != utterance.text:
            utterance = Utterance(
                text=text,
                is_final=True,
                source_language=utterance.source_language,
                timestamp=utterance.timestamp,
            )
        self.on_utterance(utterance)

    def _emit_partial(self, text: str) -> None:
        text = (text or "").strip()
        if text and self.on_partial is not None:
            self.on_partial(Utterance(text=text, is_final=False, source_language=self.language))

    def _enter_backoff(self, error: EngineError) -> None:
        self._state = RecognitionState.ERROR_BACKOFF
        self.last_error = error
        self.error_count += 1
        logger.warning(
            "session_engine_error",
            extra={"engine": self.engine.name, "kind": error.kind.value, "code": error.code, "detail": error.detail},
        )
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("session_error_observer_failed")
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if self._restart_timer is not None:
            self._restart_timer.cancel()
        self._restart_token += 1
        token = self._restart_token
        timer = self.timer_factory(self.restart_delay, lambda: self._restart_due(token))
        self._restart_timer = timer
        logger.debug(
            "session_restart_scheduled",
            extra={"state": self._state.value, "delay_s": self.restart_delay, "token": token},
        )
        timer.start()

    def _restart_due(self, token: int) -> None:
        with self._lock:
            if token != self._restart_token:
                return
            if self._state not in (RecognitionState.PROCESSING_RESULT, RecognitionState.ERROR_BACKOFF):
                return
            self._restart_timer = None
            self.restart_count += 1
            engine = self.engine
            if isinstance(engine, BlockingDecoderEngine) and self._state == RecognitionState.ERROR_BACKOFF:
                try:
                    engine.reset()
                except Exception as e:
                    self._enter_backoff(e if isinstance(e, EngineError) else _unexpected(engine.name, e))
                    return
            self._begin_cycle()
