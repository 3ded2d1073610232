from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from livecaption.app.state import RuntimeStateTracker
from livecaption.asr.base import RecognitionEngine
from livecaption.contracts import LanguagePair, PipelineConfig, SubtitlePair, Utterance
from livecaption.errors import AlreadyRunning, CaptureError, CaptureErrorKind, EngineError, TranslationError
from livecaption.live.session import DEFAULT_RESTART_DELAY, RecognitionSession, TimerFactory
from livecaption.nlp.translator.cache import TranslationModelCache
from livecaption.nlp.translator.stage import TranslationStage
from livecaption.ui.bridge import DisplaySink

_STOP = object()

DEFAULT_MAX_PENDING_FRAMES = 100

EngineFactory = Callable[[PipelineConfig], RecognitionEngine]
CacheFactory = Callable[[PipelineConfig], TranslationModelCache]
SourceFactory = Callable[[PipelineConfig], Any]


@dataclass(frozen=True)
class _Job:
    utterance: Utterance


@dataclass(frozen=True)
class _Partial:
    text: str


@dataclass
class _Run:
    """Everything owned by one start()/stop() cycle."""
    config: PipelineConfig
    pair: LanguagePair
    stopping: threading.Event = field(default_factory=threading.Event)
    frames: "queue.Queue[Any]" = field(default_factory=lambda: queue.Queue(maxsize=DEFAULT_MAX_PENDING_FRAMES))
    jobs: "queue.Queue[Any]" = field(default_factory=queue.Queue)
    accepting: bool = True
    source: Any = None
    stream: Any = None
    session: Optional[RecognitionSession] = None
    cache: Optional[TranslationModelCache] = None
    stage: Optional[TranslationStage] = None
    threads: list[threading.Thread] = field(default_factory=list)
    fatal: Optional[BaseException] = None
    metrics: dict[str, int | float] = field(
        default_factory=lambda: {
            "frames": 0,
            "frames_dropped": 0,
            "utterances": 0,
            "translated": 0,
            "degraded": 0,
            "discarded": 0,
            "engine_errors": 0,
            "translate_ms_total": 0.0,
        }
    )


def _put_stop(q: "queue.Queue[Any]") -> None:
    while True:
        try:
            q.put_nowait(_STOP)
            return
        except queue.Full:
            pass
        try:
            _ = q.get_nowait()
        except queue.Empty:
            pass


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


class PipelineCoordinator:
    """
    Wires capture -> recognition -> translation -> display sink.

    Threads per run: a capture thread that only reads frames into a queue,
    a recognition worker that feeds them to the session, and one translation
    worker that handles finalized utterances strictly in order.
    """

    def __init__(
        self,
        *,
        engine_factory: EngineFactory,
        cache_factory: CacheFactory,
        sink: DisplaySink,
        source_factory: Optional[SourceFactory] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        on_engine_error: Optional[Callable[[EngineError], None]] = None,
        live_preview: bool = False,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        timer_factory: Optional[TimerFactory] = None,
        join_timeout: float = 2.0,
        max_pending_frames: int = DEFAULT_MAX_PENDING_FRAMES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine_factory = engine_factory
        self.cache_factory = cache_factory
        self.source_factory = source_factory
        self.sink = sink
        self.on_fatal = on_fatal
        self.on_engine_error = on_engine_error
        self.live_preview = live_preview
        self.restart_delay = restart_delay
        self.timer_factory = timer_factory
        self.join_timeout = join_timeout
        self.max_pending_frames = max(1, int(max_pending_frames))
        self.logger = logger or logging.getLogger(__name__)

        self.state = RuntimeStateTracker()
        self._lifecycle = threading.RLock()
        self._run: Optional[_Run] = None

    @property
    def is_running(self) -> bool:
        return self._run is not None

    @property
    def session(self) -> Optional[RecognitionSession]:
        run = self._run
        return run.session if run is not None else None

    @property
    def cache(self) -> Optional[TranslationModelCache]:
        run = self._run
        return run.cache if run is not None else None

    # --- lifecycle ---

    def start(self, config: PipelineConfig, token: Any = None) -> None:
        with self._lifecycle:
            if self._run is not None:
                raise AlreadyRunning("pipeline is already running")
            self.state.set_starting()
            run = _Run(config=config, pair=config.pair, frames=queue.Queue(maxsize=self.max_pending_frames))
            self._run = run
            try:
                self._start_run(run, token)
            except Exception as e:
                _log_event(self.logger, logging.ERROR, "pipeline_start_failed", error=str(e))
                self._teardown(run)
                self._run = None
                self.state.set_error(str(e))
                raise
            self.state.set_running()
            _log_event(
                self.logger,
                logging.INFO,
                "pipeline_started",
                pair=str(run.pair),
                network_policy=config.network_policy.value,
                engine=run.session.engine.name if run.session else None,
                capture=run.source is not None,
            )

    def stop(self) -> None:
        with self._lifecycle:
            run = self._run
            if run is None:
                return
            self.state.set_stopping()
            self._teardown(run)
            if run.fatal is not None:
                self.state.set_error(str(run.fatal))
            else:
                self.state.set_stopped()
            self._run = None

    def _start_run(self, run: _Run, token: Any) -> None:
        run.cache = self.cache_factory(run.config)
        run.stage = TranslationStage(run.cache)
        self._spawn(run, self._translate_loop, "livecaption-translate")

        engine = self.engine_factory(run.config)
        run.session = RecognitionSession(
            engine,
            on_utterance=lambda utt: self._on_utterance(run, utt),
            on_error=lambda err: self._on_engine_error(run, err),
            on_partial=(lambda utt: self._on_partial(run, utt)) if self.live_preview else None,
            language=run.config.source_language,
            restart_delay=self.restart_delay,
            timer_factory=self.timer_factory,
        )
        run.session.start()

        if self.source_factory is not None:
            run.source = self.source_factory(run.config)
            run.stream = run.source.start(token)
            self._spawn(run, self._recognition_loop, "livecaption-recognition")
            self._spawn(run, self._capture_loop, "livecaption-capture")

    def _spawn(self, run: _Run, target: Callable[[_Run], None], name: str) -> None:
        thread = threading.Thread(target=target, args=(run,), name=name, daemon=True)
        run.threads.append(thread)
        thread.start()

    def _join(self, run: _Run, name: str) -> None:
        for thread in run.threads:
            if thread.name == name and thread is not threading.current_thread():
                thread.join(timeout=self.join_timeout)
                if thread.is_alive():
                    _log_event(self.logger, logging.WARNING, "pipeline_thread_join_timeout", thread_name=name)

    def _teardown(self, run: _Run) -> None:
        # from here on nothing new reaches translation or the sink
        run.accepting = False
        run.stopping.set()

        # 1. halt frame production
        if run.source is not None:
            run.source.stop()
        self._join(run, "livecaption-capture")
        _put_stop(run.frames)
        self._join(run, "livecaption-recognition")

        # 2. stop recognition (cancels pending restarts, closes the engine)
        if run.session is not None:
            run.session.stop()

        # 3. release the translator
        run.jobs.put(_STOP)
        self._join(run, "livecaption-translate")
        if run.cache is not None:
            run.cache.close()

        m = run.metrics
        samples = int(m["translated"])
        _log_event(
            self.logger,
            logging.INFO,
            "pipeline_stopped",
            frames=int(m["frames"]),
            frames_dropped=int(m["frames_dropped"]),
            utterances=int(m["utterances"]),
            translated=samples,
            degraded=int(m["degraded"]),
            discarded=int(m["discarded"]),
            engine_errors=int(m["engine_errors"]),
            translate_avg_ms=round(float(m["translate_ms_total"]) / samples, 2) if samples else 0.0,
        )

    def _fail(self, run: _Run, error: BaseException) -> None:
        run.fatal = error
        run.accepting = False
        _log_event(self.logger, logging.ERROR, "pipeline_fatal", error=str(error), kind=type(error).__name__)
        if self.on_fatal is not None:
            try:
                self.on_fatal(error)
            except Exception:
                self.logger.exception("pipeline_fatal_observer_failed")
        # stop() joins this thread, so tear down from a helper thread
        threading.Thread(target=self._stop_if_current, args=(run,), name="livecaption-fatal-stop", daemon=True).start()

    def _stop_if_current(self, run: _Run) -> None:
        with self._lifecycle:
            if self._run is run:
                self.stop()

    # --- workers ---

    def _capture_loop(self, run: _Run) -> None:
        try:
            for frame in run.stream:
                if run.stopping.is_set():
                    break
                run.metrics["frames"] = int(run.metrics["frames"]) + 1
                self._enqueue_frame(run, frame)
        except CaptureError as e:
            if not run.stopping.is_set():
                self._fail(run, e)
        except Exception as e:
            if not run.stopping.is_set():
                self._fail(run, CaptureError(CaptureErrorKind.DEVICE_BUSY, str(e)))
        finally:
            run.source.stop()
            _put_stop(run.frames)

    def _enqueue_frame(self, run: _Run, frame: Any) -> None:
        try:
            run.frames.put_nowait(frame)
            return
        except queue.Full:
            pass
        # recognition fell behind: drop the oldest frame, keep the newest
        try:
            _ = run.frames.get_nowait()
        except queue.Empty:
            pass
        dropped = int(run.metrics["frames_dropped"]) + 1
        run.metrics["frames_dropped"] = dropped
        if dropped == 1 or dropped % 100 == 0:
            _log_event(
                self.logger,
                logging.WARNING,
                "capture_frames_dropped",
                dropped=dropped,
                max_pending=run.frames.maxsize,
            )
        try:
            run.frames.put_nowait(frame)
        except queue.Full:
            return

    def _recognition_loop(self, run: _Run) -> None:
        session = run.session
        if session is None:
            return
        while True:
            frame = run.frames.get()
            if frame is _STOP or run.stopping.is_set():
                return
            try:
                session.feed(frame)
            except Exception as e:
                self.logger.exception("recognition_feed_failed")
                if not run.stopping.is_set():
                    self._fail(run, e)
                return

    def _translate_loop(self, run: _Run) -> None:
        while True:
            job = run.jobs.get()
            if job is _STOP:
                return
            if not run.accepting:
                run.metrics["discarded"] = int(run.metrics["discarded"]) + 1
                continue
            if isinstance(job, _Partial):
                self._deliver_partial(run, job.text)
                continue
            self._translate_job(run, job)

    def _translate_job(self, run: _Run, job: _Job) -> None:
        stage = run.stage
        if stage is None:
            return
        utt = job.utterance
        t0 = time.perf_counter()
        try:
            pair = stage.translate(utt, run.pair)
        except TranslationError as e:
            run.metrics["degraded"] = int(run.metrics["degraded"]) + 1
            _log_event(
                self.logger,
                logging.WARNING,
                "translate_failed",
                kind=e.kind.value,
                cause=str(e.cause) if e.cause is not None else None,
                retryable=e.retryable,
                chars=len(utt.text),
            )
            pair = SubtitlePair(original=utt.text, translated=None)
        else:
            dur_ms = (time.perf_counter() - t0) * 1000.0
            run.metrics["translated"] = int(run.metrics["translated"]) + 1
            run.metrics["translate_ms_total"] = float(run.metrics["translate_ms_total"]) + dur_ms
            _log_event(
                self.logger,
                logging.INFO,
                "translate_done",
                pair=str(run.pair),
                chars=len(utt.text),
                ms=round(dur_ms, 2),
                queue_depth=run.jobs.qsize(),
            )
        self._deliver(run, pair)

    def _deliver(self, run: _Run, pair: SubtitlePair) -> None:
        if not run.accepting:
            run.metrics["discarded"] = int(run.metrics["discarded"]) + 1
            return
        self.sink.deliver(pair.original, pair.translated)

    def _deliver_partial(self, run: _Run, text: str) -> None:
        if not run.accepting:
            run.metrics["discarded"] = int(run.metrics["discarded"]) + 1
            return
        deliver_partial = getattr(self.sink, "deliver_partial", None)
        if deliver_partial is not None:
            deliver_partial(text)
        else:
            self.sink.deliver(text, None)

    # --- session observers ---

    def _on_utterance(self, run: _Run, utterance: Utterance) -> None:
        if not run.accepting:
            run.metrics["discarded"] = int(run.metrics["discarded"]) + 1
            _log_event(self.logger, logging.DEBUG, "utterance_discarded_after_stop", chars=len(utterance.text))
            return
        run.metrics["utterances"] = int(run.metrics["utterances"]) + 1
        run.jobs.put(_Job(utterance))

    def _on_partial(self, run: _Run, utterance: Utterance) -> None:
        if run.accepting:
            run.jobs.put(_Partial(utterance.text))

    def _on_engine_error(self, run: _Run, error: EngineError) -> None:
        run.metrics["engine_errors"] = int(run.metrics["engine_errors"]) + 1
        _log_event(
            self.logger,
            logging.INFO,
            "recognition_error_recovering",
            kind=error.kind.value,
            code=error.code,
            detail=error.detail,
        )
        if self.on_engine_error is not None:
            self.on_engine_error(error)
