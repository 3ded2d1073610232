from __future__ import annotations

import logging
import signal
import sys
import threading
import traceback
from typing import Any

from livecaption.app.config import pipeline_config_from_args, resolve_args
from livecaption.app.diagnostics import hint_for_exception, summarize_exception
from livecaption.app.logging_setup import setup_app_logger
from livecaption.app.services import build_pipeline_services
from livecaption.audio.mic import SoundDeviceFrameSource
from livecaption.live.coordinator import PipelineCoordinator
from livecaption.ui.bridge import ConsoleSink, DisplaySink, FanoutSink, SubtitleBus


def _report_failure(logger: logging.Logger, event: str, log_path: Any) -> None:
    detail = traceback.format_exc()
    logger.exception(event)
    summary = summarize_exception(detail)
    print(f"LiveCaption failed: {summary}", file=sys.stderr)
    print(f"Hint: {hint_for_exception(summary)}", file=sys.stderr)
    print(f"Logs: {log_path}", file=sys.stderr)


def _build_coordinator(args: Any, sink: DisplaySink, on_fatal) -> PipelineCoordinator:
    services = build_pipeline_services(args)
    return PipelineCoordinator(
        engine_factory=services.engine_factory,
        cache_factory=services.cache_factory,
        source_factory=services.source_factory,
        sink=sink,
        on_fatal=on_fatal,
        live_preview=bool(args.live_preview),
        restart_delay=max(0.0, float(args.restart_delay_sec)),
        max_pending_frames=max(1, int(args.queue_maxsize)),
        logger=logging.getLogger("livecaption.live"),
    )


def run_console(args: Any, logger: logging.Logger, log_path: Any) -> int:
    done = threading.Event()
    fatal: list[BaseException] = []

    def _on_fatal(error: BaseException) -> None:
        fatal.append(error)
        done.set()

    sink = ConsoleSink(show_original=bool(args.show_original))
    coordinator = _build_coordinator(args, sink, _on_fatal)
    config = pipeline_config_from_args(args)
    try:
        coordinator.start(config)
    except Exception:
        _report_failure(logger, "pipeline_start_failed", log_path)
        return 1

    signal.signal(signal.SIGINT, lambda *_: done.set())
    print(f"Listening ({config.pair}). Press Ctrl+C to stop.")
    try:
        while not done.wait(0.2):
            pass
    finally:
        coordinator.stop()
        logger.info("app_quit")

    if fatal:
        summary = summarize_exception(str(fatal[0]))
        print(f"Capture stopped: {summary}", file=sys.stderr)
        print(f"Hint: {hint_for_exception(summary)}", file=sys.stderr)
        return 2
    return 0


def run_overlay(args: Any, logger: logging.Logger, log_path: Any) -> int:
    from PyQt6 import QtCore, QtWidgets
    from livecaption.ui.bridge import drain_subtitle_bus
    from livecaption.ui.overlay_qt import CaptionOverlay, OverlayConfig

    app = QtWidgets.QApplication(sys.argv)
    overlay = CaptionOverlay(
        OverlayConfig(
            show_original=bool(args.show_original),
            font_size=max(10, int(args.font_size)),
            font_size_original=max(8, int(args.font_size_original)),
            bg_opacity=max(0, min(100, int(args.overlay_opacity))),
            position=str(args.overlay_position),
        )
    )

    bus = SubtitleBus(maxsize=max(1, int(args.queue_maxsize)))
    sink: DisplaySink = bus
    if bool(args.print_console):
        sink = FanoutSink(bus, ConsoleSink(show_original=bool(args.show_original)))

    fatal: list[BaseException] = []
    coordinator = _build_coordinator(args, sink, fatal.append)
    try:
        coordinator.start(pipeline_config_from_args(args))
    except Exception:
        _report_failure(logger, "pipeline_start_failed", log_path)
        return 1

    timer = QtCore.QTimer()

    def _on_tick() -> None:
        drain_subtitle_bus(bus, overlay.deliver_pair, max_items=10)
        if fatal:
            print(f"Capture stopped: {summarize_exception(str(fatal[0]))}", file=sys.stderr)
            app.exit(2)

    timer.timeout.connect(_on_tick)
    timer.start(max(10, int(args.poll_ms)))

    def _on_about_to_quit() -> None:
        logger.info("app_quit")
        coordinator.stop()

    app.aboutToQuit.connect(_on_about_to_quit)
    signal.signal(signal.SIGINT, lambda *_: app.quit())

    overlay.show()
    print(f"Logs: {log_path}")
    return app.exec()


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    _, _, log_path = setup_app_logger()
    logger = logging.getLogger("livecaption.app")
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        print(SoundDeviceFrameSource.list_devices())
        return 0

    if str(args.sink) == "overlay":
        return run_overlay(args, logger, log_path)
    return run_console(args, logger, log_path)


if __name__ == "__main__":
    raise SystemExit(main())
