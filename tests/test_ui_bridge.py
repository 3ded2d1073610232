from __future__ import annotations

from livecaption.contracts import SubtitlePair
from livecaption.ui.bridge import ConsoleSink, FanoutSink, SubtitleBus, drain_subtitle_bus


def test_subtitle_bus_drops_oldest_when_full() -> None:
    bus = SubtitleBus(maxsize=2)
    bus.deliver("one", "1")
    bus.deliver("two", "2")
    bus.deliver("three", "3")

    assert bus.pop() == SubtitlePair("two", "2")
    assert bus.pop() == SubtitlePair("three", "3")
    assert bus.pop() is None


def test_drain_subtitle_bus_respects_max_items() -> None:
    bus = SubtitleBus(maxsize=10)
    applied: list[SubtitlePair] = []
    for i in range(3):
        bus.deliver(f"line-{i}", None)

    assert drain_subtitle_bus(bus, applied.append, max_items=2) == 2
    assert [p.original for p in applied] == ["line-0", "line-1"]


def test_console_sink_formats_lines() -> None:
    out: list[str] = []
    sink = ConsoleSink(printer=out.append)
    sink.deliver("hello world", "안녕하세요 세계")
    sink.deliver("hello again", None)
    assert out == ["SRC: hello world", "DST: 안녕하세요 세계", "SRC: hello again", "DST: (untranslated)"]


def test_console_sink_can_hide_original() -> None:
    out: list[str] = []
    ConsoleSink(show_original=False, printer=out.append).deliver("hello", "bonjour")
    assert out == ["DST: bonjour"]


def test_fanout_sink_delivers_to_all() -> None:
    a, b = SubtitleBus(), SubtitleBus()
    FanoutSink(a, b).deliver("x", "y")
    assert a.pop() == b.pop() == SubtitlePair("x", "y")


def test_console_sink_prints_partials_without_untranslated_marker() -> None:
    out: list[str] = []
    sink = ConsoleSink(printer=out.append)
    sink.deliver_partial("hel")
    sink.deliver_partial("")
    sink.deliver("hello", None)
    assert out == ["... hel", "SRC: hello", "DST: (untranslated)"]


def test_fanout_sink_routes_partials() -> None:
    out: list[str] = []
    bus = SubtitleBus()
    FanoutSink(ConsoleSink(printer=out.append), bus).deliver_partial("hel")
    assert out == ["... hel"]
    assert bus.pop() == SubtitlePair("hel", None)
