from __future__ import annotations

from livecaption.contracts import SubtitlePair
from livecaption.ui.overlay_qt import CaptionState, OverlayConfig, panel_alpha, preset_origin, render_caption_html


def test_render_caption_html_contains_both_lines() -> None:
    state = CaptionState()
    state.apply(SubtitlePair("Hello", "こんにちは"))
    html = render_caption_html(state, OverlayConfig(font_size=22, font_size_original=12))
    assert "Hello" in html
    assert "こんにちは" in html
    assert "font-size:22px" in html
    assert "font-size:12px" in html
    assert html.index("Hello") < html.index("こんにちは")


def test_none_or_empty_hides_that_line() -> None:
    state = CaptionState()
    state.apply(SubtitlePair("Hello", "안녕"))
    state.apply(SubtitlePair("Next", None))
    assert state.original == "Next"
    assert state.translated == ""
    html = render_caption_html(state, OverlayConfig())
    assert "안녕" not in html

    state.apply(SubtitlePair("", ""))
    assert state.empty
    assert render_caption_html(state, OverlayConfig()) == ""


def test_original_line_can_be_hidden() -> None:
    state = CaptionState(original="Hello", translated="Bonjour")
    html = render_caption_html(state, OverlayConfig(show_original=False))
    assert "Hello" not in html
    assert "Bonjour" in html


def test_html_is_escaped() -> None:
    state = CaptionState(original="<b>&", translated="")
    assert "&lt;b&gt;&amp;" in render_caption_html(state, OverlayConfig())


def test_position_presets() -> None:
    area = (0, 0, 1000, 800)
    assert preset_origin("bottom", area=area, size=(600, 100)) == (200, 660)
    assert preset_origin("top", area=area, size=(600, 100)) == (200, 40)
    assert preset_origin("center", area=area, size=(600, 100)) == (200, 350)


def test_panel_alpha_is_clamped() -> None:
    assert panel_alpha(0) == 0
    assert panel_alpha(100) == 255
    assert panel_alpha(150) == 255
