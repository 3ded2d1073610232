from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from livecaption.contracts import SubtitlePair

try:
    from PyQt6 import QtCore, QtGui, QtWidgets
    _PYQT_IMPORT_ERROR: ModuleNotFoundError | None = None
except ModuleNotFoundError as e:  # pragma: no cover - import guard path
    QtCore = None  # type: ignore[assignment]
    QtGui = None  # type: ignore[assignment]
    QtWidgets = None  # type: ignore[assignment]
    _PYQT_IMPORT_ERROR = e


POSITION_PRESETS = ("top", "center", "bottom")


@dataclass
class OverlayConfig:
    show_original: bool = True
    font_size: int = 18
    font_size_original: int = 14
    padding_px: int = 14
    bg_opacity: int = 66
    position: str = "bottom"
    hotkey_toggle_original: str = "H"
    hotkey_font_inc: str = "+"
    hotkey_font_dec: str = "-"
    hotkey_hide: str = "Esc"


@dataclass
class CaptionState:
    """The two lines currently on screen. Empty string means hidden."""
    original: str = ""
    translated: str = ""

    def apply(self, pair: SubtitlePair) -> None:
        self.original = (pair.original or "").strip()
        self.translated = (pair.translated or "").strip()

    @property
    def empty(self) -> bool:
        return not self.original and not self.translated


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def render_caption_html(state: CaptionState, cfg: OverlayConfig) -> str:
    parts: list[str] = []
    if cfg.show_original and state.original:
        parts.append(
            f"<div style='font-size:{cfg.font_size_original}px; opacity:0.85; margin-bottom:2px;'>"
            f"{_escape(state.original)}</div>"
        )
    if state.translated:
        parts.append(f"<div style='font-size:{cfg.font_size}px; font-weight:600;'>{_escape(state.translated)}</div>")
    return "".join(parts)


def panel_alpha(opacity_percent: int) -> int:
    return max(0, min(255, int(round((opacity_percent / 100.0) * 255.0))))


def preset_origin(
    preset: str,
    *,
    area: tuple[int, int, int, int],
    size: tuple[int, int],
    margin: int = 40,
) -> tuple[int, int]:
    """Top-left corner for the overlay inside `area` (left, top, width, height)."""
    left, top, width, height = area
    w, h = size
    x = left + max(0, (width - w) // 2)
    preset = str(preset or "bottom").lower()
    if preset == "top":
        y = top + margin
    elif preset == "center":
        y = top + max(0, (height - h) // 2)
    else:
        y = top + max(0, height - h - margin)
    return x, y


if QtWidgets is not None:
    class CaptionOverlay(QtWidgets.QWidget):
        """
        Frameless always-on-top caption window: original line above, translation below.

        Hotkeys:
          - H : toggle original line
          - + / - : font size up/down
          - ESC : hide overlay
          - Drag with mouse to move
        """

        def __init__(self, cfg: OverlayConfig | None = None):
            super().__init__()
            self.cfg = cfg or OverlayConfig()
            self.state = CaptionState()

            self.setWindowFlags(
                QtCore.Qt.WindowType.FramelessWindowHint
                | QtCore.Qt.WindowType.WindowStaysOnTopHint
                | QtCore.Qt.WindowType.Tool
            )
            self.setAttribute(QtCore.Qt.WidgetAttribute.WA_TranslucentBackground, True)

            self.panel = QtWidgets.QFrame(self)
            self._apply_panel_style()

            self.label = QtWidgets.QLabel(self.panel)
            self.label.setWordWrap(True)
            self.label.setTextFormat(QtCore.Qt.TextFormat.RichText)
            self.label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
            self.label.setStyleSheet("QLabel { background: transparent; color: white; }")

            layout = QtWidgets.QVBoxLayout(self.panel)
            pad = self.cfg.padding_px
            layout.setContentsMargins(pad, pad, pad, pad)
            layout.addWidget(self.label)

            outer = QtWidgets.QVBoxLayout(self)
            outer.setContentsMargins(0, 0, 0, 0)
            outer.addWidget(self.panel)

            self.resize(900, 140)
            self.apply_position_preset()

            self._drag_pos: Optional[QtCore.QPoint] = None
            self._refresh()

        def deliver_pair(self, pair: SubtitlePair) -> None:
            self.state.apply(pair)
            self._refresh()

        def _refresh(self) -> None:
            self.label.setText(render_caption_html(self.state, self.cfg))
            self.panel.setVisible(not self.state.empty)

        def _apply_panel_style(self) -> None:
            alpha = panel_alpha(self.cfg.bg_opacity)
            self.panel.setStyleSheet(
                f"""
                QFrame {{
                    background-color: rgba(0, 0, 0, {alpha});
                    border-radius: 16px;
                }}
                """
            )

        def apply_position_preset(self) -> None:
            screen = QtGui.QGuiApplication.primaryScreen()
            if screen is None:
                return
            geom = screen.availableGeometry()
            x, y = preset_origin(
                self.cfg.position,
                area=(geom.left(), geom.top(), geom.width(), geom.height()),
                size=(self.width(), self.height()),
            )
            self.move(x, y)

        # ----- Drag to move -----
        def mousePressEvent(self, ev: QtGui.QMouseEvent) -> None:
            if ev.button() == QtCore.Qt.MouseButton.LeftButton:
                self._drag_pos = ev.globalPosition().toPoint() - self.frameGeometry().topLeft()
            super().mousePressEvent(ev)

        def mouseMoveEvent(self, ev: QtGui.QMouseEvent) -> None:
            if self._drag_pos is not None and (ev.buttons() & QtCore.Qt.MouseButton.LeftButton):
                self.move(ev.globalPosition().toPoint() - self._drag_pos)
            super().mouseMoveEvent(ev)

        def mouseReleaseEvent(self, ev: QtGui.QMouseEvent) -> None:
            self._drag_pos = None
            super().mouseReleaseEvent(ev)

        # ----- Hotkeys -----
        def keyPressEvent(self, ev: QtGui.QKeyEvent) -> None:
            key = QtGui.QKeySequence(ev.keyCombination()).toString(
                QtGui.QKeySequence.SequenceFormat.PortableText
            )
            if key == QtGui.QKeySequence(self.cfg.hotkey_hide).toString():
                self.hide()
                return
            if key == self.cfg.hotkey_toggle_original:
                self.cfg.show_original = not self.cfg.show_original
                self._refresh()
                return
            if key in (self.cfg.hotkey_font_inc, "="):
                self.cfg.font_size += 2
                self.cfg.font_size_original += 1
                self._refresh()
                return
            if key in (self.cfg.hotkey_font_dec, "_"):
                self.cfg.font_size = max(12, self.cfg.font_size - 2)
                self.cfg.font_size_original = max(10, self.cfg.font_size_original - 1)
                self._refresh()
                return
            super().keyPressEvent(ev)
else:
    class CaptionOverlay:
        def __init__(self, cfg: OverlayConfig | None = None) -> None:
            del cfg
            raise ModuleNotFoundError(
                "PyQt6 is required for CaptionOverlay. Install with: python -m pip install PyQt6"
            ) from _PYQT_IMPORT_ERROR
