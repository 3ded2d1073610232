from __future__ import annotations
from typing import Iterable

from .base import TranslationBackend, TranslatorHandle
from livecaption.contracts import LanguagePair


class StubHandle(TranslatorHandle):
    def __init__(self, pair: LanguagePair) -> None:
        self._pair = pair
        self.closed = False

    @property
    def pair(self) -> LanguagePair:
        return self._pair

    def translate(self, text: str) -> str:
        # Deterministic, test-friendly
        return f"[{self._pair.target}] {text}"

    def close(self) -> None:
        self.closed = True


class StubBackend(TranslationBackend):
    """Offline backend that "installs" pairs in memory. Useful without network or models."""

    def __init__(self, installed: Iterable[LanguagePair] = ()) -> None:
        self.installed = set(installed)
        self.downloads: list[LanguagePair] = []

    @property
    def name(self) -> str:
        return "stub"

    def is_installed(self, pair: LanguagePair) -> bool:
        return pair in self.installed

    def download(self, pair: LanguagePair) -> None:
        self.downloads.append(pair)
        self.installed.add(pair)

    def open(self, pair: LanguagePair) -> StubHandle:
        return StubHandle(pair)
