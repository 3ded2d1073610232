from __future__ import annotations
from abc import ABC, abstractmethod
from livecaption.contracts import LanguagePair


class TranslatorHandle(ABC):
    """A ready-to-use translator for one language pair."""

    @property
    @abstractmethod
    def pair(self) -> LanguagePair: ...

    @abstractmethod
    def translate(self, text: str) -> str: ...

    def close(self) -> None:
        pass


class TranslationBackend(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    def supports(self, pair: LanguagePair) -> bool:
        return True

    @abstractmethod
    def is_installed(self, pair: LanguagePair) -> bool: ...

    @abstractmethod
    def download(self, pair: LanguagePair) -> None:
        """Fetch and install the models `pair` needs. Blocking, may take minutes."""

    @abstractmethod
    def open(self, pair: LanguagePair) -> TranslatorHandle: ...
