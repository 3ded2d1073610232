from __future__ import annotations

import logging
from typing import Any, List

from .base import TranslationBackend, TranslatorHandle
from livecaption.contracts import LanguagePair
from livecaption.errors import ModelError, ModelErrorKind

logger = logging.getLogger(__name__)

PIVOT_LANGUAGE = "en"


def _installed_translation(pair: LanguagePair):
    import argostranslate.translate

    installed = {lang.code: lang for lang in argostranslate.translate.get_installed_languages()}
    src = installed.get(pair.source)
    dst = installed.get(pair.target)
    if src is None or dst is None:
        return None
    return src.get_translation(dst)


def _packages_for(pair: LanguagePair, available: List[Any]) -> List[Any]:
    by_codes = {(p.from_code, p.to_code): p for p in available}
    direct = by_codes.get((pair.source, pair.target))
    if direct is not None:
        return [direct]
    # Argos chains installed models through English when no direct package exists.
    first = by_codes.get((pair.source, PIVOT_LANGUAGE))
    second = by_codes.get((PIVOT_LANGUAGE, pair.target))
    if PIVOT_LANGUAGE in (pair.source, pair.target) or first is None or second is None:
        return []
    return [first, second]


class ArgosHandle(TranslatorHandle):
    def __init__(self, pair: LanguagePair, translation: Any) -> None:
        self._pair = pair
        self._translation = translation

    @property
    def pair(self) -> LanguagePair:
        return self._pair

    def translate(self, text: str) -> str:
        if self._translation is None:
            raise RuntimeError(f"translator {self._pair} is closed")
        return str(self._translation.translate(text))

    def close(self) -> None:
        self._translation = None


class ArgosBackend(TranslationBackend):
    @property
    def name(self) -> str:
        return "argos"

    def is_installed(self, pair: LanguagePair) -> bool:
        return _installed_translation(pair) is not None

    def download(self, pair: LanguagePair) -> None:
        import argostranslate.package

        argostranslate.package.update_package_index()
        available = argostranslate.package.get_available_packages()
        packages = _packages_for(pair, available)
        if not packages:
            raise ModelError(ModelErrorKind.UNSUPPORTED_LANGUAGE, f"No Argos package found for {pair}")

        for pkg in packages:
            logger.info("argos_package_download", extra={"from": pkg.from_code, "to": pkg.to_code})
            path = pkg.download()
            argostranslate.package.install_from_path(path)

    def open(self, pair: LanguagePair) -> ArgosHandle:
        translation = _installed_translation(pair)
        if translation is None:
            raise ModelError(ModelErrorKind.DOWNLOAD_FAILED, f"Argos model for {pair} is not installed")
        return ArgosHandle(pair, translation)
