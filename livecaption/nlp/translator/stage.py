from __future__ import annotations

from typing import Optional

from livecaption.contracts import LanguagePair, SubtitlePair, Utterance
from livecaption.errors import ModelError, TranslationError, TranslationErrorKind
from .cache import TranslationModelCache


class TranslationStage:
    """
    Turn a finalized utterance into an (original, translated) pair.

    Identical source and target languages short-circuit to the input text
    without touching the cache. Failures raise TranslationError whose `cause`
    is the ModelError (model unavailable) or the backend exception.
    """

    def __init__(self, cache: Optional[TranslationModelCache]) -> None:
        self.cache = cache

    def translate(self, utterance: Utterance, pair: LanguagePair) -> SubtitlePair:
        text = utterance.text
        if pair.is_identity:
            return SubtitlePair(original=text, translated=text)
        if self.cache is None:
            raise TranslationError(TranslationErrorKind.ENGINE_CALL_FAILED, RuntimeError("no translation cache"))

        try:
            handle = self.cache.ensure(pair)
        except ModelError as e:
            raise TranslationError(TranslationErrorKind.MODEL_UNAVAILABLE, e) from e

        try:
            translated = handle.translate(text)
        except Exception as e:
            raise TranslationError(TranslationErrorKind.ENGINE_CALL_FAILED, e) from e
        return SubtitlePair(original=text, translated=translated)
