from __future__ import annotations

import json
import logging
from typing import Optional

from livecaption.asr.base import BlockingDecoderEngine
from livecaption.contracts import AudioFrame, Utterance
from livecaption.errors import EngineError, EngineErrorKind, EngineUnavailable

logger = logging.getLogger(__name__)

# Vosk small-model names per caption language.
VOSK_MODEL_LANGS: dict[str, str] = {
    "en": "en-us",
    "ko": "ko",
    "ja": "ja",
    "zh": "cn",
    "es": "es",
    "fr": "fr",
    "de": "de",
}


class VoskDecoder(BlockingDecoderEngine):
    """
    Blocking decoder over vosk.KaldiRecognizer.
    AcceptWaveform() returning True marks an utterance boundary.
    """

    def __init__(
        self,
        *,
        language: str = "en",
        model_path: Optional[str] = None,
        sample_rate: int = 16000,
    ) -> None:
        self.language = language
        self.model_path = model_path
        self.sample_rate = sample_rate
        self._model = None
        self._recognizer = None
        self._closed = False

    @property
    def name(self) -> str:
        return "vosk"

    def prepare(self) -> None:
        if self._recognizer is not None:
            return
        try:
            import vosk

            vosk.SetLogLevel(-1)
            if self.model_path:
                self._model = vosk.Model(self.model_path)
            else:
                self._model = vosk.Model(lang=VOSK_MODEL_LANGS.get(self.language, self.language))
            self._recognizer = vosk.KaldiRecognizer(self._model, self.sample_rate)
        except Exception as e:
            raise EngineUnavailable(f"vosk model for '{self.language}' could not be loaded: {e}") from e

    def _rec(self):
        if self._recognizer is None:
            raise EngineError(EngineErrorKind.CLIENT_FAULT, "vosk recognizer is not prepared")
        return self._recognizer

    def accept_frame(self, frame: AudioFrame) -> bool:
        if frame.sample_rate != self.sample_rate:
            raise EngineError(
                EngineErrorKind.AUDIO,
                f"vosk recognizer runs at {self.sample_rate} Hz, got {frame.sample_rate}",
            )
        try:
            return bool(self._rec().AcceptWaveform(frame.pcm16))
        except EngineError:
            raise
        except Exception as e:
            raise EngineError(EngineErrorKind.CLIENT_FAULT, f"vosk decode failed: {e}") from e

    def _payload(self, raw_fn_name: str) -> dict:
        rec = self._rec()
        try:
            payload = json.loads(getattr(rec, raw_fn_name)() or "{}")
        except Exception as e:
            raise EngineError(EngineErrorKind.CLIENT_FAULT, f"vosk {raw_fn_name} failed: {e}") from e
        if not isinstance(payload, dict):
            raise EngineError(EngineErrorKind.CLIENT_FAULT, f"vosk {raw_fn_name} returned {type(payload).__name__}")
        return payload

    def current_result(self) -> Utterance:
        text = str(self._payload("Result").get("text", "")).strip()
        return Utterance(text=text, is_final=True, source_language=self.language)

    def partial_result(self) -> Optional[str]:
        text = str(self._payload("PartialResult").get("partial", "")).strip()
        return text or None

    def reset(self) -> None:
        if self._recognizer is not None:
            self._recognizer.Reset()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._recognizer = None
        self._model = None
