from __future__ import annotations

from typing import Optional

import numpy as np

from livecaption.errors import EngineError, EngineErrorKind, EngineUnavailable


def pcm16_to_float32(pcm16: bytes, channels: int = 1) -> np.ndarray:
    usable = len(pcm16) - (len(pcm16) % (2 * max(1, channels)))
    samples = np.frombuffer(pcm16[:usable], dtype=np.int16)
    if channels > 1:
        samples = samples.reshape(-1, channels)[:, 0]
    return samples.astype(np.float32) / 32768.0


class FasterWhisperPCM16Transcriber:
    def __init__(
        self,
        *,
        model_size: str = "tiny",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = "en",
        beam_size: int = 1,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model = None

    def load(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel

                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            except Exception as e:
                raise EngineUnavailable(
                    f"faster-whisper model '{self.model_size}' could not be loaded: {e}"
                ) from e
        return self._model

    def unload(self) -> None:
        self._model = None

    def transcribe_utterance(self, pcm16: bytes, sample_rate: int, channels: int = 1) -> str:
        if not pcm16:
            return ""
        if sample_rate != 16000:
            raise EngineError(EngineErrorKind.AUDIO, f"faster-whisper expects 16 kHz audio, got {sample_rate}")

        model = self.load()
        try:
            segments, _info = model.transcribe(
                pcm16_to_float32(pcm16, channels),
                language=self.language,
                beam_size=self.beam_size,
                vad_filter=False,
                condition_on_previous_text=False,
            )
            parts = [(s.text or "").strip() for s in segments]
        except Exception as e:
            raise EngineError(EngineErrorKind.CLIENT_FAULT, f"transcription failed: {e}") from e
        return " ".join(p for p in parts if p).strip()
