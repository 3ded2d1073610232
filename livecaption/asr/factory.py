from __future__ import annotations
import os
from typing import Any, Callable, Optional

from livecaption.audio.endpoint import UtteranceEndpointer
from livecaption.audio.vad import EnergyVAD, SpeechDetector
from .base import RecognitionEngine
from .faster_whisper_decoder import FasterWhisperDecoder
from .faster_whisper_listener import FasterWhisperListener
from .faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from .vosk_decoder import VoskDecoder


def build_vad(kind: str = "energy", *, rms_threshold: float = 250.0, aggressiveness: int = 2) -> SpeechDetector:
    kind = (kind or "energy").lower().strip()
    if kind == "energy":
        return EnergyVAD(rms_threshold=rms_threshold)
    if kind == "webrtc":
        from livecaption.audio.vad_webrtc import WebRtcVad

        return WebRtcVad(sr=16000, frame_ms=20, aggressiveness=aggressiveness)
    raise ValueError(f"Unknown VAD: {kind}")


def get_engine(
    provider: str | None = None,
    *,
    language: str = "en",
    model_size: str = "tiny",
    vosk_model_path: Optional[str] = None,
    vad: Optional[SpeechDetector] = None,
    silence_frames: int = 5,
    min_utter_sec: float = 0.6,
    max_utter_sec: Optional[float] = 6.0,
    source_factory: Optional[Callable[[], Any]] = None,
) -> RecognitionEngine:
    provider = (provider or os.getenv("LIVECAPTION_ENGINE", "whisper")).lower().strip()

    if provider == "vosk":
        return VoskDecoder(language=language, model_path=vosk_model_path)

    if provider in ("whisper", "whisper-listener"):
        transcriber = FasterWhisperPCM16Transcriber(
            model_size=model_size,
            language=None if language == "auto" else language,
        )
        endpointer = UtteranceEndpointer(
            vad=vad or EnergyVAD(),
            silence_frames=silence_frames,
            min_utter_sec=min_utter_sec,
            max_utter_sec=max_utter_sec,
        )
        if provider == "whisper":
            return FasterWhisperDecoder(transcriber=transcriber, endpointer=endpointer)
        if source_factory is None:
            raise ValueError("whisper-listener needs a source_factory to open its own capture stream")
        return FasterWhisperListener(
            transcriber=transcriber,
            endpointer=endpointer,
            source_factory=source_factory,
        )

    raise ValueError(f"Unknown recognition engine: {provider}")
