from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from livecaption.asr.base import RecognitionEngine
from livecaption.asr.factory import build_vad, get_engine
from livecaption.audio.mic import SoundDeviceFrameSource
from livecaption.contracts import PipelineConfig
from livecaption.nlp.translator.cache import TranslationModelCache
from livecaption.nlp.translator.factory import get_translation_backend
from livecaption.nlp.translator.network import StaticNetworkMonitor


@dataclass(frozen=True)
class PipelineServices:
    """Factories handed to PipelineCoordinator, one fresh object per run."""
    engine_factory: Callable[[PipelineConfig], RecognitionEngine]
    cache_factory: Callable[[PipelineConfig], TranslationModelCache]
    source_factory: Optional[Callable[[PipelineConfig], SoundDeviceFrameSource]]


def _make_source(args: Any) -> SoundDeviceFrameSource:
    return SoundDeviceFrameSource(frame_seconds=float(args.frame_sec), device=args.device)


def build_pipeline_services(args: Any) -> PipelineServices:
    engine_name = str(args.engine)
    max_utter = float(args.max_utter_sec) if args.max_utter_sec else None

    def engine_factory(config: PipelineConfig) -> RecognitionEngine:
        vad = build_vad(
            str(args.vad),
            rms_threshold=float(args.rms_th),
            aggressiveness=int(args.vad_aggressiveness),
        )
        return get_engine(
            engine_name,
            language=config.source_language,
            model_size=str(args.model),
            vosk_model_path=args.vosk_model,
            vad=vad,
            silence_frames=int(args.silence_frames),
            min_utter_sec=float(args.min_utter_sec),
            max_utter_sec=max_utter,
            source_factory=(lambda: _make_source(args)) if engine_name == "whisper-listener" else None,
        )

    def cache_factory(config: PipelineConfig) -> TranslationModelCache:
        return TranslationModelCache(
            get_translation_backend(str(args.translator)),
            network_policy=config.network_policy,
            network_monitor=StaticNetworkMonitor(metered=bool(args.network_metered)),
        )

    source_factory: Optional[Callable[[PipelineConfig], SoundDeviceFrameSource]] = None
    if engine_name != "whisper-listener":
        # the listener engine opens the microphone itself for every cycle
        source_factory = lambda config: _make_source(args)  # noqa: E731

    return PipelineServices(
        engine_factory=engine_factory,
        cache_factory=cache_factory,
        source_factory=source_factory,
    )
