from __future__ import annotations

from argparse import Namespace

from livecaption.app import services as app_services
from livecaption.asr.faster_whisper_decoder import FasterWhisperDecoder
from livecaption.asr.faster_whisper_listener import FasterWhisperListener
from livecaption.asr.vosk_decoder import VoskDecoder
from livecaption.audio.mic import SoundDeviceFrameSource
from livecaption.contracts import NetworkPolicy, PipelineConfig
from livecaption.nlp.translator.stub import StubBackend


def _args(**overrides) -> Namespace:
    values = dict(
        engine="whisper",
        model="base",
        vosk_model=None,
        vad="energy",
        rms_th=180.0,
        vad_aggressiveness=2,
        silence_frames=4,
        min_utter_sec=0.5,
        max_utter_sec=6.0,
        frame_sec=0.05,
        device=2,
        translator="stub",
        network_metered=True,
    )
    values.update(overrides)
    return Namespace(**values)


def test_whisper_services_use_shared_capture() -> None:
    services = app_services.build_pipeline_services(_args())
    config = PipelineConfig(source_language="ja", target_language="en")

    engine = services.engine_factory(config)
    assert isinstance(engine, FasterWhisperDecoder)
    assert engine.transcriber.language == "ja"
    assert engine.transcriber.model_size == "base"
    assert engine.endpointer.silence_frames == 4

    assert services.source_factory is not None
    source = services.source_factory(config)
    assert isinstance(source, SoundDeviceFrameSource)
    assert source.device == 2
    assert source.frames_per_block == 800


def test_listener_engine_owns_the_microphone() -> None:
    services = app_services.build_pipeline_services(_args(engine="whisper-listener"))
    assert services.source_factory is None
    engine = services.engine_factory(PipelineConfig())
    assert isinstance(engine, FasterWhisperListener)
    assert isinstance(engine.source_factory(), SoundDeviceFrameSource)


def test_vosk_engine_gets_model_path() -> None:
    services = app_services.build_pipeline_services(_args(engine="vosk", vosk_model="/models/vosk-en"))
    engine = services.engine_factory(PipelineConfig())
    assert isinstance(engine, VoskDecoder)
    assert engine.model_path == "/models/vosk-en"


def test_cache_factory_applies_policy_and_metering() -> None:
    services = app_services.build_pipeline_services(_args())
    cache = services.cache_factory(PipelineConfig(network_policy=NetworkPolicy.ANY))
    assert isinstance(cache.backend, StubBackend)
    assert cache.network_policy == NetworkPolicy.ANY
    assert cache.network_monitor.is_metered()


def test_each_run_gets_fresh_objects() -> None:
    services = app_services.build_pipeline_services(_args())
    config = PipelineConfig()
    assert services.engine_factory(config) is not services.engine_factory(config)
    assert services.cache_factory(config) is not services.cache_factory(config)
