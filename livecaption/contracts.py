from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time


@dataclass(frozen=True)
class AudioFrame:
    """
    Raw PCM16 audio captured from a live source.
    pcm16: little-endian signed 16-bit PCM bytes, mono.
    """
    pcm16: bytes
    sample_rate: int = 16000
    channels: int = 1
    start_time: float = 0.0  # seconds since stream start
    duration: float = 0.0    # seconds


@dataclass(frozen=True)
class Utterance:
    text: str
    is_final: bool = True
    source_language: str = "en"
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class LanguagePair:
    source: str
    target: str

    @property
    def is_identity(self) -> bool:
        return self.source == self.target

    def __str__(self) -> str:
        return f"{self.source}->{self.target}"


@dataclass(frozen=True)
class SubtitlePair:
    # None or "" means "clear that line"
    original: Optional[str]
    translated: Optional[str]


class RecognitionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING_RESULT = "processing_result"
    ERROR_BACKOFF = "error_backoff"


class ModelAvailability(str, Enum):
    NOT_PRESENT = "not_present"
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"


class NetworkPolicy(str, Enum):
    UNMETERED_ONLY = "unmetered-only"
    ANY = "any"


@dataclass(frozen=True)
class PipelineConfig:
    source_language: str = "en"
    target_language: str = "ko"
    network_policy: NetworkPolicy = NetworkPolicy.UNMETERED_ONLY
    sample_rate: int = 16000

    @property
    def pair(self) -> LanguagePair:
        return LanguagePair(self.source_language, self.target_language)
