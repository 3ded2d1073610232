from __future__ import annotations

import logging
from typing import Optional

from livecaption.audio.vad import SpeechDetector
from livecaption.contracts import AudioFrame

logger = logging.getLogger(__name__)


class UtteranceEndpointer:
    """
    Groups consecutive capture frames into utterances.

    An utterance opens on the first speech frame and closes after
    `silence_frames` non-speech frames in a row, or when it reaches
    `max_utter_sec`. Utterances shorter than `min_utter_sec` are dropped.
    """

    def __init__(
        self,
        *,
        vad: SpeechDetector,
        silence_frames: int = 5,
        min_utter_sec: float = 0.6,
        max_utter_sec: float | None = None,
    ) -> None:
        if silence_frames <= 0:
            raise ValueError("silence_frames must be > 0")
        if min_utter_sec < 0:
            raise ValueError("min_utter_sec must be >= 0")
        if max_utter_sec is not None and max_utter_sec <= 0:
            raise ValueError("max_utter_sec must be > 0 when set")

        self.vad = vad
        self.silence_frames = int(silence_frames)
        self.min_utter_sec = float(min_utter_sec)
        self.max_utter_sec = float(max_utter_sec) if max_utter_sec is not None else None
        self.last_reason: str | None = None
        self.reset()

    @property
    def in_utterance(self) -> bool:
        return self._in_utterance

    def reset(self) -> None:
        self._parts: list[bytes] = []
        self._bytes = 0
        self._t0 = 0.0
        self._sr = 0
        self._ch = 1
        self._in_utterance = False
        self._trailing_silence = 0

    def _seconds(self) -> float:
        bytes_per_second = self._sr * self._ch * 2
        if bytes_per_second <= 0:
            return 0.0
        return self._bytes / float(bytes_per_second)

    def _close(self, reason: str) -> Optional[AudioFrame]:
        self.last_reason = reason
        utter_sec = self._seconds()
        pcm16 = b"".join(self._parts)
        t0, sr, ch = self._t0, self._sr, self._ch
        self.reset()
        if utter_sec < self.min_utter_sec:
            logger.debug(
                "endpoint_short_utterance_dropped",
                extra={"reason": reason, "t0": t0, "dur": round(utter_sec, 3)},
            )
            return None
        return AudioFrame(pcm16=pcm16, sample_rate=sr, channels=ch, start_time=t0, duration=utter_sec)

    def push(self, frame: AudioFrame) -> Optional[AudioFrame]:
        if self.vad.is_speech(frame.pcm16):
            if not self._in_utterance:
                self._in_utterance = True
                self._parts = []
                self._bytes = 0
                self._t0 = float(frame.start_time)
                self._sr = int(frame.sample_rate)
                self._ch = int(frame.channels)
            self._parts.append(frame.pcm16)
            self._bytes += len(frame.pcm16)
            self._trailing_silence = 0
            if self.max_utter_sec is not None and self._seconds() >= self.max_utter_sec:
                return self._close("max_utter_sec")
            return None

        if not self._in_utterance:
            return None
        # keep trailing silence so the recognizer sees the natural word ending
        self._parts.append(frame.pcm16)
        self._bytes += len(frame.pcm16)
        self._trailing_silence += 1
        if self._trailing_silence >= self.silence_frames:
            return self._close("silence")
        return None

    def flush(self) -> Optional[AudioFrame]:
        if not self._in_utterance or not self._parts:
            self.reset()
            return None
        return self._close("stream_end")
