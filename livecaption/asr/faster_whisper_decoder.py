from __future__ import annotations

import logging
from typing import Optional

from livecaption.asr.base import BlockingDecoderEngine
from livecaption.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from livecaption.audio.endpoint import UtteranceEndpointer
from livecaption.contracts import AudioFrame, Utterance

logger = logging.getLogger(__name__)


class FasterWhisperDecoder(BlockingDecoderEngine):
    """
    Blocking decoder: VAD endpointing over fed frames, one faster-whisper
    call per closed utterance.
    """

    def __init__(
        self,
        *,
        transcriber: FasterWhisperPCM16Transcriber,
        endpointer: UtteranceEndpointer,
    ) -> None:
        self.transcriber = transcriber
        self.endpointer = endpointer
        self._result: Optional[str] = None
        self._closed = False

    @property
    def name(self) -> str:
        return "faster-whisper"

    @property
    def language(self) -> str:
        return self.transcriber.language or "auto"

    def prepare(self) -> None:
        self.transcriber.load()

    def accept_frame(self, frame: AudioFrame) -> bool:
        utterance = self.endpointer.push(frame)
        if utterance is None:
            return False
        self._result = self.transcriber.transcribe_utterance(
            utterance.pcm16,
            sample_rate=utterance.sample_rate,
            channels=utterance.channels,
        )
        logger.debug(
            "decoder_endpoint",
            extra={
                "reason": self.endpointer.last_reason,
                "t0": utterance.start_time,
                "dur": round(utterance.duration, 3),
                "chars": len(self._result),
            },
        )
        return True

    def current_result(self) -> Utterance:
        text, self._result = (self._result or ""), None
        return Utterance(text=text, is_final=True, source_language=self.language)

    def reset(self) -> None:
        self._result = None
        self.endpointer.reset()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.reset()
        self.transcriber.unload()
