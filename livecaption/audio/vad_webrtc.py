from __future__ import annotations

from typing import Iterator


class WebRtcVad:
    """
    WebRTC VAD expects:
      - 16-bit mono PCM
      - sample rate: 8000/16000/32000/48000
      - frame size: 10/20/30 ms
    Capture frames are longer than that, so a frame counts as speech when at
    least `speech_ratio` of its sub-frames are voiced.
    aggressiveness: 0 (least) .. 3 (most aggressive)
    """
    def __init__(
        self,
        sr: int = 16000,
        frame_ms: int = 20,
        aggressiveness: int = 2,
        speech_ratio: float = 0.3,
    ):
        if frame_ms not in (10, 20, 30):
            raise ValueError("frame_ms must be 10/20/30")
        if sr not in (8000, 16000, 32000, 48000):
            raise ValueError("sr must be one of 8000/16000/32000/48000")
        if not 0.0 < speech_ratio <= 1.0:
            raise ValueError("speech_ratio must be in (0, 1]")
        self.sr = sr
        self.frame_ms = frame_ms
        self.speech_ratio = float(speech_ratio)
        self.frame_bytes = int(sr * frame_ms / 1000) * 2  # int16 => 2 bytes
        try:
            import webrtcvad
        except ImportError as e:
            raise RuntimeError(
                "webrtcvad is not installed. Install with: python -m pip install webrtcvad"
            ) from e
        self.vad = webrtcvad.Vad(aggressiveness)

    def _sub_frames(self, pcm16: bytes) -> Iterator[bytes]:
        step = self.frame_bytes
        for i in range(0, len(pcm16) - step + 1, step):
            yield pcm16[i : i + step]

    def is_speech(self, pcm16: bytes) -> bool:
        total = 0
        voiced = 0
        for sub in self._sub_frames(pcm16):
            total += 1
            if self.vad.is_speech(sub, self.sr):
                voiced += 1
        if total == 0:
            return False
        return voiced / total >= self.speech_ratio
