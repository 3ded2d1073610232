from __future__ import annotations

import logging
import threading
from typing import Any, Iterator, Optional

from livecaption.contracts import AudioFrame
from livecaption.errors import CaptureError, CaptureErrorKind

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
CHANNELS = 1

_DENIED_MARKERS = ("permission", "denied", "not authorized", "unauthorized")


def _import_sounddevice():
    try:
        import sounddevice as sd
    except ImportError as e:
        raise CaptureError(
            CaptureErrorKind.DEVICE_BUSY,
            "sounddevice is not installed. Install with: python -m pip install sounddevice",
        ) from e
    return sd


def _classify_open_failure(exc: BaseException) -> CaptureErrorKind:
    text = str(exc).lower()
    if any(marker in text for marker in _DENIED_MARKERS):
        return CaptureErrorKind.UNAUTHORIZED
    return CaptureErrorKind.DEVICE_BUSY


class FrameStream:
    """
    Lazy, infinite, non-restartable sequence of AudioFrame.
    Ends with CaptureError(CLOSED) once the owning source is stopped.
    """

    def __init__(self, source: "SoundDeviceFrameSource", stream: Any) -> None:
        self._source = source
        self._stream = stream
        self._frames_seen = 0

    def __iter__(self) -> Iterator[AudioFrame]:
        return self

    def __next__(self) -> AudioFrame:
        src = self._source
        if src.closed:
            raise CaptureError(CaptureErrorKind.CLOSED)
        try:
            data, overflowed = self._stream.read(src.frames_per_block)
        except Exception as e:
            if src.closed:
                raise CaptureError(CaptureErrorKind.CLOSED) from e
            raise CaptureError(CaptureErrorKind.DEVICE_BUSY, str(e)) from e
        if src.closed:
            raise CaptureError(CaptureErrorKind.CLOSED)
        if overflowed:
            # PortAudio dropped samples; keep the timeline based on what we asked for.
            logger.debug("capture_overflow", extra={"frames_seen": self._frames_seen})

        start_time = self._frames_seen / src.sample_rate
        self._frames_seen += src.frames_per_block
        return AudioFrame(
            pcm16=bytes(data),
            sample_rate=src.sample_rate,
            channels=src.channels,
            start_time=start_time,
            duration=src.frames_per_block / src.sample_rate,
        )


class SoundDeviceFrameSource:
    """
    Live capture source using the `sounddevice` package (PortAudio).
    Format is fixed for the lifetime of the source: 16 kHz, mono, int16.
    """

    def __init__(
        self,
        *,
        frame_seconds: float = 0.1,
        device: Optional[int] = None,
        requires_token: bool = False,
    ) -> None:
        if frame_seconds <= 0:
            raise ValueError("frame_seconds must be > 0")

        self.frame_seconds = float(frame_seconds)
        self.sample_rate = SAMPLE_RATE
        self.channels = CHANNELS
        self.device = device
        self.requires_token = requires_token
        self.frames_per_block = max(1, int(round(self.frame_seconds * self.sample_rate)))

        self._lock = threading.Lock()
        self._stream: Any = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @staticmethod
    def list_devices() -> str:
        sd = _import_sounddevice()
        return str(sd.query_devices())

    def start(self, token: Any = None) -> FrameStream:
        if self.requires_token and token is None:
            raise CaptureError(CaptureErrorKind.UNAUTHORIZED, "capture permission was not granted")

        sd = _import_sounddevice()
        with self._lock:
            if self._closed:
                raise CaptureError(CaptureErrorKind.CLOSED)
            if self._stream is not None:
                raise CaptureError(CaptureErrorKind.DEVICE_BUSY, "source is already capturing")
            try:
                stream = sd.RawInputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    device=self.device,
                    blocksize=0,  # let PortAudio choose
                )
                stream.start()
            except Exception as e:
                raise CaptureError(
                    _classify_open_failure(e),
                    "Failed to open capture stream. "
                    "Try --list-devices and select a device id with --device.",
                ) from e
            self._stream = stream

        logger.info(
            "capture_started",
            extra={"device": self.device, "sr": self.sample_rate, "block": self.frames_per_block},
        )
        return FrameStream(self, stream)

    def stop(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.abort()
        except Exception:
            logger.warning("capture_abort_failed", exc_info=True)
        finally:
            stream.close()
        logger.info("capture_stopped", extra={"device": self.device})
