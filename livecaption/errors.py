from __future__ import annotations

from enum import Enum
from typing import Optional


class LiveCaptionError(RuntimeError):
    pass


class CaptureErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    DEVICE_BUSY = "device_busy"
    CLOSED = "closed"


class CaptureError(LiveCaptionError):
    def __init__(self, kind: CaptureErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"capture {kind.value}" + (f": {detail}" if detail else ""))


class EngineErrorKind(str, Enum):
    AUDIO = "audio"
    NETWORK = "network"
    NETWORK_TIMEOUT = "network_timeout"
    NO_MATCH = "no_match"
    BUSY = "busy"
    SERVER = "server"
    TIMEOUT = "timeout"
    CLIENT_FAULT = "client_fault"
    UNKNOWN = "unknown"


# Platform recognizer codes (Android SpeechRecognizer numbering).
_CODE_KINDS: dict[int, EngineErrorKind] = {
    1: EngineErrorKind.NETWORK_TIMEOUT,
    2: EngineErrorKind.NETWORK,
    3: EngineErrorKind.AUDIO,
    4: EngineErrorKind.SERVER,
    5: EngineErrorKind.CLIENT_FAULT,
    6: EngineErrorKind.TIMEOUT,
    7: EngineErrorKind.NO_MATCH,
    8: EngineErrorKind.BUSY,
    9: EngineErrorKind.CLIENT_FAULT,  # insufficient permissions
}

_KIND_TEXT: dict[EngineErrorKind, str] = {
    EngineErrorKind.AUDIO: "Audio recording error",
    EngineErrorKind.NETWORK: "Network error",
    EngineErrorKind.NETWORK_TIMEOUT: "Network timeout",
    EngineErrorKind.NO_MATCH: "No recognition result matched",
    EngineErrorKind.BUSY: "Recognizer busy",
    EngineErrorKind.SERVER: "Server error",
    EngineErrorKind.TIMEOUT: "No speech input",
    EngineErrorKind.CLIENT_FAULT: "Client side error",
}


class EngineError(LiveCaptionError):
    """Normalized recognition engine failure. Never fatal to a session."""

    def __init__(
        self,
        kind: EngineErrorKind,
        detail: str = "",
        *,
        code: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.code = code
        self.detail = detail or describe_engine_error(kind, code)
        super().__init__(self.detail)

    @classmethod
    def from_code(cls, code: int, detail: str = "") -> "EngineError":
        kind = _CODE_KINDS.get(int(code), EngineErrorKind.UNKNOWN)
        return cls(kind, detail, code=int(code))


def describe_engine_error(kind: EngineErrorKind, code: Optional[int] = None) -> str:
    if kind == EngineErrorKind.UNKNOWN:
        return f"Unknown error ({code})" if code is not None else "Unknown error"
    return _KIND_TEXT[kind]


class EngineUnavailable(LiveCaptionError):
    pass


class ModelErrorKind(str, Enum):
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    DOWNLOAD_DENIED = "download_denied"
    DOWNLOAD_FAILED = "download_failed"


class ModelError(LiveCaptionError):
    def __init__(self, kind: ModelErrorKind, reason: str = "") -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind.value}" + (f": {reason}" if reason else ""))


class TranslationErrorKind(str, Enum):
    MODEL_UNAVAILABLE = "model_unavailable"
    ENGINE_CALL_FAILED = "engine_call_failed"


class TranslationError(LiveCaptionError):
    def __init__(self, kind: TranslationErrorKind, cause: Optional[BaseException] = None) -> None:
        self.kind = kind
        self.cause = cause
        super().__init__(f"{kind.value}" + (f": {cause}" if cause is not None else ""))

    @property
    def model_error(self) -> Optional[ModelError]:
        return self.cause if isinstance(self.cause, ModelError) else None

    @property
    def retryable(self) -> bool:
        err = self.model_error
        if err is not None:
            return err.kind != ModelErrorKind.UNSUPPORTED_LANGUAGE
        return True


class AlreadyRunning(LiveCaptionError):
    pass
