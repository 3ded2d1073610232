from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional, Protocol

from livecaption.contracts import AudioFrame, Utterance
from livecaption.errors import EngineError


class ListenCallbacks(Protocol):
    """Receiver for one listen cycle. Exactly one of on_result/on_error ends the cycle."""

    def on_partial(self, text: str) -> None: ...

    def on_result(self, text: str) -> None: ...

    def on_error(self, error: EngineError) -> None: ...


class RecognitionEngine(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    def prepare(self) -> None:
        """Load models / check the platform. Raise EngineUnavailable when that is impossible."""

    @abstractmethod
    def close(self) -> None:
        """Release engine resources. Must be idempotent."""


class StreamingListenerEngine(RecognitionEngine):
    """Engine that runs its own listen cycle fed from the live input device."""

    @abstractmethod
    def start_listening(self, callbacks: ListenCallbacks) -> None:
        """Begin one cycle and return immediately; report the outcome through callbacks."""

    @abstractmethod
    def cancel(self) -> None:
        """Abort the current cycle, if any. No terminal event is required afterwards."""


class BlockingDecoderEngine(RecognitionEngine):
    """Engine fed explicit frames; reports utterance boundaries from accept_frame."""

    @abstractmethod
    def accept_frame(self, frame: AudioFrame) -> bool:
        """Consume one frame. True means an endpoint was reached and current_result() is ready."""

    @abstractmethod
    def current_result(self) -> Utterance:
        """Return the finalized utterance and reset decoder state for the next one."""

    def partial_result(self) -> Optional[str]:
        return None

    def reset(self) -> None:
        """Drop any buffered audio. Called before decoding resumes after an error."""
