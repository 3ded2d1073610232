from __future__ import annotations
import os
from .base import TranslationBackend
from .argos import ArgosBackend
from .stub import StubBackend


def get_translation_backend(provider: str | None = None) -> TranslationBackend:
    provider = (provider or os.getenv("LIVECAPTION_TRANSLATOR", "argos")).lower().strip()

    if provider == "argos":
        return ArgosBackend()
    if provider == "stub":
        return StubBackend()

    raise ValueError(f"Unknown translator provider: {provider}")
