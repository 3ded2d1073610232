from __future__ import annotations

from livecaption.contracts import LanguagePair

SUPPORTED_LANGUAGES: tuple[str, ...] = ("ko", "en", "ja", "zh", "es", "fr", "de")

# Names shown in language pickers, accepted as aliases.
DISPLAY_NAMES: dict[str, str] = {
    "한국어": "ko",
    "English": "en",
    "日本語": "ja",
    "中文": "zh",
    "Español": "es",
    "Français": "fr",
    "Deutsch": "de",
}


def normalize_language(value: str) -> str | None:
    text = str(value or "").strip()
    if text in DISPLAY_NAMES:
        return DISPLAY_NAMES[text]
    code = text.lower().replace("_", "-").split("-")[0]
    if code in SUPPORTED_LANGUAGES:
        return code
    return None


def is_supported(pair: LanguagePair) -> bool:
    return pair.source in SUPPORTED_LANGUAGES and pair.target in SUPPORTED_LANGUAGES


def make_pair(source: str, target: str) -> LanguagePair:
    """Build a pair from codes or display names; unknown values pass through unchanged."""
    src = normalize_language(source) or str(source)
    dst = normalize_language(target) or str(target)
    return LanguagePair(src, dst)
