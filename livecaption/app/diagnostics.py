from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    picked = None
    for ln in reversed(lines):
        if ln.startswith(("File ", "^", "Traceback ")):
            continue
        picked = ln
        break
    if picked is None:
        picked = lines[-1] if lines else "Unknown runtime error."
    if len(picked) > max_len:
        return picked[: max_len - 3].rstrip() + "..."
    return picked


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "unauthorized" in s or "permission" in s:
        return "Microphone access was refused. Grant the app microphone permission and retry."
    if "device_busy" in s or "portaudio" in s or "sounddevice" in s:
        return "Microphone could not be opened. Check --device (see --list-devices) or close other recording apps."
    if "faster-whisper" in s or "faster_whisper" in s or "ctranslate2" in s:
        return "Speech model failed to load. Check the --model name and that faster-whisper is installed."
    if "vosk" in s:
        return "Vosk model not found. Pass --vosk-model pointing at an unpacked model directory."
    if "download_denied" in s:
        return "Translation model download is blocked on a metered network. Use --network-policy any or switch networks."
    if "argos" in s or "unsupported_language" in s:
        return "No translation package for this language pair. Choose another --src/--dst."
    if "no module named" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    return "Check logs for full traceback."
