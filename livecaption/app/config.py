from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from livecaption.contracts import NetworkPolicy, PipelineConfig
from livecaption.languages import SUPPORTED_LANGUAGES, normalize_language

DEFAULTS: dict[str, Any] = {
    "list_devices": False,
    "device": None,
    "sr": 16000,
    "frame_sec": 0.1,
    "engine": "whisper",
    "model": "tiny",
    "vosk_model": None,
    "vad": "energy",
    "rms_th": 250.0,
    "vad_aggressiveness": 2,
    "silence_frames": 5,
    "min_utter_sec": 0.6,
    "max_utter_sec": 6.0,
    "source_language": "en",
    "target_language": "ko",
    "network_policy": NetworkPolicy.UNMETERED_ONLY.value,
    "network_metered": False,
    "translator": "argos",
    "restart_delay_sec": 0.3,
    "live_preview": False,
    "sink": "console",
    "queue_maxsize": 100,
    "poll_ms": 60,
    "font_size": 18,
    "font_size_original": 14,
    "show_original": True,
    "overlay_position": "bottom",
    "overlay_opacity": 66,
    "print_console": True,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def default_asset_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "assets" / "config" / "default.json"


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("LiveCaption", "LiveCaption"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in CONFIG_KEYS:
        if key in payload:
            out[key] = payload[key]
    return out


def load_default_config() -> dict[str, Any]:
    path = default_asset_config_path()
    if not path.exists():
        return copy.deepcopy(DEFAULTS)
    loaded = _load_json_dict(path)
    out = copy.deepcopy(DEFAULTS)
    for key in DEFAULTS.keys():
        if key in loaded:
            out[key] = loaded[key]
    return out


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    loaded = _known_only(_load_json_dict(chosen))
    merged = dict(defaults)
    merged.update(loaded)
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    payload = _known_only(values)
    defaults = load_default_config()
    if config_path:
        path = Path(config_path)
        existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    else:
        path = ensure_user_config_exists(defaults)
        existing = _known_only(_load_json_dict(path))
    merged = dict(defaults)
    merged.update(existing)
    merged.update(payload)
    _write_json_dict(path, _known_only(merged))
    return path


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def _language_arg(value: str) -> str:
    code = normalize_language(value)
    if code is None:
        raise argparse.ArgumentTypeError(
            f"unsupported language '{value}' (choose from {', '.join(SUPPORTED_LANGUAGES)})"
        )
    return code


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="livecaption")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--sr", type=int, default=defaults["sr"], choices=[16000], help="sample rate (Hz), fixed")
    p.add_argument("--frame-sec", type=float, default=defaults["frame_sec"], help="capture frame size in seconds")
    p.add_argument(
        "--engine",
        default=defaults["engine"],
        choices=["whisper", "whisper-listener", "vosk"],
        help="speech recognition engine",
    )
    p.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    p.add_argument("--vosk-model", default=defaults["vosk_model"], help="path to an unpacked Vosk model")
    p.add_argument("--vad", default=defaults["vad"], choices=["energy", "webrtc"], help="endpointing VAD")
    p.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS threshold for energy VAD")
    p.add_argument(
        "--vad-aggressiveness",
        type=int,
        default=defaults["vad_aggressiveness"],
        choices=[0, 1, 2, 3],
        help="WebRTC VAD aggressiveness",
    )
    p.add_argument(
        "--silence-frames",
        type=int,
        default=defaults["silence_frames"],
        help="finalize after this many non-speech frames",
    )
    p.add_argument(
        "--min-utter-sec",
        type=float,
        default=defaults["min_utter_sec"],
        help="ignore utterances shorter than this",
    )
    p.add_argument(
        "--max-utter-sec",
        type=float,
        default=defaults["max_utter_sec"],
        help="force finalize while continuously speaking (seconds)",
    )
    p.add_argument("--source-language", "--src", type=_language_arg, default=defaults["source_language"])
    p.add_argument("--target-language", "--dst", type=_language_arg, default=defaults["target_language"])
    p.add_argument(
        "--network-policy",
        default=defaults["network_policy"],
        choices=[policy.value for policy in NetworkPolicy],
        help="when translation models may be downloaded",
    )
    p.add_argument(
        "--network-metered",
        action=argparse.BooleanOptionalAction,
        default=defaults["network_metered"],
        help="treat the current network as metered",
    )
    p.add_argument("--translator", default=defaults["translator"], choices=["argos", "stub"])
    p.add_argument(
        "--restart-delay-sec",
        type=float,
        default=defaults["restart_delay_sec"],
        help="delay before the recognizer listens again after a result or error",
    )
    p.add_argument(
        "--live-preview",
        action=argparse.BooleanOptionalAction,
        default=defaults["live_preview"],
        help="show partial recognition results before they are final",
    )
    p.add_argument("--sink", default=defaults["sink"], choices=["console", "overlay"])
    p.add_argument(
        "--queue-maxsize",
        type=int,
        default=defaults["queue_maxsize"],
        help="max queued subtitles (worker to UI) and pending capture frames",
    )
    p.add_argument("--poll-ms", type=int, default=defaults["poll_ms"], help="UI queue poll interval (ms)")
    p.add_argument("--font-size", type=int, default=defaults["font_size"], help="translated line font size")
    p.add_argument(
        "--font-size-original",
        type=int,
        default=defaults["font_size_original"],
        help="original line font size",
    )
    p.add_argument(
        "--show-original",
        action=argparse.BooleanOptionalAction,
        default=defaults["show_original"],
        help="show the recognized (untranslated) line",
    )
    p.add_argument(
        "--overlay-position",
        default=defaults["overlay_position"],
        choices=["top", "center", "bottom"],
        help="overlay position preset",
    )
    p.add_argument(
        "--overlay-opacity",
        type=int,
        default=defaults["overlay_opacity"],
        help="overlay background opacity (0-100)",
    )
    p.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="also print delivered lines when the overlay is used",
    )
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    return args


def pipeline_config_from_args(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig(
        source_language=str(args.source_language),
        target_language=str(args.target_language),
        network_policy=NetworkPolicy(str(args.network_policy)),
        sample_rate=int(args.sr),
    )
