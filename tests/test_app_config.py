from __future__ import annotations

import json
from pathlib import Path

import pytest

from livecaption.app import config as app_config
from livecaption.contracts import LanguagePair, NetworkPolicy


@pytest.fixture(autouse=True)
def _isolated_config_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path / "cfg"))


def test_load_default_config_contains_expected_keys() -> None:
    cfg = app_config.load_default_config()
    assert cfg["translator"] in {"stub", "argos"}
    assert cfg["source_language"] == "en"
    assert cfg["target_language"] == "ko"
    assert cfg["network_policy"] == "unmetered-only"
    assert cfg["restart_delay_sec"] == 0.3
    assert cfg["font_size"] == 18


def test_resolve_defaults_uses_explicit_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "explicit.json"
    cfg_path.write_text(json.dumps({"sr": 16000, "model": "small"}), encoding="utf-8")
    defaults, used = app_config.resolve_defaults(str(cfg_path))
    assert used == cfg_path
    assert defaults["model"] == "small"


def test_missing_explicit_config_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        app_config.resolve_defaults(str(tmp_path / "nope.json"))


def test_ensure_user_config_exists_creates_file(tmp_path: Path) -> None:
    created = app_config.ensure_user_config_exists({"translator": "stub", "sr": 16000})
    assert created == tmp_path / "cfg" / "config.json"
    loaded = json.loads(created.read_text(encoding="utf-8"))
    assert loaded["translator"] == "stub"


def test_load_user_config_ignores_unknown_keys_and_accepts_bom(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"target_language": "ja", "unexpected": 1}),
        encoding="utf-8-sig",
    )
    loaded, _ = app_config.load_user_config(str(cfg_path))
    assert loaded["target_language"] == "ja"
    assert "unexpected" not in loaded


def test_non_object_config_is_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "list.json"
    cfg_path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        app_config.load_user_config(str(cfg_path))


def test_save_user_config_merges_and_filters_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(json.dumps({"model": "base", "translator": "stub"}), encoding="utf-8")
    app_config.save_user_config({"translator": "argos", "poll_ms": 30, "junk": "x"}, config_path=str(cfg_path))
    loaded = json.loads(cfg_path.read_text(encoding="utf-8"))
    assert loaded["model"] == "base"
    assert loaded["translator"] == "argos"
    assert loaded["poll_ms"] == 30
    assert "junk" not in loaded


def test_resolve_args_cli_overrides_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"translator": "stub", "target_language": "ja"}), encoding="utf-8")
    args = app_config.resolve_args(["--config", str(cfg_path), "--dst", "de", "--engine", "vosk"])
    assert args.translator == "stub"
    assert args.target_language == "de"
    assert args.engine == "vosk"


def test_resolve_args_accepts_display_names_and_toggles(tmp_path: Path) -> None:
    args = app_config.resolve_args(["--src", "日本語", "--no-show-original", "--network-metered"])
    assert args.source_language == "ja"
    assert args.show_original is False
    assert args.network_metered is True


def test_resolve_args_rejects_unsupported_language() -> None:
    with pytest.raises(SystemExit):
        app_config.resolve_args(["--dst", "pt"])


def test_pipeline_config_from_args() -> None:
    args = app_config.resolve_args(["--src", "en", "--dst", "fr", "--network-policy", "any"])
    cfg = app_config.pipeline_config_from_args(args)
    assert cfg.pair == LanguagePair("en", "fr")
    assert cfg.network_policy == NetworkPolicy.ANY
    assert cfg.sample_rate == 16000
