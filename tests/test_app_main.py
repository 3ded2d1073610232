from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fakes import FakeListener
from livecaption.app import config as app_config
from livecaption.app import main as app_main
from livecaption.app.services import PipelineServices
from livecaption.errors import EngineUnavailable
from livecaption.nlp.translator.cache import TranslationModelCache
from livecaption.nlp.translator.stub import StubBackend


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    yield
    logger = logging.getLogger("livecaption")
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()


def test_list_devices_prints_and_exits(monkeypatch, capsys) -> None:
    monkeypatch.setattr(app_main.SoundDeviceFrameSource, "list_devices", staticmethod(lambda: "0 Fake Mic, ALSA"))
    assert app_main.main(["--list-devices"]) == 0
    assert "Fake Mic" in capsys.readouterr().out


def test_startup_failure_prints_summary_and_hint(monkeypatch, capsys, tmp_path: Path) -> None:
    def _services(args) -> PipelineServices:
        return PipelineServices(
            engine_factory=lambda cfg: FakeListener(
                prepare_error=EngineUnavailable("vosk model for 'en' could not be loaded")
            ),
            cache_factory=lambda cfg: TranslationModelCache(StubBackend()),
            source_factory=None,
        )

    monkeypatch.setattr(app_main, "build_pipeline_services", _services)
    assert app_main.main(["--translator", "stub"]) == 1

    err = capsys.readouterr().err
    assert "vosk model for 'en' could not be loaded" in err
    assert "--vosk-model" in err
    log_text = (tmp_path / "logs" / "livecaption.log").read_text(encoding="utf-8")
    assert "pipeline_start_failed" in log_text
