from __future__ import annotations

import threading

import pytest

from livecaption.contracts import LanguagePair, ModelAvailability, NetworkPolicy
from livecaption.errors import ModelError, ModelErrorKind
from livecaption.nlp.translator.cache import TranslationModelCache
from livecaption.nlp.translator.network import StaticNetworkMonitor
from livecaption.nlp.translator.stub import StubBackend, StubHandle

EN_KO = LanguagePair("en", "ko")
EN_JA = LanguagePair("en", "ja")


class _SlowBackend(StubBackend):
    """Download blocks until the test releases it."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.opened: list[StubHandle] = []
        self.events: list[str] = []

    def download(self, pair: LanguagePair) -> None:
        self.entered.set()
        assert self.release.wait(timeout=3.0)
        super().download(pair)

    def open(self, pair: LanguagePair) -> StubHandle:
        handle = _TracingHandle(pair, self.events)
        self.events.append(f"open {pair}")
        self.opened.append(handle)
        return handle


class _TracingHandle(StubHandle):
    def __init__(self, pair: LanguagePair, events: list[str]) -> None:
        super().__init__(pair)
        self._events = events

    def close(self) -> None:
        self._events.append(f"close {self.pair}")
        super().close()


class _BrokenBackend(StubBackend):
    def download(self, pair: LanguagePair) -> None:
        raise ConnectionError("mirror unreachable")


def test_ensure_downloads_once_then_reuses_handle() -> None:
    backend = StubBackend()
    cache = TranslationModelCache(backend)

    first = cache.ensure(EN_KO)
    second = cache.ensure(EN_KO)

    assert first is second
    assert backend.downloads == [EN_KO]
    assert cache.download_attempts == 1
    assert cache.availability(EN_KO) == ModelAvailability.READY
    assert cache.active_pair == EN_KO
    assert first.translate("hi") == "[ko] hi"


def test_installed_pair_needs_no_download_even_when_metered() -> None:
    backend = StubBackend(installed=[EN_KO])
    cache = TranslationModelCache(backend, network_monitor=StaticNetworkMonitor(metered=True))
    cache.ensure(EN_KO)
    assert backend.downloads == []
    assert cache.download_attempts == 0


def test_concurrent_ensure_shares_one_download() -> None:
    backend = _SlowBackend()
    cache = TranslationModelCache(backend)
    results: list[object] = []

    def _call() -> None:
        results.append(cache.ensure(EN_KO))

    threads = [threading.Thread(target=_call) for _ in range(4)]
    for t in threads:
        t.start()
    assert backend.entered.wait(timeout=3.0)
    assert cache.availability(EN_KO) == ModelAvailability.DOWNLOADING
    backend.release.set()
    for t in threads:
        t.join(timeout=3.0)

    assert len(results) == 4
    assert all(r is results[0] for r in results)
    assert backend.downloads == [EN_KO]
    assert len(backend.opened) == 1


def test_switching_pairs_closes_previous_handle_first() -> None:
    backend = _SlowBackend()
    backend.release.set()
    cache = TranslationModelCache(backend)

    ko = cache.ensure(EN_KO)
    ja = cache.ensure(EN_JA)

    assert ko.closed
    assert not ja.closed
    assert backend.events == [f"open {EN_KO}", f"close {EN_KO}", f"open {EN_JA}"]
    assert cache.active_pair == EN_JA


def test_metered_network_denies_download() -> None:
    backend = StubBackend()
    cache = TranslationModelCache(
        backend,
        network_policy=NetworkPolicy.UNMETERED_ONLY,
        network_monitor=StaticNetworkMonitor(metered=True),
    )
    with pytest.raises(ModelError) as exc:
        cache.ensure(EN_KO)
    assert exc.value.kind == ModelErrorKind.DOWNLOAD_DENIED
    assert backend.downloads == []
    assert cache.availability(EN_KO) == ModelAvailability.FAILED
    assert cache.failure_reason(EN_KO)


def test_any_network_policy_downloads_on_metered_network() -> None:
    backend = StubBackend()
    cache = TranslationModelCache(
        backend,
        network_policy=NetworkPolicy.ANY,
        network_monitor=StaticNetworkMonitor(metered=True),
    )
    cache.ensure(EN_KO)
    assert backend.downloads == [EN_KO]


def test_unsupported_language_is_rejected_before_any_download() -> None:
    backend = StubBackend()
    cache = TranslationModelCache(backend)
    with pytest.raises(ModelError) as exc:
        cache.ensure(LanguagePair("en", "xx"))
    assert exc.value.kind == ModelErrorKind.UNSUPPORTED_LANGUAGE
    assert backend.downloads == []


def test_download_failure_is_reported_and_retried_next_time() -> None:
    backend = _BrokenBackend()
    cache = TranslationModelCache(backend)

    with pytest.raises(ModelError) as exc:
        cache.ensure(EN_KO)
    assert exc.value.kind == ModelErrorKind.DOWNLOAD_FAILED
    assert "mirror unreachable" in exc.value.reason

    with pytest.raises(ModelError):
        cache.ensure(EN_KO)
    assert cache.download_attempts == 2


def test_close_releases_handle_and_refuses_new_work() -> None:
    cache = TranslationModelCache(StubBackend())
    handle = cache.ensure(EN_KO)

    cache.close()
    assert handle.closed
    assert cache.closed
    assert cache.active_pair is None
    with pytest.raises(ModelError) as exc:
        cache.ensure(EN_KO)
    assert exc.value.kind == ModelErrorKind.DOWNLOAD_FAILED


class _StickyHandle(StubHandle):
    def close(self) -> None:
        super().close()
        raise RuntimeError("close failed")


class _StickyBackend(StubBackend):
    def open(self, pair: LanguagePair) -> StubHandle:
        return _StickyHandle(pair)


def test_failed_release_does_not_block_later_ensure() -> None:
    cache = TranslationModelCache(_StickyBackend())
    cache.ensure(EN_KO)

    ja = cache.ensure(EN_JA)
    assert cache.active_pair == EN_JA

    results: list[object] = []
    t = threading.Thread(target=lambda: results.append(cache.ensure(EN_JA)))
    t.start()
    t.join(timeout=3.0)
    assert not t.is_alive()
    assert results == [ja]

    back = threading.Thread(target=lambda: results.append(cache.ensure(EN_KO)))
    back.start()
    back.join(timeout=3.0)
    assert not back.is_alive()
    assert cache.active_pair == EN_KO

    cache.close()
    assert cache.closed
