from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from typing import Optional

from livecaption.contracts import LanguagePair, ModelAvailability, NetworkPolicy
from livecaption.errors import ModelError, ModelErrorKind
from livecaption.languages import is_supported
from .base import TranslationBackend, TranslatorHandle
from .network import NetworkMonitor, StaticNetworkMonitor, download_allowed

logger = logging.getLogger(__name__)


class TranslationModelCache:
    """
    Holds at most one live translator, keyed by language pair.

    ensure() returns the cached handle when the pair is unchanged. A new pair
    closes the previous handle before the next one is acquired. Acquisition
    may download models, gated by the network policy; concurrent callers for
    the same pair share the in-flight attempt.
    """

    def __init__(
        self,
        backend: TranslationBackend,
        *,
        network_policy: NetworkPolicy = NetworkPolicy.UNMETERED_ONLY,
        network_monitor: Optional[NetworkMonitor] = None,
    ) -> None:
        self.backend = backend
        self.network_policy = network_policy
        self.network_monitor = network_monitor or StaticNetworkMonitor(metered=False)

        self._lock = threading.Lock()
        self._pair: Optional[LanguagePair] = None
        self._handle: Optional[TranslatorHandle] = None
        self._availability: dict[LanguagePair, ModelAvailability] = {}
        self._failures: dict[LanguagePair, str] = {}
        self._inflight: Optional[tuple[LanguagePair, Future]] = None
        self._closed = False
        self.download_attempts = 0

    @property
    def active_pair(self) -> Optional[LanguagePair]:
        return self._pair

    @property
    def closed(self) -> bool:
        return self._closed

    def availability(self, pair: LanguagePair) -> ModelAvailability:
        with self._lock:
            return self._availability.get(pair, ModelAvailability.NOT_PRESENT)

    def failure_reason(self, pair: LanguagePair) -> Optional[str]:
        with self._lock:
            return self._failures.get(pair)

    def ensure(self, pair: LanguagePair) -> TranslatorHandle:
        if not is_supported(pair) or not self.backend.supports(pair):
            raise ModelError(ModelErrorKind.UNSUPPORTED_LANGUAGE, str(pair))

        while True:
            with self._lock:
                if self._closed:
                    raise ModelError(ModelErrorKind.DOWNLOAD_FAILED, "translation cache is closed")
                if (
                    self._pair == pair
                    and self._handle is not None
                    and self._availability.get(pair) == ModelAvailability.READY
                ):
                    return self._handle
                inflight = self._inflight
                if inflight is None:
                    future: Future = Future()
                    self._inflight = (pair, future)
                    previous, self._handle, self._pair = self._handle, None, None
                    break

            inflight_pair, inflight_future = inflight
            try:
                handle = inflight_future.result()
            except ModelError:
                if inflight_pair == pair:
                    raise
                continue
            if inflight_pair == pair:
                return handle

        try:
            if previous is not None:
                self._release(previous)
            handle = self._acquire(pair)
        except Exception as e:
            err = e if isinstance(e, ModelError) else ModelError(ModelErrorKind.DOWNLOAD_FAILED, str(e))
            with self._lock:
                self._availability[pair] = ModelAvailability.FAILED
                self._failures[pair] = err.reason or err.kind.value
                self._inflight = None
            future.set_exception(err)
            if err is e:
                raise
            raise err from e

        with self._lock:
            self._inflight = None
            if self._closed:
                err = ModelError(ModelErrorKind.DOWNLOAD_FAILED, "translation cache is closed")
                self._release(handle)
                future.set_exception(err)
                raise err
            self._pair = pair
            self._handle = handle
            self._availability[pair] = ModelAvailability.READY
            self._failures.pop(pair, None)
        future.set_result(handle)
        logger.info("translator_ready", extra={"pair": str(pair), "backend": self.backend.name})
        return handle

    def _acquire(self, pair: LanguagePair) -> TranslatorHandle:
        if not self.backend.is_installed(pair):
            if not download_allowed(self.network_policy, self.network_monitor):
                logger.warning(
                    "model_download_denied",
                    extra={"pair": str(pair), "policy": self.network_policy.value},
                )
                raise ModelError(
                    ModelErrorKind.DOWNLOAD_DENIED,
                    f"network policy {self.network_policy.value} does not allow downloads on a metered network",
                )
            with self._lock:
                self._availability[pair] = ModelAvailability.DOWNLOADING
                self.download_attempts += 1
            t0 = time.perf_counter()
            logger.info("model_download_start", extra={"pair": str(pair), "backend": self.backend.name})
            try:
                self.backend.download(pair)
            except ModelError:
                raise
            except Exception as e:
                raise ModelError(ModelErrorKind.DOWNLOAD_FAILED, str(e)) from e
            logger.info(
                "model_download_done",
                extra={"pair": str(pair), "ms": round((time.perf_counter() - t0) * 1000.0, 2)},
            )
        try:
            return self.backend.open(pair)
        except ModelError:
            raise
        except Exception as e:
            raise ModelError(ModelErrorKind.DOWNLOAD_FAILED, f"translator could not be opened: {e}") from e

    def _release(self, handle: TranslatorHandle) -> None:
        try:
            handle.close()
        except Exception:
            logger.exception("translator_release_failed", extra={"pair": str(handle.pair)})
            return
        logger.info("translator_released", extra={"pair": str(handle.pair)})

    def close(self) -> None:
        with self._lock:
            self._closed = True
            handle, self._handle, self._pair = self._handle, None, None
        if handle is not None:
            self._release(handle)
