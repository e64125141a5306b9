from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, Type

from ..core.errors import ConfigurationError

logger = logging.getLogger("abacx.store")


class ReloadableSource(Protocol):
    def etag(self) -> Optional[str]: ...

    def load(self) -> Dict[str, Any]: ...

    def apply(self, doc: Dict[str, Any], etag: Optional[str] = None) -> None: ...


# (exception type, log level, message); first match wins
_FAILURES: Tuple[Tuple[Type[Exception], int, str], ...] = (
    (json.JSONDecodeError, logging.ERROR, "abacx: policy document %s is not valid JSON"),
    (FileNotFoundError, logging.WARNING, "abacx: policy not found: %s"),
    (ConfigurationError, logging.ERROR, "abacx: malformed policy document %s"),
    (Exception, logging.ERROR, "abacx: reloading %s failed"),
)


@dataclass
class _Status:
    etag: Optional[str] = None
    reloaded_at: Optional[float] = None
    error: Optional[Exception] = None
    quiet_until: float = 0.0
    delay: float = 0.0


class HotReloader:
    """Keeps a file-backed store in sync with its document.

    Each check compares the source ETag with the last applied one and only
    loads and applies the document when it changed. A failed load or apply
    leaves the store as it was and silences further checks for an
    exponentially growing, jittered delay bounded by
    ``backoff_min``/``backoff_max``. ``force=True`` bypasses both the ETag
    comparison and the delay.

    :meth:`start` polls from a daemon thread; :meth:`stop` wakes it up.
    """

    def __init__(
        self,
        source: ReloadableSource,
        *,
        poll_interval: float = 5.0,
        backoff_min: float = 2.0,
        backoff_max: float = 30.0,
        jitter_ratio: float = 0.15,
        thread_daemon: bool = True,
    ) -> None:
        self.source = source
        self.poll_interval = float(poll_interval)
        self.backoff_min = float(backoff_min)
        self.backoff_max = float(backoff_max)
        self.jitter_ratio = float(jitter_ratio)
        self.thread_daemon = bool(thread_daemon)
        self._status = _Status(delay=self.backoff_min)
        self._lock = threading.RLock()
        self._wakeup = threading.Event()
        self._worker: Optional[threading.Thread] = None

    def check_and_reload(self, *, force: bool = False) -> bool:
        """Run one check; True when a new document was applied."""
        now = time.time()
        with self._lock:
            st = self._status
            if not force and now < st.quiet_until:
                return False
            try:
                etag = self.source.etag()
                if etag is not None and etag == st.etag and not force:
                    return False
                self.source.apply(self.source.load(), etag)
            except Exception as e:
                self._failed(now, e)
                return False
            self._status = _Status(etag=etag, reloaded_at=now, delay=self.backoff_min)
            logger.info("abacx: policy reloaded from %s", self._name())
            return True

    def start(self, interval: Optional[float] = None) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            every = self.poll_interval if interval is None else float(interval)
            self._wakeup.clear()
            self._worker = threading.Thread(
                target=self._poll, args=(every,), name="abacx-reloader", daemon=self.thread_daemon
            )
            self._worker.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        with self._lock:
            worker = self._worker
            if worker is None:
                return
            self._wakeup.set()
        worker.join(timeout=timeout)
        with self._lock:
            if self._worker is worker and not worker.is_alive():
                self._worker = None

    @property
    def last_etag(self) -> Optional[str]:
        with self._lock:
            return self._status.etag

    @property
    def last_reload_at(self) -> Optional[float]:
        with self._lock:
            return self._status.reloaded_at

    @property
    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._status.error

    @property
    def suppressed_until(self) -> float:
        with self._lock:
            return self._status.quiet_until

    def _name(self) -> str:
        path = getattr(self.source, "path", None)
        return path if isinstance(path, str) else type(self.source).__name__

    def _jitter(self, base: float) -> float:
        return base * self.jitter_ratio * random.uniform(-1.0, 1.0)

    def _failed(self, now: float, err: Exception) -> None:
        level, msg = next((lvl, m) for kind, lvl, m in _FAILURES if isinstance(err, kind))
        logger.log(level, msg, self._name(), exc_info=err if level >= logging.ERROR else None)
        st = self._status
        st.error = err
        st.delay = min(self.backoff_max, max(self.backoff_min, st.delay * 2.0))
        st.quiet_until = now + max(0.2, st.delay + self._jitter(st.delay))

    def _poll(self, every: float) -> None:
        while not self._wakeup.is_set():
            self.check_and_reload()
            wait = every
            with self._lock:
                remaining = self._status.quiet_until - time.time()
            if remaining > 0:
                wait = min(wait, max(0.2, remaining))
            self._wakeup.wait(timeout=max(0.01, wait + self._jitter(every)))


__all__ = ["HotReloader", "ReloadableSource"]
