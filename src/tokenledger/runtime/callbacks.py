from __future__ import annotations

import json
import logging
import queue
import threading
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from tokenledger.api.structured_logging import log_event
from tokenledger.runtime.metrics import inc_counter, set_gauge

Json = Dict[str, Any]
CallbackHandler = Callable[[List[Json]], Any]

DEFAULT_HTTP_TIMEOUT_S = 5.0
DEFAULT_QUEUE_SIZE = 1_000


def _url_host(target: str) -> str:
    parts = urllib.parse.urlsplit(target)
    if parts.scheme not in {"http", "https"}:
        return ""
    return (parts.hostname or "").lower()


class CallbackRouter:
    """Delivers BALANCE_OF results to their callback target.

    Delivery happens after the operation committed. A failing target never
    affects the ledger: the failure is logged and counted, nothing is raised.

    Target resolution:
      - a handler registered under the exact target string, called inline
      - an http(s):// URL whose host is in `allow_hosts`, queued and POSTed
        {"ok": true, "responses": [...]} by a background worker
      - anything else is refused (see accepts())
    """

    def __init__(
        self,
        *,
        allow_hosts: Iterable[str] = (),
        http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._handlers: Dict[str, CallbackHandler] = {}
        self._allow_hosts = frozenset(str(h).strip().lower() for h in allow_hosts if str(h).strip())
        self._lock = threading.Lock()
        self._timeout = float(http_timeout_s)
        self._log = logging.getLogger("tokenledger.callbacks")

        self._outbox: "queue.Queue[Optional[Tuple[str, List[Json]]]]" = queue.Queue(maxsize=max(1, int(queue_size)))
        self._t: Optional[threading.Thread] = None

    @property
    def allow_hosts(self) -> frozenset:
        return self._allow_hosts

    def register(self, target: str, handler: CallbackHandler) -> None:
        t = str(target or "")
        if not t.strip():
            raise ValueError("callback target must be non-empty")
        if not callable(handler):
            raise TypeError("callback handler must be callable")
        with self._lock:
            self._handlers[t] = handler

    def unregister(self, target: str) -> None:
        with self._lock:
            self._handlers.pop(str(target or ""), None)

    def _handler_for(self, target: str) -> Optional[CallbackHandler]:
        with self._lock:
            return self._handlers.get(target)

    def accepts(self, target: Any) -> bool:
        """True if target is registered or is an http(s) URL on an allowed host."""
        if not isinstance(target, str) or not target:
            return False
        if self._handler_for(target) is not None:
            return True
        host = _url_host(target)
        return bool(host) and host in self._allow_hosts

    # ----------------------------
    # HTTP worker
    # ----------------------------

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._t is not None and self._t.is_alive():
                return
            self._t = threading.Thread(target=self._run, name="tokenledger-callbacks", daemon=True)
            self._t.start()

    def _run(self) -> None:
        while True:
            item = self._outbox.get()
            try:
                if item is None:
                    return
                url, responses = item
                self._post(url, responses)
            finally:
                self._outbox.task_done()
                set_gauge("callbacks_queued", self._outbox.qsize())

    def _post(self, url: str, responses: List[Json]) -> None:
        data = json.dumps({"ok": True, "responses": responses}, sort_keys=True, separators=(",", ":")).encode("utf-8")
        req = urllib.request.Request(url, data=data, headers={"Content-Type": "application/json"}, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = int(getattr(resp, "status", 200) or 200)
            if status >= 300:
                raise urllib.error.HTTPError(url, status, "callback target rejected delivery", None, None)
        except (OSError, ValueError) as e:
            # urllib errors (URLError, HTTPError, timeouts) are all OSError subclasses.
            self._failed("callback_failed", url, responses, error=f"{type(e).__name__}: {e}")
            return
        self._delivered(url, responses)

    def drain(self, timeout_s: Optional[float] = None) -> bool:
        """Wait until every queued HTTP delivery finished. Returns False on timeout."""
        done = threading.Event()

        def _wait() -> None:
            self._outbox.join()
            done.set()

        threading.Thread(target=_wait, name="tokenledger-callbacks-drain", daemon=True).start()
        return done.wait(timeout_s)

    def stop(self, timeout_s: float = 2.0) -> None:
        t = self._t
        if t is None or not t.is_alive():
            return
        try:
            self._outbox.put(None, timeout=timeout_s)
        except queue.Full:
            # Daemon thread; it dies with the process.
            log_event(self._log, "callback_worker_stop_timeout", queued=self._outbox.qsize())
            return
        t.join(timeout=timeout_s)

    # ----------------------------
    # Delivery
    # ----------------------------

    def _delivered(self, target: str, responses: List[Json]) -> None:
        inc_counter("callbacks_delivered")
        log_event(self._log, "callback_delivered", target=target, responses=len(responses))

    def _failed(self, event: str, target: str, responses: List[Json], **fields: Any) -> None:
        inc_counter("callbacks_failed")
        log_event(self._log, event, target=target, responses=len(responses), **fields)

    def deliver(self, effect: Json) -> bool:
        """Deliver one callback effect {"target": str, "payload": [...]}.

        Returns True when a handler ran cleanly or an HTTP delivery was queued.
        """
        target = str((effect or {}).get("target") or "")
        responses = list((effect or {}).get("payload") or [])

        handler = self._handler_for(target)
        if handler is not None:
            try:
                handler(responses)
            except Exception as e:
                # The operation is already committed; a broken handler must not surface as a ledger failure.
                self._failed("callback_failed", target, responses, error=f"{type(e).__name__}: {e}")
                return False
            self._delivered(target, responses)
            return True

        if not self.accepts(target):
            self._failed("callback_undeliverable", target, responses)
            return False

        try:
            self._outbox.put_nowait((target, responses))
        except queue.Full:
            self._failed("callback_queue_full", target, responses)
            return False
        set_gauge("callbacks_queued", self._outbox.qsize())
        self._ensure_worker()
        return True


__all__ = ["CallbackRouter", "CallbackHandler"]
