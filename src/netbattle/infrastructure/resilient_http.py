"""Retrying GETs for published catalog sheets, with a per-host circuit breaker.

Sheets are fetched from a handful of hosts. When one of them keeps timing
out, the breaker for that host opens and later fetches fail fast with
``CircuitOpenError`` until the cool-down passes.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass

import httpx


logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class CircuitOpenError(RuntimeError):
    pass


@dataclass(frozen=True)
class CircuitPolicy:
    enabled: bool = True
    failure_threshold: int = 3
    reset_seconds: float = 120.0

    @classmethod
    def from_env(cls) -> "CircuitPolicy":
        enabled = (os.getenv("NETBATTLE_HTTP_CIRCUIT_BREAKER_ENABLED") or "1").strip().lower() in {"1", "true", "yes"}
        return cls(
            enabled=enabled,
            failure_threshold=max(1, int(os.getenv("NETBATTLE_HTTP_CIRCUIT_FAILURE_THRESHOLD", "3"))),
            reset_seconds=max(0.0, float(os.getenv("NETBATTLE_HTTP_CIRCUIT_RESET_SECONDS", "120"))),
        )


class _HostCircuit:
    def __init__(self) -> None:
        self.consecutive_failures = 0
        self.open_until = 0.0

    def check(self, host: str, now: float) -> None:
        if self.open_until > now:
            raise CircuitOpenError(f"Sheet host {host} is cooling down until {int(self.open_until)}")
        if self.open_until:
            # Cool-down over: give the host a fresh start.
            self.consecutive_failures = 0
            self.open_until = 0.0

    def fail(self, host: str, now: float, policy: CircuitPolicy) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= policy.failure_threshold and not self.open_until:
            self.open_until = now + policy.reset_seconds
            logger.warning("Sheet host circuit opened", extra={"host": host, "failures": self.consecutive_failures})


_circuits: dict[str, _HostCircuit] = {}
_circuits_lock = threading.Lock()


def reset_circuit_breakers() -> None:
    with _circuits_lock:
        _circuits.clear()


def _host_of(client: httpx.Client, url: str) -> str:
    target = httpx.URL(url)
    if not target.is_absolute_url:
        target = client.base_url.join(url)
    return target.host or "unknown"


def _circuit_for(host: str) -> _HostCircuit:
    with _circuits_lock:
        return _circuits.setdefault(host, _HostCircuit())


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def _fetch_once(client: httpx.Client, url: str, headers: dict[str, str] | None) -> str:
    response = client.get(url, headers=headers, follow_redirects=True)
    if response.status_code in TRANSIENT_STATUS_CODES:
        raise httpx.HTTPStatusError(
            f"Sheet host answered {response.status_code}",
            request=response.request,
            response=response,
        )
    response.raise_for_status()
    return response.text


def get_text_with_retry(
    client: httpx.Client,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    retries: int = 0,
    backoff_seconds: float = 0.2,
) -> str:
    """GET ``url`` and return the body text, retrying transient failures."""
    policy = CircuitPolicy.from_env()
    host = _host_of(client, url)
    circuit = _circuit_for(host) if policy.enabled else None
    attempts = max(0, int(retries)) + 1

    attempt = 0
    while True:
        attempt += 1
        if circuit is not None:
            circuit.check(host, time.time())
        try:
            body = _fetch_once(client, url, headers)
        except Exception as exc:
            if not _is_transient(exc):
                raise
            if circuit is not None:
                circuit.fail(host, time.time(), policy)
            if attempt == attempts:
                raise
            logger.debug("Retrying sheet fetch", extra={"url": url, "attempt": attempt})
            time.sleep(max(0.0, backoff_seconds) * (2 ** (attempt - 1)))
            continue
        if circuit is not None:
            circuit.consecutive_failures = 0
        return body
