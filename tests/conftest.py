import os
import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("netbattle.infrastructure.resilient_http.time.sleep", lambda _seconds: None)


@pytest.fixture(autouse=True)
def isolated_netbattle_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests never inherit a developer's database or sheet URLs."""
    for name in [key for key in os.environ if key.startswith("NETBATTLE_")]:
        monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def fresh_sheet_circuits():
    from netbattle.infrastructure.resilient_http import reset_circuit_breakers

    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture(autouse=True)
def offline_e2e(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    if request.node.path.parent.name != "e2e":
        return

    import httpx

    def _refuse(self, request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"Network disabled in e2e tests: {request.url}", request=request)

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", _refuse)
