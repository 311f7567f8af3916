"""
Configuração de fixtures para testes.
"""

import json
import threading
import time
from http import HTTPStatus
from types import SimpleNamespace

import pytest
import requests

from resilient_cms.cache_store import CacheStore
from resilient_cms.config import ProviderSettings
from resilient_cms.registry import PROVIDERS, reset_provider
from resilient_cms.transport import HttpTransport

API_URL = "https://cms.test"

BACKEND_SETTINGS = {
    "baserow": {},
    "airtable": {"api_url": "https://api.airtable.com/v0", "project_id": "appBase123"},
    "sanity": {"api_url": "https://abc123.api.sanity.io", "project_id": "abc123", "dataset": "production"},
}


def make_response(status_code=200, payload=None, url=API_URL, reason=None):
    """Cria um requests.Response real com corpo JSON."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason or HTTPStatus(status_code).phrase
    response.url = url
    response.encoding = "utf-8"
    if payload is None:
        response._content = b""
    else:
        response._content = json.dumps(payload).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    return response


class FakeSession(requests.Session):
    """
    Sessão que responde com uma fila de respostas (ou exceções) e
    registra cada chamada.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls = []
        self.handler = None
        self.delay = 0.0
        self._queue = []
        self._lock = threading.Lock()

    def queue(self, *items) -> None:
        with self._lock:
            self._queue.extend(items)

    def request(self, method, url, params=None, json=None, timeout=None, **kwargs):
        with self._lock:
            self.calls.append(
                SimpleNamespace(
                    method=method,
                    url=url,
                    params=params,
                    json=json,
                    timeout=timeout,
                    headers=dict(self.headers),
                )
            )
            handler = self.handler
            if handler is None:
                if not self._queue:
                    raise AssertionError(f"unexpected request: {method} {url}")
                item = self._queue.pop(0)

        # O handler roda fora do lock para poder bloquear sem travar outras chamadas
        if handler is not None:
            item = handler(method, url, params, json)

        if self.delay:
            time.sleep(self.delay)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)


class FakeClock:
    """Relógio controlado pelos testes."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Esperas solicitadas pelo retry (nenhuma espera real acontece)."""
    return []


@pytest.fixture
def make_settings():
    def factory(backend="baserow", **overrides):
        values = {
            "backend": backend,
            "api_url": API_URL,
            "api_token": "secret-token",
            "retry_delay_ms": 100,
            "retry_max_delay_ms": 1000,
        }
        values.update(BACKEND_SETTINGS[backend])
        values.update(overrides)
        return ProviderSettings(**values)

    return factory


@pytest.fixture
def make_provider(make_settings, fake_session, clock, sleeps):
    """Cria providers ligados à sessão fake, ao relógio fake e à lista de esperas."""
    created = []

    def factory(backend="baserow", **overrides):
        settings = make_settings(backend, **overrides)
        provider_cls = PROVIDERS[backend]
        transport = HttpTransport(
            backend,
            headers=provider_cls.auth_headers_for(settings),
            timeout=settings.request_timeout,
            session=fake_session,
        )
        cache = CacheStore(max_entries=settings.cache_max_entries, clock=clock)
        provider = provider_cls(settings, cache=cache, transport=transport, sleep=sleeps.append)
        created.append(provider)
        return provider

    yield factory

    for provider in created:
        provider.close()


@pytest.fixture(autouse=True)
def isolated_provider_singleton():
    """Garante que o provider global não vaza entre testes."""
    reset_provider()
    yield
    reset_provider()


@pytest.fixture
def respond():
    """Atalho para make_response dentro dos testes."""
    return make_response
