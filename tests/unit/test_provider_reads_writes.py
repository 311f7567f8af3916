import logging
import threading
import time

import pytest
import requests

from resilient_cms.cache_store import CacheStatus
from resilient_cms.circuit_breaker import CircuitState
from resilient_cms.exceptions import (
    CircuitBreakerOpenError,
    HTTPClientError,
    HTTPServerError,
    NetworkError,
    ValidationError,
)
from resilient_cms.models import QueryOptions, generate_cache_key


def row(row_id, name="Shell Carlton", slug=None):
    return {
        "id": row_id,
        "created_on": "2024-01-02T03:04:05Z",
        "updated_on": "2024-02-01T00:00:00.000000Z",
        "name": name,
        "slug": slug or f"station-{row_id}",
    }


def rows_page(*rows, count=None, next_url=None):
    return {
        "count": len(rows) if count is None else count,
        "next": next_url,
        "previous": None,
        "results": list(rows),
    }


def wait_until(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_fresh_hit_does_not_call_backend(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(respond(200, rows_page(row(1))))

    first = provider.fetch_all("stations")
    second = provider.fetch_all("stations")

    assert second is first
    assert fake_session.call_count == 1
    assert provider.get_stats()["cache"]["hits"] == 1


def test_list_entry_is_tagged_with_collection_and_backend(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(respond(200, rows_page(row(1))))

    provider.fetch_all("stations", QueryOptions(page=2, page_size=10))

    key = generate_cache_key("baserow", "stations", {"page": 2, "page_size": 10})
    assert provider.cache.tags_for(key) == frozenset({"stations", "baserow"})


def test_fetch_by_id_404_returns_none_without_caching_or_tripping(make_provider, fake_session, respond):
    provider = make_provider(circuit_breaker_threshold=1)
    fake_session.queue(respond(404, {"error": "ERROR_ROW_DOES_NOT_EXIST"}))
    fake_session.queue(respond(404, {"error": "ERROR_ROW_DOES_NOT_EXIST"}))

    assert provider.fetch_by_id("stations", "99") is None
    assert provider.fetch_by_id("stations", "99") is None

    assert fake_session.call_count == 2
    assert len(provider.cache) == 0
    assert provider.breaker.state == CircuitState.CLOSED


def test_transient_failure_is_retried(make_provider, fake_session, respond, sleeps):
    provider = make_provider()
    fake_session.queue(
        respond(503),
        requests.ConnectionError("reset"),
        respond(200, row(7)),
    )

    record = provider.fetch_by_id("stations", "7")

    assert record.id == "7"
    assert fake_session.call_count == 3
    assert sleeps == [0.1, 0.2]
    assert provider.breaker.failure_count == 0


def test_client_error_is_not_retried_and_not_a_breaker_failure(make_provider, fake_session, respond, sleeps):
    provider = make_provider()
    fake_session.queue(respond(401, {"detail": "invalid token"}))

    with pytest.raises(HTTPClientError) as exc_info:
        provider.fetch_all("stations")

    assert exc_info.value.status_code == 401
    assert exc_info.value.backend == "baserow"
    assert fake_session.call_count == 1
    assert sleeps == []
    assert provider.breaker.failure_count == 0


def test_exhausted_retries_raise_last_error(make_provider, fake_session, respond, sleeps):
    provider = make_provider(retry_attempts=2)
    fake_session.queue(respond(500), respond(502))

    with pytest.raises(HTTPServerError) as exc_info:
        provider.fetch_all("stations")

    assert exc_info.value.status_code == 502
    assert len(sleeps) == 1
    assert provider.breaker.failure_count == 1


def test_breaker_opens_and_rejects_without_calling_backend(make_provider, fake_session, respond):
    provider = make_provider(retry_attempts=1, circuit_breaker_threshold=2)
    fake_session.queue(respond(503), requests.ConnectionError("refused"))

    with pytest.raises(HTTPServerError):
        provider.fetch_all("stations")
    with pytest.raises(NetworkError):
        provider.fetch_all("stations", QueryOptions(page=2))

    with pytest.raises(CircuitBreakerOpenError):
        provider.fetch_all("stations", QueryOptions(page=3))

    assert fake_session.call_count == 2
    assert provider.get_stats()["circuit_breaker"]["state"] == "open"


def test_stale_hit_is_served_and_refreshed_once(make_provider, fake_session, respond, clock):
    provider = make_provider(cache_ttl=60, stale_window=600)
    fake_session.queue(respond(200, rows_page(row(1, name="old"))))
    provider.fetch_all("stations")

    clock.advance(61)
    release = threading.Event()

    def handler(method, url, params, json):
        release.wait(timeout=2)
        return respond(200, rows_page(row(1, name="new")))

    fake_session.handler = handler

    stale_first = provider.fetch_all("stations")
    stale_second = provider.fetch_all("stations")
    assert stale_first.items[0]["name"] == "old"
    assert stale_second.items[0]["name"] == "old"

    release.set()
    key = generate_cache_key("baserow", "stations", QueryOptions().canonical())
    assert wait_until(lambda: provider.cache.lookup(key)[1] == CacheStatus.FRESH)

    assert provider.fetch_all("stations").items[0]["name"] == "new"
    assert fake_session.call_count == 2


def test_failed_refresh_keeps_stale_entry_and_logs(make_provider, fake_session, respond, clock, caplog):
    provider = make_provider(cache_ttl=60, stale_window=600, retry_attempts=1)
    fake_session.queue(respond(200, rows_page(row(1, name="old"))))
    provider.fetch_all("stations")

    clock.advance(61)
    fake_session.queue(respond(500))

    with caplog.at_level(logging.WARNING):
        assert provider.fetch_all("stations").items[0]["name"] == "old"
        assert wait_until(lambda: not provider._revalidating and fake_session.call_count == 2)
        assert wait_until(lambda: "Background refresh failed" in caplog.text)

    fake_session.queue(respond(500))
    assert provider.fetch_all("stations").items[0]["name"] == "old"


def test_concurrent_misses_make_one_remote_call(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.delay = 0.2
    fake_session.handler = lambda method, url, params, json: respond(200, rows_page(row(1)))

    results = []
    threads = [
        threading.Thread(target=lambda: results.append(provider.fetch_all("stations")))
        for _ in range(5)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 5
    assert fake_session.call_count == 1
    assert all(result is results[0] for result in results)


def test_cache_disabled_always_calls_backend(make_provider, fake_session, respond):
    provider = make_provider(cache_enabled=False)
    fake_session.queue(respond(200, rows_page(row(1))), respond(200, rows_page(row(1))))

    provider.fetch_all("stations")
    provider.fetch_all("stations")

    assert fake_session.call_count == 2
    assert len(provider.cache) == 0


def test_create_invalidates_collection_without_writing_cache(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(
        respond(200, rows_page(row(1))),
        respond(200, rows_page(row(9, name="other"))),
        respond(200, row(2, name="BP Fitzroy")),
    )
    provider.fetch_all("stations")
    provider.fetch_all("prices")

    created = provider.create("stations", {"name": "BP Fitzroy"})

    assert created.id == "2"
    assert len(provider.cache) == 1
    assert provider.cache.keys() == [generate_cache_key("baserow", "prices", QueryOptions().canonical())]


def test_slug_entry_is_tagged_by_record_id(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(
        respond(200, row(5, slug="shell-carlton")),
        respond(200, rows_page(row(5, slug="shell-carlton"))),
        respond(200, row(8)),
    )
    provider.fetch_by_id("stations", "5")
    provider.fetch_by_slug("stations", "shell-carlton")
    provider.fetch_by_id("stations", "8")

    assert provider.revalidate(["stations:5"]) == 2
    assert provider.cache.keys() == [generate_cache_key("baserow", "stations", {"id": "8"})]


def test_update_invalidates_collection_and_record(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(
        respond(200, row(5)),
        respond(200, rows_page(row(1))),
        respond(200, row(5, name="Shell Carlton North")),
    )
    provider.fetch_by_id("stations", "5")
    provider.fetch_all("prices")

    updated = provider.update("stations", "5", {"name": "Shell Carlton North"})

    assert updated["name"] == "Shell Carlton North"
    assert provider.cache.keys() == [generate_cache_key("baserow", "prices", QueryOptions().canonical())]
    assert fake_session.calls[-1].method == "PATCH"
    assert fake_session.calls[-1].json == {"name": "Shell Carlton North"}


def test_writes_are_not_retried(make_provider, fake_session, respond, sleeps):
    provider = make_provider()
    fake_session.queue(respond(503))

    with pytest.raises(HTTPServerError):
        provider.delete("stations", "5")

    assert fake_session.call_count == 1
    assert sleeps == []
    assert provider.breaker.failure_count == 1


def test_failed_write_does_not_invalidate(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(respond(200, rows_page(row(1))), respond(422, {"error": "invalid"}))
    provider.fetch_all("stations")

    with pytest.raises(HTTPClientError):
        provider.create("stations", {"name": ""})

    assert len(provider.cache) == 1


def test_revalidate_by_tags(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(respond(200, rows_page(row(1))), respond(200, rows_page(row(2))))
    provider.fetch_all("stations")
    provider.fetch_all("prices")

    assert provider.revalidate(["stations"]) == 1
    assert provider.revalidate([]) == 0
    assert len(provider.cache) == 1


@pytest.mark.parametrize(
    "call",
    [
        lambda p: p.fetch_all(""),
        lambda p: p.fetch_all("stations", QueryOptions(page=0)),
        lambda p: p.fetch_all("stations", QueryOptions(page_size=1001)),
        lambda p: p.fetch_by_id("stations", ""),
        lambda p: p.fetch_by_slug("stations", None),
        lambda p: p.search("stations", "   "),
        lambda p: p.create("stations", {}),
        lambda p: p.update("stations", "1", None),
    ],
)
def test_invalid_input_raises_validation_error(make_provider, fake_session, call):
    provider = make_provider()

    with pytest.raises(ValidationError) as exc_info:
        call(provider)

    assert exc_info.value.retryable is False
    assert fake_session.call_count == 0


def test_read_in_flight_during_update_is_not_cached(make_provider, fake_session, respond):
    provider = make_provider()
    answered = threading.Event()
    release = threading.Event()
    names = iter(["before-update", "after-update"])

    def handler(method, url, params, json):
        if method == "PATCH":
            return respond(200, row(1, name="after-update"))
        page = respond(200, rows_page(row(1, name=next(names))))
        if not answered.is_set():
            answered.set()
            release.wait(timeout=2)
        return page

    fake_session.handler = handler
    results = []
    reader = threading.Thread(target=lambda: results.append(provider.fetch_all("stations")))
    reader.start()
    assert answered.wait(timeout=2)

    provider.update("stations", "1", {"name": "after-update"})
    release.set()
    reader.join(timeout=5)

    assert results[0].items[0]["name"] == "before-update"
    assert len(provider.cache) == 0
    assert provider.fetch_all("stations").items[0]["name"] == "after-update"
    assert fake_session.call_count == 3


def test_refresh_overlapping_a_write_is_discarded(make_provider, fake_session, respond, clock):
    provider = make_provider(cache_ttl=60, stale_window=600)
    fake_session.queue(respond(200, rows_page(row(1, name="old"))))
    provider.fetch_all("stations")
    clock.advance(61)

    answered = threading.Event()
    release = threading.Event()

    def handler(method, url, params, json):
        if method == "DELETE":
            return respond(204)
        answered.set()
        release.wait(timeout=2)
        return respond(200, rows_page(row(1, name="refreshed-before-delete")))

    fake_session.handler = handler
    assert provider.fetch_all("stations").items[0]["name"] == "old"
    assert answered.wait(timeout=2)

    provider.delete("stations", "1")
    release.set()
    assert wait_until(lambda: not provider._revalidating)

    assert len(provider.cache) == 0


def test_revalidate_accepts_a_single_tag(make_provider, fake_session, respond):
    provider = make_provider()
    fake_session.queue(respond(200, rows_page(row(1))))
    provider.fetch_all("stations")

    assert provider.revalidate("stations") == 1
    assert len(provider.cache) == 0
