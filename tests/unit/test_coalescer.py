import threading
import time

import pytest

from resilient_cms.coalescer import RequestCoalescer
from resilient_cms.exceptions import NetworkError, RequestTimeoutError


def run_concurrently(target, count):
    results = [None] * count
    errors = [None] * count

    def worker(index):
        try:
            results[index] = target()
        except Exception as e:
            errors[index] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)
    return results, errors


def test_concurrent_callers_share_one_execution():
    coalescer = RequestCoalescer(timeout=5)
    started = threading.Event()
    release = threading.Event()
    calls = []

    def fetch():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return "page"

    def call():
        return coalescer.get_or_fetch("k", fetch)

    first = threading.Thread(target=call)
    first.start()
    started.wait(timeout=5)

    waiter_results = []
    waiters = [
        threading.Thread(target=lambda: waiter_results.append(call())) for _ in range(3)
    ]
    for thread in waiters:
        thread.start()
    while coalescer._in_flight["k"].waiter_count < 3:
        time.sleep(0.001)
    release.set()

    first.join(timeout=5)
    for thread in waiters:
        thread.join(timeout=5)

    assert calls == [1]
    assert waiter_results == ["page", "page", "page"]
    assert coalescer.active_requests == 0


def test_error_is_shared_with_waiters():
    coalescer = RequestCoalescer(timeout=5)
    release = threading.Event()

    def fetch():
        release.wait(timeout=5)
        raise NetworkError("down")

    def call():
        return coalescer.get_or_fetch("k", fetch)

    timer = threading.Timer(0.2, release.set)
    timer.start()
    _, errors = run_concurrently(call, 3)

    assert all(isinstance(e, NetworkError) for e in errors)
    assert coalescer.active_requests == 0


def test_sequential_calls_fetch_again():
    coalescer = RequestCoalescer()
    values = iter(["a", "b"])

    assert coalescer.get_or_fetch("k", lambda: next(values)) == "a"
    assert coalescer.get_or_fetch("k", lambda: next(values)) == "b"


def test_waiter_times_out():
    coalescer = RequestCoalescer(timeout=0.05, backend="sanity")
    started = threading.Event()
    release = threading.Event()

    def slow():
        started.set()
        release.wait(timeout=5)
        return "late"

    first = threading.Thread(target=lambda: coalescer.get_or_fetch("k", slow))
    first.start()
    started.wait(timeout=5)

    with pytest.raises(RequestTimeoutError) as exc_info:
        coalescer.get_or_fetch("k", lambda: "unused")
    assert exc_info.value.backend == "sanity"

    release.set()
    first.join(timeout=5)
