import logging

import pytest

from resilient_cms.exceptions import HTTPClientError, NetworkError
from resilient_cms.fallback import with_fallback


def fail(error):
    def primary():
        raise error

    return primary


def test_primary_result_is_returned():
    assert with_fallback(lambda: "live", lambda: "cached") == "live"


def test_provider_error_uses_fallback(caplog):
    seen = []

    with caplog.at_level(logging.WARNING):
        result = with_fallback(fail(NetworkError("down")), lambda: "cached", on_error=seen.append)

    assert result == "cached"
    assert isinstance(seen[0], NetworkError)
    assert "Using fallback due to error" in caplog.text


def test_predicate_can_refuse_fallback():
    with pytest.raises(HTTPClientError):
        with_fallback(
            fail(HTTPClientError("forbidden", status_code=403)),
            lambda: "cached",
            should_use_fallback=lambda e: e.retryable,
        )


def test_other_errors_propagate():
    with pytest.raises(KeyError):
        with_fallback(fail(KeyError("x")), lambda: "cached")
