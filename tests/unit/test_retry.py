import pytest

from resilient_cms.exceptions import (
    ConfigValidationError,
    HTTPClientError,
    HTTPServerError,
    NetworkError,
)
from resilient_cms.retry import RetryPolicy, is_retryable, retry


class Flaky:
    """Falha ``failures`` vezes e depois devolve ``value``."""

    def __init__(self, failures, error_factory, value="ok"):
        self.failures = failures
        self.error_factory = error_factory
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return self.value


def test_fails_twice_then_succeeds_after_exactly_two_waits():
    sleeps = []
    operation = Flaky(2, lambda: HTTPServerError("boom", backend="baserow", status_code=503))
    policy = RetryPolicy(max_attempts=3, initial_delay=0.5, max_delay=10, backoff_multiplier=2)

    assert retry(operation, policy, sleep=sleeps.append) == "ok"
    assert operation.calls == 3
    assert sleeps == [0.5, 1.0]


def test_non_retryable_error_stops_after_first_failure():
    sleeps = []
    operation = Flaky(5, lambda: HTTPClientError("bad", status_code=400))

    with pytest.raises(HTTPClientError):
        retry(operation, RetryPolicy(max_attempts=5, initial_delay=0.1), sleep=sleeps.append)

    assert operation.calls == 1
    assert sleeps == []


def test_exhausted_attempts_raise_last_error_without_final_wait():
    sleeps = []
    errors = []

    def operation():
        error = NetworkError(f"attempt {len(errors) + 1}")
        errors.append(error)
        raise error

    with pytest.raises(NetworkError) as exc_info:
        retry(operation, RetryPolicy(max_attempts=3, initial_delay=0.1), sleep=sleeps.append)

    assert exc_info.value is errors[-1]
    assert len(errors) == 3
    assert len(sleeps) == 2


def test_delay_is_capped_at_max_delay():
    sleeps = []
    operation = Flaky(4, lambda: NetworkError("down"))
    policy = RetryPolicy(max_attempts=5, initial_delay=1, max_delay=3, backoff_multiplier=2)

    retry(operation, policy, sleep=sleeps.append)

    assert sleeps == [1, 2, 3, 3]
    assert [policy.compute_delay(n) for n in range(1, 5)] == [1, 2, 3, 3]


def test_custom_should_retry():
    sleeps = []
    operation = Flaky(1, lambda: ValueError("transient"))

    result = retry(
        operation,
        RetryPolicy(max_attempts=2, initial_delay=0),
        should_retry=lambda e: isinstance(e, ValueError),
        sleep=sleeps.append,
    )

    assert result == "ok"
    assert operation.calls == 2


def test_single_attempt_policy():
    operation = Flaky(1, lambda: NetworkError("down"))
    with pytest.raises(NetworkError):
        retry(operation, RetryPolicy.none(), sleep=lambda s: None)
    assert operation.calls == 1


def test_is_retryable_reads_flag():
    assert is_retryable(NetworkError("x"))
    assert not is_retryable(HTTPClientError("x"))
    assert is_retryable(RuntimeError("no flag"))
    assert not is_retryable(KeyboardInterrupt())


def test_invalid_policy_lists_every_violation():
    with pytest.raises(ConfigValidationError) as exc_info:
        RetryPolicy(max_attempts=0, initial_delay=-1, backoff_multiplier=0.5)

    assert len(exc_info.value.errors) == 3
