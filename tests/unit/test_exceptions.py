from resilient_cms.exceptions import (
    CircuitBreakerOpenError,
    ConfigValidationError,
    ErrorKind,
    HTTPClientError,
    HTTPServerError,
    ProviderError,
    ValidationError,
)


def test_provider_error_str_and_dict():
    error = HTTPServerError("upstream failed", backend="baserow", status_code=503)

    assert str(error) == "[baserow:http-server] HTTP 503 upstream failed"
    data = error.to_dict()
    assert data["kind"] == "http-server"
    assert data["status_code"] == 503
    assert data["retryable"] is True
    assert data["occurred_at"].endswith("+00:00")


def test_str_includes_details():
    error = ProviderError("boom", backend="sanity", details={"url": "https://x"})
    assert "Details: {'url': 'https://x'}" in str(error)


def test_default_retryable_per_kind():
    assert ProviderError("x").retryable is True
    assert HTTPClientError("x").retryable is False
    assert ValidationError("x").retryable is False
    assert ProviderError("x", retryable=False).retryable is False


def test_config_validation_error_lists_all_errors():
    error = ConfigValidationError(["api_url is required", "dataset is required"])

    assert isinstance(error, ValueError)
    assert isinstance(error, ValidationError)
    assert error.kind == ErrorKind.VALIDATION
    assert error.errors == ["api_url is required", "dataset is required"]
    assert str(error) == (
        "CMS configuration validation failed:\n- api_url is required\n- dataset is required"
    )


def test_circuit_breaker_open_error():
    error = CircuitBreakerOpenError(backend="airtable", failure_count=5)

    assert error.kind == ErrorKind.BREAKER_OPEN
    assert error.retryable is False
    assert error.failure_count == 5
    assert error.details == {"failure_count": 5}
