"""
Classificação de falhas heterogêneas em ProviderError.

Regras, em ordem de prioridade:
1. Falha HTTP: status >= 500, 429 ou 408 é repetível; outros não.
2. Falha de transporte (sem resposta): repetível, kind ``network``.
3. Timeout: repetível, kind ``timeout``.
4. Qualquer outra coisa: repetível por padrão, kind ``unknown``.
"""

import concurrent.futures
from typing import Any, Optional

import requests

from .exceptions import (
    HTTPClientError,
    HTTPServerError,
    NetworkError,
    ProviderError,
    RequestTimeoutError,
)

RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_retryable_status(status_code: int) -> bool:
    """Indica se um status HTTP deve ser repetido."""
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def _response_of(raw: Any) -> Optional[Any]:
    if isinstance(raw, requests.HTTPError) and raw.response is not None:
        return raw.response
    if isinstance(raw, BaseException):
        return None
    if isinstance(getattr(raw, "status_code", None), int):
        return raw
    return None


def classify_status(
    status_code: int,
    backend: str,
    reason: Optional[str] = None,
    url: Optional[str] = None,
) -> ProviderError:
    """
    Converte um status HTTP em erro estruturado.

    Args:
        status_code: Status HTTP recebido
        backend: Nome do backend
        reason: Texto do status, quando disponível
        url: URL requisitada, registrada nos detalhes

    Returns:
        HTTPServerError ou HTTPClientError
    """
    message = f"HTTP {status_code}: {reason or 'request failed'}"
    details = {"url": url} if url else None
    if is_retryable_status(status_code):
        return HTTPServerError(message, backend=backend, status_code=status_code, details=details)
    return HTTPClientError(message, backend=backend, status_code=status_code, details=details)


def classify(
    raw: Any,
    backend: str,
    retryable: Optional[bool] = None,
) -> ProviderError:
    """
    Mapeia qualquer falha para um ProviderError.

    Args:
        raw: Exceção ou resposta que representa a falha
        backend: Nome do backend
        retryable: Sobrescreve o padrão para falhas não classificadas

    Returns:
        Erro estruturado. Um ProviderError recebido é devolvido sem alteração.
    """
    if isinstance(raw, ProviderError):
        return raw

    response = _response_of(raw)
    if response is not None:
        error = classify_status(
            response.status_code,
            backend,
            reason=getattr(response, "reason", None),
            url=getattr(response, "url", None),
        )
    elif isinstance(raw, requests.ConnectionError):
        error = NetworkError("Network connection failed", backend=backend)
    elif isinstance(raw, (requests.Timeout, concurrent.futures.TimeoutError, TimeoutError)):
        error = RequestTimeoutError("Request timeout", backend=backend)
    else:
        message = str(raw) if str(raw) else "Unknown error occurred"
        error = ProviderError(message, backend=backend, retryable=retryable)

    if isinstance(raw, BaseException):
        error.__cause__ = raw
        error.details.setdefault("error_type", type(raw).__name__)
    return error
