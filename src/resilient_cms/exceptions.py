"""
Exceções estruturadas da camada de acesso a conteúdo.

Toda falha que sai de um provider é uma instância de ProviderError,
carregando o tipo (kind), o backend e se a operação pode ser repetida.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    """Taxonomia de erros."""

    NETWORK = "network"  # Nenhuma resposta chegou do backend
    TIMEOUT = "timeout"  # Resposta não recebida dentro do prazo
    HTTP_CLIENT = "http-client"  # 4xx
    HTTP_SERVER = "http-server"  # 5xx, 429, 408
    VALIDATION = "validation"  # Configuração ou entrada inválida
    BREAKER_OPEN = "breaker-open"  # Rejeitado sem contatar o backend
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Exceção base para erros de acesso a conteúdo."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_retryable: bool = True

    def __init__(  # noqa: B042
        self,
        message: str,
        backend: str = "unknown",
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        details: Optional[dict] = None,
    ) -> None:
        """
        Inicializa a exceção.

        Args:
            message: Mensagem de erro
            backend: Nome do backend que originou o erro
            status_code: Status HTTP, quando houver
            retryable: Sobrescreve o padrão da classe
            details: Detalhes adicionais sobre o erro
        """
        self.message = message
        self.backend = backend
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.details = details or {}
        self.occurred_at = datetime.now(timezone.utc)
        super().__init__(self.message)

    def __str__(self) -> str:
        prefix = f"[{self.backend}:{self.kind.value}]"
        if self.status_code is not None:
            prefix = f"{prefix} HTTP {self.status_code}"
        if self.details:
            return f"{prefix} {self.message} - Details: {self.details}"
        return f"{prefix} {self.message}"

    def to_dict(self) -> dict:
        """Representação serializável do erro."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "backend": self.backend,
            "occurred_at": self.occurred_at.isoformat(),
            "retryable": self.retryable,
        }


class NetworkError(ProviderError):
    """Falha de transporte/conexão, sem resposta do backend."""

    kind = ErrorKind.NETWORK


class RequestTimeoutError(ProviderError):
    """A resposta não chegou dentro do tempo limite."""

    kind = ErrorKind.TIMEOUT


class HTTPClientError(ProviderError):
    """Resposta 4xx (exceto 408 e 429)."""

    kind = ErrorKind.HTTP_CLIENT
    default_retryable = False


class HTTPServerError(ProviderError):
    """Resposta 5xx, 429 ou 408."""

    kind = ErrorKind.HTTP_SERVER


class ValidationError(ProviderError):
    """Entrada do chamador inválida. Nunca é repetida."""

    kind = ErrorKind.VALIDATION
    default_retryable = False


class ConfigValidationError(ValidationError, ValueError):
    """Configuração inválida, com a lista completa de violações."""

    def __init__(  # noqa: B042
        self,
        errors: List[str],
        backend: str = "config",
    ) -> None:
        """
        Inicializa erro de configuração.

        Args:
            errors: Todas as restrições violadas
            backend: Backend configurado, quando conhecido
        """
        self.errors = list(errors)
        message = "CMS configuration validation failed:\n- " + "\n- ".join(self.errors)
        super().__init__(message, backend=backend, retryable=False)

    def __str__(self) -> str:
        return self.message


class CircuitBreakerOpenError(ProviderError):
    """Erro quando o circuit breaker está aberto."""

    kind = ErrorKind.BREAKER_OPEN
    default_retryable = False

    def __init__(  # noqa: B042
        self,
        message: str = "Circuit breaker is open",
        backend: str = "unknown",
        failure_count: Optional[int] = None,
    ) -> None:
        """
        Inicializa erro de circuit breaker.

        Args:
            message: Mensagem de erro
            backend: Nome do backend afetado
            failure_count: Número de falhas consecutivas
        """
        details: dict[str, Any] = {}
        if failure_count is not None:
            details["failure_count"] = failure_count

        super().__init__(message, backend=backend, details=details)
        self.failure_count = failure_count
