"""
Resilient CMS
=============

Camada de acesso resiliente a backends de conteúdo (Baserow, Airtable,
Sanity), com integração opcional com Flask.

Características:
- Registros normalizados: um único formato para todos os backends
- Cache em memória: TTL, janela de stale-while-revalidate e tags
- Retry: backoff exponencial limitado para falhas transitórias
- Circuit Breaker: para de chamar um backend com falhas persistentes
- Coalescência: leituras concorrentes da mesma chave fazem uma só chamada

Exemplo de uso básico (framework-agnostic):

    from resilient_cms import ContentService, ProviderSettings, QueryOptions

    settings = ProviderSettings(
        backend="baserow",
        api_url="https://api.baserow.io",
        api_token="...",
    )
    content = ContentService(settings)

    page = content.fetch_all("1234", QueryOptions(page_size=20))
    station = content.fetch_by_slug("1234", "shell-carlton")

    # Após uma alteração fora da aplicação
    content.revalidate(["1234"])
"""

__version__ = "0.1.0"
__author__ = "dclobato"
__email__ = "daniel@lobato.org"

from .cache_store import CacheStatus, CacheStore
from .circuit_breaker import CircuitBreaker, CircuitState
from .config import CacheConfig, CircuitBreakerConfig, ProviderSettings
from .content_service import ContentService
from .error_classifier import classify
from .exceptions import (
    CircuitBreakerOpenError,
    ConfigValidationError,
    ErrorKind,
    HTTPClientError,
    HTTPServerError,
    NetworkError,
    ProviderError,
    RequestTimeoutError,
    ValidationError,
)
from .fallback import with_fallback
from .models import NormalizedRecord, PagedResult, QueryOptions, RecordStatus, SortSpec
from .providers import AirtableProvider, BaserowProvider, ContentProvider, SanityProvider
from .registry import ProviderFactory, get_provider, register_provider, reset_provider
from .retry import RetryPolicy, retry

__all__ = [
    "ContentService",
    "ProviderSettings",
    "ProviderFactory",
    "get_provider",
    "reset_provider",
    "register_provider",
    "ContentProvider",
    "BaserowProvider",
    "AirtableProvider",
    "SanityProvider",
    "NormalizedRecord",
    "PagedResult",
    "QueryOptions",
    "SortSpec",
    "RecordStatus",
    "CacheStore",
    "CacheStatus",
    "CacheConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "RetryPolicy",
    "retry",
    "classify",
    "with_fallback",
    "ErrorKind",
    "ProviderError",
    "NetworkError",
    "RequestTimeoutError",
    "HTTPClientError",
    "HTTPServerError",
    "ValidationError",
    "ConfigValidationError",
    "CircuitBreakerOpenError",
]

try:
    from .flask_integration import FlaskContentService, get_content_service  # noqa: F401

    __all__.extend(["FlaskContentService", "get_content_service"])
except ImportError:
    # Flask is optional; ignore if not available.
    pass
