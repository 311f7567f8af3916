"""
Configurações da camada de acesso a conteúdo.

Define dataclasses para configuração type-safe. Toda validação é feita
em uma única passada que acumula as violações e falha com a lista completa.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from resilient_cms.config.utils import (
    check_min,
    check_required,
    is_valid_url,
    parse_bool,
    parse_float,
    parse_int,
)
from resilient_cms.exceptions import ConfigValidationError
from resilient_cms.retry import RetryPolicy

# Campos obrigatórios apenas para certos backends
BACKEND_REQUIREMENTS: Dict[str, Dict[str, str]] = {
    "airtable": {"project_id": "Airtable base ID"},
    "sanity": {"project_id": "Sanity project ID", "dataset": 'Sanity dataset, e.g. "production"'},
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _default_logger(name: str, debug: bool = False) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    if debug:
        logger.setLevel(logging.DEBUG)
    return logger


@dataclass
class CircuitBreakerConfig:
    """
    Configuração do circuit breaker de um backend.

    O circuit breaker monitora falhas consecutivas do backend e
    rejeita chamadas enquanto estiver aberto.
    """

    enabled: bool = True
    """Habilita o circuit breaker"""

    threshold: int = 5
    """Número de falhas consecutivas para abrir o circuit"""

    timeout: float = 30
    """Segundos em OPEN antes de liberar uma chamada de teste (half-open)"""

    half_open_timeout: float = 15
    """Segundos que uma chamada de teste pode ficar pendente antes de liberar outra"""

    def validate(self) -> List[str]:
        """Retorna a lista de violações (vazia se válida)."""
        errors: List[str] = []
        check_min(self.threshold, "circuit_breaker_threshold", 1, errors)
        check_min(self.timeout, "circuit_breaker_timeout", 0, errors)
        check_min(self.half_open_timeout, "circuit_breaker_half_open_timeout", 0, errors)
        return errors

    def __post_init__(self) -> None:
        """Valida a configuração."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError(errors)


@dataclass
class CacheConfig:
    """Configuração do cache em memória."""

    enabled: bool = True
    """Habilita o cache"""

    ttl: float = 3600
    """Segundos em que um item é considerado fresco"""

    stale_window: float = 3600
    """Segundos adicionais em que um item expirado ainda pode ser servido"""

    max_entries: int = 1000
    """Número máximo de itens no cache"""

    def validate(self) -> List[str]:
        """Retorna a lista de violações (vazia se válida)."""
        errors: List[str] = []
        check_min(self.ttl, "cache_ttl", 0, errors)
        check_min(self.stale_window, "stale_window", 0, errors)
        check_min(self.max_entries, "cache_max_entries", 1, errors)
        return errors

    def __post_init__(self) -> None:
        """Valida a configuração."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError(errors)


@dataclass
class ProviderSettings:
    """
    Configuração completa de um provider de conteúdo.

    Agrupa backend, credenciais, cache, retry, circuit breaker e timeout.
    Pode ser carregada do ambiente (from_env), de um dict qualquer
    (from_mapping) ou do app.config do Flask (from_flask_config).
    """

    api_url: str
    """URL base do backend"""

    backend: str = "baserow"
    """Backend: 'baserow', 'airtable' ou 'sanity'"""

    api_token: Optional[str] = field(default=None, repr=False)
    """Token de autenticação (opcional)"""

    project_id: Optional[str] = None
    """Base ID (Airtable) ou project ID (Sanity)"""

    dataset: Optional[str] = None
    """Dataset do Sanity"""

    cache_enabled: bool = True
    cache_ttl: int = 3600
    stale_window: int = 3600
    cache_max_entries: int = 1000

    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    retry_backoff_multiplier: float = 2.0

    circuit_breaker_enabled: bool = True
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 30
    circuit_breaker_half_open_timeout: int = 15

    request_timeout_ms: int = 15000
    """Tempo máximo de cada chamada remota, em milissegundos"""

    debug_logging: bool = False

    logger: Optional[logging.Logger] = field(default=None, repr=False, compare=False)
    """Logger customizado (opcional)"""

    def validate(self) -> List[str]:
        """
        Valida todos os campos de uma vez.

        Returns:
            Lista com todas as violações encontradas
        """
        from resilient_cms.registry import available_backends

        errors: List[str] = []

        backends = available_backends()
        if not isinstance(self.backend, str) or self.backend.strip().lower() not in backends:
            errors.append(f"backend must be one of {backends}, got {self.backend!r}")

        if not self.api_url:
            errors.append("api_url is required")
        elif not is_valid_url(self.api_url):
            errors.append(f"api_url must be a valid URL, got {self.api_url!r}")

        if self.api_token is not None and not isinstance(self.api_token, str):
            errors.append("api_token must be a string or None")

        for field_name, description in BACKEND_REQUIREMENTS.get(self.backend, {}).items():
            check_required(
                getattr(self, field_name),
                field_name,
                errors,
                reason=f"{self.backend} requires {description}",
            )

        for build in (self.cache_config, self.breaker_config):
            try:
                build()
            except ConfigValidationError as e:
                errors.extend(e.errors)

        check_min(self.retry_attempts, "retry_attempts", 1, errors)
        check_min(self.retry_delay_ms, "retry_delay_ms", 0, errors)
        check_min(self.retry_backoff_multiplier, "retry_backoff_multiplier", 1, errors)
        if self.retry_max_delay_ms < self.retry_delay_ms:
            errors.append("retry_max_delay_ms must be >= retry_delay_ms")

        check_min(self.request_timeout_ms, "request_timeout_ms", 1000, errors)

        return errors

    def __post_init__(self) -> None:
        """Normaliza e valida a configuração."""
        if isinstance(self.backend, str):
            self.backend = self.backend.strip().lower()
        if isinstance(self.api_url, str):
            self.api_url = self.api_url.strip().rstrip("/")

        errors = self.validate()
        if errors:
            raise ConfigValidationError(errors, backend=str(self.backend))

        if self.logger is None:
            self.logger = _default_logger("resilient_cms", debug=self.debug_logging)

    def cache_config(self) -> CacheConfig:
        """Monta a configuração do cache a partir destes settings."""
        return CacheConfig(
            enabled=self.cache_enabled,
            ttl=self.cache_ttl,
            stale_window=self.stale_window,
            max_entries=self.cache_max_entries,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        """Monta a configuração do circuit breaker a partir destes settings."""
        return CircuitBreakerConfig(
            enabled=self.circuit_breaker_enabled,
            threshold=self.circuit_breaker_threshold,
            timeout=self.circuit_breaker_timeout,
            half_open_timeout=self.circuit_breaker_half_open_timeout,
        )

    def retry_policy(self) -> RetryPolicy:
        """Monta a política de retry (convertendo milissegundos em segundos)."""
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            initial_delay=self.retry_delay_ms / 1000.0,
            max_delay=self.retry_max_delay_ms / 1000.0,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    @property
    def request_timeout(self) -> float:
        """Timeout de requisição em segundos."""
        return self.request_timeout_ms / 1000.0

    def safe_dict(self) -> dict:
        """Configuração sem dados sensíveis, adequada para log."""
        return {
            "backend": self.backend,
            "api_url": self.api_url,
            "has_api_token": bool(self.api_token),
            "project_id": self.project_id,
            "dataset": self.dataset,
            "cache_enabled": self.cache_enabled,
            "cache_ttl": self.cache_ttl,
            "stale_window": self.stale_window,
            "retry_attempts": self.retry_attempts,
            "circuit_breaker_enabled": self.circuit_breaker_enabled,
            "request_timeout_ms": self.request_timeout_ms,
            "debug_logging": self.debug_logging,
        }

    @classmethod
    def from_mapping(
        cls,
        config: Mapping[str, Any],
        logger: Optional[logging.Logger] = None,
    ) -> "ProviderSettings":
        """
        Cria configuração a partir de chaves no estilo variável de ambiente.

        Erros de conversão e de validação são reportados juntos em um
        único ConfigValidationError.

        Args:
            config: Mapeamento com chaves CMS_* (os.environ, app.config, dict)
            logger: Logger opcional

        Returns:
            Instância de ProviderSettings

        Example:
            >>> settings = ProviderSettings.from_mapping({
            ...     "CMS_PROVIDER": "sanity",
            ...     "CMS_API_URL": "https://abc123.api.sanity.io",
            ...     "CMS_PROJECT_ID": "abc123",
            ...     "CMS_DATASET": "production",
            ... })
        """
        errors: List[str] = []
        kwargs: Dict[str, Any] = {
            "backend": config.get("CMS_PROVIDER") or "baserow",
            "api_url": config.get("CMS_API_URL") or config.get("BASEROW_API_URL") or "",
            "api_token": config.get("CMS_API_TOKEN") or config.get("BASEROW_API_TOKEN"),
            "project_id": config.get("CMS_PROJECT_ID"),
            "dataset": config.get("CMS_DATASET"),
            "logger": logger,
        }

        parsers = (
            ("CMS_CACHE_ENABLED", "cache_enabled", parse_bool),
            ("CMS_CACHE_TIME", "cache_ttl", parse_int),
            ("CMS_STALE_WHILE_REVALIDATE", "stale_window", parse_int),
            ("CMS_CACHE_MAX_SIZE", "cache_max_entries", parse_int),
            ("CMS_RETRY_ATTEMPTS", "retry_attempts", parse_int),
            ("CMS_RETRY_DELAY", "retry_delay_ms", parse_int),
            ("CMS_RETRY_MAX_DELAY", "retry_max_delay_ms", parse_int),
            ("CMS_RETRY_BACKOFF_MULTIPLIER", "retry_backoff_multiplier", parse_float),
            ("CMS_ENABLE_CIRCUIT_BREAKER", "circuit_breaker_enabled", parse_bool),
            ("CMS_CIRCUIT_BREAKER_THRESHOLD", "circuit_breaker_threshold", parse_int),
            ("CMS_CIRCUIT_BREAKER_TIMEOUT", "circuit_breaker_timeout", parse_int),
            (
                "CMS_CIRCUIT_BREAKER_HALF_OPEN_TIMEOUT",
                "circuit_breaker_half_open_timeout",
                parse_int,
            ),
            ("CMS_TIMEOUT", "request_timeout_ms", parse_int),
            ("CMS_ENABLE_DEBUG_LOGGING", "debug_logging", parse_bool),
        )
        for key, field_name, parser in parsers:
            raw = config.get(key)
            if raw is None or raw == "":
                continue
            value = parser(raw, key, errors)
            if value is not None:
                kwargs[field_name] = value

        try:
            settings = cls(**kwargs)
        except ConfigValidationError as e:
            raise ConfigValidationError(errors + e.errors, backend=e.backend) from None

        if errors:
            raise ConfigValidationError(errors, backend=settings.backend)
        return settings

    @classmethod
    def from_env(cls, logger: Optional[logging.Logger] = None) -> "ProviderSettings":
        """Cria configuração a partir de os.environ."""
        return cls.from_mapping(os.environ, logger=logger)

    @classmethod
    def from_flask_config(cls, config: Mapping[str, Any]) -> "ProviderSettings":
        """
        Cria configuração a partir de um dict de configuração Flask.

        Example:
            >>> app.config['CMS_PROVIDER'] = 'baserow'
            >>> app.config['CMS_API_URL'] = 'https://api.baserow.io'
            >>> settings = ProviderSettings.from_flask_config(app.config)
        """
        return cls.from_mapping(config)
