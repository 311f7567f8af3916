"""
Serviço de conteúdo independente de framework.

Fornece uma fachada para inicialização e uso do provider configurado
em qualquer contexto de aplicação, sem depender do provider global.
"""

import logging
from typing import Any, Iterable, Mapping, Optional

import requests

from .config import ProviderSettings
from .models import NormalizedRecord, PagedResult, QueryOptions
from .providers.base import ContentProvider
from .registry import ProviderFactory


class ContentService:
    """
    Serviço principal de acesso a conteúdo.

    Fornece uma interface simples para:
    - Inicialização com configuração própria
    - Leituras e escritas delegadas ao provider
    - Invalidação e estatísticas

    Example:
        >>> from resilient_cms import ContentService, ProviderSettings
        >>>
        >>> settings = ProviderSettings(
        ...     backend="baserow",
        ...     api_url="https://api.baserow.io",
        ...     api_token="...",
        ... )
        >>> content = ContentService(settings)
        >>> stations = content.fetch_all("1234")
    """

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Inicializa o serviço.

        Args:
            settings: Configuração do provider (opcional)
            logger: Logger opcional
            session: Sessão requests a usar (opcional)
        """
        self._provider: Optional[ContentProvider] = None
        self._logger: Optional[logging.Logger] = logger
        self._session = session

        if settings is not None:
            self.init_config(settings, logger=logger)

    def init_config(
        self,
        settings: ProviderSettings,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Inicializa o serviço com uma configuração.

        Um provider anterior é fechado antes de ser substituído.

        Example:
            >>> content = ContentService()
            >>> content.init_config(ProviderSettings.from_env())
        """
        self._logger = logger or self._logger or settings.logger or logging.getLogger(__name__)
        settings.logger = self._logger

        if self._provider is not None:
            self._provider.close()

        self._provider = ProviderFactory(settings, self._logger).create_provider(
            session=self._session
        )
        self._logger.info(f"ContentService initialized for backend {settings.backend}")

    @property
    def provider(self) -> ContentProvider:
        """
        Provider configurado.

        Raises:
            RuntimeError: Se não foi inicializado com init_config
        """
        if self._provider is None:
            raise RuntimeError("ContentService not initialized. Call init_config(settings) first.")
        return self._provider

    def fetch_all(self, collection: str, options: Optional[QueryOptions] = None) -> PagedResult:
        return self.provider.fetch_all(collection, options)

    def fetch_by_id(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        return self.provider.fetch_by_id(collection, record_id)

    def fetch_by_slug(self, collection: str, slug: str) -> Optional[NormalizedRecord]:
        return self.provider.fetch_by_slug(collection, slug)

    def search(
        self, collection: str, query: str, options: Optional[QueryOptions] = None
    ) -> PagedResult:
        return self.provider.search(collection, query, options)

    def create(self, collection: str, data: Mapping[str, Any]) -> NormalizedRecord:
        return self.provider.create(collection, data)

    def update(self, collection: str, record_id: str, data: Mapping[str, Any]) -> NormalizedRecord:
        return self.provider.update(collection, record_id, data)

    def delete(self, collection: str, record_id: str) -> None:
        self.provider.delete(collection, record_id)

    def revalidate(self, tags: Optional[Iterable[str]] = None) -> int:
        return self.provider.revalidate(tags)

    def get_stats(self) -> dict:
        """
        Retorna estatísticas do provider.

        Example:
            >>> content.get_stats()["circuit_breaker"]["state"]
            'closed'
        """
        return self.provider.get_stats()

    def close(self) -> None:
        """Fecha o provider, se houver."""
        if self._provider is not None:
            self._provider.close()
            self._provider = None

    def __repr__(self) -> str:
        """Representação string do serviço."""
        initialized = self._provider is not None
        return f"<ContentService initialized={initialized}>"
