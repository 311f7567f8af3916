"""
Registry e factory de providers.

Seleciona a implementação pelo backend configurado e monta o provider
com cache, transporte e circuit breaker. Também expõe um provider
global preguiçoso (get_provider/reset_provider) para scripts; em
aplicações prefira ContentService ou a integração Flask.
"""

import logging
import threading
from typing import Dict, List, Optional, Type

import requests

from .cache_store import CacheStore
from .config import ProviderSettings
from .providers.airtable import AirtableProvider
from .providers.base import ContentProvider
from .providers.baserow import BaserowProvider
from .providers.sanity import SanityProvider
from .transport import HttpTransport

PROVIDERS: Dict[str, Type[ContentProvider]] = {
    BaserowProvider.name: BaserowProvider,
    AirtableProvider.name: AirtableProvider,
    SanityProvider.name: SanityProvider,
}

_provider: Optional[ContentProvider] = None
_provider_lock = threading.Lock()


def available_backends() -> List[str]:
    """Backends registrados, em ordem alfabética."""
    return sorted(PROVIDERS)


def register_provider(name: str, provider_cls: Type[ContentProvider]) -> None:
    """
    Registra uma implementação de provider.

    Example:
        >>> register_provider("strapi", StrapiProvider)
    """
    if not isinstance(provider_cls, type) or not issubclass(provider_cls, ContentProvider):
        raise TypeError("provider_cls must be a ContentProvider subclass")
    PROVIDERS[name.strip().lower()] = provider_cls


class ProviderFactory:
    """
    Factory para criar providers a partir de ProviderSettings.

    Example:
        >>> settings = ProviderSettings.from_env()
        >>> factory = ProviderFactory(settings)
        >>> provider = factory.create_provider()
    """

    def __init__(
        self,
        settings: ProviderSettings,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Inicializa a factory.

        Args:
            settings: Configuração validada
            logger: Logger opcional
        """
        self.settings = settings
        self.logger = logger or settings.logger or logging.getLogger(__name__)

    def create_cache(self) -> CacheStore:
        """Cria um cache com os limites da configuração."""
        return CacheStore(max_entries=self.settings.cache_max_entries, logger=self.logger)

    def create_provider(
        self,
        cache: Optional[CacheStore] = None,
        session: Optional[requests.Session] = None,
    ) -> ContentProvider:
        """
        Cria o provider do backend configurado.

        Args:
            cache: Cache compartilhado (padrão: um novo)
            session: Sessão requests a usar (padrão: uma nova)

        Returns:
            Provider pronto para uso
        """
        provider_cls = PROVIDERS.get(self.settings.backend)
        if provider_cls is None:
            raise ValueError(
                f"Unknown CMS backend: {self.settings.backend}. "
                f"Available: {', '.join(available_backends())}"
            )

        transport = None
        if session is not None:
            transport = HttpTransport(
                provider_cls.name,
                headers=provider_cls.auth_headers_for(self.settings),
                timeout=self.settings.request_timeout,
                session=session,
                logger=self.logger,
            )

        provider = provider_cls(
            self.settings,
            cache=cache or self.create_cache(),
            transport=transport,
        )
        self.logger.info(f"CMS provider created: {self.settings.safe_dict()}")
        return provider

    def __repr__(self) -> str:
        return f"<ProviderFactory backend={self.settings.backend}>"


def get_provider(settings: Optional[ProviderSettings] = None) -> ContentProvider:
    """
    Provider global, criado na primeira chamada.

    Args:
        settings: Configuração usada na criação (padrão: ProviderSettings.from_env())

    Returns:
        Sempre a mesma instância até reset_provider()
    """
    global _provider
    with _provider_lock:
        if _provider is None:
            _provider = ProviderFactory(settings or ProviderSettings.from_env()).create_provider()
        return _provider


def reset_provider() -> None:
    """Descarta o provider global (e seu cache)."""
    global _provider
    with _provider_lock:
        if _provider is not None:
            _provider.close()
        _provider = None
