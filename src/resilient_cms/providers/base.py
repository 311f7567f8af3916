"""
Interface base dos providers de conteúdo.

A classe base concentra a orquestração comum a todos os backends
(cache, stale-while-revalidate, coalescência, circuit breaker e retry);
as subclasses implementam apenas o protocolo de cada backend.
"""

import concurrent.futures
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

from ..cache_store import CacheStatus, CacheStore
from ..circuit_breaker import CircuitBreaker
from ..coalescer import RequestCoalescer
from ..config import ProviderSettings
from ..error_classifier import classify
from ..exceptions import ProviderError, ValidationError
from ..models import NormalizedRecord, PagedResult, QueryOptions, generate_cache_key
from ..retry import is_retryable, retry
from ..transport import HttpTransport, auth_headers

MAX_PAGE_SIZE = 1000

Loader = Callable[[], Any]
TagsFor = Callable[[Any], Iterable[str]]


class ContentProvider(ABC):
    """
    Provider de conteúdo de um backend.

    Leituras:
        chave de cache -> lookup -> fresco: devolve
                                 -> stale: devolve e agenda um refresh
                                 -> miss: coalescer -> breaker(retry(transporte))
                                          -> normaliza -> grava no cache

    Escritas:
        breaker(transporte), sem retry -> invalida as tags afetadas

    Erros sempre saem como ProviderError.
    """

    name: str = "unknown"
    """Identificador do backend no registry"""

    auth_scheme: str = "Bearer"
    """Esquema do header Authorization"""

    def __init__(
        self,
        settings: ProviderSettings,
        cache: Optional[CacheStore] = None,
        transport: Optional[HttpTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
        coalescer: Optional[RequestCoalescer] = None,
        sleep: Callable[[float], Any] = time.sleep,
        refresh_workers: int = 2,
    ) -> None:
        """
        Inicializa o provider.

        Args:
            settings: Configuração validada
            cache: Cache compartilhado (padrão: um novo CacheStore)
            transport: Transporte HTTP (padrão: HttpTransport com os headers do backend)
            breaker: Circuit breaker (padrão: um por provider)
            coalescer: Coalescer de leituras concorrentes
            sleep: Função de espera usada pelo retry (injetável para testes)
            refresh_workers: Threads para refresh em segundo plano
        """
        self.settings = settings
        self.logger = settings.logger or logging.getLogger(__name__)

        self.cache = cache or CacheStore(
            max_entries=settings.cache_max_entries,
            logger=self.logger,
        )
        self.transport = transport or HttpTransport(
            self.name,
            headers=self.auth_headers_for(settings),
            timeout=settings.request_timeout,
            logger=self.logger,
        )
        self.breaker = breaker or CircuitBreaker(
            settings.breaker_config(),
            backend=self.name,
            logger=self.logger,
        )
        self.retry_policy = settings.retry_policy()
        self.coalescer = coalescer or RequestCoalescer(
            timeout=self._read_budget(),
            backend=self.name,
            logger=self.logger,
        )
        self._sleep = sleep

        self._refresh_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=refresh_workers,
            thread_name_prefix=f"cms-{self.name}-refresh",
        )
        self._revalidating: Set[str] = set()
        self._revalidating_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Operações públicas
    # ------------------------------------------------------------------

    def fetch_all(
        self,
        collection: str,
        options: Optional[QueryOptions] = None,
    ) -> PagedResult:
        """
        Lista uma página de registros.

        Args:
            collection: Tabela, coleção ou tipo de documento
            options: Paginação, ordenação, filtros, busca e campos

        Returns:
            Página normalizada
        """
        options = options or QueryOptions()
        self._check_collection(collection)
        self._check_options(options)

        key = generate_cache_key(self.name, collection, options.canonical())
        return self._read_through(
            key,
            lambda: self._fetch_page(collection, options),
            lambda _page: [collection, self.name],
            operation=f"{self.name}.fetch_all({collection})",
        )

    def fetch_by_id(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        """
        Busca um registro pelo id.

        Returns:
            O registro, ou None se o backend responder 404
        """
        self._check_collection(collection)
        self._check_identifier(record_id, "id")

        key = generate_cache_key(self.name, collection, {"id": str(record_id)})
        return self._read_through(
            key,
            lambda: self._fetch_record(collection, str(record_id)),
            lambda record: [collection, self.name, f"{collection}:{record.id}"],
            operation=f"{self.name}.fetch_by_id({collection}, {record_id})",
        )

    def fetch_by_slug(self, collection: str, slug: str) -> Optional[NormalizedRecord]:
        """
        Busca um registro pelo slug.

        A entrada de cache é marcada com o id do registro encontrado, então
        update/delete desse registro também a invalidam.
        """
        self._check_collection(collection)
        self._check_identifier(slug, "slug")

        key = generate_cache_key(self.name, collection, {"slug": slug})
        return self._read_through(
            key,
            lambda: self._fetch_slug(collection, slug),
            lambda record: [collection, self.name, f"{collection}:{record.id}"],
            operation=f"{self.name}.fetch_by_slug({collection}, {slug})",
        )

    def search(
        self,
        collection: str,
        query: str,
        options: Optional[QueryOptions] = None,
    ) -> PagedResult:
        """Busca textual; equivale a fetch_all com ``options.search``."""
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("search query must be a non-empty string", backend=self.name)
        options = (options or QueryOptions()).with_changes(search=query.strip())
        return self.fetch_all(collection, options)

    def create(self, collection: str, data: Mapping[str, Any]) -> NormalizedRecord:
        """Cria um registro e invalida a coleção."""
        self._check_collection(collection)
        self._check_payload(data)
        return self._mutate(
            lambda: self._create_record(collection, dict(data)),
            [collection],
            operation=f"{self.name}.create({collection})",
        )

    def update(
        self,
        collection: str,
        record_id: str,
        data: Mapping[str, Any],
    ) -> NormalizedRecord:
        """Atualiza campos de um registro e invalida a coleção e o registro."""
        self._check_collection(collection)
        self._check_identifier(record_id, "id")
        self._check_payload(data)
        return self._mutate(
            lambda: self._update_record(collection, str(record_id), dict(data)),
            [collection, *self._record_tags(collection, str(record_id))],
            operation=f"{self.name}.update({collection}, {record_id})",
        )

    def delete(self, collection: str, record_id: str) -> None:
        """Remove um registro e invalida a coleção e o registro."""
        self._check_collection(collection)
        self._check_identifier(record_id, "id")
        self._mutate(
            lambda: self._delete_record(collection, str(record_id)),
            [collection, *self._record_tags(collection, str(record_id))],
            operation=f"{self.name}.delete({collection}, {record_id})",
        )

    def revalidate(self, tags: Union[str, Iterable[str], None] = None) -> int:
        """
        Invalida entradas do cache pelas tags.

        Args:
            tags: Uma tag ou uma lista de tags

        Returns:
            Número de entradas removidas
        """
        if not tags:
            return 0
        return self.cache.invalidate_by_tags(tags)

    def get_stats(self) -> Dict[str, Any]:
        """Estatísticas de cache, circuit breaker e coalescer."""
        with self._revalidating_lock:
            refreshing = len(self._revalidating)
        return {
            "backend": self.name,
            "cache": self.cache.stats(),
            "circuit_breaker": self.breaker.get_stats(),
            "coalescer": self.coalescer.get_stats(),
            "refreshing": refreshing,
        }

    def close(self) -> None:
        """Libera threads e conexões."""
        self._refresh_executor.shutdown(wait=False)
        self.transport.close()

    # ------------------------------------------------------------------
    # Protocolo de cada backend
    # ------------------------------------------------------------------

    @abstractmethod
    def _fetch_page(self, collection: str, options: QueryOptions) -> PagedResult:
        """Uma chamada de listagem ao backend."""

    @abstractmethod
    def _fetch_record(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        """Uma chamada de leitura por id; None em 404."""

    def _fetch_slug(self, collection: str, slug: str) -> Optional[NormalizedRecord]:
        """Leitura por slug. Padrão: listagem filtrada por ``slug``."""
        page = self._fetch_page(collection, QueryOptions(page_size=1, filters={"slug": slug}))
        return page.items[0] if page.items else None

    @abstractmethod
    def _create_record(self, collection: str, data: Dict[str, Any]) -> NormalizedRecord:
        """Uma chamada de criação."""

    @abstractmethod
    def _update_record(
        self, collection: str, record_id: str, data: Dict[str, Any]
    ) -> NormalizedRecord:
        """Uma chamada de atualização parcial."""

    @abstractmethod
    def _delete_record(self, collection: str, record_id: str) -> None:
        """Uma chamada de remoção."""

    def _record_tags(self, collection: str, record_id: str) -> List[str]:
        """Tags das entradas de cache de um registro, invalidadas em update/delete."""
        return [f"{collection}:{record_id}"]

    @classmethod
    def auth_headers_for(cls, settings: ProviderSettings) -> Dict[str, str]:
        """Headers de autenticação do backend para estes settings."""
        return auth_headers(cls.auth_scheme, settings.api_token)

    # ------------------------------------------------------------------
    # Orquestração
    # ------------------------------------------------------------------

    def _read_through(
        self,
        key: str,
        loader: Loader,
        tags_for: TagsFor,
        operation: str,
    ) -> Any:
        if not self.settings.cache_enabled:
            return self.coalescer.get_or_fetch(key, lambda: self._load(loader, operation))

        data, status = self.cache.lookup(key)
        if status == CacheStatus.FRESH:
            return data
        if status == CacheStatus.STALE:
            self._schedule_refresh(key, loader, tags_for, operation)
            return data

        return self.coalescer.get_or_fetch(
            key, lambda: self._load_and_store(key, loader, tags_for, operation)
        )

    def _load(self, loader: Loader, operation: str) -> Any:
        """breaker(retry(loader)); só erros repetíveis contam como falha."""

        def attempt() -> Any:
            try:
                return loader()
            except ProviderError:
                raise
            except Exception as e:
                raise classify(e, self.name) from e

        return self.breaker.call(
            retry,
            attempt,
            is_failure=is_retryable,
            policy=self.retry_policy,
            sleep=self._sleep,
            operation_name=operation,
        )

    def _load_and_store(
        self,
        key: str,
        loader: Loader,
        tags_for: TagsFor,
        operation: str,
    ) -> Any:
        marker = self.cache.generation()
        result = self._load(loader, operation)
        if result is not None:
            self.cache.set(
                key,
                result,
                ttl=self.settings.cache_ttl,
                stale_window=self.settings.stale_window,
                tags=tags_for(result),
                since=marker,
            )
        return result

    def _schedule_refresh(
        self,
        key: str,
        loader: Loader,
        tags_for: TagsFor,
        operation: str,
    ) -> bool:
        """Agenda um refresh em segundo plano, no máximo um por chave."""
        with self._revalidating_lock:
            if key in self._revalidating:
                return False
            self._revalidating.add(key)

        try:
            self._refresh_executor.submit(self._refresh, key, loader, tags_for, operation)
        except RuntimeError:
            # Executor já encerrado (close)
            with self._revalidating_lock:
                self._revalidating.discard(key)
            return False
        return True

    def _refresh(self, key: str, loader: Loader, tags_for: TagsFor, operation: str) -> None:
        try:
            self.coalescer.get_or_fetch(
                key, lambda: self._load_and_store(key, loader, tags_for, operation)
            )
            self.logger.debug(f"Background refresh completed: {key}")
        except ProviderError as e:
            self.logger.warning(f"Background refresh failed for {key}: {e}")
        finally:
            with self._revalidating_lock:
                self._revalidating.discard(key)

    def _mutate(self, operation_fn: Loader, tags: List[str], operation: str) -> Any:
        """Mutação protegida pelo breaker, sem retry, seguida de invalidação."""

        def attempt() -> Any:
            try:
                return operation_fn()
            except ProviderError:
                raise
            except Exception as e:
                raise classify(e, self.name) from e

        result = self.breaker.call(attempt, is_failure=is_retryable)
        removed = self.cache.invalidate_by_tags(tags)
        self.logger.debug(f"{operation} invalidated {removed} cache entries")
        return result

    def _read_budget(self) -> float:
        """Tempo máximo de uma sequência completa de tentativas de leitura."""
        policy = self.settings.retry_policy()
        waits = sum(policy.compute_delay(n) for n in range(1, policy.max_attempts))
        return self.settings.request_timeout * policy.max_attempts + waits

    # ------------------------------------------------------------------
    # Validação de entrada
    # ------------------------------------------------------------------

    def _check_collection(self, collection: str) -> None:
        if not isinstance(collection, str) or not collection.strip():
            raise ValidationError("collection must be a non-empty string", backend=self.name)

    def _check_identifier(self, value: Any, field_name: str) -> None:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field_name} must not be empty", backend=self.name)
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{field_name} must be a string or integer", backend=self.name)

    def _check_options(self, options: QueryOptions) -> None:
        errors = []
        if options.page < 1:
            errors.append("page must be >= 1")
        if not 1 <= options.page_size <= MAX_PAGE_SIZE:
            errors.append(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        if errors:
            raise ValidationError("; ".join(errors), backend=self.name)

    def _check_payload(self, data: Any) -> None:
        if not isinstance(data, Mapping) or not data:
            raise ValidationError("data must be a non-empty mapping", backend=self.name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} backend={self.name} url={self.settings.api_url}>"
