"""
Cache em memória com TTL, janela de stale e invalidação por tags.

O mapa de entradas é um cachetools.FIFOCache: a ordem de escrita é a
ordem de despejo, então o item mais antigo é sempre o primeiro a sair
quando o cache está cheio. O mapa e o índice de tags são alterados
juntos sob o mesmo lock.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Pattern, Set, Tuple, Union

from cachetools import FIFOCache


def _as_tags(tags: Union[str, Iterable[str]]) -> FrozenSet[str]:
    if isinstance(tags, str):
        return frozenset([tags])
    return frozenset(tags)


class CacheStatus(Enum):
    """Resultado de uma consulta ao cache."""

    FRESH = "fresh"  # Dentro do TTL
    STALE = "stale"  # Após o TTL, mas dentro da janela de stale
    MISS = "miss"  # Ausente ou totalmente expirado


@dataclass(frozen=True)
class CacheEntry:
    """Item armazenado no cache."""

    data: Any
    expiry: float
    stale_expiry: Optional[float]
    tags: FrozenSet[str]
    written_at: float

    @property
    def purge_at(self) -> float:
        """Instante a partir do qual o item não pode mais ser servido."""
        return self.stale_expiry if self.stale_expiry is not None else self.expiry

    def status_at(self, now: float) -> CacheStatus:
        if now <= self.expiry:
            return CacheStatus.FRESH
        if now <= self.purge_at:
            return CacheStatus.STALE
        return CacheStatus.MISS


class CacheStore:
    """
    Cache em processo com stale-while-revalidate e tags.

    O próprio cache nunca revalida dados: ele apenas informa (lookup)
    que um item está stale e cabe ao chamador disparar o refresh.

    Example:
        >>> cache = CacheStore(max_entries=500)
        >>> cache.set("cms:baserow:stations:{}", page, ttl=60,
        ...           stale_window=300, tags=["stations", "baserow"])
        >>> cache.get("cms:baserow:stations:{}")
        >>> cache.invalidate_by_tags(["stations"])
    """

    def __init__(
        self,
        max_entries: int = 1000,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Inicializa o cache.

        Args:
            max_entries: Número máximo de itens
            logger: Logger opcional
            clock: Fonte de tempo em segundos (injetável para testes)
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.max_entries = max_entries
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

        self._entries: FIFOCache = FIFOCache(maxsize=max_entries)
        self._tag_index: Dict[str, Set[str]] = {}
        self._lock = RLock()

        # Geração de invalidação: cada invalidate_by_tags/clear avança o
        # contador e marca as tags afetadas com o novo valor.
        self._generation = 0
        self._tag_generations: Dict[str, int] = {}
        self._cleared_at = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def lookup(self, key: str) -> Tuple[Any, CacheStatus]:
        """
        Busca um item e informa se ele está fresco ou stale.

        Itens totalmente expirados são removidos.

        Args:
            key: Chave para buscar

        Returns:
            (dados, status); dados é None quando status é MISS
        """
        with self._lock:
            entry: Optional[CacheEntry] = self._entries.get(key)
            if entry is None:
                self._misses += 1
                self.logger.debug(f"Cache miss: {key}")
                return None, CacheStatus.MISS

            status = entry.status_at(self._clock())
            if status == CacheStatus.MISS:
                self._delete_locked(key)
                self._misses += 1
                self.logger.debug(f"Cache expired: {key}")
                return None, CacheStatus.MISS

            self._hits += 1
            self.logger.debug(f"Cache hit ({status.value}): {key}")
            return entry.data, status

    def get(self, key: str) -> Any:
        """
        Busca um valor no cache.

        Args:
            key: Chave para buscar

        Returns:
            O valor (fresco ou stale), ou None se ausente/expirado
        """
        data, _ = self.lookup(key)
        return data

    def set(
        self,
        key: str,
        data: Any,
        ttl: float,
        stale_window: float = 0,
        tags: Union[str, Iterable[str]] = (),
        since: Optional[int] = None,
    ) -> bool:
        """
        Armazena um valor no cache.

        Se o cache estiver cheio e a chave for nova, o item mais antigo
        é despejado antes da inserção.

        Args:
            key: Chave para armazenar
            data: Valor a ser armazenado (None não é permitido)
            ttl: Segundos em que o valor é fresco
            stale_window: Segundos adicionais em que o valor pode ser servido stale
            tags: Tag ou tags para invalidação em grupo
            since: Geração obtida com generation() antes de buscar o valor;
                se alguma das tags foi invalidada depois dela, nada é gravado

        Returns:
            True se o valor foi gravado

        Example:
            >>> marker = cache.generation()
            >>> page = fetch_page()
            >>> cache.set(key, page, ttl=60, tags=["stations"], since=marker)
        """
        if data is None:
            raise ValueError("None cannot be cached; it is reserved for cache misses")

        now = self._clock()
        expiry = now + ttl
        entry = CacheEntry(
            data=data,
            expiry=expiry,
            stale_expiry=expiry + stale_window if stale_window > 0 else None,
            tags=_as_tags(tags),
            written_at=now,
        )

        with self._lock:
            if since is not None and self._invalidated_since_locked(entry.tags, since):
                self.logger.debug(f"Cache set skipped, tags invalidated meanwhile: {key}")
                return False

            if key in self._entries:
                self._unindex_locked(key, self._entries[key].tags)
            elif len(self._entries) >= self.max_entries:
                self._evict_oldest_locked()

            self._entries[key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(key)

        self.logger.debug(f"Cache set: {key} (ttl={ttl}s, stale={stale_window}s)")
        return True

    def generation(self) -> int:
        """Geração de invalidação atual, para uso com set(since=...)."""
        with self._lock:
            return self._generation

    def delete(self, key: str) -> bool:
        """
        Remove um item e o retira de todas as suas tags.

        Returns:
            True se o item existia
        """
        with self._lock:
            return self._delete_locked(key)

    def invalidate_by_tags(self, tags: Union[str, Iterable[str]]) -> int:
        """
        Remove todos os itens marcados com qualquer uma das tags.

        Uma string é tratada como uma única tag. Gravações com
        set(since=...) iniciadas antes desta chamada e marcadas com
        alguma destas tags são descartadas.

        Returns:
            Número de itens removidos (cada item conta uma vez)
        """
        removed = 0
        with self._lock:
            self._generation += 1
            for tag in _as_tags(tags):
                self._tag_generations[tag] = self._generation
                for key in list(self._tag_index.get(tag, ())):
                    if self._delete_locked(key):
                        removed += 1

        if removed:
            self.logger.info(f"Invalidated {removed} cache entries by tags")
        return removed

    def invalidate_by_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Remove todos os itens cuja chave casa com a expressão regular.

        Returns:
            Número de itens removidos
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        removed = 0
        with self._lock:
            for key in [k for k in self._entries.keys() if regex.search(k)]:
                if self._delete_locked(key):
                    removed += 1

        if removed:
            self.logger.info(f"Invalidated {removed} cache entries matching '{regex.pattern}'")
        return removed

    def cleanup(self) -> int:
        """
        Remove proativamente os itens que já passaram da janela de stale.

        Returns:
            Número de itens removidos
        """
        now = self._clock()
        removed = 0
        with self._lock:
            expired = [k for k, entry in self._entries.items() if now > entry.purge_at]
            for key in expired:
                if self._delete_locked(key):
                    removed += 1

        if removed:
            self.logger.debug(f"Cache cleanup removed {removed} entries")
        return removed

    def is_stale(self, key: str) -> bool:
        """Indica se o item existe mas já passou do TTL (sem alterar contadores)."""
        with self._lock:
            entry: Optional[CacheEntry] = self._entries.get(key)
            if entry is None:
                return False
            return entry.status_at(self._clock()) == CacheStatus.STALE

    def clear(self) -> int:
        """
        Limpa todo o cache.

        Returns:
            Número de itens removidos
        """
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
            self._tag_index.clear()
            self._generation += 1
            self._cleared_at = self._generation
            self._tag_generations.clear()
        self.logger.info(f"Cache cleared: {size} items removed")
        return size

    def keys(self) -> List[str]:
        """Lista as chaves presentes (inclusive as ainda não expurgadas)."""
        with self._lock:
            return list(self._entries.keys())

    def tags_for(self, key: str) -> FrozenSet[str]:
        """Tags do item, ou conjunto vazio se ausente."""
        with self._lock:
            entry: Optional[CacheEntry] = self._entries.get(key)
            return entry.tags if entry is not None else frozenset()

    def stats(self) -> dict:
        """
        Retorna um snapshot das estatísticas.

        Returns:
            Dicionário com hits, misses, size e evictions
        """
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "evictions": self._evictions,
            }

    def _evict_oldest_locked(self) -> None:
        key, entry = self._entries.popitem()
        self._unindex_locked(key, entry.tags)
        self._evictions += 1
        self.logger.debug(f"Cache evicted oldest entry: {key}")

    def _delete_locked(self, key: str) -> bool:
        entry: Optional[CacheEntry] = self._entries.pop(key, None)
        if entry is None:
            return False
        self._unindex_locked(key, entry.tags)
        return True

    def _invalidated_since_locked(self, tags: Iterable[str], since: int) -> bool:
        if self._cleared_at > since:
            return True
        return any(self._tag_generations.get(tag, 0) > since for tag in tags)

    def _unindex_locked(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        """Representação string do cache."""
        return f"<CacheStore size={len(self)}/{self.max_entries}>"
