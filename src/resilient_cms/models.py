"""
Tipos de dados compartilhados por todos os providers.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence


class RecordStatus(str, Enum):
    """Estado editorial de um registro."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: Any) -> Optional["RecordStatus"]:
        """Converte um valor do backend, ignorando valores desconhecidos."""
        if isinstance(value, dict):
            # Campos single-select do Baserow: {"id": 1, "value": "published"}
            value = value.get("value")
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_timestamp(value: Any) -> datetime:
    """
    Converte um timestamp do backend em datetime com timezone.

    Aceita datetime ou string ISO 8601 (inclusive com sufixo ``Z``).
    Valores ausentes ou inválidos viram o instante atual (UTC).
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.now(timezone.utc)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NormalizedRecord:
    """
    Registro no formato interno único.

    Produzido apenas pelos providers; os campos específicos do backend
    ficam em ``fields`` e podem ser lidos com ``record["campo"]``.
    """

    id: str
    created_at: datetime
    updated_at: datetime
    slug: Optional[str] = None
    status: Optional[RecordStatus] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.fields)
        result.update(
            {
                "id": self.id,
                "created_at": self.created_at.isoformat(),
                "updated_at": self.updated_at.isoformat(),
                "slug": self.slug,
                "status": self.status.value if self.status else None,
            }
        )
        return result


@dataclass(frozen=True)
class PagedResult:
    """Página de resultados."""

    items: Sequence[NormalizedRecord]
    total: int
    page: int
    page_size: int
    has_more: bool
    next_cursor: Optional[str] = None
    """Cursor da próxima página, para backends paginados por cursor"""

    def __iter__(self) -> Iterator[NormalizedRecord]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class SortSpec:
    field: str
    order: str = "asc"

    def __post_init__(self) -> None:
        if self.order not in ("asc", "desc"):
            raise ValueError("sort order must be 'asc' or 'desc'")

    @property
    def descending(self) -> bool:
        return self.order == "desc"


@dataclass(frozen=True)
class QueryOptions:
    """Opções de listagem, independentes de backend."""

    page: int = 1
    page_size: int = 100
    sort: Optional[SortSpec] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    search: Optional[str] = None
    fields: Optional[List[str]] = None
    cursor: Optional[str] = None

    def with_changes(self, **changes: Any) -> "QueryOptions":
        values = {
            "page": self.page,
            "page_size": self.page_size,
            "sort": self.sort,
            "filters": dict(self.filters),
            "search": self.search,
            "fields": list(self.fields) if self.fields is not None else None,
            "cursor": self.cursor,
        }
        values.update(changes)
        return QueryOptions(**values)

    def canonical(self) -> Dict[str, Any]:
        """Forma canônica usada nas chaves de cache (sem valores None)."""
        values: Dict[str, Any] = {
            "page": self.page,
            "page_size": self.page_size,
            "sort": [self.sort.field, self.sort.order] if self.sort else None,
            "filters": dict(sorted(self.filters.items())) if self.filters else None,
            "search": self.search,
            "fields": sorted(self.fields) if self.fields else None,
            "cursor": self.cursor,
        }
        return {k: v for k, v in values.items() if v is not None}


def generate_cache_key(
    backend: str,
    collection: str,
    params: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Gera a chave de cache de uma leitura.

    Example:
        >>> generate_cache_key("baserow", "stations", {"page": 2, "page_size": 10})
        'cms:baserow:stations:{"page":2,"page_size":10}'
    """
    params_str = (
        json.dumps(params, sort_keys=True, separators=(",", ":"), default=str) if params else ""
    )
    return f"cms:{backend}:{collection}:{params_str}"
