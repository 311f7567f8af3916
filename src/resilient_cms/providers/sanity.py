"""
Provider do Sanity.

Consultas GROQ em ``/data/query/<dataset>`` com paginação por offset
(``[start...end]``). Todos os valores vão como parâmetros ``$nome``
codificados em JSON; apenas nomes de campo entram no texto da consulta,
e por isso são validados.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple, TypedDict

from ..exceptions import ProviderError, ValidationError
from ..models import NormalizedRecord, PagedResult, QueryOptions, RecordStatus, parse_timestamp
from .base import ContentProvider

API_VERSION = "2023-05-03"

DRAFT_PREFIX = "drafts."

SEARCH_FIELDS = ("title", "description")

FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_SYSTEM_KEYS = ("_id", "_type", "_rev", "_createdAt", "_updatedAt")


class SanitySlug(TypedDict, total=False):
    _type: str
    current: str


class SanityDocument(TypedDict, total=False):
    _id: str
    _type: str
    _rev: str
    _createdAt: str
    _updatedAt: str
    slug: SanitySlug


class SanityQueryResponse(TypedDict, total=False):
    ms: int
    query: str
    result: Any


def normalize_sanity_document(document: SanityDocument) -> NormalizedRecord:
    """
    Converte um documento do Sanity em NormalizedRecord.

    Documentos com id ``drafts.*`` são rascunhos.
    """
    fields = {k: v for k, v in document.items() if k not in _SYSTEM_KEYS}
    document_id = str(document["_id"])

    slug = document.get("slug")
    slug_value = slug.get("current") if isinstance(slug, dict) else None

    if document_id.startswith(DRAFT_PREFIX):
        status: Optional[RecordStatus] = RecordStatus.DRAFT
    else:
        status = RecordStatus.parse(fields.get("status"))

    return NormalizedRecord(
        id=document_id,
        created_at=parse_timestamp(document.get("_createdAt")),
        updated_at=parse_timestamp(document.get("_updatedAt")),
        slug=slug_value if isinstance(slug_value, str) and slug_value else None,
        status=status,
        fields=fields,
    )


def is_safe_field_name(name: Any) -> bool:
    return isinstance(name, str) and bool(FIELD_NAME_RE.match(name))


class GroqQuery:
    """Consulta GROQ e seus parâmetros ``$nome``."""

    def __init__(self, collection: str) -> None:
        self.conditions: List[str] = ["_type == $type"]
        self.params: Dict[str, Any] = {"type": collection}

    def where(self, condition: str, **params: Any) -> "GroqQuery":
        self.conditions.append(condition)
        self.params.update(params)
        return self

    @property
    def filter(self) -> str:
        return f"*[{' && '.join(self.conditions)}]"

    def encoded_params(self, query: str) -> List[Tuple[str, str]]:
        """Parâmetros HTTP: ``query`` e cada ``$nome`` em JSON."""
        encoded = [("query", query)]
        for name, value in sorted(self.params.items()):
            encoded.append((f"${name}", json.dumps(value)))
        return encoded


def build_list_query(collection: str, options: QueryOptions) -> GroqQuery:
    """Filtro de listagem: tipo, filtros de igualdade e busca."""
    query = GroqQuery(collection)
    for index, (name, value) in enumerate(sorted(options.filters.items())):
        query.where(f"{name} == $f{index}", **{f"f{index}": value})
    if options.search:
        fields = ", ".join(SEARCH_FIELDS)
        query.where(f"[{fields}] match $search", search=f"{options.search}*")
    return query


def build_page_projection(query: GroqQuery, options: QueryOptions) -> str:
    """
    Monta ``{"items": ..., "total": ...}`` para uma página.

    Example:
        >>> build_page_projection(GroqQuery("station"), QueryOptions(page=2, page_size=10))
        '{"items": *[_type == $type][10...20], "total": count(*[_type == $type])}'
    """
    items = query.filter
    if options.sort:
        direction = "desc" if options.sort.descending else "asc"
        items += f" | order({options.sort.field} {direction})"
    start = (options.page - 1) * options.page_size
    items += f"[{start}...{start + options.page_size}]"
    if options.fields:
        projection = ", ".join(["_id", "_type", "_createdAt", "_updatedAt", "slug", *options.fields])
        items += f"{{{projection}}}"
    return f'{{"items": {items}, "total": count({query.filter})}}'


class SanityProvider(ContentProvider):
    """
    Provider para datasets do Sanity.

    A coleção é o ``_type`` dos documentos. Leituras públicas funcionam
    sem token; escritas exigem um token com permissão de escrita.
    """

    name = "sanity"
    auth_scheme = "Bearer"

    def _query_url(self) -> str:
        return f"{self.settings.api_url}/v{API_VERSION}/data/query/{self.settings.dataset}"

    def _mutate_url(self) -> str:
        return f"{self.settings.api_url}/v{API_VERSION}/data/mutate/{self.settings.dataset}"

    def _query(self, groq: str, query: GroqQuery) -> Any:
        payload: SanityQueryResponse = self.transport.request(
            "GET", self._query_url(), params=query.encoded_params(groq)
        )
        return (payload or {}).get("result")

    def _fetch_page(self, collection: str, options: QueryOptions) -> PagedResult:
        query = build_list_query(collection, options)
        result = self._query(build_page_projection(query, options), query) or {}

        documents = result.get("items") or []
        total = int(result.get("total") or 0)
        start = (options.page - 1) * options.page_size
        return PagedResult(
            items=[normalize_sanity_document(doc) for doc in documents],
            total=total,
            page=options.page,
            page_size=options.page_size,
            has_more=start + len(documents) < total,
        )

    def _fetch_record(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        query = GroqQuery(collection).where("_id == $id", id=record_id)
        document = self._query(f"{query.filter}[0]", query)
        return normalize_sanity_document(document) if document else None

    def _fetch_slug(self, collection: str, slug: str) -> Optional[NormalizedRecord]:
        query = GroqQuery(collection).where("slug.current == $slug", slug=slug)
        document = self._query(f"{query.filter}[0]", query)
        return normalize_sanity_document(document) if document else None

    def _mutate_one(self, mutation: Dict[str, Any]) -> Optional[SanityDocument]:
        payload = self.transport.request(
            "POST",
            self._mutate_url(),
            params={"returnDocuments": "true"},
            json={"mutations": [mutation]},
        )
        results = (payload or {}).get("results") or []
        return results[0].get("document") if results else None

    def _create_record(self, collection: str, data: Dict[str, Any]) -> NormalizedRecord:
        document = dict(data)
        document["_type"] = collection
        created = self._mutate_one({"create": document})
        if not created:
            raise ProviderError(
                "Sanity did not return the created document", backend=self.name, retryable=False
            )
        return normalize_sanity_document(created)

    def _update_record(
        self, collection: str, record_id: str, data: Dict[str, Any]
    ) -> NormalizedRecord:
        changes = {k: v for k, v in data.items() if k not in _SYSTEM_KEYS}
        updated = self._mutate_one({"patch": {"id": record_id, "set": changes}})
        if not updated:
            raise ProviderError(
                f"Sanity did not return the updated document {record_id}",
                backend=self.name,
                retryable=False,
            )
        return normalize_sanity_document(updated)

    def _delete_record(self, collection: str, record_id: str) -> None:
        self._mutate_one({"delete": {"id": record_id}})

    def _record_tags(self, collection: str, record_id: str) -> List[str]:
        # Leituras podem ter devolvido o rascunho ou a versão publicada
        published_id = record_id[len(DRAFT_PREFIX):] if record_id.startswith(DRAFT_PREFIX) else record_id
        return [f"{collection}:{published_id}", f"{collection}:{DRAFT_PREFIX}{published_id}"]

    def _check_options(self, options: QueryOptions) -> None:
        super()._check_options(options)
        names = list(options.filters) + list(options.fields or ())
        if options.sort:
            names.append(options.sort.field)
        unsafe = [name for name in names if not is_safe_field_name(name)]
        if unsafe:
            raise ValidationError(f"invalid field names for GROQ: {unsafe}", backend=self.name)
