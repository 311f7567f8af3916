"""
Provider do Airtable.

Paginação por cursor (``pageSize``/``offset``), filtros com
``filterByFormula`` e registros no formato ``{id, createdTime, fields}``.
"""

from typing import Any, Dict, List, Optional, Tuple, TypedDict
from urllib.parse import urlparse

from ..exceptions import ValidationError
from ..models import NormalizedRecord, PagedResult, QueryOptions, RecordStatus, parse_timestamp
from .base import ContentProvider

AIRTABLE_API_URL = "https://api.airtable.com/v0"
AIRTABLE_HOST = "api.airtable.com"

AIRTABLE_MAX_PAGE_SIZE = 100

_METADATA_KEYS = ("id", "created_at", "updated_at")


class AirtableRecord(TypedDict):
    id: str
    createdTime: str
    fields: Dict[str, Any]


class AirtableListResponse(TypedDict, total=False):
    records: List[AirtableRecord]
    offset: str


def normalize_airtable_record(record: AirtableRecord) -> NormalizedRecord:
    """
    Converte um registro do Airtable em NormalizedRecord.

    O Airtable não informa a data de alteração por padrão, então
    ``updated_at`` repete ``createdTime``.
    """
    fields = dict(record.get("fields") or {})
    created_at = parse_timestamp(record.get("createdTime"))
    slug = fields.get("slug")
    return NormalizedRecord(
        id=str(record["id"]),
        created_at=created_at,
        updated_at=created_at,
        slug=slug if isinstance(slug, str) and slug else None,
        status=RecordStatus.parse(fields.get("status")),
        fields=fields,
    )


def quote_formula_value(value: Any) -> str:
    """Formata um valor como literal de fórmula do Airtable."""
    if isinstance(value, bool):
        return "TRUE()" if value else "FALSE()"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_formula(
    filters: Dict[str, Any],
    search: Optional[str] = None,
    search_field: str = "Name",
) -> Optional[str]:
    """
    Monta o ``filterByFormula``.

    Example:
        >>> build_formula({"suburb": "Carlton"}, search="shell")
        'AND({suburb}="Carlton",SEARCH("shell",{Name}))'
    """
    conditions = [f"{{{name}}}={quote_formula_value(value)}" for name, value in sorted(filters.items())]
    if search:
        conditions.append(f"SEARCH({quote_formula_value(search)},{{{search_field}}})")
    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return f"AND({','.join(conditions)})"


def build_list_params(options: QueryOptions, search_field: str = "Name") -> List[Tuple[str, str]]:
    """Monta os parâmetros de listagem do Airtable."""
    params: List[Tuple[str, str]] = [("pageSize", str(options.page_size))]
    if options.cursor:
        params.append(("offset", options.cursor))
    if options.sort:
        params.append(("sort[0][field]", options.sort.field))
        params.append(("sort[0][direction]", options.sort.order))
    formula = build_formula(options.filters, options.search, search_field)
    if formula:
        params.append(("filterByFormula", formula))
    for name in options.fields or ():
        params.append(("fields[]", name))
    return params


class AirtableProvider(ContentProvider):
    """
    Provider para bases do Airtable.

    ``project_id`` é o id da base e a coleção é o nome ou id da tabela.
    O Airtable só aceita paginação por cursor: use ``PagedResult.next_cursor``
    como ``QueryOptions.cursor`` para a próxima página.
    """

    name = "airtable"
    auth_scheme = "Bearer"
    search_field = "Name"

    @property
    def base_url(self) -> str:
        """URL da API; outro host configurado é substituído pelo oficial."""
        configured = self.settings.api_url
        if urlparse(configured).netloc == AIRTABLE_HOST:
            return configured
        return AIRTABLE_API_URL

    def _table_url(self, collection: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{self.settings.project_id}/{collection}"
        if record_id is not None:
            url = f"{url}/{record_id}"
        return url

    def _fetch_page(self, collection: str, options: QueryOptions) -> PagedResult:
        if options.page > 1 and not options.cursor:
            self.logger.debug(
                f"Airtable ignores page={options.page}; pass the previous next_cursor instead"
            )
        payload: AirtableListResponse = self.transport.request(
            "GET",
            self._table_url(collection),
            params=build_list_params(options, self.search_field),
        )
        records = payload.get("records") or []
        next_cursor = payload.get("offset")
        return PagedResult(
            items=[normalize_airtable_record(record) for record in records],
            total=len(records),
            page=options.page,
            page_size=options.page_size,
            has_more=bool(next_cursor),
            next_cursor=next_cursor,
        )

    def _fetch_record(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        record = self.transport.request(
            "GET", self._table_url(collection, record_id), allow_not_found=True
        )
        return normalize_airtable_record(record) if record is not None else None

    def _create_record(self, collection: str, data: Dict[str, Any]) -> NormalizedRecord:
        record = self.transport.request(
            "POST", self._table_url(collection), json={"fields": denormalize_fields(data)}
        )
        return normalize_airtable_record(record)

    def _update_record(
        self, collection: str, record_id: str, data: Dict[str, Any]
    ) -> NormalizedRecord:
        record = self.transport.request(
            "PATCH",
            self._table_url(collection, record_id),
            json={"fields": denormalize_fields(data)},
        )
        return normalize_airtable_record(record)

    def _delete_record(self, collection: str, record_id: str) -> None:
        self.transport.request("DELETE", self._table_url(collection, record_id))

    def _check_options(self, options: QueryOptions) -> None:
        super()._check_options(options)
        if options.page_size > AIRTABLE_MAX_PAGE_SIZE:
            raise ValidationError(
                f"page_size must be <= {AIRTABLE_MAX_PAGE_SIZE} for Airtable",
                backend=self.name,
            )


def denormalize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Remove os campos de metadados antes de enviar ao Airtable."""
    return {k: v for k, v in data.items() if k not in _METADATA_KEYS}
