"""
Provider do Baserow.

Paginação por número de página (``page``/``size``), ordenação com
``order_by=[-]campo`` e filtros ``filter__<campo>__equal``.
"""

from typing import Any, Dict, List, Optional, Tuple, TypedDict

from ..models import NormalizedRecord, PagedResult, QueryOptions, RecordStatus, parse_timestamp
from .base import ContentProvider

ROWS_PATH = "/api/database/rows/table"

_METADATA_KEYS = ("id", "created_on", "updated_on")


class BaserowListResponse(TypedDict):
    count: int
    next: Optional[str]
    previous: Optional[str]
    results: List[Dict[str, Any]]


def normalize_baserow_row(row: Dict[str, Any]) -> NormalizedRecord:
    """Converte uma linha do Baserow em NormalizedRecord."""
    fields = {k: v for k, v in row.items() if k not in _METADATA_KEYS}
    slug = fields.get("slug")
    return NormalizedRecord(
        id=str(row["id"]),
        created_at=parse_timestamp(row.get("created_on")),
        updated_at=parse_timestamp(row.get("updated_on")),
        slug=slug if isinstance(slug, str) and slug else None,
        status=RecordStatus.parse(fields.get("status")),
        fields=fields,
    )


def build_list_params(options: QueryOptions) -> List[Tuple[str, str]]:
    """Monta os parâmetros de listagem do Baserow."""
    params: List[Tuple[str, str]] = [
        ("user_field_names", "true"),
        ("page", str(options.page)),
        ("size", str(options.page_size)),
    ]
    if options.search:
        params.append(("search", options.search))
    if options.sort:
        prefix = "-" if options.sort.descending else ""
        params.append(("order_by", f"{prefix}{options.sort.field}"))
    for name, value in sorted(options.filters.items()):
        params.append((f"filter__{name}__equal", str(value)))
    if options.fields:
        params.append(("include", ",".join(options.fields)))
    return params


class BaserowProvider(ContentProvider):
    """
    Provider para tabelas do Baserow.

    A coleção é o id da tabela; o token usa o esquema ``Token``.

    Example:
        >>> settings = ProviderSettings(api_url="https://api.baserow.io", api_token="...")
        >>> provider = BaserowProvider(settings)
        >>> page = provider.fetch_all("1234", QueryOptions(page_size=20))
    """

    name = "baserow"
    auth_scheme = "Token"

    def _rows_url(self, collection: str, record_id: Optional[str] = None) -> str:
        url = f"{self.settings.api_url}{ROWS_PATH}/{collection}/"
        if record_id is not None:
            url = f"{url}{record_id}/"
        return url

    def _fetch_page(self, collection: str, options: QueryOptions) -> PagedResult:
        payload: BaserowListResponse = self.transport.request(
            "GET", self._rows_url(collection), params=build_list_params(options)
        )
        return PagedResult(
            items=[normalize_baserow_row(row) for row in payload["results"]],
            total=payload["count"],
            page=options.page,
            page_size=options.page_size,
            has_more=payload.get("next") is not None,
        )

    def _fetch_record(self, collection: str, record_id: str) -> Optional[NormalizedRecord]:
        row = self.transport.request(
            "GET",
            self._rows_url(collection, record_id),
            params={"user_field_names": "true"},
            allow_not_found=True,
        )
        return normalize_baserow_row(row) if row is not None else None

    def _create_record(self, collection: str, data: Dict[str, Any]) -> NormalizedRecord:
        row = self.transport.request(
            "POST",
            self._rows_url(collection),
            params={"user_field_names": "true"},
            json=_strip_metadata(data),
        )
        return normalize_baserow_row(row)

    def _update_record(
        self, collection: str, record_id: str, data: Dict[str, Any]
    ) -> NormalizedRecord:
        row = self.transport.request(
            "PATCH",
            self._rows_url(collection, record_id),
            params={"user_field_names": "true"},
            json=_strip_metadata(data),
        )
        return normalize_baserow_row(row)

    def _delete_record(self, collection: str, record_id: str) -> None:
        self.transport.request("DELETE", self._rows_url(collection, record_id))


def _strip_metadata(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
