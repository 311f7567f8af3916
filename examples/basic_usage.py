"""
Exemplo básico de uso do Resilient CMS (Flask).

Este exemplo demonstra:
- Inicialização do FlaskContentService
- Listagem paginada e leitura por slug com cache
- Fallback quando o backend está indisponível
- Monitoramento de estatísticas
"""

import os

from flask import Flask, abort, jsonify, request

from resilient_cms import FlaskContentService, PagedResult, QueryOptions, SortSpec, with_fallback

# Criar aplicação Flask
app = Flask(__name__)

# Configurar o backend (Baserow)
app.config.update(
    CMS_PROVIDER="baserow",
    CMS_API_URL=os.environ.get("CMS_API_URL", "https://api.baserow.io"),
    CMS_API_TOKEN=os.environ.get("CMS_API_TOKEN"),
    CMS_CACHE_TIME=300,  # 5 minutos
    CMS_STALE_WHILE_REVALIDATE=3600,  # 1 hora
    CMS_CIRCUIT_BREAKER_THRESHOLD=5,
)

# Inicializar FlaskContentService
content = FlaskContentService()
content.init_app(app)

STATIONS_TABLE = os.environ.get("STATIONS_TABLE", "1234")

EMPTY_PAGE = PagedResult(items=[], total=0, page=1, page_size=0, has_more=False)


@app.route("/stations")
def list_stations():
    """
    Lista postos com cache.

    Se o backend falhar (ou o circuit breaker estiver aberto),
    responde com uma lista vazia em vez de erro.
    """
    options = QueryOptions(
        page=request.args.get("page", 1, type=int),
        page_size=20,
        sort=SortSpec("name"),
        filters={"suburb": request.args["suburb"]} if "suburb" in request.args else {},
    )
    page = with_fallback(
        lambda: content.fetch_all(STATIONS_TABLE, options),
        lambda: EMPTY_PAGE,
        on_error=lambda e: app.logger.error(f"Stations unavailable: {e}"),
    )
    return jsonify(
        {
            "items": [record.to_dict() for record in page],
            "total": page.total,
            "has_more": page.has_more,
        }
    )


@app.route("/stations/<slug>")
def get_station(slug: str):
    """Busca um posto pelo slug."""
    station = content.fetch_by_slug(STATIONS_TABLE, slug)
    if station is None:
        abort(404)
    return jsonify(station.to_dict())


@app.route("/cms/revalidate", methods=["POST"])
def revalidate():
    """Invalida entradas de cache pelas tags informadas."""
    tags = request.get_json(force=True).get("tags", [])
    removed = content.revalidate(tags)
    return jsonify({"removed": removed})


@app.route("/cms/stats")
def cms_stats():
    """Retorna estatísticas do cache, circuit breaker e coalescer."""
    return jsonify(content.get_stats())


@app.route("/health")
def health_check():
    """
    Verifica saúde do acesso ao CMS.

    Retorna 503 se o circuit breaker estiver aberto.
    """
    stats = content.get_stats()
    cb_state = stats["circuit_breaker"]["state"]

    if cb_state == "open":
        return (
            jsonify(
                {
                    "status": "degraded",
                    "reason": "CMS backend unavailable",
                    "circuit_breaker": cb_state,
                }
            ),
            503,
        )

    return jsonify(
        {
            "status": "healthy",
            "backend": stats["backend"],
            "cache_size": stats["cache"]["size"],
            "circuit_breaker": cb_state,
        }
    )


if __name__ == "__main__":
    print("=" * 60)
    print("Resilient CMS - Flask Example Application")
    print("=" * 60)
    print("\nEndpoints disponíveis:")
    print("  GET  /stations?page=1&suburb=X  - Listar postos (com cache)")
    print("  GET  /stations/<slug>           - Buscar posto pelo slug")
    print("  POST /cms/revalidate            - Invalidar cache por tags")
    print("  GET  /cms/stats                 - Estatísticas")
    print("  GET  /health                    - Verificar saúde do CMS")
    print("\n" + "=" * 60)

    app.run(debug=True, port=5000)
