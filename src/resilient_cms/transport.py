"""
Transporte HTTP com limite de tempo.

Cada chamada roda em uma thread do pool e o chamador espera no máximo
``timeout`` segundos. Se o prazo estourar, a chamada falha com
RequestTimeoutError; a thread continua até o fim e seu resultado é
descartado.
"""

import concurrent.futures
import logging
from typing import Any, Dict, Mapping, Optional

import requests

from .error_classifier import classify, classify_status
from .exceptions import RequestTimeoutError


class HttpTransport:
    """
    Cliente HTTP de um backend, baseado em requests.Session.

    Todas as falhas são convertidas em ProviderError pelo classificador.

    Example:
        >>> transport = HttpTransport("baserow", {"Authorization": "Token abc"}, timeout=15)
        >>> payload = transport.request("GET", "https://api.baserow.io/api/database/rows/table/1/")
    """

    def __init__(
        self,
        backend: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
        max_workers: int = 8,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Inicializa o transporte.

        Args:
            backend: Nome do backend, usado na classificação de erros
            headers: Headers enviados em toda requisição
            timeout: Tempo máximo de cada chamada, em segundos
            session: Sessão requests (injetável para testes)
            max_workers: Threads disponíveis para chamadas simultâneas
            logger: Logger opcional
        """
        self.backend = backend
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        self.session = session or requests.Session()
        self._owns_session = session is None
        self.session.headers.update({"Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"cms-{backend}-request",
        )

    def request(
        self,
        method: str,
        url: str,
        params: Any = None,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Executa uma requisição e devolve o corpo JSON.

        Args:
            method: Método HTTP
            url: URL completa
            params: Parâmetros de query (dict ou lista de pares)
            json: Corpo JSON
            allow_not_found: Se True, 404 devolve None em vez de erro

        Returns:
            Corpo decodificado, ou None (204 ou 404 permitido)

        Raises:
            ProviderError: Qualquer falha, já classificada
        """
        self.logger.debug(f"{method} {url} params={params}")

        future = self._executor.submit(
            self.session.request,
            method,
            url,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        try:
            response = future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as e:
            self.logger.warning(f"{method} {url} timed out after {self.timeout}s")
            raise RequestTimeoutError(
                f"Request timeout after {self.timeout}s",
                backend=self.backend,
                details={"url": url},
            ) from e
        except Exception as e:
            raise classify(e, self.backend) from e

        if allow_not_found and response.status_code == 404:
            self.logger.debug(f"{method} {url} returned 404")
            return None

        if not response.ok:
            raise classify_status(
                response.status_code,
                self.backend,
                reason=response.reason,
                url=response.url,
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise classify(e, self.backend, retryable=False) from e

    def close(self) -> None:
        """Libera o pool de threads e a sessão."""
        self._executor.shutdown(wait=False)
        if self._owns_session:
            self.session.close()

    def __repr__(self) -> str:
        return f"<HttpTransport backend={self.backend} timeout={self.timeout}s>"


def auth_headers(scheme: str, token: Optional[str]) -> Dict[str, str]:
    """Monta o header Authorization, vazio quando não há token."""
    if not token:
        return {}
    return {"Authorization": f"{scheme} {token}"}
