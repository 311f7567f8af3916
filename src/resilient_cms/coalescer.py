"""
Coalescência de requisições (single-flight).

Quando várias threads pedem a mesma chave ao mesmo tempo, apenas uma
faz a chamada remota e todas recebem o mesmo resultado (ou o mesmo erro).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .exceptions import RequestTimeoutError


@dataclass
class InFlightRequest:
    """Uma chamada em andamento."""

    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Garante que chamadas concorrentes para a mesma chave compartilhem
    uma única execução.

    - A primeira chamada para uma chave executa fetch_fn
    - As seguintes esperam o Event da primeira
    - Ao terminar, todas recebem o mesmo resultado

    Example:
        >>> coalescer = RequestCoalescer(timeout=30)
        >>> page = coalescer.get_or_fetch(cache_key, lambda: load_page())
    """

    def __init__(
        self,
        timeout: float = 30.0,
        backend: str = "unknown",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Inicializa o coalescer.

        Args:
            timeout: Tempo máximo de espera por uma chamada em andamento
            backend: Nome do backend, usado nos erros
            logger: Logger opcional
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._timeout = timeout
        self._backend = backend
        self.logger = logger or logging.getLogger(__name__)

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Entra em uma chamada em andamento ou inicia uma nova.

        Args:
            key: Chave da chamada
            fetch_fn: Função executada se não houver chamada em andamento

        Returns:
            O resultado compartilhado

        Raises:
            RequestTimeoutError: Se a espera pela chamada em andamento expirar
            Exception: Qualquer erro de fetch_fn é propagado para todos
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                is_initiator = False
                self.logger.debug(
                    f"Coalescing request for {key} (waiters: {in_flight.waiter_count})"
                )
            else:
                in_flight = InFlightRequest()
                self._in_flight[key] = in_flight
                is_initiator = True

        if is_initiator:
            try:
                in_flight.result = fetch_fn()
            except Exception as e:
                in_flight.error = e
            finally:
                in_flight.event.set()
                with self._lock:
                    self._in_flight.pop(key, None)

            if in_flight.error is not None:
                raise in_flight.error
            return in_flight.result

        if not in_flight.event.wait(timeout=self._timeout):
            self.logger.error(f"Timeout waiting for coalesced request: {key}")
            raise RequestTimeoutError(
                f"Request for {key} timed out after {self._timeout}s",
                backend=self._backend,
            )

        if in_flight.error is not None:
            raise in_flight.error
        return in_flight.result

    @property
    def active_requests(self) -> int:
        """Número de chamadas em andamento."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Estatísticas do coalescer."""
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
            }
