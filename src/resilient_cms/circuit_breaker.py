"""
Circuit Breaker para proteção dos backends de conteúdo.

Implementa o padrão Circuit Breaker para parar de chamar um backend
que está falhando de forma persistente, detectando a recuperação
automaticamente através de uma chamada de teste (half-open).
"""

import logging
import threading
import time
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .config import CircuitBreakerConfig
from .exceptions import CircuitBreakerOpenError

T = TypeVar("T")


class CircuitState(Enum):
    """Estados possíveis do circuit breaker."""

    CLOSED = "closed"  # Operação normal
    OPEN = "open"  # Circuit aberto, não tenta operações
    HALF_OPEN = "half-open"  # Testando se pode fechar


class CircuitBreaker:
    """
    Circuit Breaker de um backend.

    O circuit breaker monitora falhas consecutivas e:
    - CLOSED: Opera normalmente
    - OPEN: Após threshold falhas, rejeita chamadas sem invocar a operação
    - HALF_OPEN: Após timeout, deixa passar exatamente uma chamada de teste

    Todas as transições acontecem sob um lock, então a instância pode ser
    compartilhada entre threads.

    Example:
        >>> config = CircuitBreakerConfig(threshold=5, timeout=30)
        >>> breaker = CircuitBreaker(config, backend="baserow")
        >>>
        >>> try:
        ...     rows = breaker.call(fetch_rows, "stations")
        ... except CircuitBreakerOpenError:
        ...     rows = []
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        backend: str = "unknown",
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Inicializa o circuit breaker.

        Args:
            config: Configuração do circuit breaker
            backend: Nome do backend protegido
            logger: Logger opcional
            clock: Fonte de tempo em segundos (injetável para testes)
        """
        self.config = config
        self.backend = backend
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._last_success_time: Optional[float] = None
        self._trial_started_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """
        Estado atual do circuit breaker.

        Automaticamente transita de OPEN para HALF_OPEN após timeout.
        """
        if not self.config.enabled:
            return CircuitState.CLOSED

        with self._lock:
            if self._state == CircuitState.OPEN and self._should_attempt_reset():
                self._state = CircuitState.HALF_OPEN
                self._trial_started_at = None
                self.logger.info(f"Circuit breaker [{self.backend}] entering HALF_OPEN state")
            return self._state

    @property
    def failure_count(self) -> int:
        """Número de falhas consecutivas registradas."""
        return self._failure_count

    def _should_attempt_reset(self) -> bool:
        """
        Verifica se deve tentar reset (OPEN -> HALF_OPEN).

        Returns:
            True se passou tempo suficiente desde a última falha
        """
        if self._last_failure_time is None:
            return False

        elapsed = self._clock() - self._last_failure_time
        return elapsed >= self.config.timeout

    def _acquire_permission(self) -> None:
        """
        Decide se uma chamada pode passar.

        Em HALF_OPEN apenas uma chamada de teste fica pendente por vez;
        se ela ultrapassar half_open_timeout, outra é liberada.

        Raises:
            CircuitBreakerOpenError: Se a chamada deve ser rejeitada
        """
        with self._lock:
            state = self.state

            if state == CircuitState.CLOSED:
                return

            if state == CircuitState.HALF_OPEN:
                now = self._clock()
                trial_pending = (
                    self._trial_started_at is not None
                    and now - self._trial_started_at < self.config.half_open_timeout
                )
                if not trial_pending:
                    self._trial_started_at = now
                    self.logger.debug(f"Circuit breaker [{self.backend}] allowing trial call")
                    return

            raise CircuitBreakerOpenError(
                backend=self.backend,
                failure_count=self._failure_count,
            )

    def record_success(self) -> None:
        """
        Registra uma operação bem-sucedida.

        Se estava em HALF_OPEN, fecha o circuit.
        """
        if not self.config.enabled:
            return

        with self._lock:
            self._last_success_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._trial_started_at = None
                self.logger.info(f"Circuit breaker [{self.backend}] CLOSED after successful test")

            elif self._state == CircuitState.CLOSED:
                if self._failure_count > 0:
                    self.logger.debug(
                        f"Resetting failure count from {self._failure_count} to 0"
                    )
                    self._failure_count = 0

    def record_failure(self) -> None:
        """
        Registra uma falha.

        Se atingir threshold, abre o circuit.
        """
        if not self.config.enabled:
            return

        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            self.logger.warning(
                f"Circuit breaker [{self.backend}] failure "
                f"{self._failure_count}/{self.config.threshold}"
            )

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._trial_started_at = None
                self.logger.error(
                    f"Circuit breaker [{self.backend}] OPEN after failed test in HALF_OPEN"
                )

            elif self._state == CircuitState.CLOSED and (
                self._failure_count >= self.config.threshold
            ):
                self._state = CircuitState.OPEN
                self.logger.error(
                    f"Circuit breaker [{self.backend}] OPEN after {self._failure_count} "
                    f"failures (threshold={self.config.threshold})"
                )

    def is_open(self) -> bool:
        """
        Verifica se o circuit está aberto.

        Returns:
            True se o circuit está OPEN (não deve tentar operação)
        """
        return self.state == CircuitState.OPEN

    def call(
        self,
        func: Callable[..., T],
        *args: Any,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
        **kwargs: Any,
    ) -> T:
        """
        Executa func protegida pelo circuit breaker.

        Args:
            func: Operação a executar
            is_failure: Decide se uma exceção conta como falha do backend
                (padrão: toda exceção conta)

        Returns:
            Resultado de func

        Raises:
            CircuitBreakerOpenError: Se o circuit está aberto
            Exception: Qualquer exceção da função original
        """
        if not self.config.enabled:
            return func(*args, **kwargs)

        self._acquire_permission()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if is_failure is None or is_failure(e):
                self.record_failure()
            else:
                self.record_success()
            raise

        self.record_success()
        return result

    def protected(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """
        Decorator para proteger uma função com circuit breaker.

        Example:
            >>> @breaker.protected
            ... def fetch_station(station_id):
            ...     return session.get(f"{url}/{station_id}")
        """

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.call(func, *args, **kwargs)

        return wrapper

    def get_stats(self) -> dict:
        """
        Retorna estatísticas do circuit breaker.

        Returns:
            Dicionário com estatísticas
        """
        return {
            "backend": self.backend,
            "enabled": self.config.enabled,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "threshold": self.config.threshold,
            "timeout": self.config.timeout,
            "half_open_timeout": self.config.half_open_timeout,
            "last_failure_time": self._last_failure_time,
            "last_success_time": self._last_success_time,
        }

    def reset(self) -> None:
        """
        Reseta o circuit breaker para estado inicial.

        Útil para testes ou após manutenção manual.
        """
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._last_success_time = None
            self._trial_started_at = None
        self.logger.info(f"Circuit breaker [{self.backend}] manually reset to CLOSED")

    def __repr__(self) -> str:
        """Representação string do circuit breaker."""
        return (
            f"<CircuitBreaker backend={self.backend} state={self.state.value} "
            f"failures={self._failure_count}/{self.config.threshold}>"
        )
