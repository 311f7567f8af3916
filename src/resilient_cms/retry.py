"""
Retry com backoff exponencial limitado.

A implementação usa tenacity internamente. A primeira tentativa roda
imediatamente; após cada falha repetível, espera ``delay`` (começando em
``initial_delay``, multiplicado por ``backoff_multiplier`` e limitado a
``max_delay``). Não há espera depois da última tentativa.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import tenacity

from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Política de retry. Tempos em segundos."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        errors = []
        if self.max_attempts < 1:
            errors.append("max_attempts must be >= 1")
        if self.initial_delay < 0:
            errors.append("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            errors.append("max_delay must be >= initial_delay")
        if self.backoff_multiplier < 1:
            errors.append("backoff_multiplier must be >= 1")
        if errors:
            raise ConfigValidationError(errors, backend="retry")

    @classmethod
    def none(cls) -> "RetryPolicy":
        """Sem retry: falha na primeira tentativa."""
        return cls(max_attempts=1, initial_delay=0.0, max_delay=0.0)

    def compute_delay(self, attempt: int) -> float:
        """Espera após a falha da tentativa ``attempt`` (1-based)."""
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Predicado padrão: respeita a flag ``retryable`` do erro."""
    if not isinstance(error, Exception):
        return False
    return getattr(error, "retryable", True) is not False


def retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Any] = time.sleep,
    operation_name: str = "operation",
) -> T:
    """
    Executa ``operation`` com retry.

    Args:
        operation: Callable sem argumentos a executar
        policy: Política de retry (padrão: RetryPolicy())
        should_retry: Decide se um erro deve ser repetido (padrão: is_retryable)
        sleep: Função de espera, injetável para testes
        operation_name: Nome usado nos logs

    Returns:
        Resultado da operação

    Raises:
        Exception: O último erro observado, sem alteração

    Example:
        >>> result = retry(
        ...     lambda: transport.request("GET", url),
        ...     RetryPolicy(max_attempts=3, initial_delay=0.5),
        ... )
    """
    policy = policy or RetryPolicy()
    predicate = should_retry or is_retryable

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        """Loga cada nova tentativa."""
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.2fs...",
            operation_name,
            retry_state.attempt_number,
            policy.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retrying = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        wait=tenacity.wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.backoff_multiplier,
            max=policy.max_delay,
        ),
        retry=tenacity.retry_if_exception(predicate),
        before_sleep=before_sleep_handler,
        sleep=sleep,
        reraise=True,
    )
    return retrying(operation)
