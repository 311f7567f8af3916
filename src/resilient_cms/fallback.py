"""
Estratégia de fallback para chamadores acima do provider.
"""

import logging
from typing import Callable, Optional, TypeVar

from .exceptions import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_fallback(
    primary: Callable[[], T],
    fallback: Callable[[], T],
    should_use_fallback: Optional[Callable[[ProviderError], bool]] = None,
    on_error: Optional[Callable[[ProviderError], None]] = None,
) -> T:
    """
    Executa ``primary`` e, se falhar com ProviderError, usa ``fallback``.

    Erros que não são ProviderError sempre propagam.

    Args:
        primary: Operação principal
        fallback: Fornece o valor substituto
        should_use_fallback: Decide se o erro admite fallback (padrão: sempre)
        on_error: Chamado com o erro antes da decisão

    Returns:
        Resultado de primary ou de fallback

    Example:
        >>> stations = with_fallback(
        ...     lambda: provider.fetch_all("stations"),
        ...     lambda: EMPTY_PAGE,
        ...     should_use_fallback=lambda e: e.retryable,
        ... )
    """
    try:
        return primary()
    except ProviderError as e:
        if on_error is not None:
            on_error(e)
        if should_use_fallback is not None and not should_use_fallback(e):
            raise
        logger.warning(f"Using fallback due to error: {e}")
        return fallback()
