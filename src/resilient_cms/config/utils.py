import ipaddress
import re
from typing import Any, List, Optional, Union
from urllib.parse import urlparse

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def is_valid_ip(endereco: str) -> bool:
    """Valida se uma string é um endereço IP válido (IPv4 ou IPv6).

    Args:
        endereco: String contendo o possível endereço IP

    Returns:
        True se é um IP válido, False caso contrário

    Examples:
        >>> is_valid_ip('192.168.1.1')
        True
        >>> is_valid_ip('256.1.1.1')
        False
    """
    try:
        ipaddress.ip_address(endereco)
        return True
    except ValueError:
        return False


def is_valid_fqdn(endereco: str) -> bool:
    """Valida se uma string é um FQDN (Fully Qualified Domain Name) válido.

    Implementação baseada em RFC 1123.

    Examples:
        >>> is_valid_fqdn('api.baserow.io')
        True
        >>> is_valid_fqdn('-invalid.com')
        False
    """
    if not endereco or len(endereco) > 253:
        return False

    fqdn_pattern = re.compile(
        r"^(?!-)"  # Não começa com hífen
        r"(?:[a-zA-Z0-9-]{1,63}\.)*"  # Labels intermediários
        r"[a-zA-Z0-9-]{1,63}"  # Label final
        r"(?<!-)$"  # Não termina com hífen
    )

    return bool(fqdn_pattern.match(endereco))


def is_valid_url(url: Any) -> bool:
    """Valida se uma string é uma URL http(s) bem formada.

    Examples:
        >>> is_valid_url('https://api.baserow.io')
        True
        >>> is_valid_url('http://10.0.0.5:8080/api')
        True
        >>> is_valid_url('baserow.io')
        False
    """
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
        port = parsed.port
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    host = parsed.hostname
    if not host:
        return False
    if port is not None and not 1 <= port <= 65535:
        return False
    return is_valid_ip(host) or is_valid_fqdn(host)


# Helpers de parsing/validação que acumulam erros em vez de levantar


def parse_int(value: Any, field_name: str, errors: List[str]) -> Optional[int]:
    """Converte value para int, registrando o erro em errors se falhar."""
    if isinstance(value, bool):
        errors.append(f"{field_name} must be an integer")
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        errors.append(f"{field_name} must be an integer, got {value!r}")
        return None


def parse_float(value: Any, field_name: str, errors: List[str]) -> Optional[float]:
    """Converte value para float, registrando o erro em errors se falhar."""
    if isinstance(value, bool):
        errors.append(f"{field_name} must be a number")
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        errors.append(f"{field_name} must be a number, got {value!r}")
        return None


def parse_bool(value: Any, field_name: str, errors: List[str]) -> Optional[bool]:
    """Converte value para bool aceitando as formas usuais de variáveis de ambiente."""
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    errors.append(f"{field_name} must be a boolean, got {value!r}")
    return None


def check_min(
    value: Optional[Union[int, float]],
    field_name: str,
    min_value: Union[int, float],
    errors: List[str],
) -> None:
    """Registra erro se value existir e for menor que min_value."""
    if value is not None and value < min_value:
        errors.append(f"{field_name} must be >= {min_value}")


def check_required(value: Any, field_name: str, errors: List[str], reason: str = "") -> None:
    """Registra erro se value estiver ausente ou vazio."""
    if value is None or (isinstance(value, str) and not value.strip()):
        suffix = f" ({reason})" if reason else ""
        errors.append(f"{field_name} is required{suffix}")
