from __future__ import annotations

import math
from typing import Any, Final, Literal, Mapping


MaskStrategy = Literal["full", "partial", "middle", "card", "email", "cpf"]

MASK_CHAR: Final[str] = "*"

DEFAULT_MASKING_POLICY: Final[dict[str, MaskStrategy]] = {
    "password": "full",
    "secret": "full",
    "webhook_secret": "full",
    "api_secret": "full",
    "client_secret": "full",
    "cvv": "full",
    "cvc": "full",
    "security_code": "full",
    "authorization": "partial",
    "api_key": "partial",
    "access_token": "partial",
    "refresh_token": "partial",
    "token": "partial",
    "card_number": "card",
    "cardnumber": "card",
    "card_pan": "card",
    "pan": "card",
    "email": "email",
    "cpf": "cpf",
    "cnpj": "middle",
    "document": "middle",
    "phone": "middle",
}


def _partial(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return MASK_CHAR * len(value)
    start = math.ceil(visible / 2)
    end = visible - start
    tail = value[-end:] if end else ""
    return value[:start] + MASK_CHAR * (len(value) - visible) + tail


def _middle(value: str) -> str:
    if len(value) <= 4:
        return MASK_CHAR * len(value)
    return value[:2] + MASK_CHAR * (len(value) - 4) + value[-2:]


def _card(value: str) -> str:
    digits = "".join(ch for ch in value if ch.isdigit())
    if len(digits) < 10:
        return MASK_CHAR * len(value)
    return digits[:6] + MASK_CHAR * (len(digits) - 10) + digits[-4:]


def _email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep:
        return _partial(value)
    if len(local) <= 2:
        return MASK_CHAR * len(local) + "@" + domain
    return local[0] + MASK_CHAR * (len(local) - 2) + local[-1] + "@" + domain


def _cpf(value: str) -> str:
    digits = "".join(ch for ch in value if ch.isdigit())
    if len(digits) != 11:
        return _partial(value)
    return f"{digits[:3]}.***.***-{digits[-2:]}"


def mask_value(value: Any, strategy: MaskStrategy) -> Any:
    """Mask a single value; non-string scalars are masked by their string form."""
    if value is None or value == "":
        return value
    text = value if isinstance(value, str) else str(value)
    if strategy == "full":
        return MASK_CHAR * len(text)
    if strategy == "middle":
        return _middle(text)
    if strategy == "card":
        return _card(text)
    if strategy == "email":
        return _email(text)
    if strategy == "cpf":
        return _cpf(text)
    return _partial(text)


def mask_fields(data: Any, policy: Mapping[str, MaskStrategy] | None = None) -> Any:
    """
    Return a copy of ``data`` with sensitive fields masked.

    Field names are matched case-insensitively against ``policy`` (defaults to
    DEFAULT_MASKING_POLICY). Nested dicts and lists are walked; a sensitive key
    holding a container is masked as a whole.
    """
    active = {k.lower(): v for k, v in (policy or DEFAULT_MASKING_POLICY).items()}
    return _walk(data, active)


def _walk(data: Any, policy: dict[str, MaskStrategy]) -> Any:
    if isinstance(data, dict):
        masked: dict[Any, Any] = {}
        for key, value in data.items():
            strategy = policy.get(str(key).lower())
            if strategy is None:
                masked[key] = _walk(value, policy)
            elif isinstance(value, (dict, list, tuple)):
                masked[key] = MASK_CHAR * 8
            else:
                masked[key] = mask_value(value, strategy)
        return masked
    if isinstance(data, (list, tuple)):
        return [_walk(item, policy) for item in data]
    return data
