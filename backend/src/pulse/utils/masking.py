"""Helpers to keep secrets out of log output."""
from typing import Any

SENSITIVE_KEYS = {"access_token", "authorization", "apikey", "api_key", "token", "admintoken"}


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Return ``value`` with everything but the last ``visible`` characters hidden."""
    if not value:
        return "não fornecido"
    if len(value) <= visible:
        return "****"
    return "****" + value[-visible:]


def mask_mapping(data: dict[str, Any]) -> dict[str, Any]:
    """Shallow copy of ``data`` with sensitive keys and card details masked."""
    safe = dict(data)
    for key in list(safe):
        if key.lower() in SENSITIVE_KEYS and isinstance(safe[key], str):
            safe[key] = mask_secret(safe[key])

    card = safe.get("creditCard")
    if isinstance(card, dict):
        number = str(card.get("number") or "")
        safe["creditCard"] = {**card, "number": mask_secret(number) if number else "****", "ccv": "***"}

    return safe
