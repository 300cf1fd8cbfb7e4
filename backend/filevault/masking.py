from typing import Any, Dict

SENSITIVE_KEYS = ("key", "secret", "password", "token", "credential")
MASK = "********"


def is_sensitive(name: str) -> bool:
    name = name.lower()
    return any(s in name for s in SENSITIVE_KEYS)


def mask_sensitive_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively replace values under sensitive-looking keys.

    Non-empty secrets become a fixed mask so neither content nor length leaks
    into logs; empty ones stay empty so "not configured" remains visible.
    """
    masked: Dict[str, Any] = {}
    for k, v in data.items():
        if isinstance(v, dict):
            masked[k] = mask_sensitive_values(v)
        elif is_sensitive(k) and isinstance(v, (str, bytes)):
            masked[k] = MASK if v else v
        else:
            masked[k] = v
    return masked
