from typing import Any, Optional


def coerce_int(
    value: Any, default: Optional[int] = None, *, reject_bool: bool = True
) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool):
        return default if reject_bool else int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (OverflowError, ValueError):
            return default
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    return default


def coerce_id(value: Any) -> Optional[str]:
    """Render a platform id (int or str) as a trimmed string, or None."""
    if value is None or isinstance(value, bool):
        return None
    token = str(value).strip()
    return token or None


def coerce_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def coerce_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        if item is None or isinstance(item, bool):
            continue
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed
