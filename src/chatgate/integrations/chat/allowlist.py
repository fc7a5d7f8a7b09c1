from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence, Union

from .models import WILDCARD, NormalizedIdentity

DEFAULT_ID_PREFIXES: tuple[str, ...] = (
    "telegram:",
    "tg:",
    "discord:",
    "user:",
    "pk:",
)
_USER_MENTION = re.compile(r"^<@!?(\d+)>$")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")

AllowlistInput = Union[str, Iterable[str], None]


def normalize_slug(value: Optional[str]) -> str:
    """Lowercase `value`, strip a leading `#`, and collapse punctuation to `-`."""
    if not value:
        return ""
    lowered = value.strip().lower().lstrip("#")
    return _SLUG_INVALID.sub("-", lowered).strip("-")


def _strip_prefixes(entry: str, prefixes: Sequence[str]) -> str:
    lowered = entry.lower()
    for prefix in prefixes:
        if lowered.startswith(prefix.lower()):
            entry = entry[len(prefix) :].strip()
            break
    mention = _USER_MENTION.match(entry)
    if mention:
        return mention.group(1)
    return entry


def normalize_allowlist(
    entries: AllowlistInput, *, prefixes: Sequence[str] = DEFAULT_ID_PREFIXES
) -> tuple[str, ...]:
    """Trim entries, drop empties, strip provider prefixes and `<@id>` forms."""
    if entries is None:
        return ()
    if isinstance(entries, str):
        entries = [entries]
    normalized: list[str] = []
    seen: set[str] = set()
    for raw in entries:
        if raw is None or isinstance(raw, bool):
            continue
        token = str(raw).strip()
        if not token:
            continue
        if token != WILDCARD:
            token = _strip_prefixes(token, prefixes)
            if not token:
                continue
        if token in seen:
            continue
        seen.add(token)
        normalized.append(token)
    return tuple(normalized)


def merge_allowlists(*lists: AllowlistInput) -> tuple[str, ...]:
    """Set-union of several allowlists, preserving first-seen order."""
    merged: list[str] = []
    for entries in lists:
        merged.extend(normalize_allowlist(entries))
    return normalize_allowlist(merged)


def _as_handle(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    handle = value.strip().lstrip("@").lower()
    return handle or None


def allowlist_matches(
    allowlist: AllowlistInput,
    identity: Optional[NormalizedIdentity],
    *,
    prefixes: Sequence[str] = DEFAULT_ID_PREFIXES,
) -> bool:
    """Return True when `identity` is admitted by `allowlist`.

    First hit wins: wildcard, exact id, case-insensitive username, then
    case-insensitive tag. An empty allowlist admits nobody.
    """

    if identity is None:
        return False
    if allowlist == WILDCARD:
        return True
    entries = normalize_allowlist(allowlist, prefixes=prefixes)
    if not entries:
        return False
    if WILDCARD in entries:
        return True

    identity_id = (identity.id or "").strip()
    if identity_id and identity_id in entries:
        return True

    handles = {handle for handle in (_as_handle(e) for e in entries) if handle}
    username = _as_handle(identity.username)
    if username and username in handles:
        return True

    tag = (identity.tag or "").strip().lower()
    if tag and (tag in {e.lower() for e in entries} or _as_handle(tag) in handles):
        return True
    return False


def store_contains(store_allow_from: Iterable[str], identity_id: str) -> bool:
    """Exact id presence in a pairing-store snapshot."""
    target = (identity_id or "").strip()
    if not target:
        return False
    return target in normalize_allowlist(store_allow_from)
