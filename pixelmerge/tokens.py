from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from enum import Enum

MAX_TOKEN_LENGTH = 128

_UNSAFE_CHARS_RE = re.compile(r"[<>\x00-\x1f\x7f-\x9f]")


class TokenKey(str, Enum):
    first_name = "first_name"
    last_name = "last_name"
    email = "email"
    company = "company"
    title = "title"
    city = "city"
    country = "country"
    industry = "industry"
    favorite_style = "favorite_style"
    offer = "offer"


FALLBACKS: dict[TokenKey, str] = {
    TokenKey.first_name: "Friend",
    TokenKey.last_name: "",
    TokenKey.email: "",
    TokenKey.company: "your team",
    TokenKey.title: "",
    TokenKey.city: "",
    TokenKey.country: "",
    TokenKey.industry: "",
    TokenKey.favorite_style: "classic",
    TokenKey.offer: "VIP Access",
}

_ALLOWED_NAMES = frozenset(key.value for key in TokenKey)


def is_allowed(name: object) -> bool:
    return isinstance(name, str) and name in _ALLOWED_NAMES


def sanitize(value: object) -> str:
    text = "" if value is None else str(value)
    return _UNSAFE_CHARS_RE.sub("", text[:MAX_TOKEN_LENGTH])


def resolve_tokens(raw: Mapping[str, object | None]) -> dict[TokenKey, str]:
    """Project arbitrary caller input onto the allow-listed tokens.

    Every allow-listed key is present in the result. Missing or ``None`` values
    take the key's fallback; anything not on the allow-list is ignored. This
    never raises.
    """
    resolved: dict[TokenKey, str] = {}
    for key in TokenKey:
        value = raw.get(key.value)
        resolved[key] = sanitize(FALLBACKS[key] if value is None else value)
    return resolved


def filter_allowed(names: Iterable[object]) -> list[TokenKey]:
    allowed: list[TokenKey] = []
    for name in names:
        if not is_allowed(name):
            continue
        key = TokenKey(name)
        if key not in allowed:
            allowed.append(key)
    return allowed


def as_plain_dict(tokens: Mapping[TokenKey, str]) -> dict[str, str]:
    return {key.value: value for key, value in tokens.items()}
