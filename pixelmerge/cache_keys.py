from __future__ import annotations

import hashlib
from collections.abc import Mapping
from urllib.parse import quote

from pixelmerge.tokens import TokenKey


def _encode(part: str) -> str:
    return quote(part, safe="")


def derive_cache_key(template_id: str, tokens: Mapping[TokenKey, str]) -> str:
    """Content address for a render: sha256 of ``templateId|k1=v1&k2=v2...``.

    Keys are sorted, so two maps with the same entries give the same key no
    matter how they were built. The template id, keys and values are
    percent-encoded first, so a value containing ``&``, ``=`` or ``|`` cannot
    shift into a neighbouring entry. The hex digest is also the storage file
    name.
    """
    pairs = sorted((key.value, value) for key, value in tokens.items())
    body = "&".join(f"{_encode(key)}={_encode(value)}" for key, value in pairs)
    canonical = f"{_encode(template_id)}|{body}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def storage_key_for(template_id: str, cache_key: str) -> str:
    return f"{template_id}/{cache_key}.png"
