from __future__ import annotations

import math
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import quote, urlencode

from pixelmerge.errors import ValidationError
from pixelmerge.merge_fields import Platform, merge_fields_for
from pixelmerge.schemas import is_valid_template_id
from pixelmerge.security import LinkSigner, ParamValue
from pixelmerge.tokens import TokenKey, filter_allowed

DEFAULT_EXPIRES_IN_SEC = 60 * 60 * 24 * 3
MIN_EXPIRES_IN_SEC = 60
MAX_EXPIRES_IN_SEC = 60 * 60 * 24 * 7


@dataclass(frozen=True)
class SignedLink:
    url: str
    template_id: str
    platform: Platform
    tokens: list[TokenKey]
    expires_at: int
    signature: str
    params: dict[str, ParamValue] = field(default_factory=dict)


def clamp_expires_in(value: object) -> int:
    """Bound a caller-supplied lifetime to [1 minute, 7 days].

    Missing, zero and non-numeric values fall back to the 3 day default.
    """
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        seconds = 0.0
    if not seconds or not math.isfinite(seconds):
        seconds = DEFAULT_EXPIRES_IN_SEC
    return int(max(MIN_EXPIRES_IN_SEC, min(MAX_EXPIRES_IN_SEC, seconds)))


def personalization_url(base: str, template_id: str, query: dict[str, ParamValue]) -> str:
    encoded = urlencode({key: str(value) for key, value in query.items()})
    return f"{base.rstrip('/')}/p/{quote(template_id, safe='')}?{encoded}"


def build_signed_link(
    signer: LinkSigner,
    *,
    base: str,
    template_id: str,
    tokens: Iterable[str],
    platform: Platform,
    expires_in_sec: int = DEFAULT_EXPIRES_IN_SEC,
    src: str | None = None,
    user_id: str | None = None,
    now: int | None = None,
) -> SignedLink:
    """Build a signed link whose token params are ESP merge tags.

    ``tokens`` may be a mapping (only its keys are used) or a list of token
    names. Names outside the allow-list are dropped. ``expires_in_sec`` is used
    as given; callers exposed to untrusted input clamp it first.
    """
    if not is_valid_template_id(template_id):
        raise ValidationError("Invalid templateId")

    issued_at = int(time.time()) if now is None else int(now)
    exp = issued_at + int(expires_in_sec)
    token_keys = filter_allowed(tokens)

    params: dict[str, ParamValue] = {"exp": exp, "src": src or platform.value}
    params.update(merge_fields_for(platform, token_keys))
    if user_id:
        params["userId"] = str(user_id)

    signature = signer.sign(params)
    url = personalization_url(base, template_id, {**params, "sig": signature})
    return SignedLink(
        url=url,
        template_id=template_id,
        platform=platform,
        tokens=token_keys,
        expires_at=exp,
        signature=signature,
        params=params,
    )
