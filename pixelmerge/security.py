from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

ParamValue = str | int


def canonicalize(params: Mapping[str, ParamValue]) -> str:
    return "&".join(f"{key}={params[key]}" for key in sorted(params))


class LinkSigner:
    """HMAC-SHA256 over the sorted ``key=value`` form of a parameter set.

    Sorting makes the signature independent of the order in which an ESP or a
    proxy rewrites the query string.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Link signing secret must not be empty")
        self._secret = secret.encode("utf-8")

    def sign(self, params: Mapping[str, ParamValue]) -> str:
        message = canonicalize(params)
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, params: Mapping[str, ParamValue], signature: object) -> bool:
        if not isinstance(signature, str) or not signature:
            return False
        expected = self.sign(params)
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
