from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from pixelmerge.cache_keys import derive_cache_key, storage_key_for
from pixelmerge.credits import CreditLedger
from pixelmerge.errors import AuthenticationError, NotFoundError, ValidationError
from pixelmerge.links import SignedLink, build_signed_link, clamp_expires_in
from pixelmerge.merge_fields import parse_platform
from pixelmerge.render_cache import RenderCache
from pixelmerge.schemas import BuildLinkRequest, RenderRequest, is_valid_template_id
from pixelmerge.security import LinkSigner
from pixelmerge.tokens import TokenKey, resolve_tokens

logger = logging.getLogger(__name__)

DEFAULT_LINK_TOKENS = ["first_name", "company"]
DEFAULT_USER_ID = "public"


class TemplateRenderer(Protocol):
    async def render_image_for_template(self, template_id: str, tokens: Mapping[TokenKey, str]) -> bytes: ...


class ArtifactStore(Protocol):
    def upload_png(self, data: bytes, storage_key: str) -> str: ...


@dataclass(frozen=True)
class RenderOutcome:
    url: str
    cached: bool
    cache_key: str


def issue_signed_link(signer: LinkSigner, request: BuildLinkRequest, *, now: int) -> SignedLink:
    """Server-side link building for trusted clients.

    Unlike ``build_signed_link`` this clamps the lifetime and defaults the token
    list to first_name and company.
    """
    try:
        platform = parse_platform(request.platform)
    except NotFoundError as exc:
        raise ValidationError(exc.message) from exc

    requested = request.tokens if request.tokens is not None else DEFAULT_LINK_TOKENS
    user_id = str(request.userId) if request.userId is not None else None
    return build_signed_link(
        signer,
        base=request.base,
        template_id=request.templateId,
        tokens=requested,
        platform=platform,
        expires_in_sec=clamp_expires_in(request.expiresInSec),
        src=request.src or None,
        user_id=user_id,
        now=now,
    )


class RenderGateway:
    """Validate, resolve tokens, check the cache, and render + store on a miss.

    Each stage is awaited before the next one starts: nothing renders before
    the miss is known, and the cache is only written after a successful upload.
    Concurrent identical misses are not deduplicated. The artifact store is
    only built on a miss, so cache hits do not depend on storage config.
    """

    def __init__(
        self,
        *,
        signer: LinkSigner,
        cache: RenderCache,
        renderer: TemplateRenderer,
        storage_provider: Callable[[], ArtifactStore],
        credits: CreditLedger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.signer = signer
        self.cache = cache
        self.renderer = renderer
        self._storage_provider = storage_provider
        self.credits = credits
        self._clock = clock

    async def resolve_signed_link(self, template_id: str, query: Mapping[str, str]) -> RenderOutcome:
        if not is_valid_template_id(template_id):
            raise ValidationError("Invalid templateId")

        raw = dict(query)
        signature = raw.pop("sig", None)
        exp_value = raw.pop("exp", None)
        if not signature or not exp_value:
            raise ValidationError("Missing signature or exp")
        try:
            exp = int(exp_value)
        except ValueError as exc:
            raise ValidationError("Invalid exp") from exc

        # Expiry first: an expired link reads as expired even when its signature is valid.
        if int(self._clock()) > exp:
            logger.warning("Rejected link template_id=%s reason=expired", template_id)
            raise AuthenticationError("Link expired")

        if not self.signer.verify({**raw, "exp": exp_value}, signature):
            logger.warning("Rejected link template_id=%s reason=signature", template_id)
            raise AuthenticationError("Invalid signature")

        tokens = resolve_tokens(raw)
        return await self._render_cached(
            template_id,
            tokens,
            user_id=raw.get("userId") or DEFAULT_USER_ID,
            source=raw.get("src"),
        )

    async def render_direct(self, request: RenderRequest) -> RenderOutcome:
        tokens = resolve_tokens(request.tokens)
        return await self._render_cached(
            request.templateId,
            tokens,
            user_id=request.userId or DEFAULT_USER_ID,
            source="api",
        )

    async def _render_cached(
        self,
        template_id: str,
        tokens: dict[TokenKey, str],
        *,
        user_id: str,
        source: str | None,
    ) -> RenderOutcome:
        cache_key = derive_cache_key(template_id, tokens)

        cached_url = self.cache.get(template_id, cache_key)
        if cached_url:
            logger.info("Render cache hit template_id=%s key=%s src=%s", template_id, cache_key, source)
            return RenderOutcome(url=cached_url, cached=True, cache_key=cache_key)

        logger.info("Render cache miss template_id=%s key=%s src=%s", template_id, cache_key, source)
        if self.credits is not None:
            self.credits.ensure_credits(user_id)

        png = await self.renderer.render_image_for_template(template_id, tokens)
        storage = self._storage_provider()
        public_url = await run_in_threadpool(storage.upload_png, png, storage_key_for(template_id, cache_key))
        self.cache.put(template_id, cache_key, public_url)

        if self.credits is not None:
            self.credits.spend_credits(user_id, reason="render", meta={"templateId": template_id, "key": cache_key})
        return RenderOutcome(url=public_url, cached=False, cache_key=cache_key)
