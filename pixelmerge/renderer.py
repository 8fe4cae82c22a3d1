from __future__ import annotations

from collections.abc import Mapping

import httpx

from pixelmerge.config import settings
from pixelmerge.errors import NotFoundError, UpstreamError
from pixelmerge.tokens import TokenKey, as_plain_dict

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class RendererConfigError(RuntimeError):
    pass


class RendererClient:
    """Client for the template render service.

    The service owns composition and rasterization; this side only sends the
    template id plus resolved tokens and expects PNG bytes back.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        bearer_token: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.renderer_base_url or "").strip().rstrip("/")
        self.bearer_token = (bearer_token or settings.RENDERER_BEARER_TOKEN or "").strip()
        self._timeout = float(timeout_seconds or settings.RENDERER_TIMEOUT_SECONDS or 20.0)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "image/png"}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    async def render_image_for_template(self, template_id: str, tokens: Mapping[TokenKey, str]) -> bytes:
        if not self.base_url:
            raise RendererConfigError("RENDERER_BASE_URL is required")

        payload = {"templateId": template_id, "tokens": as_plain_dict(tokens)}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self.base_url}/render", json=payload, headers=self._headers())
        except httpx.RequestError as exc:
            raise UpstreamError(f"Network error while calling renderer: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError("Unknown template")
        if response.status_code >= 400:
            raise UpstreamError(f"Renderer call failed ({response.status_code}): {response.text}")

        body = response.content
        if not body:
            raise UpstreamError(f"Renderer returned an empty body for template {template_id}")
        if not body.startswith(PNG_SIGNATURE):
            raise UpstreamError(f"Renderer returned non-PNG bytes for template {template_id}")
        return body
