from __future__ import annotations

import asyncio
import json

import httpx
import pytest

import pixelmerge.renderer as renderer_module
from conftest import PNG_BYTES
from pixelmerge.errors import NotFoundError, UpstreamError
from pixelmerge.renderer import RendererClient, RendererConfigError
from pixelmerge.tokens import resolve_tokens


def _install_transport(monkeypatch, handler) -> None:
    real_async_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_async_client(*args, **kwargs)

    monkeypatch.setattr(renderer_module.httpx, "AsyncClient", client_factory)


def test_render_posts_template_and_resolved_tokens(monkeypatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    _install_transport(monkeypatch, handler)
    client = RendererClient(base_url="https://renderer.test/", bearer_token="tok")

    result = asyncio.run(client.render_image_for_template("tmpl1", resolve_tokens({"first_name": "Amy"})))

    assert result == PNG_BYTES
    request = seen[0]
    assert str(request.url) == "https://renderer.test/render"
    assert request.headers["Authorization"] == "Bearer tok"
    body = json.loads(request.content)
    assert body["templateId"] == "tmpl1"
    assert body["tokens"]["first_name"] == "Amy"
    assert body["tokens"]["company"] == "your team"


def test_render_maps_404_to_unknown_template(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(404, text="no such template"))

    with pytest.raises(NotFoundError, match="Unknown template"):
        asyncio.run(RendererClient().render_image_for_template("missing", resolve_tokens({})))


def test_render_maps_server_errors_to_upstream(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(503, text="overloaded"))

    with pytest.raises(UpstreamError, match="Renderer call failed \\(503\\)"):
        asyncio.run(RendererClient().render_image_for_template("tmpl1", resolve_tokens({})))


def test_render_rejects_non_png_body(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(200, content=b"<html></html>"))

    with pytest.raises(UpstreamError, match="non-PNG"):
        asyncio.run(RendererClient().render_image_for_template("tmpl1", resolve_tokens({})))


def test_render_wraps_network_errors(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _install_transport(monkeypatch, handler)

    with pytest.raises(UpstreamError, match="Network error while calling renderer"):
        asyncio.run(RendererClient().render_image_for_template("tmpl1", resolve_tokens({})))


def test_render_requires_base_url(monkeypatch):
    monkeypatch.setattr(renderer_module.settings, "RENDERER_BASE_URL", None)

    with pytest.raises(RendererConfigError):
        asyncio.run(RendererClient().render_image_for_template("tmpl1", resolve_tokens({})))
