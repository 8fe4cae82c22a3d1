from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse, PlainTextResponse, RedirectResponse, Response
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from pixelmerge.config import settings
from pixelmerge.credits import CreditLedger
from pixelmerge.db import get_session, init_db, ping
from pixelmerge.errors import MethodNotAllowedError, PersonalizationError, UpstreamError
from pixelmerge.gateway import RenderGateway, issue_signed_link
from pixelmerge.render_cache import RenderCache
from pixelmerge.renderer import RendererClient, RendererConfigError
from pixelmerge.schemas import BuildLinkRequest, BuildLinkResponse, RenderRequest, RenderResponse
from pixelmerge.security import LinkSigner
from pixelmerge.storage import RenderStorage, RenderStorageConfigurationError

logger = logging.getLogger(__name__)

LINK_REDIRECT_CACHE_CONTROL = "public, max-age=86400"


@lru_cache
def get_signer() -> LinkSigner:
    return LinkSigner(settings.PERSONALIZATION_SECRET)


@lru_cache
def get_renderer() -> RendererClient:
    return RendererClient()


@lru_cache
def get_render_storage() -> RenderStorage:
    return RenderStorage()


def get_storage_provider() -> Callable[[], RenderStorage]:
    return get_render_storage


def get_clock() -> Callable[[], float]:
    return time.time


def get_gateway(
    session: Session = Depends(get_session),
    signer: LinkSigner = Depends(get_signer),
    renderer: RendererClient = Depends(get_renderer),
    storage_provider: Callable[[], RenderStorage] = Depends(get_storage_provider),
    clock: Callable[[], float] = Depends(get_clock),
) -> RenderGateway:
    credits = None
    if settings.RENDER_CREDITS_ENABLED:
        credits = CreditLedger(session, cost=settings.RENDER_COST_CREDITS)
    return RenderGateway(
        signer=signer,
        cache=RenderCache(session),
        renderer=renderer,
        storage_provider=storage_provider,
        credits=credits,
        clock=clock,
    )


def _wants_plain_text(request: Request) -> bool:
    return request.url.path.startswith("/p/")


def _error_response(request: Request, status_code: int, message: str) -> Response:
    if _wants_plain_text(request):
        return PlainTextResponse(message, status_code=status_code)
    return ORJSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        if loc:
            return f"Missing or invalid {loc[0]}"
    return "Invalid request"


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="pixelmerge personalization API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    @app.exception_handler(PersonalizationError)
    async def personalization_error_handler(request: Request, exc: PersonalizationError) -> Response:
        if isinstance(exc, UpstreamError):
            logger.error("Upstream failure on %s: %s", request.url.path, exc.detail, exc_info=exc)
            return _error_response(request, exc.status_code, exc.public_message)
        return _error_response(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        return _error_response(request, 400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        return _error_response(request, exc.status_code, message)

    @app.exception_handler(RendererConfigError)
    @app.exception_handler(RenderStorageConfigurationError)
    async def configuration_error_handler(request: Request, exc: RuntimeError) -> Response:
        logger.error("Render pipeline is misconfigured: %s", exc)
        return _error_response(request, 500, "Server error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled server exception", exc_info=exc)
        return _error_response(request, 500, "Server error")

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        error = ping()
        if error is not None:
            return {"db": f"error: {error}"}
        return {"db": "ok"}

    @app.get("/p/{template_id}")
    async def resolve_personalization_link(
        template_id: str,
        request: Request,
        gateway: RenderGateway = Depends(get_gateway),
    ):
        outcome = await gateway.resolve_signed_link(template_id, dict(request.query_params))
        return RedirectResponse(
            url=outcome.url,
            status_code=302,
            headers={"Cache-Control": LINK_REDIRECT_CACHE_CONTROL},
        )

    @app.post("/api/render", response_model=RenderResponse)
    async def render(payload: RenderRequest, gateway: RenderGateway = Depends(get_gateway)):
        outcome = await gateway.render_direct(payload)
        return RenderResponse(url=outcome.url, cached=outcome.cached)

    @app.post("/api/build-link", response_model=BuildLinkResponse)
    def build_link(
        payload: BuildLinkRequest,
        signer: LinkSigner = Depends(get_signer),
        clock: Callable[[], float] = Depends(get_clock),
    ):
        link = issue_signed_link(signer, payload, now=int(clock()))
        return BuildLinkResponse(
            url=link.url,
            templateId=link.template_id,
            platform=link.platform.value,
            tokens=[key.value for key in link.tokens],
            expiresAt=link.expires_at,
        )

    @app.api_route(
        "/api/render",
        methods=["GET", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    @app.api_route(
        "/api/build-link",
        methods=["GET", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    def method_not_allowed():
        raise MethodNotAllowedError("Method not allowed")

    return app


app = create_app()
