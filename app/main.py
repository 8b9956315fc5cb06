"""Entry point for the FastAPI-powered title browsing service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import settings
from .models import SeasonId, TitlePage
from .normalizer import extract_title_page, iter_titles
from .services.browser import TitleBrowser
from .services.grouping import fetch_season_groups
from .services.selection import match_season
from .services.upstream import TYPE_CODES, TransportError, UpstreamClient
from .services.views import View, ViewRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class OpenTitleRequest(BaseModel):
    title_id: str = Field(min_length=1)
    season: str | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.upstream_api_url,
            timeout=httpx.Timeout(settings.upstream_timeout_seconds, connect=10.0),
        )
    )
    upstream = UpstreamClient(settings, http_client)
    views = ViewRegistry(settings, upstream)

    fastapi_app.state.upstream = upstream
    fastapi_app.state.views = views

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await views.close_all()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Incremental title, season and episode browsing",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_upstream(app: FastAPI) -> UpstreamClient:
    upstream = getattr(app.state, "upstream", None)
    if not isinstance(upstream, UpstreamClient):
        raise RuntimeError("Upstream client not initialised")
    return upstream


def get_views(app: FastAPI) -> ViewRegistry:
    views = getattr(app.state, "views", None)
    if not isinstance(views, ViewRegistry):
        raise RuntimeError("View registry not initialised")
    return views


def register_routes(fastapi_app: FastAPI) -> None:
    def _view(view_id: str) -> View:
        try:
            return get_views(fastapi_app).get(view_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Unknown view") from exc

    def _view_payload(view: View) -> dict[str, Any]:
        return {"view_id": view.id, **view.browser.snapshot().to_payload()}

    async def _open(browser: TitleBrowser, payload: OpenTitleRequest) -> None:
        try:
            await browser.open(payload.title_id, season_hint=payload.season)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/titles")
    async def list_titles(
        type_name: str = Query("movie", alias="type"),
        page_token: str | None = Query(None, alias="pageToken"),
    ) -> dict[str, Any]:
        type_code = TYPE_CODES.get(type_name.strip(), TYPE_CODES["movie"])
        upstream = get_upstream(fastapi_app)
        try:
            raw = await upstream.fetch_titles(
                type_code, page_token=page_token
            )
        except TransportError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        records, next_token = extract_title_page(raw)
        titles = iter_titles(records, placeholder_image=upstream.placeholder_image)
        page = TitlePage(items=list(titles), next_page_token=next_token)
        return page.model_dump()

    @fastapi_app.get("/api/titles/{title_id}/seasons")
    async def title_seasons(title_id: str) -> dict[str, Any]:
        try:
            groups = await fetch_season_groups(
                get_upstream(fastapi_app),
                title_id,
                max_pages=settings.grouping_max_pages,
            )
        except TransportError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"seasons": [group.model_dump() for group in groups]}

    @fastapi_app.post("/api/views", status_code=201)
    async def create_view(payload: OpenTitleRequest) -> dict[str, Any]:
        view = await get_views(fastapi_app).create()
        await _open(view.browser, payload)
        return _view_payload(view)

    @fastapi_app.get("/api/views/{view_id}")
    async def get_view(view_id: str) -> dict[str, Any]:
        return _view_payload(_view(view_id))

    @fastapi_app.post("/api/views/{view_id}/title")
    async def navigate_view(view_id: str, payload: OpenTitleRequest) -> dict[str, Any]:
        view = _view(view_id)
        await _open(view.browser, payload)
        return _view_payload(view)

    @fastapi_app.post("/api/views/{view_id}/seasons/{season_id}")
    async def select_season(view_id: str, season_id: str) -> dict[str, Any]:
        view = _view(view_id)
        try:
            await view.browser.select_season(season_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Unknown season") from exc
        return _view_payload(view)

    @fastapi_app.post("/api/views/{view_id}/more")
    async def load_more(view_id: str) -> dict[str, Any]:
        view = _view(view_id)
        await view.browser.load_more()
        return _view_payload(view)

    @fastapi_app.post("/api/views/{view_id}/retry/detail")
    async def retry_detail(view_id: str) -> dict[str, Any]:
        view = _view(view_id)
        await view.browser.retry_detail()
        return _view_payload(view)

    @fastapi_app.post("/api/views/{view_id}/retry/seasons")
    async def retry_seasons(view_id: str) -> dict[str, Any]:
        view = _view(view_id)
        await view.browser.retry_season_index()
        return _view_payload(view)

    @fastapi_app.post("/api/views/{view_id}/retry/seasons/{season_id}")
    async def retry_season_episodes(view_id: str, season_id: str) -> dict[str, Any]:
        view = _view(view_id)
        browser = view.browser
        try:
            await browser.retry_season_episodes(_season(browser, season_id))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Unknown season") from exc
        return _view_payload(view)

    @fastapi_app.delete("/api/views/{view_id}", status_code=204)
    async def delete_view(view_id: str) -> None:
        if not await get_views(fastapi_app).close(view_id):
            raise HTTPException(status_code=404, detail="Unknown view")


def _season(browser: TitleBrowser, raw: str) -> SeasonId:
    season_id = match_season(raw, browser.cache.season_index.seasons)
    if season_id is None:
        raise KeyError(raw)
    return season_id


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
