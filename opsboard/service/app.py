from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from opsboard.graph.controller import GraphView, Overlay
from opsboard.graph.nodes import find_entity
from opsboard.logs.filters import LogFilter
from opsboard.logs.service_panel import group_services, panel_stats
from opsboard.models import LayoutMode, LogLevel, ServiceCategory
from opsboard.runtime import DashboardRuntime
from opsboard.service.stream import stream_feed_sse
from opsboard.settings import Settings
from opsboard.state.preferences import ActiveView, Theme
from opsboard.telemetry.audit import tail_jsonl


VERSION = "0.1.0"

router = APIRouter()


def _runtime(request: Request) -> DashboardRuntime:
    return request.app.state.runtime


# ---------- request bodies ----------


class SearchBody(BaseModel):
    search: str = ""


class TypeBody(BaseModel):
    type: str


class LayoutBody(BaseModel):
    mode: LayoutMode


class OverlayBody(BaseModel):
    overlay: Overlay


class LogFiltersBody(BaseModel):
    levels: Optional[List[LogLevel]] = None
    services: Optional[List[str]] = None
    search: Optional[str] = None


class LevelBody(BaseModel):
    level: LogLevel


class ServiceBody(BaseModel):
    service: str


class ScrollBody(BaseModel):
    scroll_top: float = Field(ge=0)
    client_height: float = Field(ge=0)
    scroll_height: float = Field(ge=0)


class LiveBody(BaseModel):
    enabled: bool


class PanelBody(BaseModel):
    search: Optional[str] = None
    toggle_category: Optional[ServiceCategory] = None
    sort_by: Optional[Literal["name", "activity", "count"]] = None
    show_inactive: Optional[bool] = None
    group_by_category: Optional[bool] = None
    clear: bool = False


class PreferencesBody(BaseModel):
    theme: Optional[Theme] = None
    active_view: Optional[ActiveView] = None


# ---------- graph ----------


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    rt = _runtime(request)
    return {
        "ok": True,
        "version": VERSION,
        "live": rt.pipeline.live,
        "refresh_poller": rt.refresh_poller.is_running,
        "live_poller": rt.live_poller.is_running,
    }


@router.get("/api/graph", response_model=GraphView)
def graph_view(request: Request) -> GraphView:
    return _runtime(request).graph.view()


@router.get("/api/graph/entities/{entity_id}")
def graph_entity(request: Request, entity_id: str) -> Dict[str, Any]:
    graph = _runtime(request).graph
    entity = find_entity(graph.entities, entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"unknown entity: {entity_id}")
    related = [r.model_dump(mode="json") for r in graph.relations if entity_id in (r.source, r.target)]
    return {"entity": entity.model_dump(mode="json"), "relations": related}


@router.post("/api/graph/search", response_model=GraphView)
def graph_search(request: Request, body: SearchBody) -> GraphView:
    graph = _runtime(request).graph
    graph.set_search(body.search)
    return graph.view()


@router.post("/api/graph/types/toggle", response_model=GraphView)
def graph_toggle_type(request: Request, body: TypeBody) -> GraphView:
    graph = _runtime(request).graph
    graph.toggle_type(body.type)
    return graph.view()


@router.post("/api/graph/types/clear", response_model=GraphView)
def graph_clear_types(request: Request) -> GraphView:
    graph = _runtime(request).graph
    graph.clear_types()
    return graph.view()


@router.post("/api/graph/layout", response_model=GraphView)
def graph_layout(request: Request, body: LayoutBody) -> GraphView:
    graph = _runtime(request).graph
    graph.choose_layout(body.mode)
    return graph.view()


@router.post("/api/graph/overlay", response_model=GraphView)
def graph_overlay(request: Request, body: OverlayBody) -> GraphView:
    graph = _runtime(request).graph
    graph.toggle_overlay(body.overlay)
    return graph.view()


@router.post("/api/graph/overlay/dismiss", response_model=GraphView)
def graph_overlay_dismiss(request: Request) -> GraphView:
    graph = _runtime(request).graph
    graph.dismiss_overlay()
    return graph.view()


@router.post("/api/graph/fullscreen", response_model=GraphView)
def graph_fullscreen(request: Request) -> GraphView:
    graph = _runtime(request).graph
    graph.enter_fullscreen()
    return graph.view()


@router.post("/api/graph/escape", response_model=GraphView)
def graph_escape(request: Request) -> GraphView:
    graph = _runtime(request).graph
    graph.escape()
    return graph.view()


# ---------- logs ----------


def _logs_payload(rt: DashboardRuntime) -> Dict[str, Any]:
    view = rt.pipeline.view()
    return {
        "entries": [e.model_dump(mode="json") for e in view.entries],
        "visible_count": view.visible_count,
        "filtered_count": view.filtered_count,
        "total_count": view.total_count,
        "has_more": view.has_more,
        "live": view.live,
        "filter": {
            "levels": sorted(lvl.value for lvl in view.filter.levels),
            "services": sorted(view.filter.services),
            "search": view.filter.search,
        },
    }


@router.get("/api/logs")
def logs_view(request: Request) -> Dict[str, Any]:
    return _logs_payload(_runtime(request))


@router.post("/api/logs/filters")
def logs_set_filters(request: Request, body: LogFiltersBody) -> Dict[str, Any]:
    rt = _runtime(request)
    current = rt.pipeline.filter
    rt.pipeline.set_filter(
        LogFilter.build(
            levels=body.levels if body.levels is not None else current.levels,
            services=body.services if body.services is not None else current.services,
            search=body.search if body.search is not None else current.search,
        )
    )
    return _logs_payload(rt)


@router.post("/api/logs/levels/toggle")
def logs_toggle_level(request: Request, body: LevelBody) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.pipeline.toggle_level(body.level)
    return _logs_payload(rt)


@router.post("/api/logs/services/toggle")
def logs_toggle_service(request: Request, body: ServiceBody) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.pipeline.toggle_service(body.service)
    return _logs_payload(rt)


@router.post("/api/logs/services/select_all")
def logs_select_all_services(request: Request) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.pipeline.select_all_services()
    return _logs_payload(rt)


@router.post("/api/logs/services/clear")
def logs_clear_services(request: Request) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.pipeline.clear_services()
    return _logs_payload(rt)


@router.post("/api/logs/filters/clear")
def logs_clear_filters(request: Request) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.pipeline.clear_filters()
    return _logs_payload(rt)


@router.post("/api/logs/scroll")
def logs_scroll(request: Request, body: ScrollBody) -> Dict[str, Any]:
    rt = _runtime(request)
    grew = rt.pipeline.on_scroll(body.scroll_top, body.client_height, body.scroll_height)
    return {"grew": grew, **_logs_payload(rt)}


@router.post("/api/logs/live")
def logs_live(request: Request, body: LiveBody) -> Dict[str, Any]:
    rt = _runtime(request)
    rt.set_live(body.enabled)
    return {"live": rt.pipeline.live, "poller_running": rt.live_poller.is_running}


@router.get("/api/logs/feed")
async def logs_feed(request: Request) -> StreamingResponse:
    rt = _runtime(request)
    return StreamingResponse(stream_feed_sse(rt.feed), media_type="text/event-stream")


# ---------- services / overview ----------


def _services_payload(rt: DashboardRuntime) -> Dict[str, Any]:
    services = rt.pipeline.services()
    state = rt.pipeline.panel
    stats = panel_stats(services, state, selected=rt.pipeline.filter.services)
    return {
        "services": [s.model_dump(mode="json") for s in services],
        "groups": {k: [s.service_name for s in v] for k, v in group_services(services, state).items()},
        "panel": {
            "search": state.search,
            "categories": sorted(c.value for c in state.categories),
            "sort_by": state.sort_by,
            "sort_direction": state.sort_direction,
            "group_by_category": state.group_by_category,
            "show_inactive": state.show_inactive,
            "has_active_filters": state.has_active_filters,
        },
        "stats": {
            "total": stats.total,
            "filtered": stats.filtered,
            "selected": stats.selected,
            "active": stats.active,
            "total_log_count": stats.total_log_count,
            "categories": [
                {"category": c.category.value, "label": c.label, "count": c.count, "log_count": c.log_count, "active_count": c.active_count}
                for c in stats.categories
            ],
        },
    }


@router.get("/api/services")
def services_view(request: Request) -> Dict[str, Any]:
    return _services_payload(_runtime(request))


@router.post("/api/services/panel")
def services_panel(request: Request, body: PanelBody) -> Dict[str, Any]:
    rt = _runtime(request)
    state = rt.pipeline.panel
    if body.clear:
        state = state.clear()
    if body.search is not None:
        state = state.with_search(body.search)
    if body.toggle_category is not None:
        state = state.toggle_category(body.toggle_category)
    if body.sort_by is not None:
        state = state.sort(body.sort_by)
    if body.show_inactive is not None:
        state = replace(state, show_inactive=body.show_inactive)
    if body.group_by_category is not None:
        state = replace(state, group_by_category=body.group_by_category)
    rt.pipeline.panel = state
    return _services_payload(rt)


@router.post("/api/services/{service_id}/refresh")
def services_refresh(request: Request, service_id: str) -> JSONResponse:
    accepted = _runtime(request).refresh_service(service_id)
    return JSONResponse({"ok": accepted, "service_id": service_id}, status_code=200 if accepted else 502)


@router.get("/api/overview")
def overview(request: Request) -> Dict[str, Any]:
    rt = _runtime(request)
    cards = rt.health_cards()
    return {
        "stats": rt.overview().model_dump(mode="json"),
        "services": [s.model_dump(mode="json") for s in cards.services],
        "using_mock_data": cards.using_mock_data,
        "last_refresh": rt.store.last_refresh.isoformat() if rt.store.last_refresh else None,
        "errors": rt.store.errors(),
    }


@router.post("/api/refresh")
def refresh(request: Request) -> Dict[str, Any]:
    snapshot = _runtime(request).refresh()
    return {"ok": not snapshot.failed, "failed": snapshot.failed, "fetched_at": snapshot.fetched_at.isoformat()}


# ---------- preferences / audit ----------


@router.get("/api/preferences")
def preferences_get(request: Request) -> Dict[str, Any]:
    return _runtime(request).preferences.current.model_dump()


@router.post("/api/preferences")
def preferences_set(request: Request, body: PreferencesBody) -> Dict[str, Any]:
    changes = body.model_dump(exclude_none=True)
    return _runtime(request).preferences.update(**changes).model_dump()


@router.post("/api/preferences/theme/cycle")
def preferences_cycle_theme(request: Request) -> Dict[str, Any]:
    return _runtime(request).preferences.cycle_theme().model_dump()


@router.get("/api/audit/recent")
def audit_recent(request: Request, n: int = 200) -> JSONResponse:
    settings: Settings = request.app.state.settings
    records = [r.__dict__ for r in tail_jsonl(settings.audit_log_path, max_lines=max(1, min(n, 2000)))]
    return JSONResponse({"records": records})


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": "invalid request", "detail": jsonable_encoder(exc.errors())}, status_code=400)


def create_app(settings: Settings | None = None, *, runtime: DashboardRuntime | None = None) -> FastAPI:
    """
    App factory used by uvicorn and tests. Pollers start with the lifespan and are stopped on shutdown.
    """
    s = settings or Settings()
    rt = runtime or DashboardRuntime(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rt.audit.write("service", "service.started", {"api_base_url": s.api_base_url, "at": datetime.now(timezone.utc)})
        rt.start()
        try:
            yield
        finally:
            rt.shutdown()

    new_app = FastAPI(title="opsboard", version=VERSION, lifespan=lifespan)
    new_app.state.settings = s
    new_app.state.runtime = rt
    new_app.add_exception_handler(RequestValidationError, _validation_error)
    new_app.include_router(router)
    return new_app


app = create_app()
