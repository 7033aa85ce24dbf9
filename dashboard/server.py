from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from aiohttp import web
from pydantic import ValidationError

from models.prediction import PipsSettings
from modules.session import PredictionSession
from modules.view_builder import (
    DEFAULT_DISPLAY_COUNT,
    DateRangeFilter,
    PartitionQuery,
    PartitionView,
    SortConfig,
)
from notifiers.hub import NotifierHub


def _parse_dt(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw)
    # naive bounds are read as local time, like the entry timestamps
    return parsed if parsed.tzinfo else parsed.astimezone()


def _partition_query(q, prefix: str, default_count: int) -> PartitionQuery:
    sort = SortConfig(
        key=q.get(f"{prefix}_sort", "created_at"),
        direction=q.get(f"{prefix}_dir", "desc"),
    )
    kwargs = {
        "status": q.get(f"{prefix}_status", "ALL"),
        "signal": q.get(f"{prefix}_signal", "ALL"),
        "sort": sort,
        "display_count": int(q.get(f"{prefix}_count", default_count)),
    }
    return PartitionQuery(**kwargs)


async def _json_object(req: web.Request) -> dict:
    """Request body as a JSON object; malformed or non-object bodies raise ValueError."""
    body = await req.json()
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    return body


def _partition_json(view: PartitionView, now: datetime) -> dict:
    rows = []
    for e in view.entries:
        row = e.to_dict()
        row["seconds_remaining"] = e.seconds_remaining(now)
        rows.append(row)
    return {"rows": rows, "shown": view.shown, "total": view.total, "label": view.label}


def create_app(
    session: PredictionSession,
    notifier: NotifierHub,
    *,
    display_count: int = DEFAULT_DISPLAY_COUNT,
) -> web.Application:
    selection = session.selection

    async def handle_views(req: web.Request) -> web.Response:
        q = req.query
        try:
            date_range = DateRangeFilter(start=_parse_dt(q.get("start")), end=_parse_dt(q.get("end")))
            active = _partition_query(q, "active", display_count)
            expired = _partition_query(q, "expired", display_count)
        except ValueError as exc:
            raise web.HTTPBadRequest(text=str(exc))
        now = session.clock()
        views = session.views(date_range=date_range, active=active, expired=expired, now=now)
        return web.json_response(
            {
                "now": now.isoformat(),
                "active": _partition_json(views.active, now),
                "expired": _partition_json(views.expired, now),
            },
            headers={"Cache-Control": "no-store"},
        )

    async def handle_notifications(_req: web.Request) -> web.Response:
        latest = notifier.latest
        return web.json_response(
            {
                "latest": latest.to_dict() if latest else None,
                "history": [n.to_dict() for n in reversed(notifier.history)],
            }
        )

    def _selection_json() -> dict:
        state = selection.state
        return {
            "instruments": list(state.instruments),
            "pips": state.pips.model_dump(),
            "refresh_interval": state.refresh_interval,
            "max_lifetime_s": state.max_lifetime_s,
            "displayed_entry_id": selection.displayed_entry_id,
            "details_view": selection.details_view,
        }

    async def handle_get_selection(_req: web.Request) -> web.Response:
        return web.json_response(_selection_json())

    async def handle_post_selection(req: web.Request) -> web.Response:
        # parse everything first so a bad field leaves the selection untouched
        try:
            body = await _json_object(req)
            pips = PipsSettings.model_validate(body["pips"]) if "pips" in body else None
            lifetime = int(body["max_lifetime_s"]) if "max_lifetime_s" in body else None
            if "instruments" in body:
                selection.set_instruments(body["instruments"])
        except (ValueError, TypeError, ValidationError) as exc:
            raise web.HTTPBadRequest(text=str(exc))
        if pips is not None:
            selection.set_pips(pips)
        if lifetime is not None:
            selection.set_max_lifetime(lifetime)
        if "refresh_interval" in body:
            selection.set_refresh_interval(str(body["refresh_interval"]))
        return web.json_response(_selection_json())

    async def handle_display(req: web.Request) -> web.Response:
        try:
            body = await _json_object(req)
        except ValueError as exc:
            raise web.HTTPBadRequest(text=str(exc))
        entry_id = body.get("id")
        if entry_id is not None and not isinstance(entry_id, str):
            raise web.HTTPBadRequest(text="id must be a string or null")
        if entry_id is not None and session.store.get(entry_id) is None:
            raise web.HTTPNotFound(text=f"no log entry {entry_id}")
        selection.display(entry_id)
        return web.json_response(_selection_json())

    async def handle_entry(req: web.Request) -> web.Response:
        entry = session.store.get(req.match_info["entry_id"])
        if entry is None:
            raise web.HTTPNotFound()
        return web.json_response(entry.to_dict())

    async def handle_health(_req: web.Request) -> web.Response:
        scheduler = session.scheduler
        return web.json_response(
            {
                "running": session.is_running,
                "state": scheduler.state.value,
                "store_size": len(session.store),
                "max_logs": session.store.max_logs,
                "metrics": {k: v for k, v in scheduler.metrics.items() if k != "latencies"},
            }
        )

    app = web.Application()
    app.router.add_get("/api/views", handle_views)
    app.router.add_get("/api/notifications", handle_notifications)
    app.router.add_get("/api/selection", handle_get_selection)
    app.router.add_post("/api/selection", handle_post_selection)
    app.router.add_post("/api/display", handle_display)
    app.router.add_get("/api/entries/{entry_id}", handle_entry)
    app.router.add_get("/api/health", handle_health)
    return app


async def run_dashboard(
    session: PredictionSession,
    notifier: NotifierHub,
    *,
    port: int,
    host: str = "0.0.0.0",
    display_count: int = DEFAULT_DISPLAY_COUNT,
    log_level: str = "INFO",
) -> None:
    log = logging.getLogger("dashboard")
    log.setLevel(log_level)
    runner = web.AppRunner(create_app(session, notifier, display_count=display_count))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("dashboard API running on :%s", port)
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
