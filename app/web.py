from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app.api import build_series, build_snapshot, get_aggregator, get_poller
from app.schemas import SeriesOut
from services.aggregator import Aggregator
from services.bucketing import RANGE_POLICIES, TimeRange
from services.classification import is_classified
from services.poller import Poller


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    time_range: Optional[TimeRange] = Query(None, alias="range"),
    poller: Poller = Depends(get_poller),
    aggregator: Aggregator = Depends(get_aggregator),
) -> HTMLResponse:
    selected = time_range or TimeRange(poller.config.time_range)
    snapshot = build_snapshot(poller, aggregator)
    charts: list[SeriesOut] = [
        build_series(poller, aggregator, reading.type, selected)
        for reading in snapshot.readings
        if is_classified(reading.type)
    ]
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "snapshot": snapshot,
            "charts": charts,
            "selected_range": selected,
            "ranges": [(option.value, policy.label) for option, policy in RANGE_POLICIES.items()],
            "refresh_seconds": int(poller.config.refresh_interval),
        },
    )


@router.post("/ui/refresh", name="ui_refresh")
async def ui_refresh(
    request: Request,
    poller: Poller = Depends(get_poller),
) -> RedirectResponse:
    await poller.refetch()
    return RedirectResponse(request.url_for("ui_index"), status_code=status.HTTP_303_SEE_OTHER)
