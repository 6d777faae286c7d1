"""
netatmo_bridge/routers/metrics.py
Endpoints:
  GET /metrics/v1  → legacy per-source families
  GET /metrics/v2  → unified families with a device_class label

Cache reads only. A due refresh is started in the background and lands in
the NEXT scrape; upstream outages still answer 200 with up=0.
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(prefix="/metrics", tags=["metrics"])


def _render(request: Request, view: str) -> Response:
    registry = request.app.state.registries[view]
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


# async so collection runs on the event loop, where refresh tasks are spawned
@router.get("/v1")
async def metrics_v1(request: Request):
    return _render(request, "v1")


@router.get("/v2")
async def metrics_v2(request: Request):
    return _render(request, "v2")
