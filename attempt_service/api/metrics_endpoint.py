"""Prometheus metrics endpoint.

Scraped by Prometheus every N seconds; returns the text exposition format:

  # TYPE attempt_transitions_total counter
  attempt_transitions_total{to_status="submitted"} 412.0
  attempt_transitions_total{to_status="evaluated"} 388.0

Restrict access in production (network policy or an internal port):
rejection counts by kind reveal how the engine is being exercised.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
