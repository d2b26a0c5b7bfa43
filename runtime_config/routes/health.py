from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from runtime_config.runtime import ConfigRuntime, get_runtime

router = APIRouter(tags=["ops"])


@router.get("/health")
async def health(rt: ConfigRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "cacheSize": len(rt.cache),
        "uptime": round(rt.uptime_seconds(), 3),
        "environment": rt.settings.APP_ENV,
        "version": rt.settings.VERSION,
        "backendConfigured": rt.backend.configured,
    }


@router.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
