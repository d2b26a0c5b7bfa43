from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from runtime_config.runtime import ConfigRuntime, get_runtime
from runtime_config.schemas import (
    ConfigDeleteRequest,
    ConfigUpsertRequest,
    EnvSyncRequest,
    RotateKeysRequest,
)
from runtime_config.services.admin import AdminContext
from runtime_config.services.ratelimit import client_identifier

router = APIRouter(prefix="/admin", tags=["admin"])


def admin_context(request: Request) -> AdminContext:
    return AdminContext(
        identity=(request.headers.get("x-admin-email") or "unknown").strip() or "unknown",
        ip_address=client_identifier(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/config")
async def list_config(
    env: str = Query("production"),
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    return await rt.admin.list_config(ctx, env)


@router.post("/config")
async def upsert_config(
    payload: ConfigUpsertRequest,
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Any:
    return await rt.admin.upsert(ctx, payload)


@router.delete("/config/{key}")
async def delete_config(
    key: str,
    env: str = Query("production"),
    payload: Optional[ConfigDeleteRequest] = Body(default=None),
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Any:
    reason = payload.reason if payload else None
    return await rt.admin.delete(ctx, key, environment=env, reason=reason)


@router.get("/audit-logs")
async def audit_logs(
    key: Optional[str] = Query(None),
    env: Optional[str] = Query(None),
    days: int = Query(30),
    limit: int = Query(100),
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    return await rt.admin.list_audit_logs(ctx, key_filter=key, env_filter=env, days_back=days, limit=limit)


@router.post("/clear-cache")
async def clear_cache(
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    return rt.admin.clear_cache(ctx)


@router.post("/env-sync")
async def env_sync(
    payload: Optional[EnvSyncRequest] = Body(default=None),
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    return rt.admin.env_sync(ctx, payload or EnvSyncRequest())


@router.post("/rotate-keys")
async def rotate_keys(
    payload: RotateKeysRequest,
    ctx: AdminContext = Depends(admin_context),
    rt: ConfigRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    return rt.admin.rotate_keys(ctx, payload)
