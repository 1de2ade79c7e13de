"""
api/registry_routes.py — Completion Registry 엔드포인트

POST /api/login    {uid} → 200 | 400 (uid 없음) | 404 (명단에 없음) | 409 (이미 사용) | 500
POST /api/complete {uid} → 200 (최초/중복 모두) | 400 | 500
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from error_island.errors import AlreadyUsed, InvalidCredential, RegistryUnavailable
from error_island.services.registry_store import RegistryService

router = APIRouter()


class UidBody(BaseModel):
    uid: Optional[str] = None


def _fail(status_code: int, reason: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "reason": reason, "message": message},
    )


@router.post("/api/login")
async def registry_login(body: UidBody, request: Request):
    registry: RegistryService = request.app.state.registry
    uid = (body.uid or "").strip()
    if not uid:
        return _fail(400, "missing_uid", "UID is required.")
    try:
        await asyncio.to_thread(registry.validate, uid)
    except InvalidCredential as e:
        return _fail(404, "not_found", str(e))
    except AlreadyUsed as e:
        return _fail(409, "already_used", str(e))
    except RegistryUnavailable as e:
        return _fail(500, "server_error", str(e))
    return {"success": True, "message": "UID is valid."}


@router.post("/api/complete")
async def registry_complete(body: UidBody, request: Request):
    registry: RegistryService = request.app.state.registry
    uid = (body.uid or "").strip()
    if not uid:
        return _fail(400, "missing_uid", "UID is required.")
    try:
        await asyncio.to_thread(registry.record_completion, uid)
    except RegistryUnavailable as e:
        return _fail(500, "server_error", str(e))
    return {"success": True, "message": "UID has been successfully recorded."}
