"""
api/routes.py — 참가자 세션 엔드포인트

모든 요청은 먼저 controller.poll() 로 라운드 타이머를 현재 시각까지 반영한다.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

import api.session as session
from error_island.errors import (
    AlreadyUsed, AssessmentError, InvalidCredential, InvalidInput,
    InvalidResumeCode, InvalidTransition, RegistryUnavailable,
)
from error_island.services.fullscreen import ClientFullscreen
from error_island.services.session_controller import SessionController
from error_island.services.signal_bus import BrowserSignal, SignalBus, SignalType

router = APIRouter(prefix="/api/session")

# ── Pydantic request bodies ──────────────────────────────────────────────────

class LoginBody(BaseModel):
    uid: str = ""

class RoundBody(BaseModel):
    round: int = Field(..., ge=1, le=3)

class CompleteRoundBody(BaseModel):
    round: int = Field(..., ge=1, le=3)
    score: float = Field(..., ge=0)

class FullscreenFailedBody(BaseModel):
    message: str = ""

class ResumeBody(BaseModel):
    code: str = ""


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

_STATUS_CODES = {
    InvalidInput: 400,
    InvalidResumeCode: 403,
    InvalidCredential: 404,
    AlreadyUsed: 409,
    InvalidTransition: 409,
    RegistryUnavailable: 503,
}


def _http_error(e: AssessmentError) -> HTTPException:
    return HTTPException(status_code=_STATUS_CODES.get(type(e), 400), detail=str(e))


def _participant(request: Request) -> Dict[str, Any]:
    sid = request.state.session_id
    participant = session.get_session(sid)
    if not participant or participant.get("controller") is None:
        raise HTTPException(status_code=404, detail="Session not found.")
    participant["controller"].poll()
    return participant


def _controller(request: Request) -> SessionController:
    return _participant(request)["controller"]


def _state(controller: SessionController, fullscreen: Optional[ClientFullscreen] = None) -> dict:
    data = controller.snapshot()
    if fullscreen is not None:
        data["fullscreen_requested"] = fullscreen.requested
    return data


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.get("/state")
async def get_state(request: Request):
    participant = _participant(request)
    return _state(participant["controller"], participant["fullscreen"])


@router.post("/login")
async def login(body: LoginBody, request: Request):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.login, body.uid)
    except AssessmentError as e:
        raise _http_error(e)
    return _state(controller)


@router.post("/start-round")
async def start_round(body: RoundBody, request: Request):
    participant = _participant(request)
    controller: SessionController = participant["controller"]
    try:
        controller.start_round(body.round)
    except AssessmentError as e:
        raise _http_error(e)
    return _state(controller, participant["fullscreen"])


@router.post("/complete-round")
async def complete_round(body: CompleteRoundBody, request: Request):
    controller = _controller(request)
    try:
        accepted = controller.complete_round(body.round, body.score)
    except AssessmentError as e:
        raise _http_error(e)
    data = _state(controller)
    data["accepted"] = accepted
    return data


@router.post("/signal")
async def report_signal(body: BrowserSignal, request: Request):
    """브라우저 이벤트 보고. suppressed=True 이면 클라이언트가 preventDefault 해야 한다."""
    participant = _participant(request)
    controller: SessionController = participant["controller"]
    bus: SignalBus = participant["bus"]
    fullscreen: ClientFullscreen = participant["fullscreen"]

    if body.type == SignalType.FULLSCREEN_CHANGE and body.fullscreen is not None:
        fullscreen.report(body.fullscreen)
    suppressed = bus.emit(body)
    return {"suppressed": suppressed, "phase": controller.phase.value}


@router.post("/fullscreen-failed")
async def fullscreen_failed(body: FullscreenFailedBody, request: Request):
    participant = _participant(request)
    controller: SessionController = participant["controller"]
    controller.fullscreen_request_failed(body.message)
    return _state(controller, participant["fullscreen"])


@router.post("/show-score")
async def show_score(request: Request):
    controller = _controller(request)
    try:
        controller.show_final_score()
    except AssessmentError as e:
        raise _http_error(e)
    return _state(controller)


@router.post("/resume")
async def resume(body: ResumeBody, request: Request):
    controller = _controller(request)
    try:
        controller.resume(body.code)
    except AssessmentError as e:
        raise _http_error(e)
    return _state(controller)


@router.post("/reload")
async def reload(request: Request):
    """페이지 새로 고침: 메모리 상태를 버리고 로컬 저장소에서 다시 도출한다."""
    sid = request.state.session_id
    session.install(sid, request.app.state.build_participant(sid))
    participant = _participant(request)
    return _state(participant["controller"], participant["fullscreen"])
