"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙

한 앱에 두 가지 라우터를 올린다.
  - registry_routes : Completion Registry (POST /api/login, /api/complete)
  - routes          : 참가자 세션 API (/api/session/...)
"""

import logging
import os
import re
import threading
import time
from concurrent.futures import Executor
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

import config
from api.config import CLEANUP_INTERVAL, SESSION_COOKIE, SESSION_TTL, STORAGE_DIR
from api.registry_routes import router as registry_router
from api.routes import router
import api.session as session
from error_island.services.fullscreen import ClientFullscreen
from error_island.services.registry_client import CompletionRegistry, HttpRegistryClient
from error_island.services.registry_store import RegistryService, build_store, load_roster
from error_island.services.session_controller import SessionController
from error_island.services.signal_bus import SignalBus
from error_island.services.termination_store import LocalStorage, TerminationStore

logger = logging.getLogger(__name__)

_SID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def create_app(
    registry: Optional[RegistryService] = None,
    participant_registry: Optional[CompletionRegistry] = None,
    storage_dir: str = STORAGE_DIR,
    executor: Optional[Executor] = None,
    start_cleanup: bool = True,
) -> FastAPI:
    """
    Args:
        registry:             이 앱이 서비스하는 레지스트리. None이면 config 기반으로 생성.
        participant_registry: 참가자 컨트롤러가 호출할 레지스트리.
                              None이면 REGISTRY_URL 이 있을 때 HTTP 클라이언트, 없으면 registry 를 직접 사용.
        storage_dir:          세션별 로컬 저장소(종료 기록) 디렉토리.
        executor:             완료 기록 전송 실행기 (테스트에서 동기 실행기 주입).
        start_cleanup:        만료 세션 정리 스레드 시작 여부.
    """
    app = FastAPI(title="Error Island Assessment", docs_url=None, redoc_url=None)

    if registry is None:
        registry = RegistryService(build_store(), load_roster(config.ROSTER_FILE))
    if participant_registry is None:
        participant_registry = HttpRegistryClient(config.REGISTRY_URL) if config.REGISTRY_URL else registry
    app.state.registry = registry
    app.state.participant_registry = participant_registry

    @app.on_event("shutdown")
    def close_registry_client():
        if isinstance(participant_registry, HttpRegistryClient):
            participant_registry.close()
            logger.info("레지스트리 HTTP 클라이언트 종료")

    def build_participant(sid: str) -> Dict[str, Any]:
        """세션 하나의 컨트롤러와 협력 객체 생성. 페이지 새로 고침과 동일한 초기화."""
        bus = SignalBus()
        fullscreen = ClientFullscreen()
        storage = LocalStorage(os.path.join(storage_dir, f"{sid}.json"))
        controller = SessionController(
            registry=participant_registry,
            termination_store=TerminationStore(storage),
            bus=bus,
            fullscreen=fullscreen,
            executor=executor,
        )
        return {"controller": controller, "bus": bus, "fullscreen": fullscreen}

    app.state.build_participant = build_participant

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 참가자 API 요청에만 쿠키 세션을 부여
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        if not request.url.path.startswith("/api/session"):
            return await call_next(request)

        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or not _SID_PATTERN.match(sid):
            sid = session.create_session()
        elif session.get_session(sid) is None:
            # 메모리에서 만료된 세션: 같은 ID로 복원 (종료 기록은 저장소에서 다시 읽힌다)
            session.create_session(sid)
        if session.get(sid, "controller") is None:
            session.install(sid, build_participant(sid))

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(registry_router)
    app.include_router(router)

    if os.path.isdir(config.STATIC_DIR):
        app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")

    @app.get("/")
    async def serve_index():
        index_path = os.path.join(config.STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    if start_cleanup:
        def _cleanup_loop():
            while True:
                time.sleep(CLEANUP_INTERVAL)
                removed = session.cleanup_expired()
                if removed:
                    logger.info(f"만료 세션 {removed}개 정리")

        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()

    return app
