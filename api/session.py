"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 브라우저에 UUID 세션 ID를 발급하고, 세션별로 참가자 객체(컨트롤러, 신호 버스, 전체 화면 상태)를 유지.
TTL 경과 시 메모리에서만 제거된다. 종료 기록은 세션별 로컬 저장소 파일에 남으므로
같은 쿠키로 다시 접속하면 새로 고침과 동일하게 상태가 복원된다.

세션을 버릴 때(만료, 초기화)는 컨트롤러를 close() 하여 감독 구독과 타이머를 정리한다.
"""

import logging
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from api.config import SESSION_TTL

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_participants: Dict[str, Dict[str, Any]] = {}
_last_seen: Dict[str, float] = {}


def _expired(sid: str, now: float) -> bool:
    return now - _last_seen[sid] > SESSION_TTL


def _discard(sid: str) -> Dict[str, Any]:
    """락 안에서 호출. 세션을 목록에서 빼고 정리할 참가자 객체를 돌려준다."""
    _last_seen.pop(sid, None)
    return _participants.pop(sid, {})


def _teardown(participants: List[Dict[str, Any]]) -> None:
    """락 밖에서 호출. 버려진 컨트롤러의 모니터·타이머 정리."""
    for participant in participants:
        controller = participant.get("controller")
        if controller is not None:
            controller.close()


def create_session(sid: Optional[str] = None) -> str:
    """새 세션을 생성하고 세션 ID를 반환. sid를 주면 그 ID로 다시 만든다."""
    sid = sid or uuid.uuid4().hex
    with _lock:
        old = _discard(sid)
        _participants[sid] = {}
        _last_seen[sid] = time.time()
    _teardown([old])
    return sid


def get_session(sid: str) -> Optional[Dict[str, Any]]:
    """세션의 참가자 객체. 만료되었거나 없으면 None (만료 세션은 이때 정리)."""
    stale: Dict[str, Any] = {}
    with _lock:
        if sid not in _participants:
            return None
        now = time.time()
        if _expired(sid, now):
            stale = _discard(sid)
        else:
            _last_seen[sid] = now
            return _participants[sid]
    _teardown([stale])
    logger.info(f"만료 세션 정리: {sid}")
    return None


def get(sid: str, key: str, default=None):
    participant = get_session(sid)
    if participant is None:
        return default
    return participant.get(key, default)


def install(sid: str, participant: Dict[str, Any]) -> None:
    """세션에 새 참가자 객체를 올린다. 기존 컨트롤러가 있으면 정리한다."""
    with _lock:
        if sid not in _participants:
            return
        old = _participants[sid]
        _participants[sid] = dict(participant)
        _last_seen[sid] = time.time()
    if old.get("controller") is not participant.get("controller"):
        _teardown([old])


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    with _lock:
        expired = [sid for sid in _last_seen if _expired(sid, now)]
        stale = [_discard(sid) for sid in expired]
    _teardown(stale)
    return len(stale)
