"""
services/registry_client.py

Completion Registry 클라이언트.
Public API:
  - CompletionRegistry      : validate(uid) / record_completion(uid) 프로토콜
  - HttpRegistryClient      : POST /api/login, POST /api/complete 호출 (httpx)

레지스트리 백엔드(MongoDB, Redis, 메모리, 파일)는 서버 쪽 배포 설정이며
이 클라이언트는 어떤 백엔드인지 알지 못한다.
"""

import logging
from typing import Optional, Protocol

import httpx

import config
from error_island.errors import AlreadyUsed, InvalidCredential, InvalidInput, RegistryUnavailable

logger = logging.getLogger(__name__)


class CompletionRegistry(Protocol):

    def validate(self, uid: str) -> bool: ...

    def record_completion(self, uid: str) -> bool: ...


# 실패 응답의 reason 필드 → 예외. reason이 없으면 상태 코드로 판단한다.
_REASON_ERRORS = {
    "missing_uid": InvalidInput,
    "not_found": InvalidCredential,
    "already_used": AlreadyUsed,
    "server_error": RegistryUnavailable,
}

_STATUS_ERRORS = {
    400: InvalidInput,
    404: InvalidCredential,
    409: AlreadyUsed,
}


def _error_from_response(response: httpx.Response, default_message: str) -> Exception:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or default_message
    error_cls = _REASON_ERRORS.get(body.get("reason", "")) or _STATUS_ERRORS.get(
        response.status_code, RegistryUnavailable
    )
    return error_cls(message)


class HttpRegistryClient:

    def __init__(
        self,
        base_url: str = config.REGISTRY_URL,
        timeout: float = config.REGISTRY_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def validate(self, uid: str) -> bool:
        """
        로그인 가능한 UID인지 확인.

        Raises:
            InvalidCredential:   존재하지 않는 UID
            AlreadyUsed:         이미 사용된 UID
            RegistryUnavailable: 통신 실패 또는 서버 오류
        """
        response = self._post("/api/login", uid)
        if response.status_code == 200:
            return True
        raise _error_from_response(response, "Login failed. Please try again.")

    def record_completion(self, uid: str) -> bool:
        """완료 기록. 서버 쪽에서 멱등이다."""
        response = self._post("/api/complete", uid)
        if response.status_code == 200:
            return True
        raise _error_from_response(response, "Could not record completion.")

    def close(self) -> None:
        self._client.close()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def _post(self, path: str, uid: str) -> httpx.Response:
        try:
            return self._client.post(path, json={"uid": uid})
        except httpx.HTTPError as e:
            logger.error(f"레지스트리 통신 실패 ({path}): {e}")
            raise RegistryUnavailable("Could not reach the server. Please try again.") from e
