"""
services/termination_store.py

종료 기록 영구 저장.
Public API:
  - LocalStorage            : 동기식 로컬 키-값 저장소 (브라우저 localStorage 대응, JSON 파일 기반)
  - TerminationStore.save(reason) / load() -> reason | None / clear()

설계 원칙:
- 페이지 새로고침(컨트롤러 재생성)에도 살아남아야 한다.
- 손상된 값은 "기록 없음"으로 취급한다 (login 으로 fail-open, 예외 없음).
"""

import json
import logging
import os
import tempfile
from typing import Dict, Optional

from pydantic import ValidationError

import config
from error_island.models.session_state import TerminationRecord

logger = logging.getLogger(__name__)


class LocalStorage:
    """
    문자열 키 → 문자열 값 저장소.
    path가 None이면 메모리에만 보관 (테스트용).
    쓰기는 임시 파일 + os.replace 로 원자적으로 수행한다.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._memory: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> Dict[str, str]:
        if self.path is None:
            return dict(self._memory)
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"로컬 저장소 읽기 실패, 빈 저장소로 취급: {self.path} ({e})")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"로컬 저장소 형식 오류, 빈 저장소로 취급: {self.path}")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        if self.path is None:
            self._memory = dict(data)
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class TerminationStore:

    def __init__(self, storage: LocalStorage, key: str = config.TERMINATION_KEY) -> None:
        self._storage = storage
        self._key = key

    def save(self, reason: str) -> None:
        record = TerminationRecord(reason=reason)
        self._storage.set_item(self._key, record.model_dump_json())
        logger.info(f"종료 기록 저장: {reason}")

    def load(self) -> Optional[str]:
        """저장된 종료 사유. 기록이 없거나 손상되었으면 None."""
        raw = self._storage.get_item(self._key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("종료 기록 파싱 실패, 기록 없음으로 처리")
            return None
        if not isinstance(data, dict):
            logger.warning("종료 기록 형식 오류, 기록 없음으로 처리")
            return None
        try:
            record = TerminationRecord.model_validate(data)
        except ValidationError as e:
            logger.warning(f"종료 기록 검증 실패, 기록 없음으로 처리: {e}")
            return None
        return record.reason or TerminationRecord().reason

    def clear(self) -> None:
        self._storage.remove_item(self._key)
        logger.info("종료 기록 삭제")
