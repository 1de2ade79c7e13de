"""
services/registry_store.py

Completion Registry — "사용된 UID" 저장소와 레지스트리 서비스.
Public API:
  - UsedUidStore            : is_used(uid) / mark_used(uid) 추상 인터페이스
  - MemoryUidStore          : 프로세스 메모리 집합
  - RedisUidStore           : Redis SET (SISMEMBER / SADD)
  - MongoUidStore           : MongoDB 컬렉션 upsert ($setOnInsert)
  - FileUidStore            : JSON 리스트 파일
  - RegistryService         : validate(uid) / record_completion(uid)
  - load_roster(path)       : 유효 UID 명단 (users.json)
  - build_store()           : config.REGISTRY_BACKEND 에 따른 저장소 생성

설계 원칙:
- record_completion은 멱등이다. 같은 UID로 두 번 호출해도 기록은 하나.
- 저장소 종류는 배포 설정일 뿐, 컨트롤러 로직은 분기하지 않는다.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional, Set

import redis
from pydantic import BaseModel, ValidationError
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi
from redis.exceptions import RedisError

import config
from error_island.errors import AlreadyUsed, InvalidCredential, InvalidInput, RegistryUnavailable

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """저장소 접근 실패 (네트워크, 디스크, DB)."""


class UsedUidStore(ABC):

    @abstractmethod
    def is_used(self, uid: str) -> bool: ...

    @abstractmethod
    def mark_used(self, uid: str) -> bool:
        """UID를 사용됨으로 기록. 새로 기록했으면 True, 이미 있었으면 False."""


class MemoryUidStore(UsedUidStore):

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._uids: Set[str] = set()

    def is_used(self, uid: str) -> bool:
        with self._lock:
            return uid in self._uids

    def mark_used(self, uid: str) -> bool:
        with self._lock:
            if uid in self._uids:
                return False
            self._uids.add(uid)
            return True

    def __len__(self) -> int:
        return len(self._uids)


class FileUidStore(UsedUidStore):
    """사용된 UID 목록을 JSON 배열 파일 하나에 보관."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> List[str]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"UID 파일 파싱 실패: {e}") from e
        except OSError as e:
            raise StoreError(f"UID 파일 읽기 실패: {e}") from e
        if not isinstance(data, list):
            raise StoreError("UID 파일 형식 오류 (배열이 아님)")
        return [u for u in data if isinstance(u, str)]

    def is_used(self, uid: str) -> bool:
        with self._lock:
            return uid in self._read()

    def mark_used(self, uid: str) -> bool:
        with self._lock:
            uids = self._read()
            if uid in uids:
                return False
            uids.append(uid)
            try:
                os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
                tmp_path = f"{self.path}.tmp"
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(uids, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except OSError as e:
                raise StoreError(f"UID 파일 쓰기 실패: {e}") from e
            return True


class RedisUidStore(UsedUidStore):

    def __init__(self, client=None, key: str = config.REDIS_KEY, redis_url: str = config.REDIS_URL) -> None:
        self.key = key
        self.redis_url = redis_url
        self._client = client

    @property
    def client(self):
        """Redis 클라이언트 지연 생성."""
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
            logger.info(f"Redis 연결: {self.redis_url}")
        return self._client

    def is_used(self, uid: str) -> bool:
        try:
            return bool(self.client.sismember(self.key, uid))
        except RedisError as e:
            raise StoreError(f"Redis 조회 실패: {e}") from e

    def mark_used(self, uid: str) -> bool:
        try:
            return self.client.sadd(self.key, uid) == 1
        except RedisError as e:
            raise StoreError(f"Redis 기록 실패: {e}") from e


class MongoUidStore(UsedUidStore):
    """escapeIsland.used_uids 컬렉션. 문서 형식: {uid, timestamp}"""

    def __init__(self, collection=None, uri: str = config.MONGODB_URI) -> None:
        self.uri = uri
        self._collection = collection

    @property
    def collection(self):
        if self._collection is None:
            if not self.uri:
                raise StoreError("MONGODB_URI 환경 변수가 설정되지 않았습니다.")
            client = MongoClient(self.uri, server_api=ServerApi("1", strict=True, deprecation_errors=True))
            client.admin.command("ping")
            logger.info("MongoDB 연결 확인 (ping)")
            self._collection = client[config.MONGO_DB][config.MONGO_COLLECTION]
        return self._collection

    def is_used(self, uid: str) -> bool:
        try:
            return self.collection.find_one({"uid": uid}) is not None
        except PyMongoError as e:
            raise StoreError(f"MongoDB 조회 실패: {e}") from e

    def mark_used(self, uid: str) -> bool:
        try:
            result = self.collection.update_one(
                {"uid": uid},
                {"$setOnInsert": {"uid": uid, "timestamp": datetime.now(timezone.utc)}},
                upsert=True,
            )
        except PyMongoError as e:
            raise StoreError(f"MongoDB 기록 실패: {e}") from e
        return result.upserted_id is not None


# ── 명단 ─────────────────────────────────────────────────────────────────────

class RosterEntry(BaseModel):
    uid: str


def load_roster(path: Optional[str]) -> Optional[Set[str]]:
    """
    유효 UID 명단 로드.

    Returns:
        UID 집합. 파일이 없거나 path가 비어 있으면 None (명단 검사 생략).
    """
    if not path or not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        items = json.load(f)
    roster: Set[str] = set()
    for idx, item in enumerate(items):
        try:
            roster.add(RosterEntry.model_validate(item).uid)
        except ValidationError as e:
            logger.warning(f"명단 item[{idx}] 무시: {e}")
    logger.info(f"명단 로드: {len(roster)}명 ({path})")
    return roster


# ── 레지스트리 서비스 ────────────────────────────────────────────────────────

class RegistryService:
    """
    같은 프로세스에서 레지스트리를 직접 사용하는 구현.
    HttpRegistryClient 와 동일한 인터페이스(validate, record_completion)를 가진다.
    """

    def __init__(self, store: UsedUidStore, roster: Optional[Set[str]] = None) -> None:
        self.store = store
        self.roster = roster

    def validate(self, uid: str) -> bool:
        if not uid:
            raise InvalidInput("UID is required.")
        if self.roster is not None and uid not in self.roster:
            raise InvalidCredential("Invalid UID. Please check your credentials and try again.")
        try:
            used = self.store.is_used(uid)
        except StoreError as e:
            logger.error(f"로그인 검증 중 저장소 오류: {e}")
            raise RegistryUnavailable("A database server error occurred during login.") from e
        if used:
            raise AlreadyUsed("This UID has already been used.")
        return True

    def record_completion(self, uid: str) -> bool:
        """완료 기록 (멱등). 새 기록을 만들었으면 True."""
        if not uid:
            raise InvalidInput("UID is required.")
        try:
            created = self.store.mark_used(uid)
        except StoreError as e:
            logger.error(f"완료 기록 중 저장소 오류: {e}")
            raise RegistryUnavailable("A database server error occurred during completion.") from e
        if created:
            logger.info(f"UID 완료 기록: {uid}")
        else:
            logger.info(f"UID 이미 기록됨 (중복 호출 무시): {uid}")
        return created


def build_store(backend: str = config.REGISTRY_BACKEND) -> UsedUidStore:
    """config.REGISTRY_BACKEND 값에 따라 저장소 생성."""
    backend = backend.lower()
    if backend == "memory":
        return MemoryUidStore()
    if backend == "file":
        return FileUidStore(config.USED_UIDS_FILE)
    if backend == "redis":
        return RedisUidStore()
    if backend == "mongo":
        return MongoUidStore()
    raise ValueError(f"지원하지 않는 레지스트리 백엔드: {backend}")
