import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
DATA_DIR = os.getenv("ISLAND_DATA_DIR", os.path.join(BASE_DIR, "data"))
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# 라운드 설정 (제목, 제한 시간(초), 만점)
ROUND_SETTINGS = {
    1: ("Round 1: Multiple Choice", int(os.getenv("ROUND1_SECONDS", str(20 * 60))), 30),
    2: ("Round 2: Debugging", int(os.getenv("ROUND2_SECONDS", str(20 * 60))), 20),
    3: ("Round 3: Final Challenge", int(os.getenv("ROUND3_SECONDS", str(35 * 60))), 30),
}

# 2라운드 → 3라운드 진출 기준 (1라운드 + 2라운드 합산, 이상)
ADVANCE_THRESHOLD = int(os.getenv("ADVANCE_THRESHOLD", "35"))

# 종료 기록 저장 키 (브라우저 localStorage 키와 동일)
TERMINATION_KEY = "terminationInfo_escapeIsland"

# 운영진 전용 재개 코드 (빌드 시 고정)
RESUME_CODES = frozenset({"DFX-CIT-100", "DFX-CIT-202", "DFX-CIT-2025"})

# Completion Registry 설정
# REGISTRY_URL이 비어 있으면 같은 프로세스의 레지스트리를 직접 사용
REGISTRY_URL = os.getenv("REGISTRY_URL", "")
REGISTRY_TIMEOUT = float(os.getenv("REGISTRY_TIMEOUT", "10.0"))
REGISTRY_BACKEND = os.getenv("REGISTRY_BACKEND", "file")   # memory | file | redis | mongo
ROSTER_FILE = os.getenv("ROSTER_FILE", os.path.join(DATA_DIR, "users.json"))
USED_UIDS_FILE = os.getenv("USED_UIDS_FILE", os.path.join(DATA_DIR, "used_uids.json"))

MONGODB_URI = os.getenv("MONGODB_URI", "")
MONGO_DB = "escapeIsland"
MONGO_COLLECTION = "used_uids"

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_KEY = os.getenv("REDIS_KEY", "escapeIsland:used_uids")
