import os

from config import DATA_DIR

# 세션 쿠키 설정
SESSION_COOKIE = "island_session"
SESSION_TTL = int(os.getenv("SESSION_TTL", str(12 * 3600)))  # 12시간 (쿠키 수명과 동일)
CLEANUP_INTERVAL = 300  # 만료 세션 정리 주기 (초)

# 세션별 로컬 저장소(종료 기록) 디렉토리
STORAGE_DIR = os.getenv("SESSION_STORAGE_DIR", os.path.join(DATA_DIR, "sessions"))
