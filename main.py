"""
main.py — Error Island 평가 서버 진입점
"""

import logging
import os
import socket
import sys
import threading
import time
import traceback

_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import DATA_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

# ── 로깅 설정 ────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # 로그 파일 점유 시 콘솔 출력만 사용
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

# ── 서버 ─────────────────────────────────────────────────────────────────────

def _port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((DEFAULT_HOST, port)) == 0


def _wait_for_server(port: int, timeout: float = 15.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _start_server(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - {DEFAULT_HOST}:{port}")
        app = create_app()
        uvicorn.run(app, host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")


# ── 메인 실행 ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("=== Error Island Assessment Server Started ===")
    os.makedirs(DATA_DIR, exist_ok=True)

    if _port_in_use(DEFAULT_PORT):
        logger.error(f"포트 {DEFAULT_PORT} 이(가) 이미 사용 중입니다. PORT 환경 변수로 변경하세요.")
        sys.exit(1)

    server_thread = threading.Thread(target=_start_server, args=(DEFAULT_PORT,), daemon=True)
    server_thread.start()

    if _wait_for_server(DEFAULT_PORT):
        logger.info(f"서버 준비 완료: http://{DEFAULT_HOST}:{DEFAULT_PORT}")
        try:
            while server_thread.is_alive():
                time.sleep(10)
        except KeyboardInterrupt:
            logger.info("사용자에 의해 종료되었습니다.")
    else:
        logger.error("서버 시작 제한 시간을 초과했습니다.")
        sys.exit(1)
