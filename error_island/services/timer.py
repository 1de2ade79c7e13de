"""
services/timer.py

라운드 제한 시간 카운트다운.
1초에 한 번 감소하며, 0에 도달하면 on_expire 콜백을 정확히 한 번 호출하고 멈춘다.
라운드마다 새 인스턴스를 만든다 (이전 라운드의 콜백을 재사용하지 않기 위해).

틱은 두 가지 방식으로 들어온다:
  - tick()  : 호출자가 직접 1초 감소 (테스트, 이벤트 루프)
  - sync()  : 주입된 단조 시계 기준 경과 초만큼 한꺼번에 감소 (웹 요청마다 호출)
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def format_mm_ss(seconds: int) -> str:
    """남은 초를 0으로 채운 MM:SS 문자열로 변환."""
    seconds = max(0, int(seconds))
    minutes = seconds // 60
    return f"{minutes:02d}:{seconds % 60:02d}"


class RoundTimer:
    """
    Attributes:
        remaining: 남은 초.
        running:   카운트다운 진행 여부.
        expired:   만료 콜백이 이미 호출되었는지 여부.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._on_expire: Optional[Callable[[], None]] = None
        self._started_at = 0.0
        self._ticks = 0
        self.remaining = 0
        self.running = False
        self.expired = False

    def start(self, duration_seconds: int, on_expire: Callable[[], None]) -> None:
        """카운트다운 시작. 제한 시간이 0 이하이면 즉시 만료된다."""
        self._on_expire = on_expire
        self._started_at = self._clock()
        self._ticks = 0
        self.remaining = max(0, int(duration_seconds))
        self.running = True
        self.expired = False
        if self.remaining == 0:
            self._expire()

    def tick(self) -> None:
        """1초 감소."""
        if not self.running:
            return
        self._ticks += 1
        self.remaining -= 1
        if self.remaining <= 0:
            self.remaining = 0
            self._expire()

    def sync(self) -> None:
        """시작 시각 이후 경과한 초 중 아직 반영하지 않은 만큼 tick()을 적용."""
        if not self.running:
            return
        elapsed = int(self._clock() - self._started_at)
        while self.running and self._ticks < elapsed:
            self.tick()

    def stop(self) -> None:
        """콜백 호출 없이 정지. 단계 전환 시 반드시 호출된다."""
        self.running = False
        self._on_expire = None

    def display(self) -> str:
        return format_mm_ss(self.remaining)

    def _expire(self) -> None:
        callback = self._on_expire
        self.running = False
        self._on_expire = None
        if self.expired or callback is None:
            return
        self.expired = True
        logger.info("라운드 제한 시간 만료")
        callback()
