"""
services/violation_monitor.py

라운드 진행 중에만 브라우저 신호를 감시하여 감독 규칙 위반 시 종료 콜백을 호출한다.

감시 대상:
  - 전체 화면 이탈                → 위반
  - 페이지가 hidden 으로 전환      → 위반
  - F12, Ctrl+Shift+I/J/C         → 기본 동작 차단 + 위반
  - 컨텍스트 메뉴                  → 기본 동작 차단만 (위반 아님)
  - Ctrl+C/V/X, copy/cut/paste    → 기본 동작 차단 + 위반

클라이언트 측 억제 수단일 뿐, 무결성을 보장하지 않는다.
"""

import logging
from typing import Callable, List

from error_island.services.signal_bus import BrowserSignal, SignalBus, SignalType

logger = logging.getLogger(__name__)

REASON_FULLSCREEN = "Exited fullscreen mode."
REASON_TAB_SWITCH = "Switched to another tab or window."
REASON_DEVTOOLS = "Developer tools were opened."
REASON_COPY_PASTE = "Copy/paste actions are disabled."

_DEVTOOLS_SHIFT_KEYS = {"I", "J", "C"}
_CLIPBOARD_KEYS = {"c", "v", "x"}


def is_devtools_combo(signal: BrowserSignal) -> bool:
    return signal.key == "F12" or (
        signal.ctrl and signal.shift and signal.key.upper() in _DEVTOOLS_SHIFT_KEYS
    )


def is_clipboard_combo(signal: BrowserSignal) -> bool:
    return signal.ctrl and signal.key.lower() in _CLIPBOARD_KEYS


class ViolationMonitor:
    """
    arm()/disarm()은 대칭이며 여러 번 호출해도 안전하다.
    한 번에 하나의 구독 세트만 유지하고 disarm() 시 모두 해제한다.
    """

    def __init__(self, bus: SignalBus, on_violation: Callable[[str], None]) -> None:
        self._bus = bus
        self._on_violation = on_violation
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def armed(self) -> bool:
        return bool(self._unsubscribers)

    def arm(self) -> None:
        if self.armed:
            return
        self._unsubscribers = [
            self._bus.subscribe(SignalType.FULLSCREEN_CHANGE, self._on_fullscreen_change),
            self._bus.subscribe(SignalType.VISIBILITY_CHANGE, self._on_visibility_change),
            self._bus.subscribe(SignalType.KEYDOWN, self._on_devtools_key),
            self._bus.subscribe(SignalType.CONTEXT_MENU, self._on_context_menu),
            self._bus.subscribe(SignalType.KEYDOWN, self._on_copy_paste_key),
            self._bus.subscribe(SignalType.CLIPBOARD, self._on_clipboard),
        ]
        logger.info("감독 모니터 활성화")

    def disarm(self) -> None:
        if not self.armed:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info("감독 모니터 해제")

    # ── 핸들러 ────────────────────────────────────────────────────────────────
    # 모든 핸들러는 해제 이후 늦게 도착한 호출에 대해 아무것도 하지 않는다.

    def _report(self, reason: str) -> None:
        logger.warning(f"감독 규칙 위반 감지: {reason}")
        self._on_violation(reason)

    def _on_fullscreen_change(self, signal: BrowserSignal) -> bool:
        if self.armed and signal.fullscreen is False:
            self._report(REASON_FULLSCREEN)
        return False

    def _on_visibility_change(self, signal: BrowserSignal) -> bool:
        if self.armed and signal.visibility == "hidden":
            self._report(REASON_TAB_SWITCH)
        return False

    def _on_devtools_key(self, signal: BrowserSignal) -> bool:
        if not self.armed or not is_devtools_combo(signal):
            return False
        self._report(REASON_DEVTOOLS)
        return True

    def _on_context_menu(self, signal: BrowserSignal) -> bool:
        return self.armed

    def _on_copy_paste_key(self, signal: BrowserSignal) -> bool:
        if not self.armed or not is_clipboard_combo(signal):
            return False
        self._report(REASON_COPY_PASTE)
        return True

    def _on_clipboard(self, signal: BrowserSignal) -> bool:
        if not self.armed:
            return False
        self._report(REASON_COPY_PASTE)
        return True
