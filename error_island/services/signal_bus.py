"""
services/signal_bus.py

브라우저 이벤트(fullscreenchange, visibilitychange, keydown, contextmenu, copy/cut/paste)를
구독 가능한 신호로 추상화한다.

Public API:
  - SignalBus.subscribe(signal_type, handler) -> unsubscribe()
  - SignalBus.emit(signal) -> bool   : 핸들러 중 하나라도 기본 동작을 막으면 True
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SignalType(str, Enum):
    FULLSCREEN_CHANGE = "fullscreenchange"
    VISIBILITY_CHANGE = "visibilitychange"
    KEYDOWN = "keydown"
    CONTEXT_MENU = "contextmenu"
    CLIPBOARD = "clipboard"


class BrowserSignal(BaseModel):
    """
    브라우저가 보고한 이벤트 한 건.
    신호 종류에 따라 필요한 필드만 채워진다.
    """
    type: SignalType
    key: str = Field(default="", description="keydown: KeyboardEvent.key")
    ctrl: bool = Field(default=False, description="keydown: Ctrl(또는 Cmd) 눌림 여부")
    shift: bool = Field(default=False, description="keydown: Shift 눌림 여부")
    fullscreen: Optional[bool] = Field(default=None, description="fullscreenchange: 이벤트 후 전체 화면 여부")
    visibility: str = Field(default="", description="visibilitychange: 'visible' | 'hidden'")
    action: str = Field(default="", description="clipboard: 'copy' | 'cut' | 'paste'")


# 핸들러 반환값: 기본 동작(preventDefault) 차단 여부
SignalHandler = Callable[[BrowserSignal], bool]


class SignalBus:

    def __init__(self) -> None:
        self._handlers: Dict[SignalType, List[SignalHandler]] = {}

    def subscribe(self, signal_type: SignalType, handler: SignalHandler) -> Callable[[], None]:
        """핸들러 등록. 반환된 함수를 호출하면 등록 해제 (여러 번 호출해도 안전)."""
        self._handlers.setdefault(signal_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(signal_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, signal: BrowserSignal) -> bool:
        suppressed = False
        # 핸들러가 실행 중에 구독을 해제할 수 있으므로 복사본 순회
        for handler in list(self._handlers.get(signal.type, [])):
            if handler(signal):
                suppressed = True
        return suppressed

    def handler_count(self, signal_type: Optional[SignalType] = None) -> int:
        if signal_type is not None:
            return len(self._handlers.get(signal_type, []))
        return sum(len(h) for h in self._handlers.values())
