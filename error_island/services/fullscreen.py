"""
services/fullscreen.py

전체 화면 상태 포트.
컨트롤러는 단계가 바뀔 때마다 원하는 상태(level* 이면 전체 화면)와 실제 상태를 비교하고
불일치할 때만 요청한다.
"""

from typing import Protocol


class FullscreenPort(Protocol):

    def is_fullscreen(self) -> bool: ...

    def request_fullscreen(self) -> None:
        """실패 시 FullscreenError."""

    def exit_fullscreen(self) -> None:
        """실패 시 FullscreenError."""


class ClientFullscreen:
    """
    브라우저 클라이언트가 보고하는 전체 화면 상태.

    request_fullscreen()/exit_fullscreen()은 클라이언트에 전달할 지시(requested)만 기록한다.
    실제 요청이 실패하면 클라이언트가 /api/session/fullscreen-failed 로 보고한다.
    """

    def __init__(self) -> None:
        self.active = False
        self.requested = False

    def is_fullscreen(self) -> bool:
        return self.active

    def request_fullscreen(self) -> None:
        self.requested = True

    def exit_fullscreen(self) -> None:
        self.requested = False

    def report(self, active: bool) -> None:
        self.active = active
