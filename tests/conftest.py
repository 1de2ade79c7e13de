"""
Pytest 설정 — 컨트롤러 테스트용 가짜 협력 객체
"""
import os
import sys
from concurrent.futures import Executor, Future

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from error_island.errors import FullscreenError
from error_island.models.round_model import RoundConfig
from error_island.services.registry_store import MemoryUidStore, RegistryService
from error_island.services.session_controller import SessionController
from error_island.services.signal_bus import SignalBus
from error_island.services.termination_store import LocalStorage, TerminationStore
from error_island.services.timer import RoundTimer


class ImmediateExecutor(Executor):
    """submit 즉시 동기 실행. fire-and-forget 호출을 테스트에서 결정적으로 만든다."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class RecordingRegistry(RegistryService):
    """호출 기록을 남기는 메모리 레지스트리."""

    def __init__(self, roster=None):
        super().__init__(MemoryUidStore(), roster)
        self.validate_calls = []
        self.complete_calls = []

    def validate(self, uid):
        self.validate_calls.append(uid)
        return super().validate(uid)

    def record_completion(self, uid):
        self.complete_calls.append(uid)
        return super().record_completion(uid)


class FakeFullscreen:

    def __init__(self, fail_request=False):
        self.active = False
        self.fail_request = fail_request
        self.requests = 0
        self.exits = 0

    def is_fullscreen(self):
        return self.active

    def request_fullscreen(self):
        self.requests += 1
        if self.fail_request:
            raise FullscreenError("Permission denied")
        self.active = True

    def exit_fullscreen(self):
        self.exits += 1
        self.active = False


class FakeClock:

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def registry():
    return RecordingRegistry()


@pytest.fixture
def storage():
    return LocalStorage()


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def fullscreen():
    return FakeFullscreen()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rounds():
    return {
        1: RoundConfig(number=1, title="Round 1: Multiple Choice", duration_seconds=60, max_score=30),
        2: RoundConfig(number=2, title="Round 2: Debugging", duration_seconds=60, max_score=20),
        3: RoundConfig(number=3, title="Round 3: Final Challenge", duration_seconds=90, max_score=30),
    }


@pytest.fixture
def make_controller(registry, storage, bus, fullscreen, clock, rounds):
    """같은 저장소로 컨트롤러를 다시 만들면 페이지 새로 고침과 같다."""

    def _make(**overrides):
        kwargs = dict(
            registry=registry,
            termination_store=TerminationStore(storage),
            bus=bus,
            fullscreen=fullscreen,
            rounds=rounds,
            threshold=35,
            executor=ImmediateExecutor(),
            timer_factory=lambda: RoundTimer(clock=clock),
        )
        kwargs.update(overrides)
        return SessionController(**kwargs)

    return _make


@pytest.fixture
def controller(make_controller):
    return make_controller()
