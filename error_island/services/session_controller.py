"""
services/session_controller.py

평가 세션 상태 컨트롤러.
Public API:
  - SessionController.login(uid)
  - SessionController.start_round(n)
  - SessionController.complete_round(n, score) -> bool
  - SessionController.terminate(reason)
  - SessionController.resume(code)
  - SessionController.show_final_score()
  - SessionController.fullscreen_request_failed(message)
  - SessionController.poll()
  - SessionController.snapshot() -> dict
  - SessionController.close()

설계 원칙:
- 단계(phase)·점수·종료 기록은 이 컨트롤러만 변경한다.
- 단계가 바뀔 때마다 _set_phase 한 곳에서 타이머 정지, 모니터 해제, 전체 화면 조정을 수행한다.
- 응시 종료가 확정되는 순간 레지스트리 완료 기록을 정확히 한 번, fire-and-forget 으로 보낸다.
- terminated 이후에는 resume 외의 어떤 호출도 상태를 바꾸지 않는다.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, FrozenSet, Optional

import config
from error_island.errors import (
    AssessmentError, FullscreenError, InvalidInput, InvalidResumeCode, InvalidTransition,
)
from error_island.models.phase import Phase, intro_phase, level_phase
from error_island.models.round_model import RoundConfig, default_rounds
from error_island.models.session_state import AssessmentState
from error_island.services import score_service
from error_island.services.fullscreen import FullscreenPort
from error_island.services.registry_client import CompletionRegistry
from error_island.services.signal_bus import SignalBus
from error_island.services.termination_store import TerminationStore
from error_island.services.timer import RoundTimer
from error_island.services.violation_monitor import ViolationMonitor

logger = logging.getLogger(__name__)

# 완료 기록 전송용 공용 실행기
_FINALIZE_EXECUTOR = ThreadPoolExecutor(max_workers=2, thread_name_prefix="finalize")


class SessionController:

    def __init__(
        self,
        registry: CompletionRegistry,
        termination_store: TerminationStore,
        bus: SignalBus,
        fullscreen: FullscreenPort,
        rounds: Optional[Dict[int, RoundConfig]] = None,
        threshold: float = config.ADVANCE_THRESHOLD,
        resume_codes: FrozenSet[str] = config.RESUME_CODES,
        executor: Optional[Executor] = None,
        timer_factory: Callable[[], RoundTimer] = RoundTimer,
    ) -> None:
        self._registry = registry
        self._termination_store = termination_store
        self._fullscreen = fullscreen
        self._rounds = rounds or default_rounds()
        self._threshold = threshold
        self._resume_codes = resume_codes
        self._executor = executor or _FINALIZE_EXECUTOR
        self._timer_factory = timer_factory
        self._monitor = ViolationMonitor(bus, self.terminate)
        self._timer: Optional[RoundTimer] = None
        self._awaiting_fullscreen = False
        self.last_finalize: Optional[Future] = None
        self.state = self._initial_state()

    def _initial_state(self) -> AssessmentState:
        """종료 기록이 있으면 terminated, 없으면 login 에서 시작."""
        reason = self._termination_store.load()
        if reason is not None:
            logger.info(f"종료 기록 발견, terminated 상태로 시작: {reason}")
            return AssessmentState(phase=Phase.TERMINATED, termination_reason=reason)
        return AssessmentState()

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def monitor(self) -> ViolationMonitor:
        return self._monitor

    @property
    def timer(self) -> Optional[RoundTimer]:
        return self._timer

    # ── 단계 전환 ────────────────────────────────────────────────────────────

    def login(self, uid: str) -> None:
        """
        UID 검증 후 intro1 로 이동.

        Raises:
            InvalidInput:        빈 UID (네트워크 호출 없음)
            InvalidCredential:   존재하지 않는 UID
            AlreadyUsed:         이미 사용된 UID
            RegistryUnavailable: 레지스트리 통신/서버 오류 (재시도 가능)
            InvalidTransition:   login 단계가 아님
        """
        uid = (uid or "").strip()
        if self.phase != Phase.LOGIN:
            raise InvalidTransition(f"Cannot log in from phase '{self.phase.value}'.")
        if not uid:
            self.state.error = "UID cannot be empty."
            raise InvalidInput(self.state.error)

        self.state.error = ""
        try:
            self._registry.validate(uid)
        except AssessmentError as e:
            self.state.error = str(e)
            logger.warning(f"로그인 실패 ({uid}): {type(e).__name__}: {e}")
            raise

        self.state.uid = uid
        logger.info(f"로그인 성공: {uid}")
        self._set_phase(Phase.INTRO1)

    def start_round(self, n: int) -> None:
        """intro{n} → level{n}. 새 타이머를 시작하고 모니터를 활성화한다."""
        if self.phase == Phase.TERMINATED:
            return
        round_cfg = self._round(n)
        if self.phase != intro_phase(n):
            raise InvalidTransition(f"Round {n} cannot start from phase '{self.phase.value}'.")

        self.state.error = ""
        self._set_phase(level_phase(n))
        if self.phase != level_phase(n):
            # 전체 화면 진입 실패로 intro 단계로 되돌아감
            return

        timer = self._timer_factory()
        self._timer = timer
        self._monitor.arm()
        self._awaiting_fullscreen = not self._fullscreen_confirmed()
        timer.start(round_cfg.duration_seconds, lambda: self._on_time_up(n))

    def complete_round(self, n: int, score: float) -> bool:
        """
        라운드 완료 콜백.

        Returns:
            점수가 반영되었으면 True. 이미 다른 단계로 넘어간 뒤 도착한 콜백이면 False.
        """
        if score is None or score < 0:
            raise InvalidInput("Score must be a non-negative number.")
        if self.phase != level_phase(n) or n in self.state.completed_rounds:
            logger.info(f"무시된 라운드 완료 콜백: round={n}, phase={self.phase.value}")
            return False

        setattr(self.state.scores, f"level{n}", score)
        self.state.completed_rounds.add(n)
        logger.info(f"{n}라운드 완료: {score}점")

        if n == 1:
            self._set_phase(Phase.INTRO2)
        elif n == 2:
            if score_service.advance_eligible(self.state.scores, self._threshold):
                self._set_phase(Phase.INTRO3)
            else:
                logger.info(
                    f"진출 실패: {score_service.gate_score(self.state.scores)} < {self._threshold}"
                )
                self._finalize()
                self._set_phase(Phase.LOST)
        else:
            self._finalize()
            self._set_phase(Phase.INTRO_FINAL)
        return True

    def show_final_score(self) -> None:
        if self.phase != Phase.INTRO_FINAL:
            raise InvalidTransition(f"Final score is not available in phase '{self.phase.value}'.")
        self._set_phase(Phase.THANKYOU)

    def terminate(self, reason: str) -> None:
        """위반 또는 시간 초과로 응시 종료. terminated 상태에서는 아무것도 하지 않는다."""
        if self.phase == Phase.TERMINATED:
            return
        logger.warning(f"응시 종료: {reason} (phase={self.phase.value}, uid={self.state.uid})")
        try:
            self._termination_store.save(reason)
        except OSError as e:
            logger.error(f"종료 기록 저장 실패, 메모리 상태로만 종료: {e}")
        self._finalize()
        self.state.termination_reason = reason
        self._set_phase(Phase.TERMINATED)

    def resume(self, code: str) -> None:
        """
        운영진 재개 코드로 종료 잠금 해제.
        일치하면 종료 기록을 지우고 새로 고침한 것처럼 login 상태로 초기화한다.

        Raises:
            InvalidInput:       빈 코드
            InvalidResumeCode:  허용 목록에 없는 코드 (단계 변화 없음)
            InvalidTransition:  terminated 단계가 아님
        """
        if self.phase != Phase.TERMINATED:
            raise InvalidTransition("There is no terminated session to resume.")
        if not code:
            self.state.error = "Resume code cannot be empty."
            raise InvalidInput(self.state.error)
        if code not in self._resume_codes:
            self.state.error = "Invalid resume code. Please try again."
            logger.warning("잘못된 재개 코드 입력")
            raise InvalidResumeCode(self.state.error)

        self._termination_store.clear()
        self._stop_round()
        self._timer = None
        self.state = AssessmentState()
        logger.info("재개 코드 확인, login 상태로 초기화")
        self._reconcile_fullscreen()

    def fullscreen_request_failed(self, message: str = "") -> None:
        """
        클라이언트가 보고한 전체 화면 진입 실패. 위반이 아니라 intro 단계로 되돌린다.
        라운드 진입 직후, 전체 화면이 확인되기 전에만 받아들인다.
        """
        n = self.phase.round_number
        if n is None:
            return
        if not self._awaiting_fullscreen or self._fullscreen_confirmed():
            self._awaiting_fullscreen = False
            logger.warning(f"전체 화면 진입이 이미 확인됨, 실패 보고 무시 (round={n})")
            return
        self._revert_to_intro(n, message)

    def poll(self) -> None:
        """타이머를 현재 시각까지 따라잡는다. 만료되면 terminate 가 호출된다."""
        if self._awaiting_fullscreen and self._fullscreen_confirmed():
            self._awaiting_fullscreen = False
        if self._timer is not None:
            self._timer.sync()

    def close(self) -> None:
        """세션 폐기. 모니터 구독을 해제하고 타이머를 멈춘다. 단계는 바꾸지 않는다."""
        self._stop_round()

    # ── 조회 ─────────────────────────────────────────────────────────────────

    def current_round(self) -> Optional[RoundConfig]:
        n = self.phase.round_number
        return self._rounds[n] if n is not None else None

    def snapshot(self) -> Dict[str, Any]:
        round_cfg = self.current_round()
        timer = self._timer
        return {
            "phase": self.phase.value,
            "scores": self.state.scores.model_dump(),
            "total": score_service.total_score(self.state.scores),
            "max_total": score_service.max_total(self._rounds),
            "termination_reason": self.state.termination_reason,
            "error": self.state.error,
            "round_title": round_cfg.title if round_cfg else None,
            "time_left": timer.display() if timer is not None and round_cfg else None,
            "fullscreen_required": self.phase.is_round,
        }

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _round(self, n: int) -> RoundConfig:
        if n not in self._rounds:
            raise InvalidInput(f"Unknown round: {n}")
        return self._rounds[n]

    def _set_phase(self, phase: Phase) -> None:
        previous = self.state.phase
        self.state.phase = phase
        if not phase.is_round:
            self._stop_round()
        if previous != phase:
            logger.info(f"단계 전환: {previous.value} → {phase.value}")
        self._reconcile_fullscreen()

    def _stop_round(self) -> None:
        self._awaiting_fullscreen = False
        self._monitor.disarm()
        if self._timer is not None:
            self._timer.stop()

    def _reconcile_fullscreen(self) -> None:
        """단계에서 도출한 전체 화면 요구와 실제 상태가 다를 때만 요청한다."""
        required = self.phase.is_round
        try:
            actual = self._fullscreen.is_fullscreen()
            if required and not actual:
                self._fullscreen.request_fullscreen()
            elif not required and actual:
                self._fullscreen.exit_fullscreen()
        except FullscreenError as e:
            if required:
                self._revert_to_intro(self.phase.round_number, str(e))
            else:
                logger.error(f"전체 화면 해제 실패: {e}")

    def _fullscreen_confirmed(self) -> bool:
        try:
            return self._fullscreen.is_fullscreen()
        except FullscreenError:
            return False

    def _revert_to_intro(self, n: int, message: str) -> None:
        logger.error(f"전체 화면 진입 실패, intro{n} 로 복귀: {message}")
        self.state.error = "Fullscreen mode is required to start the round. Please try again."
        self._set_phase(intro_phase(n))

    def _on_time_up(self, n: int) -> None:
        if self.phase != level_phase(n):
            return
        self.terminate(self._rounds[n].expiry_reason)

    def _finalize(self) -> None:
        """이번 응시의 완료 기록 요청 (응시당 1회, 결과를 기다리지 않음)."""
        if self.state.finalized:
            return
        self.state.finalized = True
        uid = self.state.uid
        if not uid:
            logger.warning("UID 없이 종료됨, 완료 기록 생략")
            return
        logger.info(f"완료 기록 요청: {uid}")
        future = self._executor.submit(self._registry.record_completion, uid)
        future.add_done_callback(lambda f: _log_finalize_result(uid, f))
        self.last_finalize = future


def _log_finalize_result(uid: str, future: Future) -> None:
    # 실패해도 재시도하거나 사용자에게 알리지 않는다 (이미 종료 화면으로 전환됨)
    error = future.exception()
    if error is not None:
        logger.error(f"완료 기록 실패 ({uid}): {type(error).__name__}: {error}")
