"""
Tests for the session state controller

1. Login and registry error handling
2. Round progression and the score gate
3. Violations, time-up and idempotent termination
4. Reload and resume
5. Fullscreen reconciliation
"""
import pytest

from error_island.errors import (
    AlreadyUsed, InvalidCredential, InvalidInput, InvalidResumeCode,
    InvalidTransition, RegistryUnavailable,
)
from error_island.models.phase import Phase
from error_island.services.fullscreen import ClientFullscreen
from error_island.services.signal_bus import BrowserSignal, SignalType
from error_island.services.violation_monitor import (
    REASON_COPY_PASTE, REASON_DEVTOOLS, REASON_FULLSCREEN, REASON_TAB_SWITCH,
)

from conftest import FakeFullscreen, RecordingRegistry


VIOLATION_SIGNALS = [
    (BrowserSignal(type=SignalType.FULLSCREEN_CHANGE, fullscreen=False), REASON_FULLSCREEN),
    (BrowserSignal(type=SignalType.VISIBILITY_CHANGE, visibility="hidden"), REASON_TAB_SWITCH),
    (BrowserSignal(type=SignalType.KEYDOWN, key="F12"), REASON_DEVTOOLS),
    (BrowserSignal(type=SignalType.KEYDOWN, key="C", ctrl=True, shift=True), REASON_DEVTOOLS),
    (BrowserSignal(type=SignalType.KEYDOWN, key="v", ctrl=True), REASON_COPY_PASTE),
]


def advance_to(controller, phase):
    """login 부터 지정한 단계까지 정상 경로로 진행."""
    steps = [
        (Phase.INTRO1, lambda: controller.login("UID-001")),
        (Phase.LEVEL1, lambda: controller.start_round(1)),
        (Phase.INTRO2, lambda: controller.complete_round(1, 25)),
        (Phase.LEVEL2, lambda: controller.start_round(2)),
        (Phase.INTRO3, lambda: controller.complete_round(2, 15)),
        (Phase.LEVEL3, lambda: controller.start_round(3)),
        (Phase.INTRO_FINAL, lambda: controller.complete_round(3, 20)),
    ]
    for target, step in steps:
        if controller.phase == phase:
            return
        step()
        assert controller.phase == target
    assert controller.phase == phase


class TestLogin:

    def test_success(self, controller, registry):
        controller.login("UID-001")
        assert controller.phase == Phase.INTRO1
        assert controller.state.uid == "UID-001"
        assert registry.validate_calls == ["UID-001"]

    def test_empty_uid_rejected_locally(self, controller, registry):
        with pytest.raises(InvalidInput):
            controller.login("   ")
        assert registry.validate_calls == []
        assert controller.phase == Phase.LOGIN
        assert controller.state.error == "UID cannot be empty."

    def test_unknown_uid(self, make_controller):
        controller = make_controller(registry=RecordingRegistry(roster={"UID-001"}))
        with pytest.raises(InvalidCredential):
            controller.login("UID-999")
        assert controller.phase == Phase.LOGIN

    def test_already_used(self, controller, registry):
        registry.record_completion("UID-001")
        with pytest.raises(AlreadyUsed):
            controller.login("UID-001")
        assert controller.phase == Phase.LOGIN
        assert controller.state.error

    def test_registry_unavailable_is_retryable(self, controller, registry, monkeypatch):
        def broken(uid):
            raise RegistryUnavailable("Could not reach the server. Please try again.")

        monkeypatch.setattr(registry, "validate", broken)
        with pytest.raises(RegistryUnavailable):
            controller.login("UID-001")
        assert controller.phase == Phase.LOGIN

        monkeypatch.undo()
        controller.login("UID-001")
        assert controller.phase == Phase.INTRO1

    def test_login_twice_not_allowed(self, controller):
        controller.login("UID-001")
        with pytest.raises(InvalidTransition):
            controller.login("UID-001")


class TestRoundProgression:

    def test_start_round_arms_monitor_and_timer(self, controller):
        advance_to(controller, Phase.LEVEL1)
        assert controller.monitor.armed
        assert controller.timer.running
        assert controller.timer.display() == "01:00"

    def test_start_round_out_of_order(self, controller):
        controller.login("UID-001")
        with pytest.raises(InvalidTransition):
            controller.start_round(2)
        assert controller.phase == Phase.INTRO1

    def test_round_complete_disarms(self, controller):
        advance_to(controller, Phase.INTRO2)
        assert controller.state.scores.level1 == 25
        assert not controller.monitor.armed
        assert not controller.timer.running

    def test_score_recorded_once(self, controller):
        advance_to(controller, Phase.LEVEL1)
        assert controller.complete_round(1, 25) is True
        assert controller.complete_round(1, 30) is False
        assert controller.state.scores.level1 == 25

    def test_negative_score_rejected(self, controller):
        advance_to(controller, Phase.LEVEL1)
        with pytest.raises(InvalidInput):
            controller.complete_round(1, -1)
        assert controller.phase == Phase.LEVEL1

    def test_full_run(self, controller, registry):
        advance_to(controller, Phase.INTRO_FINAL)
        assert registry.complete_calls == ["UID-001"]

        controller.show_final_score()

        assert controller.phase == Phase.THANKYOU
        snapshot = controller.snapshot()
        assert snapshot["total"] == 60
        assert snapshot["max_total"] == 80
        assert registry.complete_calls == ["UID-001"]

    def test_show_final_score_requires_intro_final(self, controller):
        with pytest.raises(InvalidTransition):
            controller.show_final_score()


class TestScoreGate:

    def _to_level2(self, controller, level1):
        controller.login("UID-001")
        controller.start_round(1)
        controller.complete_round(1, level1)
        controller.start_round(2)

    def test_total_34_is_lost(self, controller, registry):
        self._to_level2(controller, 20)
        controller.complete_round(2, 14)
        assert controller.phase == Phase.LOST
        assert registry.complete_calls == ["UID-001"]

    def test_total_35_advances(self, controller, registry):
        self._to_level2(controller, 20)
        controller.complete_round(2, 15)
        assert controller.phase == Phase.INTRO3
        assert registry.complete_calls == []

    def test_configurable_threshold(self, make_controller):
        controller = make_controller(threshold=10)
        self._to_level2(controller, 5)
        controller.complete_round(2, 5)
        assert controller.phase == Phase.INTRO3


class TestTermination:

    @pytest.mark.parametrize("level", [Phase.LEVEL1, Phase.LEVEL2, Phase.LEVEL3])
    @pytest.mark.parametrize("signal, reason", VIOLATION_SIGNALS)
    def test_violation_terminates(self, controller, bus, registry, storage, level, signal, reason):
        advance_to(controller, level)

        bus.emit(signal)

        assert controller.phase == Phase.TERMINATED
        assert controller.state.termination_reason == reason
        assert registry.complete_calls == ["UID-001"]

    def test_second_violation_changes_nothing(self, controller, bus, registry):
        advance_to(controller, Phase.LEVEL2)
        bus.emit(BrowserSignal(type=SignalType.VISIBILITY_CHANGE, visibility="hidden"))
        bus.emit(BrowserSignal(type=SignalType.KEYDOWN, key="F12"))

        assert controller.state.termination_reason == REASON_TAB_SWITCH
        assert registry.complete_calls == ["UID-001"]
        assert bus.handler_count() == 0

    def test_terminate_is_idempotent(self, controller, registry):
        advance_to(controller, Phase.LEVEL1)
        controller.terminate("first")
        controller.terminate("second")
        assert controller.state.termination_reason == "first"
        assert registry.complete_calls == ["UID-001"]

    def test_signals_outside_rounds_are_ignored(self, controller, bus):
        controller.login("UID-001")
        bus.emit(BrowserSignal(type=SignalType.VISIBILITY_CHANGE, visibility="hidden"))
        assert controller.phase == Phase.INTRO1

    def test_context_menu_is_not_a_violation(self, controller, bus):
        advance_to(controller, Phase.LEVEL1)
        assert bus.emit(BrowserSignal(type=SignalType.CONTEXT_MENU)) is True
        assert controller.phase == Phase.LEVEL1

    def test_time_up_terminates_with_round_title(self, controller, clock, registry):
        advance_to(controller, Phase.LEVEL2)
        clock.now += 61

        controller.poll()

        assert controller.phase == Phase.TERMINATED
        assert controller.state.termination_reason == "Time ran out for Round 2: Debugging."
        assert registry.complete_calls == ["UID-001"]

    def test_stale_timer_does_not_fire_after_round(self, controller, clock):
        advance_to(controller, Phase.LEVEL1)
        timer = controller.timer
        controller.complete_round(1, 25)

        clock.now += 1000
        timer.sync()
        timer.tick()

        assert controller.phase == Phase.INTRO2

    def test_round_callback_after_termination_is_ignored(self, controller):
        advance_to(controller, Phase.LEVEL3)
        controller.terminate("Exited fullscreen mode.")

        assert controller.complete_round(3, 30) is False
        assert controller.phase == Phase.TERMINATED
        assert controller.state.scores.level3 == 0

    def test_finalize_failure_is_swallowed(self, controller, registry, monkeypatch, caplog):
        advance_to(controller, Phase.LEVEL1)

        def broken(uid):
            raise RegistryUnavailable("down")

        monkeypatch.setattr(registry, "record_completion", broken)
        controller.terminate("Developer tools were opened.")

        assert controller.phase == Phase.TERMINATED
        assert "완료 기록 실패" in caplog.text

    def test_storage_write_failure_still_terminates(self, controller, bus, storage, registry,
                                                    monkeypatch, caplog):
        advance_to(controller, Phase.LEVEL1)

        def disk_full(key, value):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(storage, "set_item", disk_full)
        bus.emit(BrowserSignal(type=SignalType.VISIBILITY_CHANGE, visibility="hidden"))

        assert controller.phase == Phase.TERMINATED
        assert controller.state.termination_reason == REASON_TAB_SWITCH
        assert not controller.monitor.armed
        assert registry.complete_calls == ["UID-001"]
        assert "종료 기록 저장 실패" in caplog.text


class TestReloadAndResume:

    def test_reload_while_terminated(self, controller, make_controller, bus):
        advance_to(controller, Phase.LEVEL1)
        bus.emit(BrowserSignal(type=SignalType.FULLSCREEN_CHANGE, fullscreen=False))

        reloaded = make_controller()

        assert reloaded.phase == Phase.TERMINATED
        assert reloaded.state.termination_reason == REASON_FULLSCREEN

    def test_reload_mid_round_restarts_at_login(self, controller, make_controller):
        advance_to(controller, Phase.LEVEL2)
        controller.monitor.disarm()

        reloaded = make_controller()

        assert reloaded.phase == Phase.LOGIN
        assert reloaded.state.scores.level1 == 0

    def test_resume_with_invalid_code(self, controller):
        advance_to(controller, Phase.LEVEL1)
        controller.terminate("Exited fullscreen mode.")

        with pytest.raises(InvalidResumeCode):
            controller.resume("WRONG")

        assert controller.phase == Phase.TERMINATED

    def test_resume_with_empty_code(self, controller):
        controller.terminate("x")
        with pytest.raises(InvalidInput):
            controller.resume("")
        assert controller.phase == Phase.TERMINATED

    def test_resume_with_listed_code(self, controller, make_controller):
        advance_to(controller, Phase.LEVEL1)
        controller.terminate("Exited fullscreen mode.")

        controller.resume("DFX-CIT-202")

        assert controller.phase == Phase.LOGIN
        assert controller.state.uid is None
        assert make_controller().phase == Phase.LOGIN

    def test_resume_only_from_terminated(self, controller):
        with pytest.raises(InvalidTransition):
            controller.resume("DFX-CIT-100")

    def test_start_round_ignored_while_terminated(self, controller):
        advance_to(controller, Phase.INTRO1)
        controller.terminate("x")
        controller.start_round(1)
        assert controller.phase == Phase.TERMINATED


class TestFullscreen:

    def test_enters_and_exits_with_rounds(self, controller, fullscreen):
        advance_to(controller, Phase.LEVEL1)
        assert fullscreen.active is True

        controller.complete_round(1, 25)
        assert fullscreen.active is False
        assert fullscreen.exits == 1

    def test_no_request_when_already_fullscreen(self, controller, fullscreen):
        controller.login("UID-001")
        fullscreen.active = True
        controller.start_round(1)
        assert controller.phase == Phase.LEVEL1
        assert fullscreen.requests == 0

    def test_failed_request_reverts_to_intro(self, make_controller, registry):
        failing = FakeFullscreen(fail_request=True)
        controller = make_controller(fullscreen=failing)
        controller.login("UID-001")

        controller.start_round(1)

        assert controller.phase == Phase.INTRO1
        assert controller.state.error
        assert not controller.monitor.armed
        assert controller.state.termination_reason == ""
        assert registry.complete_calls == []

    def test_client_reported_failure_reverts(self, make_controller, registry):
        controller = make_controller(fullscreen=ClientFullscreen())
        advance_to(controller, Phase.LEVEL2)

        controller.fullscreen_request_failed("Request denied")

        assert controller.phase == Phase.INTRO2
        assert not controller.monitor.armed
        assert not controller.timer.running
        assert registry.complete_calls == []

    def test_failure_after_fullscreen_confirmed_is_ignored(self, make_controller, clock, registry):
        fullscreen = ClientFullscreen()
        controller = make_controller(fullscreen=fullscreen)
        advance_to(controller, Phase.LEVEL1)
        fullscreen.report(True)

        clock.now += 59
        controller.poll()
        controller.fullscreen_request_failed("late")

        assert controller.phase == Phase.LEVEL1
        assert controller.monitor.armed
        clock.now += 1
        controller.poll()
        assert controller.phase == Phase.TERMINATED
        assert controller.state.termination_reason == "Time ran out for Round 1: Multiple Choice."
        assert registry.complete_calls == ["UID-001"]

    def test_failure_ignored_when_request_succeeded_immediately(self, controller):
        advance_to(controller, Phase.LEVEL1)
        controller.fullscreen_request_failed("late")
        assert controller.phase == Phase.LEVEL1

    def test_snapshot_during_round(self, controller):
        advance_to(controller, Phase.LEVEL3)
        snapshot = controller.snapshot()
        assert snapshot["phase"] == "level3"
        assert snapshot["round_title"] == "Round 3: Final Challenge"
        assert snapshot["time_left"] == "01:30"
        assert snapshot["fullscreen_required"] is True

    def test_close_releases_round_resources(self, controller, bus, clock):
        advance_to(controller, Phase.LEVEL1)
        controller.close()

        assert not controller.monitor.armed
        assert bus.handler_count(SignalType.KEYDOWN) == 0
        clock.now += 1000
        controller.poll()
        assert controller.phase == Phase.LEVEL1
