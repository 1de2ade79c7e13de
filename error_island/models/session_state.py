"""
models/session_state.py

참가자 한 명의 평가 진행 상태 모델.
Pydantic BaseModel 기반. 컨트롤러만 이 상태를 변경한다.
UI 코드 없음.
"""

from typing import Optional, Set

from pydantic import BaseModel, Field

from error_island.models.phase import Phase

DEFAULT_TERMINATION_REASON = "A rule violation was detected."


class Scores(BaseModel):
    """
    라운드별 점수. 각 라운드 완료 콜백에서 한 번만 기록되며 감소하지 않는다.
    """

    level1: float = Field(default=0, ge=0, description="1라운드 점수")
    level2: float = Field(default=0, ge=0, description="2라운드 점수")
    level3: float = Field(default=0, ge=0, description="3라운드 점수")


class TerminationRecord(BaseModel):
    """
    로컬 저장소에 영구 저장되는 종료 기록.
    이 기록이 존재하면 재시작 시 초기 단계는 무조건 terminated 이다.
    """

    reason: str = Field(
        default=DEFAULT_TERMINATION_REASON,
        description="종료 사유 (사람이 읽을 수 있는 문장)"
    )


class AssessmentState(BaseModel):
    """
    한 번의 응시(attempt) 전체 상태.

    Attributes:
        phase:              현재 단계.
        uid:                로그인에 성공한 UID. 로그인 전에는 None.
        scores:             라운드별 점수.
        completed_rounds:   점수가 이미 기록된 라운드 번호.
        termination_reason: terminated 단계의 사유.
        finalized:          이번 응시에 대해 완료 기록 요청을 이미 보냈는지 여부.
        error:              사용자에게 보여줄 마지막 오류 메시지.
    """

    phase: Phase = Field(default=Phase.LOGIN)
    uid: Optional[str] = Field(default=None)
    scores: Scores = Field(default_factory=Scores)
    completed_rounds: Set[int] = Field(default_factory=set)
    termination_reason: str = Field(default="")
    finalized: bool = Field(default=False)
    error: str = Field(default="")
