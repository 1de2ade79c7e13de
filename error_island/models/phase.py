"""
models/phase.py

평가 진행 단계(Phase) 정의.
현재 단계 하나가 화면 렌더링과 부수 효과(전체 화면, 감시, 타이머)를 모두 결정한다.
"""

from enum import Enum
from typing import Optional


class Phase(str, Enum):
    LOGIN = "login"
    INTRO1 = "intro1"
    LEVEL1 = "level1"
    INTRO2 = "intro2"
    LEVEL2 = "level2"
    INTRO3 = "intro3"
    LEVEL3 = "level3"
    INTRO_FINAL = "introFinal"
    THANKYOU = "thankyou"
    LOST = "lost"
    TERMINATED = "terminated"

    @property
    def is_round(self) -> bool:
        """라운드 진행 중(level*) 여부. 전체 화면·감시·타이머가 활성화되는 단계."""
        return self in _ROUND_PHASES

    @property
    def round_number(self) -> Optional[int]:
        """level{n} 이면 n, 아니면 None."""
        return _ROUND_PHASES.get(self)


_ROUND_PHASES = {Phase.LEVEL1: 1, Phase.LEVEL2: 2, Phase.LEVEL3: 3}


def level_phase(n: int) -> Phase:
    """라운드 번호 → level{n} 단계."""
    try:
        return Phase(f"level{n}")
    except ValueError:
        raise ValueError(f"존재하지 않는 라운드 번호: {n}")


def intro_phase(n: int) -> Phase:
    """라운드 번호 → 해당 라운드 직전의 intro{n} 단계."""
    try:
        return Phase(f"intro{n}")
    except ValueError:
        raise ValueError(f"존재하지 않는 라운드 번호: {n}")
