"""
services/score_service.py

점수 집계 및 라운드 진출 판정 로직.
순수 Python 함수로 구성. 부수 효과 없음. Scores는 컨트롤러만 변경한다.
"""

from typing import Dict

import config
from error_island.models.round_model import RoundConfig
from error_island.models.session_state import Scores


def gate_score(scores: Scores) -> float:
    """3라운드 진출 판정에 쓰이는 1라운드 + 2라운드 합산 점수."""
    return scores.level1 + scores.level2


def advance_eligible(scores: Scores, threshold: float = config.ADVANCE_THRESHOLD) -> bool:
    """
    2라운드 → 3라운드 진출 여부를 반환한다.

    Args:
        scores:    현재까지의 라운드별 점수.
        threshold: 진출 기준 점수 (기본값 config.ADVANCE_THRESHOLD). 기준 점수 포함.

    Returns:
        level1 + level2 >= threshold 이면 True, 아니면 False.
    """
    return gate_score(scores) >= threshold


def total_score(scores: Scores) -> float:
    """세 라운드 점수 합계."""
    return scores.level1 + scores.level2 + scores.level3


def max_total(rounds: Dict[int, RoundConfig]) -> int:
    """
    결과 화면용 만점 합계.

    Args:
        rounds: 라운드 번호 → RoundConfig

    Returns:
        모든 라운드 만점의 합 (기본 설정: 30 + 20 + 30 = 80).
    """
    return sum(r.max_score for r in rounds.values())
