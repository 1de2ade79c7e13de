from typing import Dict

from pydantic import BaseModel, Field, field_validator

import config


class RoundConfig(BaseModel):
    """
    라운드 한 개의 고정 설정.
    문제 렌더링/채점은 외부 컴포넌트 몫이고, 여기서는 제목·제한 시간·만점만 다룬다.
    """
    number: int = Field(
        ...,
        ge=1,
        le=3,
        description="라운드 번호 (1~3)"
    )
    title: str = Field(
        ...,
        min_length=1,
        description="라운드 제목 (시간 초과 사유 문구에 포함됨)"
    )
    duration_seconds: int = Field(
        ...,
        description="제한 시간 (초)"
    )
    max_score: int = Field(
        ...,
        ge=0,
        description="라운드 만점"
    )

    @field_validator('duration_seconds')
    @classmethod
    def validate_duration(cls, v: int) -> int:
        """제한 시간은 음수일 수 없다. 0은 시작 즉시 만료를 의미한다."""
        if v < 0:
            raise ValueError("제한 시간(duration_seconds)은 0 이상이어야 합니다.")
        return v

    @property
    def expiry_reason(self) -> str:
        return f"Time ran out for {self.title}."


def default_rounds() -> Dict[int, RoundConfig]:
    """config.ROUND_SETTINGS 기반 라운드 설정."""
    return {
        n: RoundConfig(number=n, title=title, duration_seconds=duration, max_score=max_score)
        for n, (title, duration, max_score) in config.ROUND_SETTINGS.items()
    }
