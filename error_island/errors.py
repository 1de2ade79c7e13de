"""
errors.py

평가 세션 도메인 예외.
API 계층은 이 예외들을 HTTP 상태 코드로 변환한다 (api/routes.py 참고).
"""


class AssessmentError(Exception):
    """모든 도메인 예외의 기반 클래스."""


class InvalidInput(AssessmentError):
    """빈 UID, 빈 재개 코드 등 네트워크 호출 전 로컬에서 거부되는 입력."""


class InvalidCredential(AssessmentError):
    """레지스트리에 존재하지 않는 UID (NotFound)."""


class AlreadyUsed(AssessmentError):
    """이미 완료(또는 종료) 기록이 있는 UID."""


class RegistryUnavailable(AssessmentError):
    """레지스트리 통신 실패 또는 서버/저장소 오류. 사용자가 재시도 가능."""


class InvalidResumeCode(AssessmentError):
    """허용 목록에 없는 재개 코드."""


class InvalidTransition(AssessmentError):
    """현재 단계에서 허용되지 않는 조작."""


class FullscreenError(AssessmentError):
    """전체 화면 진입/해제 요청 실패. 위반으로 취급하지 않는다."""
