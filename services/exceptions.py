"""
services/exceptions.py

- 성적 처리 계층에서 사용하는 예외 모음
- middlewares/error_handler.py 에서 HTTP 응답으로 변환
"""

from decimal import Decimal
from typing import Optional, Union


class ResultsError(Exception):
    """성적 처리 계층 공통 예외"""
    code = "RESULTS_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResultsValidationError(ResultsError):
    """입력값이 규칙에 맞지 않음 (범위 중복, 등급 중복 등)"""
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(ResultsError):
    """쓰기 요청에서 참조 대상이 없을 때 (조회는 빈 결과로 처리)"""
    code = "NOT_FOUND"
    status_code = 404


class StudentNotFound(NotFoundError):
    def __init__(self, reg_number: str):
        super().__init__(f"Student {reg_number} not found")


class ResultNotFound(NotFoundError):
    def __init__(self, result_id: int):
        super().__init__(f"Result {result_id} not found")


class CriterionNotFound(NotFoundError):
    def __init__(self, criterion_id: int):
        super().__init__("Grading criteria not found")
        self.criterion_id = criterion_id


class AccessDenied(ResultsError):
    """학생 포털 접근 거부 (잔액 미납). NotFound 와 구분해서 응답"""
    code = "ACCESS_DENIED"
    status_code = 403

    def __init__(self, message: str, current_balance: Optional[Union[Decimal, float]] = None):
        super().__init__(message)
        self.current_balance = current_balance


class ResultsNotPublished(AccessDenied):
    code = "RESULTS_NOT_PUBLISHED"

    def __init__(self, academic_year: int, term: int):
        super().__init__(f"Results for Term {term} {academic_year} are not yet published.")


class PersistenceFailure(ResultsError):
    """DB 연결/저장 실패. 현재 요청만 실패 처리하고 재시도하지 않음"""
    code = "PERSISTENCE_FAILURE"
    status_code = 500

    def __init__(self, operation: str):
        super().__init__(f"Failed to {operation}")
        self.operation = operation
