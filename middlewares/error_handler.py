import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from schemas.common import ErrorDetail, ErrorResponse
from services.exceptions import AccessDenied, PersistenceFailure, ResultsError, ResultsValidationError

logger = logging.getLogger(__name__)


def _error_body(code: str, message: str, **extra) -> dict:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message), latency_ms=0).model_dump(mode="json")
    body["success"] = False
    body.update(extra)
    return body


def add_error_handlers(app: FastAPI):
    # ✅ 요청 값 검증 실패 (점수 범위, 숫자 아님, 필수 값 누락)
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [
            {"field": ".".join(str(p) for p in err["loc"] if p not in ("body", "query", "path")), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", "Invalid request", fields=fields),
        )

    @app.exception_handler(ResultsValidationError)
    async def results_validation_handler(request: Request, exc: ResultsValidationError):
        fields = [{"field": exc.field, "message": exc.message}] if exc.field else []
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, fields=fields),
        )

    # ✅ 잔액 미납/미게시: "데이터 없음"과 구분되는 접근 거부 응답
    @app.exception_handler(AccessDenied)
    async def access_denied_handler(request: Request, exc: AccessDenied):
        balance = float(exc.current_balance) if exc.current_balance is not None else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, access_denied=True, current_balance=balance),
        )

    # ✅ DB 장애: 작업 이름만 노출
    @app.exception_handler(PersistenceFailure)
    async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))

    @app.exception_handler(ResultsError)
    async def results_error_handler(request: Request, exc: ResultsError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"처리되지 않은 오류: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "Internal server error"),
        )
