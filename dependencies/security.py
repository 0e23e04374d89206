from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Annotated

from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt

from config.settings import settings

AuthHeader = Annotated[Optional[str], Header(alias="Authorization")]

STAFF_ROLES = ("staff", "admin")
STUDENT_ROLE = "student"


def create_access_token(sub: str, role: str, reg_number: Optional[str] = None,
                        expires_minutes: Optional[int] = None) -> str:
    """스크립트/테스트용 토큰 발급 (로그인 처리는 별도 인증 서버 담당)"""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or settings.JWT_EXPIRE_MINUTES)
    claims: Dict[str, Any] = {"sub": sub, "role": role, "exp": expire}
    if reg_number:
        claims["reg_number"] = reg_number
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _decode_bearer(authorization: Optional[str]) -> Dict[str, Any]:
    if not authorization:
        raise _unauthorized("Missing Authorization header")

    # "Bearer <token>" 파싱
    try:
        scheme, token = authorization.split(" ", 1)
    except ValueError:
        raise _unauthorized("Invalid Authorization header format")

    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme")

    try:
        claims = jwt.decode(token.strip(), settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid token")

    if not claims.get("sub") or not claims.get("role"):
        raise _unauthorized("Invalid token claims")
    return claims


def _caller(claims: Dict[str, Any], request: Request) -> Dict[str, Any]:
    # 감사 로그에 남길 요청 정보까지 함께 전달
    return {
        "sub": claims["sub"],
        "role": claims["role"],
        "reg_number": claims.get("reg_number"),
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def require_staff(request: Request, authorization: AuthHeader = None) -> Dict[str, Any]:
    claims = _decode_bearer(authorization)
    if claims["role"] not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return _caller(claims, request)


def require_student(request: Request, authorization: AuthHeader = None) -> Dict[str, Any]:
    claims = _decode_bearer(authorization)
    # 학생은 본인 학번으로만 조회 가능
    if claims["role"] != STUDENT_ROLE or not claims.get("reg_number"):
        raise HTTPException(status_code=403, detail="Student access required")
    return _caller(claims, request)
