"""
services/billing_client.py

- 학생 잔액 조회 (billing 서브시스템 연동)
- BILLING_API_BASE_URL 이 설정되어 있으면 HTTP 로 조회, 아니면 student_balances 테이블 직접 조회
"""

import logging
from decimal import Decimal
from typing import Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from config.settings import settings
from models.balances import StudentBalance
from services.balance_gate import BalanceStatus

logger = logging.getLogger(__name__)


class BillingResponseError(ValueError):
    """billing 응답 형식이 예상과 다름 (잔액 누락, 숫자 아님 등)"""


class BalanceProvider(Protocol):
    def get_balance_status(self, reg_number: str) -> BalanceStatus: ...


def _status_from_balance(reg_number: str, current_balance: Decimal) -> BalanceStatus:
    # 음수(DR) 잔액이면 성적 조회 불가
    return BalanceStatus(
        reg_number=reg_number,
        current_balance=current_balance,
        can_view_results=current_balance >= 0,
    )


class LocalBalanceProvider:
    def __init__(self, db: Session):
        self.db = db

    def get_balance_status(self, reg_number: str) -> BalanceStatus:
        row = (
            self.db.query(StudentBalance)
            .filter(StudentBalance.student_reg_number == reg_number)
            .first()
        )
        # 잔액 기록이 없으면 0 으로 간주
        balance = Decimal(str(row.current_balance)) if row and row.current_balance is not None else Decimal("0")
        return _status_from_balance(reg_number, balance)


class BillingHttpClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.timeout = timeout
        self.transport = transport

    def get(self, path: str) -> dict:
        url = f"{self.base}{path}"
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            r = client.get(url, headers=self.headers)
            r.raise_for_status()
            try:
                return r.json()
            except ValueError as e:
                raise BillingResponseError(f"billing response is not JSON: {url}") from e

    def get_balance_status(self, reg_number: str) -> BalanceStatus:
        payload = self.get(f"/balances/{reg_number}")
        try:
            data = payload.get("data", payload)
            balance = Decimal(str(data["current_balance"]))
            if not balance.is_finite():
                raise ValueError(f"non-finite balance: {balance}")
            status = _status_from_balance(reg_number, balance)
            # billing 이 플래그를 직접 주면 그 값을 우선
            if "can_view_results" in data:
                status = BalanceStatus(reg_number, balance, bool(data["can_view_results"]))
        except (KeyError, TypeError, ValueError, ArithmeticError, AttributeError) as e:
            raise BillingResponseError(f"unexpected billing payload for {reg_number}: {payload!r}") from e
        logger.debug(f"billing 잔액 조회: reg_number={reg_number}, balance={balance}")
        return status


def get_balance_provider(db: Session) -> BalanceProvider:
    if settings.BILLING_API_BASE_URL:
        return BillingHttpClient(
            settings.BILLING_API_BASE_URL,
            token=settings.BILLING_INTERNAL_TOKEN,
            timeout=settings.BILLING_TIMEOUT,
        )
    return LocalBalanceProvider(db)
