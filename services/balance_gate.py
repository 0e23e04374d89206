import logging
from dataclasses import dataclass
from decimal import Decimal

from services.exceptions import AccessDenied

logger = logging.getLogger(__name__)

BALANCE_DENIED_MESSAGE = (
    "You cannot view results due to outstanding balance. "
    "Please clear your account balance first."
)


@dataclass(frozen=True)
class BalanceStatus:
    reg_number: str
    current_balance: Decimal
    can_view_results: bool

    @property
    def balance_status(self) -> str:
        return "CREDIT" if self.current_balance >= 0 else "DEBIT"


def can_view_results(balance: BalanceStatus) -> bool:
    # 판단은 billing 쪽 플래그를 그대로 따름
    return balance.can_view_results


def ensure_can_view_results(balance: BalanceStatus) -> None:
    if not can_view_results(balance):
        logger.warning(f"성적 조회 차단(잔액 미납): reg_number={balance.reg_number}, balance={balance.current_balance}")
        raise AccessDenied(BALANCE_DENIED_MESSAGE, current_balance=balance.current_balance)
