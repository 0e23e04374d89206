from decimal import Decimal

import httpx
import pytest

from services.balance_gate import BalanceStatus, can_view_results, ensure_can_view_results
from services.billing_client import BillingHttpClient, BillingResponseError, LocalBalanceProvider
from services.exceptions import AccessDenied


def test_gate_relays_billing_flag():
    assert can_view_results(BalanceStatus("S100", Decimal("-10"), True)) is True
    assert can_view_results(BalanceStatus("S100", Decimal("50"), False)) is False


def test_denial_carries_current_balance():
    with pytest.raises(AccessDenied) as exc:
        ensure_can_view_results(BalanceStatus("S100", Decimal("-120.50"), False))
    assert exc.value.current_balance == Decimal("-120.50")
    assert exc.value.code == "ACCESS_DENIED"
    assert "outstanding balance" in exc.value.message


def test_balance_status_label():
    assert BalanceStatus("S1", Decimal("0"), True).balance_status == "CREDIT"
    assert BalanceStatus("S1", Decimal("-1"), False).balance_status == "DEBIT"


def test_local_provider_missing_row_is_zero(db):
    status = LocalBalanceProvider(db).get_balance_status("S404")
    assert status.current_balance == 0
    assert status.can_view_results is True


def test_local_provider_debit_balance_denies(db, set_balance):
    set_balance("S100", -35)
    status = LocalBalanceProvider(db).get_balance_status("S100")
    assert status.current_balance == Decimal("-35")
    assert status.can_view_results is False


def test_http_client_reads_balance():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/balances/S100"
        assert request.headers["Authorization"] == "Bearer billing-token"
        return httpx.Response(200, json={"success": True, "data": {"current_balance": "-20.00"}})

    client = BillingHttpClient(
        "http://billing.local/api/", token="billing-token", transport=httpx.MockTransport(handler)
    )
    status = client.get_balance_status("S100")
    assert status.current_balance == Decimal("-20.00")
    assert status.can_view_results is False


def test_http_client_prefers_explicit_flag():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"current_balance": -5, "can_view_results": True})
    )
    status = BillingHttpClient("http://billing.local", transport=transport).get_balance_status("S100")
    assert status.can_view_results is True


def test_http_client_raises_on_server_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    with pytest.raises(httpx.HTTPStatusError):
        BillingHttpClient("http://billing.local", transport=transport).get_balance_status("S100")


@pytest.mark.parametrize("payload", [
    {"data": {"current_balance": None}},
    {"data": {"current_balance": "abc"}},
    {"data": ["-20.00"]},
    {"data": {}},
    ["not", "an", "object"],
])
def test_http_client_rejects_malformed_payload(payload):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(BillingResponseError):
        BillingHttpClient("http://billing.local", transport=transport).get_balance_status("S100")


def test_http_client_rejects_non_json_body():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    with pytest.raises(BillingResponseError):
        BillingHttpClient("http://billing.local", transport=transport).get_balance_status("S100")
