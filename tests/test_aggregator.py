"""
Tests for the aggregator HTTP client
"""

import json

import httpx
import pytest
from structlog.testing import capture_logs

from uplink import __version__
from uplink.errors import (
    NON_RETRYABLE_ERRORS,
    AuthenticationError,
    FeeMismatchError,
    NetworkError,
    PaymentError,
    SettlementResponseError,
)
from uplink.payments.aggregator import AggregatorClient
from uplink.payments.models import SettlementRequest

PREPARATION = {
    "feeConfig": {
        "tier": "STANDARD",
        "samechainFeePercent": 0.1,
        "crosschainFeePercent": 0.1,
        "minimumCrosschainFee": 0.01,
        "ataCreationFee": 0.4,
    },
    "ataCheck": {"needsCreation": False, "applicable": False},
    "signToAddress": "0x" + "22" * 20,
    "signToDescription": "Intermediate settlement wallet",
    "sourceNetwork": "base",
    "destinationNetwork": "base",
    "isCrossChain": False,
}


def success(data):
    return httpx.Response(200, json={"status": "success", "data": data})


def make_client(config, handler) -> AggregatorClient:
    return AggregatorClient(config, transport=httpx.MockTransport(handler))


def settlement_request(**overrides) -> SettlementRequest:
    fields = dict(
        payment_header="header",
        to="0x" + "33" * 20,
        amount="10.000000",
        source_network="base",
        destination_network="base",
        calculated_fees={
            "processingFee": "0.010000",
            "ataFee": "0.000000",
            "totalFees": "0.010000",
            "netAmount": "9.990000",
        },
    )
    fields.update(overrides)
    return SettlementRequest(**fields)


class TestRequests:

    @pytest.mark.asyncio
    async def test_prepare_payment_request_and_parse(self, uplink_config):
        """Test the preparation call's path, headers, body and parsed result"""
        seen = []

        def handler(request):
            seen.append(request)
            return success(PREPARATION)

        client = make_client(uplink_config, handler)
        result = await client.prepare_payment("0x" + "33" * 20, "10.00", "base", "base")
        await client.aclose()

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://aggregator.test/v1/uplink/prepare-payment"
        assert request.headers["X-API-Key"] == "test-api-key"
        assert request.headers["User-Agent"] == f"uplink-python/{__version__}"
        assert json.loads(request.content) == {
            "to": "0x" + "33" * 20,
            "amount": "10.00",
            "sourceNetwork": "base",
            "destinationNetwork": "base",
            "token": "USDC",
        }
        assert result.fee_config.samechain_fee_percent == 0.1
        assert result.sign_to_address == "0x" + "22" * 20

    @pytest.mark.asyncio
    async def test_ranked_facilitators(self, uplink_config):
        seen = []

        def handler(request):
            seen.append(request)
            return success({"facilitators": [
                {"facilitatorName": "PayAI", "facilitatorId": "payai", "solanaFeePayer": "FeePayer1"},
                {"facilitatorName": "Other", "facilitatorId": "other"},
            ]})

        client = make_client(uplink_config, handler)
        facilitators = await client.ranked_facilitators("solana", "speed")
        await client.aclose()

        assert seen[0].url.path == "/v1/facilitators/ranked"
        assert seen[0].url.params["network"] == "solana"
        assert seen[0].url.params["priority"] == "speed"
        assert [f.facilitator_name for f in facilitators] == ["PayAI", "Other"]
        assert facilitators[1].solana_fee_payer is None

    @pytest.mark.asyncio
    async def test_facilitator_config(self, uplink_config):
        def handler(request):
            return success({"intermediateWallets": {"base": "0xwallet", "solana": "SolWallet"}})

        client = make_client(uplink_config, handler)
        assert await client.facilitator_config() == {"base": "0xwallet", "solana": "SolWallet"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_prepare_bridge(self, uplink_config):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return success({"depositAddress": "0xdeposit", "bridgeOrderId": "order-1"})

        client = make_client(uplink_config, handler)
        order = await client.prepare_bridge("base", "solana", "Recipient", "5.00")
        await client.aclose()

        assert seen[0]["recipient"] == "Recipient"
        assert order.deposit_address == "0xdeposit"
        assert order.bridge_order_id == "order-1"

    @pytest.mark.asyncio
    async def test_submit_payment_body(self, uplink_config):
        """Test that the settlement body uses wire names and omits empty fields"""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return success({"txHash": "0xabc", "facilitator": "PayAI", "verified": True, "settled": True})

        client = make_client(uplink_config, handler)
        result = await client.submit_payment(settlement_request(facilitator_id="payai"))
        await client.aclose()

        body = seen[0]
        assert body["paymentHeader"] == "header"
        assert body["facilitatorId"] == "payai"
        assert body["priority"] == "balanced"
        assert body["calculatedFees"]["totalFees"] == "0.010000"
        assert "idempotencyKey" not in body
        assert "bridgeOrderId" not in body
        assert result.tx_hash == "0xabc"
        assert result.settled is True


class TestErrors:

    @pytest.mark.asyncio
    async def test_401_is_authentication_error(self, uplink_config):
        client = make_client(uplink_config, lambda request: httpx.Response(401, json={}))

        with pytest.raises(AuthenticationError, match="Invalid API key"):
            await client.submit_payment(settlement_request())
        await client.aclose()

    @pytest.mark.asyncio
    async def test_failure_reason_extracted(self, uplink_config):
        def handler(request):
            return httpx.Response(400, json={
                "status": "error",
                "data": {"reason": "insufficient_funds"},
            })

        client = make_client(uplink_config, handler)
        with pytest.raises(PaymentError) as exc_info:
            await client.submit_payment(settlement_request())
        await client.aclose()

        assert exc_info.value.reason == "insufficient_funds"
        assert str(exc_info.value) == "Payment failed: insufficient_funds"

    @pytest.mark.asyncio
    async def test_fee_mismatch(self, uplink_config):
        """Test that FEE_MISMATCH carries both totals"""
        def handler(request):
            return httpx.Response(400, json={
                "status": "error",
                "error": {
                    "code": "FEE_MISMATCH",
                    "message": "Fee mismatch",
                    "serverCalculation": {"totalFees": "0.020000"},
                },
            })

        client = make_client(uplink_config, handler)
        with pytest.raises(FeeMismatchError) as exc_info:
            await client.submit_payment(settlement_request())
        await client.aclose()

        error = exc_info.value
        assert error.client_total == "0.010000"
        assert error.server_total == "0.020000"
        assert "Your calculation: $0.010000" in error.message
        assert "Server calculation: $0.020000" in error.message

    @pytest.mark.asyncio
    async def test_non_json_response(self, uplink_config):
        client = make_client(uplink_config, lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(PaymentError, match="HTTP 502"):
            await client.prepare_payment("to", "1.00", "base", "base")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_payload(self, uplink_config):
        client = make_client(uplink_config, lambda request: success({"unexpected": True}))

        with pytest.raises(PaymentError, match="malformed response"):
            await client.prepare_payment("to", "1.00", "base", "base")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, uplink_config):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(uplink_config, handler)
        with pytest.raises(NetworkError, match="Request timeout after"):
            await client.submit_payment(settlement_request())
        await client.aclose()


class TestRetries:

    @pytest.mark.asyncio
    async def test_prepare_retried_on_network_error(self, uplink_config):
        """Test that preparation survives transient connectivity failures"""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return success(PREPARATION)

        client = make_client(uplink_config, handler)
        with capture_logs() as logs:
            result = await client.prepare_payment("to", "1.00", "base", "base")
        await client.aclose()

        assert len(calls) == 3
        assert result.source_network == "base"
        assert [log["event"] for log in logs].count("aggregator_request_retry") == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, uplink_config):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = make_client(uplink_config, handler)
        with pytest.raises(NetworkError):
            await client.facilitator_config()
        await client.aclose()

        assert len(calls) == uplink_config.max_retries

    @pytest.mark.asyncio
    async def test_payment_errors_not_retried(self, uplink_config):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"status": "error", "message": "bad request"})

        client = make_client(uplink_config, handler)
        with pytest.raises(PaymentError, match="Payment preparation failed: bad request"):
            await client.prepare_payment("to", "1.00", "base", "base")
        await client.aclose()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_settlement_never_retried(self, uplink_config):
        """Test that a failed settlement is sent exactly once"""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = make_client(uplink_config, handler)
        with pytest.raises(NetworkError):
            await client.submit_payment(settlement_request())
        await client.aclose()

        assert len(calls) == 1


class TestSettlementConfirmation:

    @pytest.mark.asyncio
    async def test_unreadable_success_is_not_retryable(self, uplink_config):
        """Test that a success envelope without a tx hash ends failover"""
        def handler(request):
            return success({"transactionHash": "0xabc"})

        client = make_client(uplink_config, handler)
        with pytest.raises(SettlementResponseError, match="Do not resubmit"):
            await client.submit_payment(settlement_request())
        await client.aclose()

        assert SettlementResponseError in NON_RETRYABLE_ERRORS
