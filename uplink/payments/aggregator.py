"""
Aggregator API client
Async access to the preparation, facilitator, bridge and settlement endpoints
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import httpx
import pydantic
import structlog

from uplink import __version__
from uplink.config import UplinkConfig
from uplink.errors import (
    AuthenticationError,
    FeeMismatchError,
    NetworkError,
    PaymentError,
    SettlementResponseError,
)
from uplink.payments.models import (
    BridgeOrder,
    PaymentResult,
    PreparationResult,
    RankedFacilitator,
    SettlementRequest,
)

logger = structlog.get_logger()

T = TypeVar("T")
M = TypeVar("M", bound=pydantic.BaseModel)

FEE_MISMATCH_CODE = "FEE_MISMATCH"


class AggregatorClient:
    """
    HTTP client for the payment aggregator.

    Every call carries the API key. Reads and the preparation call are
    retried on network errors; bridge preparation and settlement are not.
    """

    USER_AGENT = f"uplink-python/{__version__}"

    def __init__(
        self,
        config: UplinkConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout,
            headers={
                "X-API-Key": config.api_key,
                "Content-Type": "application/json",
                "User-Agent": self.USER_AGENT,
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        timeout = self.config.timeout if timeout is None else timeout
        try:
            return await self.client.request(
                method, path, json=json, params=params, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout after {timeout}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Network request failed: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code == 401:
            raise AuthenticationError("Invalid API key")
        try:
            data = response.json()
        except ValueError:
            raise PaymentError(
                f"Invalid response from aggregator (HTTP {response.status_code})"
            ) from None
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _failure_reason(data: Dict[str, Any]) -> str:
        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        return (
            nested.get("reason")
            or error.get("message")
            or data.get("message")
            or "Unknown error"
        )

    def _unwrap(self, response: httpx.Response, action: str) -> Dict[str, Any]:
        data = self._decode(response)
        if response.status_code != 200 or data.get("status") != "success":
            reason = self._failure_reason(data)
            raise PaymentError(f"{action} failed: {reason}", reason)
        return data.get("data") or {}

    @staticmethod
    def _parse(model: Type[M], data: Dict[str, Any], action: str) -> M:
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise PaymentError(f"{action} returned a malformed response: {e}") from e

    async def _with_retries(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Retry a call on NetworkError with exponential backoff"""
        attempts = max(1, self.config.max_retries)
        for attempt in range(attempts):
            try:
                return await call()
            except NetworkError as e:
                if attempt == attempts - 1:
                    raise
                delay = self.config.retry_delay * (2 ** attempt)
                logger.warning(
                    "aggregator_request_retry",
                    operation=operation,
                    attempt=attempt + 1,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
        raise NetworkError(f"{operation} failed")

    async def prepare_payment(
        self,
        to: str,
        amount: str,
        source_network: str,
        destination_network: str,
        token: str = "USDC",
    ) -> PreparationResult:
        """Fetch fee config, ATA status and the address to sign to"""
        body = {
            "to": to,
            "amount": amount,
            "sourceNetwork": source_network,
            "destinationNetwork": destination_network,
            "token": token,
        }

        async def call() -> PreparationResult:
            response = await self._request("POST", "/v1/uplink/prepare-payment", json=body)
            data = self._unwrap(response, "Payment preparation")
            return self._parse(PreparationResult, data, "Payment preparation")

        return await self._with_retries("prepare_payment", call)

    async def ranked_facilitators(self, network: str, priority: str) -> List[RankedFacilitator]:
        """Facilitators for a network, best first for the given priority"""
        response = await self._request(
            "GET",
            "/v1/facilitators/ranked",
            params={"network": network, "priority": priority},
            timeout=self.config.facilitator_lookup_timeout,
        )
        data = self._unwrap(response, "Facilitator lookup")
        return [
            self._parse(RankedFacilitator, f, "Facilitator lookup")
            for f in data.get("facilitators") or []
        ]

    async def facilitator_config(self) -> Dict[str, str]:
        """Map of network to intermediate settlement wallet"""

        async def call() -> Dict[str, str]:
            response = await self._request("GET", "/v1/facilitators/config")
            data = self._unwrap(response, "Facilitator config")
            wallets = data.get("intermediateWallets", data)
            return {str(k): str(v) for k, v in wallets.items() if isinstance(v, str)}

        return await self._with_retries("facilitator_config", call)

    async def prepare_bridge(
        self,
        source_network: str,
        destination_network: str,
        recipient: str,
        amount: str,
    ) -> BridgeOrder:
        """Open a bridge order and return its deposit address"""
        response = await self._request(
            "POST",
            "/v1/bridge/prepare",
            json={
                "sourceNetwork": source_network,
                "destinationNetwork": destination_network,
                "recipient": recipient,
                "amount": amount,
            },
        )
        data = self._unwrap(response, "Bridge preparation")
        return self._parse(BridgeOrder, data, "Bridge preparation")

    async def submit_payment(self, request: SettlementRequest) -> PaymentResult:
        """
        Submit one signed header for verification and settlement.

        Raises:
            AuthenticationError: Invalid API key
            FeeMismatchError: Server fee calculation differs from the client's
            PaymentError: Settlement rejected
            SettlementResponseError: Success reported with an unreadable confirmation
            NetworkError: Timeout or connectivity failure
        """
        response = await self._request("POST", "/v1/uplink/pay", json=request.to_wire())
        data = self._decode(response)

        if response.status_code != 200 or data.get("status") != "success":
            reason = self._failure_reason(data)
            error = data.get("error") if isinstance(data.get("error"), dict) else {}

            if error.get("code") == FEE_MISMATCH_CODE:
                client_total = request.calculated_fees.get("totalFees")
                server_total = (error.get("serverCalculation") or {}).get("totalFees")
                raise FeeMismatchError(
                    f"Fee validation failed: {reason}\n\n"
                    f"Your calculation: ${client_total}\n"
                    f"Server calculation: ${server_total}\n\n"
                    f"This indicates fee configuration drift. Please report this issue.",
                    reason,
                    client_total=client_total,
                    server_total=server_total,
                )

            raise PaymentError(f"Payment failed: {reason}", reason)

        # The aggregator has settled; a second facilitator must not be tried
        try:
            return PaymentResult.model_validate(data.get("data") or {})
        except pydantic.ValidationError as e:
            raise SettlementResponseError(
                "Settlement reported success but the confirmation is malformed. "
                "Do not resubmit; check the payment status with the aggregator.",
                str(e),
            ) from e
