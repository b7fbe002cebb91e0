"""
Uplink client
Public entry point: configure once, then await pay() for each payment
"""

from typing import Any, Dict, Optional

import httpx
import pydantic
import structlog

from uplink.config import UplinkConfig
from uplink.errors import ValidationError
from uplink.payments.aggregator import AggregatorClient
from uplink.payments.evm import EVMSigner
from uplink.payments.headers import FacilitatorHeaderBuilder, PaymentSigner
from uplink.payments.models import PaymentRequest, PaymentResult, Priority
from uplink.payments.networks import ChainFamily, Network, NetworkResolver
from uplink.payments.orchestrator import PaymentOrchestrator
from uplink.payments.solana import SolanaRpc, SolanaSigner

logger = structlog.get_logger()

ATA_FEE_NOTICE = (
    "create_ata_fee_acceptance must be set to True\n\n"
    "Solana payments may require creating the recipient's associated token account,\n"
    "which adds roughly $0.40. The aggregator pays it upfront and recovers it from the payment.\n\n"
    "Example:\n"
    "  Payment: $1.00\n"
    "  Processing fee: $0.01 (0.1%)\n"
    "  ATA creation: $0.40 (recipient has no USDC account yet)\n"
    "  Recipient receives: $0.59\n\n"
    "To accept this fee structure:\n"
    "  Uplink(api_key=..., create_ata_fee_acceptance=True, ...)\n"
    "or set UPLINK_CREATE_ATA_FEE_ACCEPTANCE=true"
)

MINIMUM_CROSSCHAIN_FEE_NOTICE = (
    "minimum_crosschain_fee_acceptance must be set to True\n\n"
    "Cross-chain payments (Base <-> Solana) carry a minimum processing fee of $0.01\n"
    "so that bridge operations stay viable.\n\n"
    "Example:\n"
    "  Payment: $0.05\n"
    "  Percentage fee: $0.00005 (0.1%)\n"
    "  Minimum fee applied: $0.01\n"
    "  Recipient receives: $0.04\n\n"
    "To accept this fee structure:\n"
    "  Uplink(api_key=..., minimum_crosschain_fee_acceptance=True, ...)\n"
    "or set UPLINK_MINIMUM_CROSSCHAIN_FEE_ACCEPTANCE=true"
)


class Uplink:
    """
    Cross-chain USDC payment client.

    Mode A: configure a private key and the client signs locally.
    Mode B: pass a pre-signed payment_header to pay() and nothing is signed here.

    Usage:
        async with Uplink(api_key="...", private_key=os.environ["KEY"],
                          create_ata_fee_acceptance=True,
                          minimum_crosschain_fee_acceptance=True) as uplink:
            result = await uplink.pay(to="0x...", amount="$10")
    """

    def __init__(
        self,
        config: Optional[UplinkConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        solana_transport: Optional[httpx.AsyncBaseTransport] = None,
        **overrides: Any,
    ):
        try:
            if config is None:
                config = UplinkConfig(**overrides)
            elif overrides:
                config = UplinkConfig(**{**config.model_dump(), **overrides})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid configuration: {e}") from e

        if not config.api_key:
            raise ValidationError("api_key is required")
        if not config.create_ata_fee_acceptance:
            raise ValidationError(ATA_FEE_NOTICE)
        if not config.minimum_crosschain_fee_acceptance:
            raise ValidationError(MINIMUM_CROSSCHAIN_FEE_NOTICE)

        if overrides.get("private_key"):
            logger.warning(
                "private_key_passed_inline",
                hint="Load the key from the environment (UPLINK_PRIVATE_KEY) instead",
            )

        self.config = config
        self.network = Network.parse(config.network)
        self.aggregator = AggregatorClient(config, transport=transport)

        self.signer: Optional[PaymentSigner] = None
        if config.private_key:
            self.signer = self._create_signer(config, solana_transport)

        signers: Dict[ChainFamily, PaymentSigner] = {}
        if self.signer is not None:
            signers[self.network.family] = self.signer

        self.header_builder = FacilitatorHeaderBuilder(
            self.aggregator,
            signers,
            default_fee_payer=config.solana_default_fee_payer,
        )
        self.orchestrator = PaymentOrchestrator(
            self.aggregator,
            self.header_builder,
            NetworkResolver(self.network),
        )

        logger.info(
            "uplink_initialized",
            network=self.network.value,
            api_url=config.api_url,
            address=self.address,
            mode="local_signing" if self.signer else "pre_signed",
        )

    def _create_signer(
        self,
        config: UplinkConfig,
        solana_transport: Optional[httpx.AsyncBaseTransport],
    ) -> PaymentSigner:
        if self.network.family is ChainFamily.SOLANA:
            rpc = SolanaRpc(
                config.solana_rpc_url,
                timeout=config.timeout,
                transport=solana_transport,
            )
            return SolanaSigner(
                config.private_key,
                rpc_url=config.solana_rpc_url,
                default_fee_payer=config.solana_default_fee_payer,
                rpc=rpc,
            )
        return EVMSigner(config.private_key, self.network)

    @property
    def address(self) -> Optional[str]:
        """Payer address for Mode A, None in Mode B"""
        return self.signer.address if self.signer else None

    async def pay(
        self,
        to: str,
        amount: str,
        *,
        payment_header: Optional[str] = None,
        source_network: Optional[str] = None,
        destination_network: Optional[str] = None,
        priority: "str | Priority" = Priority.BALANCED,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentResult:
        """
        Send a USDC payment.

        Args:
            to: Recipient address
            amount: Human amount ("$10", "10.50", "10 USDC")
            payment_header: Pre-signed header (Mode B)
            source_network: Defaults to the configured network
            destination_network: Detected from the recipient address when omitted
            priority: Facilitator ranking hint
            idempotency_key: Forwarded to the aggregator
            metadata: Forwarded to the aggregator

        Returns:
            PaymentResult with the transaction hash and the facilitator attempts
        """
        try:
            priority = Priority(priority)
        except ValueError:
            supported = [p.value for p in Priority]
            raise ValidationError(f"Unsupported priority: {priority}. Supported: {supported}") from None

        request = PaymentRequest(
            to=to,
            amount=amount,
            payment_header=payment_header,
            source_network=source_network,
            destination_network=destination_network,
            priority=priority,
            idempotency_key=idempotency_key,
            metadata=metadata,
        )
        return await self.orchestrator.pay(request)

    async def aclose(self) -> None:
        """Close HTTP clients"""
        await self.aggregator.aclose()
        if isinstance(self.signer, SolanaSigner):
            await self.signer.aclose()

    async def __aenter__(self) -> "Uplink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
