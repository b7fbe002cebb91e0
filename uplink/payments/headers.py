"""
Facilitator header generation
One header for every EVM facilitator; one header per fee payer on Solana
"""

import asyncio
from typing import Dict, List, Optional, Protocol, runtime_checkable

import structlog

from uplink.errors import SigningError, UplinkError, ValidationError
from uplink.payments.aggregator import AggregatorClient
from uplink.payments.models import FacilitatorHeader, Priority, RankedFacilitator
from uplink.payments.networks import ChainFamily, Network

logger = structlog.get_logger()

# Identity used for the single EVM header
ALL_FACILITATORS = "all"
# Identity used when the ranking is unavailable on Solana
FALLBACK_FACILITATOR_NAME = "PayAI"
FALLBACK_FACILITATOR_ID = "unknown"


@runtime_checkable
class PaymentSigner(Protocol):
    """Chain-specific payment signer"""

    @property
    def address(self) -> str:
        ...

    async def sign_payment(
        self,
        to: str,
        amount: str,
        source_network: str,
        destination_network: str,
        fee_payer: Optional[str] = None,
    ) -> str:
        ...


class FacilitatorHeaderBuilder:
    """Produces the ordered list of signed headers to try at settlement"""

    def __init__(
        self,
        aggregator: AggregatorClient,
        signers: Dict[ChainFamily, PaymentSigner],
        default_fee_payer: Optional[str] = None,
    ):
        self.aggregator = aggregator
        self.signers = signers
        self.default_fee_payer = default_fee_payer

    @property
    def can_sign(self) -> bool:
        return bool(self.signers)

    def signer_for(self, network: Network) -> PaymentSigner:
        signer = self.signers.get(network.family)
        if signer is None:
            raise ValidationError(f"{network.family.value.upper()} signer not configured")
        return signer

    async def build(
        self,
        sign_to: str,
        amount: str,
        source_network: "str | Network",
        destination_network: "str | Network",
        priority: Priority = Priority.BALANCED,
    ) -> List[FacilitatorHeader]:
        """
        Sign the payment for every facilitator that may settle it.

        Args:
            sign_to: Intermediate wallet or bridge deposit address
            amount: Gross amount to sign
            source_network: Network the payment leaves from
            destination_network: Network the recipient is on
            priority: Ranking hint for facilitator order

        Returns:
            Headers in the order they should be submitted
        """
        source = Network.parse(source_network)
        destination = Network.parse(destination_network)
        signer = self.signer_for(source)

        if source.family is ChainFamily.SOLANA:
            return await self._build_solana(signer, sign_to, amount, source, destination, priority)

        header = await signer.sign_payment(sign_to, amount, source.value, destination.value)
        return [
            FacilitatorHeader(
                facilitator_name=ALL_FACILITATORS,
                facilitator_id=ALL_FACILITATORS,
                payment_header=header,
            )
        ]

    async def _fallback_header(
        self,
        signer: PaymentSigner,
        sign_to: str,
        amount: str,
        source: Network,
        destination: Network,
    ) -> List[FacilitatorHeader]:
        header = await signer.sign_payment(
            sign_to, amount, source.value, destination.value, self.default_fee_payer
        )
        return [
            FacilitatorHeader(
                facilitator_name=FALLBACK_FACILITATOR_NAME,
                facilitator_id=FALLBACK_FACILITATOR_ID,
                payment_header=header,
                solana_fee_payer=self.default_fee_payer,
            )
        ]

    async def _build_solana(
        self,
        signer: PaymentSigner,
        sign_to: str,
        amount: str,
        source: Network,
        destination: Network,
        priority: Priority,
    ) -> List[FacilitatorHeader]:
        try:
            ranked = await self.aggregator.ranked_facilitators(source.value, Priority(priority).value)
        except UplinkError as e:
            logger.warning("facilitator_lookup_failed", network=source.value, error=str(e))
            return await self._fallback_header(signer, sign_to, amount, source, destination)

        usable: List[RankedFacilitator] = []
        for facilitator in ranked:
            if facilitator.solana_fee_payer:
                usable.append(facilitator)
            else:
                logger.warning(
                    "facilitator_skipped_no_fee_payer",
                    facilitator=facilitator.facilitator_name,
                )

        if not usable:
            logger.warning("facilitator_lookup_empty", network=source.value)
            return await self._fallback_header(signer, sign_to, amount, source, destination)

        # Signing submits nothing, so headers are built concurrently
        results = await asyncio.gather(
            *(
                signer.sign_payment(
                    sign_to, amount, source.value, destination.value, f.solana_fee_payer
                )
                for f in usable
            ),
            return_exceptions=True,
        )

        headers: List[FacilitatorHeader] = []
        last_error: Optional[BaseException] = None
        for facilitator, result in zip(usable, results):
            if isinstance(result, BaseException):
                if not isinstance(result, SigningError):
                    raise result
                logger.warning(
                    "facilitator_header_failed",
                    facilitator=facilitator.facilitator_name,
                    error=str(result),
                )
                last_error = result
                continue

            headers.append(
                FacilitatorHeader(
                    facilitator_name=facilitator.facilitator_name,
                    facilitator_id=facilitator.facilitator_id,
                    payment_header=result,
                    solana_fee_payer=facilitator.solana_fee_payer,
                )
            )

        if not headers and last_error is not None:
            raise last_error

        logger.info(
            "solana_headers_generated",
            count=len(headers),
            facilitators=[h.facilitator_name for h in headers],
        )
        return headers
