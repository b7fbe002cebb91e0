"""
Payment models for the Uplink client
Wire models use the aggregator's camelCase field names as aliases
"""

import base64
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def format_amount(value: Decimal) -> str:
    """Render an amount with the 6 decimals the aggregator uses"""
    return f"{value:.6f}"


class Priority(str, Enum):
    """Facilitator ranking hint"""
    SPEED = "speed"
    COST = "cost"
    RELIABILITY = "reliability"
    BALANCED = "balanced"


class WireModel(BaseModel):
    """Base for models exchanged with the aggregator"""
    model_config = ConfigDict(populate_by_name=True)


class PaymentRequest(WireModel):
    """Caller-owned description of one payment"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    to: str = Field(description="Destination address")
    amount: str = Field(description="Human amount, e.g. '$10' or '10 USDC'")
    source_network: Optional[str] = None
    destination_network: Optional[str] = None
    payment_header: Optional[str] = Field(default=None, description="Pre-signed x402 header (Mode B)")
    idempotency_key: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    priority: Priority = Priority.BALANCED


class FeeConfig(WireModel):
    """Fee configuration snapshot returned by the aggregator"""
    tier: Literal["STANDARD", "REDUCED", "COMPLIMENTARY"] = "STANDARD"
    samechain_fee_percent: float = Field(alias="samechainFeePercent")
    crosschain_fee_percent: float = Field(alias="crosschainFeePercent")
    minimum_crosschain_fee: float = Field(default=0.0, alias="minimumCrosschainFee")
    ata_creation_fee: float = Field(default=0.0, alias="ataCreationFee")


class ATACheck(WireModel):
    """Whether the destination needs a new associated token account"""
    needs_creation: bool = Field(default=False, alias="needsCreation")
    applicable: bool = False


class CalculatedFees(WireModel):
    """Fee breakdown, computed locally and cross-checked by the server"""
    gross_amount: Decimal = Field(alias="grossAmount")
    processing_fee: Decimal = Field(alias="processingFee")
    processing_fee_percent: float = Field(alias="processingFeePercent")
    ata_fee: Decimal = Field(alias="ataFee")
    total_fees: Decimal = Field(alias="totalFees")
    net_amount: Decimal = Field(alias="netAmount")
    minimum_fee_applied: bool = Field(default=False, alias="minimumFeeApplied")

    @field_serializer("gross_amount", "processing_fee", "ata_fee", "total_fees", "net_amount")
    def serialize_amount(self, value: Decimal) -> str:
        return format_amount(value)

    def settlement_breakdown(self) -> Dict[str, str]:
        """Subset the settlement endpoint validates against its own calculation"""
        return {
            "processingFee": format_amount(self.processing_fee),
            "ataFee": format_amount(self.ata_fee),
            "totalFees": format_amount(self.total_fees),
            "netAmount": format_amount(self.net_amount),
        }


class PreparationResult(WireModel):
    """Response of POST /prepare-payment, valid for one payment attempt"""
    fee_config: FeeConfig = Field(alias="feeConfig")
    ata_check: ATACheck = Field(default_factory=ATACheck, alias="ataCheck")
    calculated_fees: Optional[CalculatedFees] = Field(default=None, alias="calculatedFees")
    sign_to_address: Optional[str] = Field(default=None, alias="signToAddress")
    sign_to_description: str = Field(default="", alias="signToDescription")
    bridge_order_id: Optional[str] = Field(default=None, alias="bridgeOrderId")
    source_network: str = Field(alias="sourceNetwork")
    destination_network: str = Field(alias="destinationNetwork")
    is_cross_chain: bool = Field(default=False, alias="isCrossChain")


class RankedFacilitator(WireModel):
    """One entry of GET /facilitators/ranked"""
    facilitator_name: str = Field(alias="facilitatorName")
    facilitator_id: str = Field(alias="facilitatorId")
    solana_fee_payer: Optional[str] = Field(default=None, alias="solanaFeePayer")


class BridgeOrder(WireModel):
    """Response of POST /bridge/prepare"""
    deposit_address: str = Field(alias="depositAddress")
    bridge_order_id: str = Field(alias="bridgeOrderId")


class FacilitatorHeader(WireModel):
    """Signed payment header targeted at one facilitator (or all, for EVM)"""
    facilitator_name: str = Field(alias="facilitatorName")
    facilitator_id: str = Field(alias="facilitatorId")
    payment_header: str = Field(alias="paymentHeader")
    solana_fee_payer: Optional[str] = Field(default=None, alias="solanaFeePayer")


class PaymentAuthorization(WireModel):
    """EIP-3009 transfer authorization fields"""
    from_address: str = Field(alias="from")
    to: str
    value: str
    valid_after: str = Field(default="0", alias="validAfter")
    valid_before: str = Field(alias="validBefore")
    nonce: str


class PaymentPayload(BaseModel):
    """x402 envelope carried, base64-encoded, in the payment header"""
    x402Version: int = 1
    scheme: str = "exact"
    network: str
    payload: dict = Field(description="Signature + authorization (EVM) or serialized transaction (Solana)")


class SettlementRequest(WireModel):
    """Body of POST /pay"""
    payment_header: str = Field(alias="paymentHeader")
    to: str
    amount: str
    source_network: str = Field(alias="sourceNetwork")
    destination_network: str = Field(alias="destinationNetwork")
    token: str = "USDC"
    priority: Priority = Priority.BALANCED
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")
    metadata: Optional[Dict[str, Any]] = None
    bridge_order_id: Optional[str] = Field(default=None, alias="bridgeOrderId")
    facilitator_id: Optional[str] = Field(default=None, alias="facilitatorId")
    calculated_fees: Dict[str, str] = Field(alias="calculatedFees")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentAttempt(BaseModel):
    """Outcome of submitting one header to the settlement endpoint"""
    index: int
    facilitator_name: str
    facilitator_id: str
    succeeded: bool = False
    error: Optional[str] = None


class PaymentResult(WireModel):
    """Settlement confirmation"""
    tx_hash: str = Field(alias="txHash")
    facilitator: str = ""
    verified: bool = False
    settled: bool = False
    amount: str = ""
    token: str = "USDC"
    to: str = ""
    source_network: str = Field(default="", alias="sourceNetwork")
    destination_network: str = Field(default="", alias="destinationNetwork")
    attempts: List[PaymentAttempt] = Field(default_factory=list, exclude=True)


def encode_payment_payload(payment_payload: PaymentPayload) -> str:
    """Encode PaymentPayload as base64 for the payment header"""
    return base64.b64encode(
        payment_payload.model_dump_json().encode()
    ).decode()


def decode_payment_payload(encoded: str) -> PaymentPayload:
    """Decode base64 PaymentPayload from a payment header"""
    decoded = base64.b64decode(encoded).decode()
    return PaymentPayload.model_validate_json(decoded)
