"""
Uplink Payment Module
Fee calculation, signing and settlement for USDC payments on Base and Solana
"""

from uplink.payments.models import (
    PaymentRequest,
    PaymentResult,
    PaymentAttempt,
    PreparationResult,
    CalculatedFees,
    FacilitatorHeader,
    Priority,
)
from uplink.payments.networks import (
    ChainFamily,
    Network,
    NetworkResolver,
    detect_network_from_address,
)
from uplink.payments.amounts import normalize_amount, to_atomic_units, USDC_DECIMALS
from uplink.payments.fees import calculate_fees, minimum_viable_payment
from uplink.payments.evm import EVMSigner
from uplink.payments.solana import SolanaSigner
from uplink.payments.orchestrator import PaymentOrchestrator, PaymentState

__all__ = [
    "PaymentRequest",
    "PaymentResult",
    "PaymentAttempt",
    "PreparationResult",
    "CalculatedFees",
    "FacilitatorHeader",
    "Priority",
    "ChainFamily",
    "Network",
    "NetworkResolver",
    "detect_network_from_address",
    "normalize_amount",
    "to_atomic_units",
    "USDC_DECIMALS",
    "calculate_fees",
    "minimum_viable_payment",
    "EVMSigner",
    "SolanaSigner",
    "PaymentOrchestrator",
    "PaymentState",
]
