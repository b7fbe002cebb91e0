"""
Client-side fee calculation
Mirrors the aggregator's fee formula so a bad payment is refused before signing
"""

from decimal import Decimal, DecimalException, ROUND_HALF_UP

import structlog

from uplink.errors import ValidationError
from uplink.payments.amounts import parse_decimal
from uplink.payments.models import CalculatedFees, PreparationResult, format_amount

logger = structlog.get_logger()

FEE_PRECISION = Decimal("0.000001")
CENT = Decimal("0.01")


def _to_decimal(value: float) -> Decimal:
    # str() keeps the literal the server sent (0.1 stays 0.1)
    return Decimal(str(value))


def _quantize(value: Decimal) -> Decimal:
    try:
        return value.quantize(FEE_PRECISION, rounding=ROUND_HALF_UP)
    except DecimalException:
        raise ValidationError("Invalid amount for fee calculation") from None


def calculate_fees(preparation: PreparationResult, gross_amount: str) -> CalculatedFees:
    """
    Calculate processing, ATA and total fees for a payment.

    Args:
        preparation: Preparation response carrying the fee config and ATA check
        gross_amount: Amount the payer signs for

    Returns:
        CalculatedFees with every amount rounded to 6 decimals

    Raises:
        ValidationError: If the amount is non-numeric or non-positive
    """
    try:
        gross = parse_decimal(gross_amount)
    except ValidationError:
        raise ValidationError("Invalid amount for fee calculation") from None
    if gross <= 0:
        raise ValidationError("Invalid amount for fee calculation")

    fee_config = preparation.fee_config
    is_cross_chain = (
        preparation.is_cross_chain
        or preparation.source_network != preparation.destination_network
    )

    if is_cross_chain:
        fee_percent = fee_config.crosschain_fee_percent
    else:
        fee_percent = fee_config.samechain_fee_percent

    processing_fee = gross * _to_decimal(fee_percent) / Decimal(100)
    minimum_fee_applied = False

    minimum_fee = _to_decimal(fee_config.minimum_crosschain_fee)
    if is_cross_chain and minimum_fee > 0 and processing_fee < minimum_fee:
        processing_fee = minimum_fee
        minimum_fee_applied = True

    ata_fee = Decimal(0)
    if preparation.ata_check.needs_creation:
        ata_fee = _to_decimal(fee_config.ata_creation_fee)

    processing_fee = _quantize(processing_fee)
    ata_fee = _quantize(ata_fee)
    total_fees = processing_fee + ata_fee
    gross = _quantize(gross)
    net_amount = max(Decimal(0), gross - total_fees)

    return CalculatedFees(
        gross_amount=gross,
        processing_fee=processing_fee,
        processing_fee_percent=fee_percent,
        ata_fee=ata_fee,
        total_fees=total_fees,
        net_amount=net_amount,
        minimum_fee_applied=minimum_fee_applied,
    )


def minimum_viable_payment(fees: CalculatedFees) -> Decimal:
    """Smallest payment that leaves the recipient at least one cent"""
    return (fees.total_fees + CENT).quantize(CENT, rounding=ROUND_HALF_UP)


def ensure_sufficient(fees: CalculatedFees) -> None:
    """Raise ValidationError when the payment cannot cover its own fees"""
    if fees.gross_amount >= fees.total_fees:
        return

    lines = [
        "Insufficient payment amount",
        "",
        f"Payment: ${fees.gross_amount.quantize(CENT, rounding=ROUND_HALF_UP)}",
        f"Required fees: ${fees.total_fees.quantize(CENT, rounding=ROUND_HALF_UP)}",
        f"  - Processing: ${format_amount(fees.processing_fee)}",
    ]
    if fees.ata_fee > 0:
        lines.append(f"  - ATA Creation: ${format_amount(fees.ata_fee)}")
    lines.extend([
        f"Recipient would receive: ${format_amount(fees.gross_amount - fees.total_fees)} (negative!)",
        "",
        f"Minimum payment: ${minimum_viable_payment(fees)}",
    ])
    raise ValidationError("\n".join(lines))


def log_fee_breakdown(fees: CalculatedFees) -> None:
    logger.info(
        "fee_breakdown",
        gross_amount=format_amount(fees.gross_amount),
        processing_fee=format_amount(fees.processing_fee),
        processing_fee_percent=fees.processing_fee_percent,
        ata_fee=format_amount(fees.ata_fee),
        total_fees=format_amount(fees.total_fees),
        net_amount=format_amount(fees.net_amount),
        minimum_fee_applied=fees.minimum_fee_applied,
    )
