"""
Payment orchestration
Drives one payment through prepare -> fee check -> sign -> submit with failover.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

import structlog

from uplink.errors import (
    NON_RETRYABLE_ERRORS,
    NetworkError,
    PaymentError,
    UplinkError,
    ValidationError,
)
from uplink.payments.aggregator import AggregatorClient
from uplink.payments.amounts import normalize_amount
from uplink.payments.fees import calculate_fees, ensure_sufficient, log_fee_breakdown
from uplink.payments.headers import FALLBACK_FACILITATOR_ID, FacilitatorHeaderBuilder
from uplink.payments.models import (
    CalculatedFees,
    FacilitatorHeader,
    PaymentAttempt,
    PaymentRequest,
    PaymentResult,
    PreparationResult,
    SettlementRequest,
    format_amount,
)
from uplink.payments.networks import NetworkResolver

logger = structlog.get_logger()

# Facilitator identity of a caller-supplied header
PROVIDED_HEADER = "provided"


class PaymentState(Enum):
    """Lifecycle states for a single pay() call"""
    IDLE = "idle"
    PREPARING = "preparing"       # Fetching fee config and signing target
    FEE_CHECKED = "fee_checked"   # Fees recomputed locally and judged sufficient
    SIGNING = "signing"           # Building facilitator headers
    SUBMITTING = "submitting"     # Settlement attempt in flight
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PaymentContext:
    """Everything produced while executing one payment"""
    request: PaymentRequest
    state: PaymentState = PaymentState.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    normalized_amount: Optional[str] = None
    preparation: Optional[PreparationResult] = None
    fees: Optional[CalculatedFees] = None
    headers: List[FacilitatorHeader] = field(default_factory=list)
    attempts: List[PaymentAttempt] = field(default_factory=list)
    result: Optional[PaymentResult] = None
    error: Optional[UplinkError] = None

    def elapsed_seconds(self) -> float:
        return round((datetime.now(timezone.utc) - self.started_at).total_seconds(), 3)


class PaymentOrchestrator:
    """
    Executes payments against the aggregator.

    Settlement attempts are strictly sequential: at most one submission is
    in flight per payment, and a facilitator index is never retried.
    """

    def __init__(
        self,
        aggregator: AggregatorClient,
        header_builder: FacilitatorHeaderBuilder,
        resolver: NetworkResolver,
    ):
        self.aggregator = aggregator
        self.header_builder = header_builder
        self.resolver = resolver

    async def pay(self, request: PaymentRequest) -> PaymentResult:
        """
        Execute one payment.

        Transitions: IDLE -> PREPARING -> FEE_CHECKED -> SIGNING -> SUBMITTING -> SUCCEEDED/FAILED

        Raises:
            ValidationError: Bad input or amount below fees, before anything is signed
            AuthenticationError: Invalid API key
            FeeMismatchError: Server disagrees with the client fee calculation
            SettlementResponseError: Settled, but the confirmation was unreadable
            PaymentError / NetworkError: Last failure once every facilitator was tried
        """
        ctx = PaymentContext(request=request)
        logger.info("payment_starting", to=request.to, amount=request.amount)

        try:
            if not request.payment_header and not self.header_builder.can_sign:
                raise ValidationError(
                    "Must provide payment_header OR configure private_key. "
                    "Mode A: Uplink(private_key=...) | "
                    "Mode B: uplink.pay(..., payment_header=...)"
                )

            self._transition(ctx, PaymentState.PREPARING)
            await self._prepare(ctx)

            ctx.fees = calculate_fees(ctx.preparation, ctx.normalized_amount)
            ensure_sufficient(ctx.fees)
            self._compare_server_preview(ctx)
            log_fee_breakdown(ctx.fees)
            self._transition(ctx, PaymentState.FEE_CHECKED)

            self._transition(ctx, PaymentState.SIGNING)
            ctx.headers = await self._sign(ctx)

            ctx.result = await self._submit_with_failover(ctx)
            self._transition(ctx, PaymentState.SUCCEEDED)
            return ctx.result

        except UplinkError as e:
            ctx.error = e
            if not e.attempts:
                e.attempts = list(ctx.attempts)
            self._transition(ctx, PaymentState.FAILED)
            raise

    def _transition(self, ctx: PaymentContext, new_state: PaymentState) -> None:
        old_state = ctx.state
        ctx.state = new_state
        logger.debug(
            "payment_state_transition",
            from_state=old_state.value,
            to_state=new_state.value,
        )

    async def _prepare(self, ctx: PaymentContext) -> None:
        request = ctx.request
        ctx.normalized_amount = normalize_amount(request.amount)
        source = self.resolver.resolve_source(request.source_network)
        destination = self.resolver.resolve_destination(request.to, request.destination_network)

        logger.info(
            "payment_preparing",
            source_network=source.value,
            destination_network=destination.value,
            amount=ctx.normalized_amount,
        )
        preparation = await self.aggregator.prepare_payment(
            to=request.to,
            amount=ctx.normalized_amount,
            source_network=source.value,
            destination_network=destination.value,
        )
        if not preparation.sign_to_address:
            preparation = await self._resolve_sign_target(preparation, request, ctx.normalized_amount)
        ctx.preparation = preparation

    async def _resolve_sign_target(
        self,
        preparation: PreparationResult,
        request: PaymentRequest,
        amount: str,
    ) -> PreparationResult:
        """Find the address to sign to when the preparation response omits it"""
        if preparation.is_cross_chain:
            order = await self.aggregator.prepare_bridge(
                preparation.source_network,
                preparation.destination_network,
                request.to,
                amount,
            )
            return preparation.model_copy(update={
                "sign_to_address": order.deposit_address,
                "sign_to_description": "Bridge deposit address",
                "bridge_order_id": order.bridge_order_id,
            })

        wallets = await self.aggregator.facilitator_config()
        wallet = wallets.get(preparation.source_network)
        if not wallet:
            raise PaymentError(
                f"No intermediate wallet configured for {preparation.source_network}"
            )
        return preparation.model_copy(update={
            "sign_to_address": wallet,
            "sign_to_description": "Intermediate settlement wallet",
        })

    def _compare_server_preview(self, ctx: PaymentContext) -> None:
        preview = ctx.preparation.calculated_fees
        if preview is not None and preview.total_fees != ctx.fees.total_fees:
            logger.warning(
                "fee_preview_mismatch",
                client_total=format_amount(ctx.fees.total_fees),
                server_total=format_amount(preview.total_fees),
            )

    async def _sign(self, ctx: PaymentContext) -> List[FacilitatorHeader]:
        if ctx.request.payment_header:
            logger.info("payment_using_provided_header")
            return [
                FacilitatorHeader(
                    facilitator_name=PROVIDED_HEADER,
                    facilitator_id=PROVIDED_HEADER,
                    payment_header=ctx.request.payment_header,
                )
            ]

        preparation = ctx.preparation
        logger.info(
            "payment_signing",
            sign_to=preparation.sign_to_address,
            description=preparation.sign_to_description,
        )
        # The signature always covers the gross amount; fees come off at settlement
        headers = await self.header_builder.build(
            sign_to=preparation.sign_to_address,
            amount=format_amount(ctx.fees.gross_amount),
            source_network=preparation.source_network,
            destination_network=preparation.destination_network,
            priority=ctx.request.priority,
        )
        logger.info("payment_headers_signed", count=len(headers))
        return headers

    @staticmethod
    def _routed_facilitator_id(header: FacilitatorHeader) -> Optional[str]:
        """Facilitator a header must settle through, or None if any may take it"""
        # Fee-payer-bound headers may only settle through their own facilitator.
        # The default-fee-payer header has no ranked identity to route to.
        if not header.solana_fee_payer or header.facilitator_id == FALLBACK_FACILITATOR_ID:
            return None
        return header.facilitator_id

    def _settlement_request(self, ctx: PaymentContext, header: FacilitatorHeader) -> SettlementRequest:
        request = ctx.request
        preparation = ctx.preparation
        return SettlementRequest(
            payment_header=header.payment_header,
            to=request.to,
            amount=format_amount(ctx.fees.gross_amount),
            source_network=preparation.source_network,
            destination_network=preparation.destination_network,
            priority=request.priority,
            idempotency_key=request.idempotency_key,
            metadata=request.metadata,
            bridge_order_id=preparation.bridge_order_id,
            facilitator_id=self._routed_facilitator_id(header),
            calculated_fees=ctx.fees.settlement_breakdown(),
        )

    async def _submit_with_failover(self, ctx: PaymentContext) -> PaymentResult:
        headers = ctx.headers
        if not headers:
            raise NetworkError("Payment failed with all facilitators")

        preparation = ctx.preparation
        logger.info(
            "payment_submitting",
            facilitators=len(headers),
            cross_chain=preparation.is_cross_chain,
            source_network=preparation.source_network,
            destination_network=preparation.destination_network,
        )

        last_error: Optional[UplinkError] = None
        for index, header in enumerate(headers):
            self._transition(ctx, PaymentState.SUBMITTING)
            attempt = PaymentAttempt(
                index=index,
                facilitator_name=header.facilitator_name,
                facilitator_id=header.facilitator_id,
            )
            ctx.attempts.append(attempt)
            logger.info(
                "facilitator_attempt",
                attempt=index + 1,
                total=len(headers),
                facilitator=header.facilitator_name,
            )

            try:
                result = await self.aggregator.submit_payment(
                    self._settlement_request(ctx, header)
                )
            except NON_RETRYABLE_ERRORS as e:
                attempt.error = e.reason or e.message
                logger.error(
                    "facilitator_attempt_aborted",
                    facilitator=header.facilitator_name,
                    error_type=type(e).__name__,
                )
                raise
            except (PaymentError, NetworkError) as e:
                attempt.error = e.reason or e.message
                last_error = e
                logger.warning(
                    "facilitator_attempt_failed",
                    facilitator=header.facilitator_name,
                    error=attempt.error,
                    remaining=len(headers) - index - 1,
                )
                continue

            attempt.succeeded = True
            result.attempts = list(ctx.attempts)
            logger.info(
                "payment_succeeded",
                tx_hash=result.tx_hash,
                facilitator=result.facilitator or header.facilitator_name,
                attempts=index + 1,
                elapsed_seconds=ctx.elapsed_seconds(),
            )
            return result

        logger.error(
            "payment_all_facilitators_failed",
            facilitators=len(headers),
            elapsed_seconds=ctx.elapsed_seconds(),
        )
        raise last_error
