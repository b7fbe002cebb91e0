"""
Factory Boy factories for generating test data
"""

import factory
from solders.keypair import Keypair

from uplink.payments.models import (
    ATACheck,
    FacilitatorHeader,
    FeeConfig,
    PreparationResult,
    RankedFacilitator,
)


class FeeConfigFactory(factory.Factory):
    """Factory for FeeConfig"""
    class Meta:
        model = FeeConfig

    tier = "STANDARD"
    samechain_fee_percent = 0.1
    crosschain_fee_percent = 0.1
    minimum_crosschain_fee = 0.01
    ata_creation_fee = 0.4


class ATACheckFactory(factory.Factory):
    """Factory for ATACheck"""
    class Meta:
        model = ATACheck

    needs_creation = False
    applicable = False


class PreparationResultFactory(factory.Factory):
    """Factory for a same-chain Base PreparationResult"""
    class Meta:
        model = PreparationResult

    fee_config = factory.SubFactory(FeeConfigFactory)
    ata_check = factory.SubFactory(ATACheckFactory)
    calculated_fees = None
    sign_to_address = "0x" + "22" * 20
    sign_to_description = "Intermediate settlement wallet"
    bridge_order_id = None
    source_network = "base"
    destination_network = "base"
    is_cross_chain = False


class RankedFacilitatorFactory(factory.Factory):
    """Factory for RankedFacilitator"""
    class Meta:
        model = RankedFacilitator

    facilitator_name = factory.Sequence(lambda n: f"Facilitator{n}")
    facilitator_id = factory.Sequence(lambda n: f"fac_{n}")
    solana_fee_payer = factory.LazyFunction(lambda: str(Keypair().pubkey()))


class FacilitatorHeaderFactory(factory.Factory):
    """Factory for FacilitatorHeader"""
    class Meta:
        model = FacilitatorHeader

    facilitator_name = factory.Sequence(lambda n: f"Facilitator{n}")
    facilitator_id = factory.Sequence(lambda n: f"fac_{n}")
    payment_header = factory.Sequence(lambda n: f"header-{n}")
    solana_fee_payer = None
