"""
Supported networks and network resolution
Each network carries its chain family, which decides which signer handles it
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from uplink.errors import ValidationError

logger = structlog.get_logger()


class ChainFamily(Enum):
    """Signing scheme family"""
    EVM = "evm"
    SOLANA = "solana"


class Network(str, Enum):
    """Networks the aggregator settles on"""
    BASE = "base"
    SOLANA = "solana"

    @property
    def family(self) -> ChainFamily:
        return NETWORKS[self].family

    @property
    def spec(self) -> "NetworkSpec":
        return NETWORKS[self]

    @classmethod
    def parse(cls, value: "str | Network") -> "Network":
        """Parse a network name, rejecting anything outside the closed set"""
        if isinstance(value, Network):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = [n.value for n in cls]
            raise ValidationError(f"Unsupported network: {value}. Supported: {supported}") from None


@dataclass(frozen=True)
class NetworkSpec:
    """Chain constants for one network"""
    family: ChainFamily
    usdc_address: str
    chain_id: Optional[int] = None


NETWORKS = {
    Network.BASE: NetworkSpec(
        family=ChainFamily.EVM,
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        chain_id=8453,
    ),
    Network.SOLANA: NetworkSpec(
        family=ChainFamily.SOLANA,
        usdc_address="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    ),
}

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_NAME_SERVICE_SUFFIXES = (".eth", ".base.eth")


def detect_network_from_address(address: str) -> Optional[Network]:
    """Infer a network from address shape, or None when the shape is ambiguous"""
    addr = address.strip()

    if _EVM_ADDRESS.match(addr):
        return Network.BASE

    if _BASE58_ADDRESS.match(addr):
        return Network.SOLANA

    if addr.lower().endswith(_NAME_SERVICE_SUFFIXES):
        return Network.BASE

    return None


class NetworkResolver:
    """Resolves source and destination networks for a payment"""

    def __init__(self, default_network: "str | Network" = Network.BASE):
        self.default_network = Network.parse(default_network)

    def resolve_source(self, explicit: Optional[str] = None) -> Network:
        if explicit:
            return Network.parse(explicit)
        return self.default_network

    def resolve_destination(self, address: str, explicit: Optional[str] = None) -> Network:
        if explicit:
            return Network.parse(explicit)

        detected = detect_network_from_address(address)
        if detected is None:
            # Ambiguous shapes keep the configured default
            logger.warning(
                "network_detection_fallback",
                address=address,
                network=self.default_network.value,
            )
            return self.default_network
        return detected
