"""
Uplink
Cross-chain USDC payments through the onchain.fi aggregator
"""

__version__ = "2.0.0"

from uplink.config import UplinkConfig, get_uplink_config
from uplink.errors import (
    UplinkError,
    ValidationError,
    AuthenticationError,
    SigningError,
    PaymentError,
    FeeMismatchError,
    SettlementResponseError,
    NetworkError,
)
from uplink.log import configure_logging
from uplink.payments.models import PaymentAttempt, PaymentResult, Priority
from uplink.client import Uplink

__all__ = [
    "__version__",
    "Uplink",
    "UplinkConfig",
    "get_uplink_config",
    "configure_logging",
    "PaymentResult",
    "PaymentAttempt",
    "Priority",
    "UplinkError",
    "ValidationError",
    "AuthenticationError",
    "SigningError",
    "PaymentError",
    "FeeMismatchError",
    "SettlementResponseError",
    "NetworkError",
]
