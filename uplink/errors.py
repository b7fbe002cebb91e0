"""
Uplink exception hierarchy
Every failure raised by the client derives from UplinkError
"""

from typing import List, Optional


class UplinkError(Exception):
    """Base class for all Uplink errors"""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        # Facilitator attempts made before this error surfaced
        self.attempts: List = []

    def __str__(self) -> str:
        if not self.attempts:
            return self.message
        tried = ", ".join(
            f"{a.facilitator_name} ({a.error or 'ok'})" for a in self.attempts
        )
        return f"{self.message}\nFacilitators tried: {tried}"


class ValidationError(UplinkError):
    """Bad input: unparsable amount, missing credentials, insufficient amount"""


class AuthenticationError(UplinkError):
    """Invalid API key"""


class SigningError(UplinkError):
    """Local cryptographic or RPC failure while building a payment header"""


class PaymentError(UplinkError):
    """Settlement or preparation rejected by the aggregator"""


class FeeMismatchError(PaymentError):
    """Client and server fee totals disagree at settlement time"""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        client_total: Optional[str] = None,
        server_total: Optional[str] = None,
    ):
        super().__init__(message, reason)
        self.client_total = client_total
        self.server_total = server_total


class NetworkError(UplinkError):
    """Timeout or connectivity failure"""


class SettlementResponseError(PaymentError):
    """Settlement reported success but its confirmation could not be read"""


# Errors that make trying another facilitator pointless
NON_RETRYABLE_ERRORS = (AuthenticationError, FeeMismatchError, SettlementResponseError)
