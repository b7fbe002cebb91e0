"""
EVM payment signer
Produces EIP-3009 transferWithAuthorization signatures (EIP-712 typed data)
"""

import secrets
import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3
import structlog

from uplink.errors import SigningError, ValidationError
from uplink.payments.amounts import to_atomic_units
from uplink.payments.models import PaymentAuthorization, PaymentPayload, encode_payment_payload
from uplink.payments.networks import ChainFamily, Network

logger = structlog.get_logger()

# Authorization validity window
AUTHORIZATION_TTL_SECONDS = 3600


class EVMSigner:
    """
    Signs USDC transfer authorizations for one EVM network.

    The signed payload does not name a fee payer, so a single header is
    accepted by every facilitator.
    """

    def __init__(self, private_key: str, network: "str | Network" = Network.BASE):
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key

        try:
            self.account = Account.from_key(private_key)
        except Exception as e:
            raise ValidationError(f"Invalid private key: {e}") from e

        self.network = Network.parse(network)
        if self.network.family is not ChainFamily.EVM:
            raise ValidationError(f"Unsupported network: {self.network.value}")

        spec = self.network.spec
        self.chain_id = spec.chain_id
        self.usdc_address = Web3.to_checksum_address(spec.usdc_address)

    @property
    def address(self) -> str:
        return self.account.address

    async def sign_payment(
        self,
        to: str,
        amount: str,
        source_network: str,
        destination_network: str,
        fee_payer: Optional[str] = None,
    ) -> str:
        """
        Sign a payment authorization and return it as a base64 x402 header.

        Args:
            to: Address the authorization pays (intermediate wallet or bridge deposit)
            amount: Gross decimal amount
            source_network: Network the funds leave from
            destination_network: Network the recipient is on
            fee_payer: Ignored; EVM settlement does not bind a fee payer

        Returns:
            Base64-encoded JSON envelope
        """
        try:
            value = to_atomic_units(amount)
            nonce = "0x" + secrets.token_bytes(32).hex()
            valid_after = 0
            valid_before = int(time.time()) + AUTHORIZATION_TTL_SECONDS
            recipient = Web3.to_checksum_address(to)

            typed_data = self.create_typed_data(
                from_address=self.address,
                to=recipient,
                value=value,
                valid_after=valid_after,
                valid_before=valid_before,
                nonce=nonce,
            )
            signed = self.account.sign_message(encode_typed_data(full_message=typed_data))

            authorization = PaymentAuthorization(
                from_address=self.address,
                to=recipient,
                value=str(value),
                valid_after=str(valid_after),
                valid_before=str(valid_before),
                nonce=nonce,
            )
            signature = signed.signature.hex()
            payment_payload = PaymentPayload(
                network=source_network,
                payload={
                    "signature": signature if signature.startswith("0x") else "0x" + signature,
                    "authorization": authorization.model_dump(by_alias=True),
                },
            )
        except Exception as e:
            raise SigningError(f"Failed to sign EVM payment: {e}") from e

        logger.debug(
            "evm_payment_signed",
            network=source_network,
            to=recipient,
            value=value,
            valid_before=valid_before,
        )
        return encode_payment_payload(payment_payload)

    def create_typed_data(
        self,
        from_address: str,
        to: str,
        value: int,
        valid_after: int,
        valid_before: int,
        nonce: str,
    ) -> dict:
        """Create EIP-712 typed data for payment authorization"""
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "TransferWithAuthorization": [
                    {"name": "from", "type": "address"},
                    {"name": "to", "type": "address"},
                    {"name": "value", "type": "uint256"},
                    {"name": "validAfter", "type": "uint256"},
                    {"name": "validBefore", "type": "uint256"},
                    {"name": "nonce", "type": "bytes32"},
                ],
            },
            "primaryType": "TransferWithAuthorization",
            "domain": {
                "name": "USD Coin",
                "version": "2",
                "chainId": self.chain_id,
                "verifyingContract": self.usdc_address,
            },
            "message": {
                "from": Web3.to_checksum_address(from_address),
                "to": Web3.to_checksum_address(to),
                "value": int(value),
                "validAfter": int(valid_after),
                "validBefore": int(valid_before),
                "nonce": nonce if nonce.startswith("0x") else f"0x{nonce}",
            },
        }

